"""
Course-suggestion labels used only to make the UI issue a real class-data request.

Which course gets selected doesn't matter; only the request's token params are harvested.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from browser_session import BrowserSession, SessionResponse
from scrape_errors import TemplateCaptureError
from timetable_config import ScrapeConfig, UrlBuilder

log = logging.getLogger(__name__)

XHR_HEADERS: dict[str, str] = {'X-Requested-With': 'XMLHttpRequest'}


def parse_suggestion_labels(xml: str) -> list[str]:
    """
    Returns the non-empty `add_suggest/results/rs` texts, in document order.
    """
    try:
        root: ET.Element = ET.fromstring(xml)
    except ET.ParseError as exc:
        raise TemplateCaptureError(f'suggestions listing is not valid XML: {exc}') from exc
    results: ET.Element | None = root if root.tag == 'results' else root.find('results')
    if results is None:
        return []
    labels: list[str] = []
    for rs in results.findall('rs'):
        text: str = (rs.text or '').strip()
        if text:
            labels.append(text)
    return labels


class SuggestionLister:
    """
    Fetches the suggestions listing for the configured term.
    """

    def __init__(self, session: BrowserSession, cfg: ScrapeConfig, urls: UrlBuilder) -> None:
        self.session = session
        self.cfg = cfg
        self.urls = urls

    def fetch_labels(self) -> list[str]:
        url: str = self.urls.suggestions_url(self.cfg.term_id, self.cfg.cams)
        log.debug(f'fetching suggestions, ``{url}``')
        resp: SessionResponse = self.session.http_get(url, XHR_HEADERS)
        if resp.status != 200:
            raise TemplateCaptureError(f'suggestions endpoint returned HTTP {resp.status}')
        labels: list[str] = parse_suggestion_labels(resp.text)
        log.debug(f'got {len(labels)} suggestion labels')
        return labels


@dataclass(frozen=True)
class SuggestionPool:
    """
    Consumable, immutable run of labels from one listing fetch.
    `next()` hands back the label and the pool that remains; an exhausted pool refills from the lister.
    """

    labels: tuple[str, ...] = ()
    position: int = 0

    @property
    def remaining(self) -> int:
        return len(self.labels) - self.position

    def next(self, lister: SuggestionLister) -> tuple[str, 'SuggestionPool']:
        pool: SuggestionPool = self
        if pool.remaining <= 0:
            log.debug('suggestion pool exhausted; refilling')
            pool = prime_pool(lister)
        label: str = pool.labels[pool.position]
        return label, SuggestionPool(pool.labels, pool.position + 1)


def prime_pool(lister: SuggestionLister) -> SuggestionPool:
    labels: list[str] = lister.fetch_labels()
    if not labels:
        raise TemplateCaptureError('suggestions listing returned no labels; cannot pick a course to capture a template')
    return SuggestionPool(tuple(labels))
