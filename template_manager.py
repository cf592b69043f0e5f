"""
Session templates for /api/class-data.

MyTimetable's class-data requests carry short-lived token params (`t`, `e`) that are easiest to obtain
by letting the UI issue a real request. A template is that request's sanitized query params; each
course's url reuses them and only swaps in the course identity. When the tokens expire the fetcher
captures a fresh template.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

import httpx

from browser_session import BrowserSession
from scrape_errors import TemplateCaptureError
from timetable_config import ScrapeConfig, UrlBuilder, now_ms

log = logging.getLogger(__name__)

LOADED_COURSE_PARAM_RE: re.Pattern[str] = re.compile(r'^(course|va|rq)_\d+_\d+$')
GUEST_MODE_PARAM: str = 'nouser'
CLASS_DATA_PATH: str = '/api/class-data'
COURSE_PICKER_NAME: re.Pattern[str] = re.compile(r'Select Course', re.IGNORECASE)


@dataclass(frozen=True)
class SessionTemplate:
    base_url: str
    params: Mapping[str, str]

    def __post_init__(self) -> None:
        object.__setattr__(self, 'params', MappingProxyType(dict(self.params)))


def sanitize_template_params(params: Mapping[str, str]) -> dict[str, str]:
    """
    Removes params that depend on which courses are loaded in the UI (`course_R_C`, `va_R_C`, `rq_R_C`),
    and the `nouser` guest-mode flag so a logged-in session isn't downgraded.
    """
    cleaned: dict[str, str] = {}
    for key, value in params.items():
        if LOADED_COURSE_PARAM_RE.match(key):
            continue
        if key == GUEST_MODE_PARAM:
            continue
        cleaned[key] = value
    return cleaned


def template_from_request_url(request_url: str) -> SessionTemplate:
    url = httpx.URL(request_url)
    params: dict[str, str] = dict(url.params.multi_items())
    if not params:
        raise TemplateCaptureError(f'captured class-data request has no query params, ``{request_url}``')
    base_url: str = request_url.split('#', 1)[0].split('?', 1)[0]
    return SessionTemplate(base_url=base_url, params=sanitize_template_params(params))


def build_class_data_url(
    template: SessionTemplate, term_id: str, cn_key: str, va: str, cache_buster: int | None = None
) -> str:
    """
    Builds a single-course class-data url from the template.
    Row 0/col 0 carries the course; `_` is the only part that varies between calls with equal inputs.
    """
    params: dict[str, str] = dict(template.params)
    params['term'] = term_id
    params['course_0_0'] = cn_key
    params['va_0_0'] = va
    params['rq_0_0'] = ''
    params['_'] = str(cache_buster if cache_buster is not None else now_ms())
    return str(httpx.URL(template.base_url, params=params))


class TemplateManager:
    """
    Captures templates by driving the criteria page.
    - Opens criteria.jsp and selects the configured term.
    - Types a suggestion label into the course picker and presses Enter.
    - Keeps the first class-data request the UI issues, sanitized.
    """

    def __init__(self, session: BrowserSession, cfg: ScrapeConfig, urls: UrlBuilder) -> None:
        self.session = session
        self.cfg = cfg
        self.urls = urls

    def capture(self, label: str) -> SessionTemplate:
        log.info(f'capturing class-data template via suggestion ``{label}``')
        self.session.navigate(self.urls.criteria_url())
        self.session.click_by_role('link', self.cfg.term_link_text)
        request_url: str = self.session.await_request_matching(
            lambda url: CLASS_DATA_PATH in url,
            lambda: self.session.fill_and_submit('combobox', COURSE_PICKER_NAME, label),
        )
        template: SessionTemplate = template_from_request_url(request_url)
        log.debug(f'template params, ``{sorted(template.params)}``')
        return template

    def build(self, template: SessionTemplate, cn_key: str, va: str) -> str:
        return build_class_data_url(template, self.cfg.term_id, cn_key, va)
