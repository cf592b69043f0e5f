"""
Resolves human course codes (eg `BIO 1A03`) to the identifiers class-data needs.
"""

import json
import logging
from dataclasses import dataclass

from browser_session import BrowserSession, SessionResponse
from timetable_config import ScrapeConfig, UrlBuilder

log = logging.getLogger(__name__)

NO_RESULT_ERROR: str = 'No resolver result'


@dataclass(frozen=True)
class ResolvedIdentity:
    cn_key: str
    va: str  # opaque; passed through to class-data as-is


@dataclass(frozen=True)
class ResolveFailure:
    error: str


class CourseResolver:
    """
    Calls /api/string-to-filter, the only POST the scraper issues, and keeps the first match.
    Failures are returned, not raised; they are terminal for the course and never retried.
    """

    def __init__(self, session: BrowserSession, cfg: ScrapeConfig, urls: UrlBuilder) -> None:
        self.session = session
        self.cfg = cfg
        self.urls = urls

    def build_form(self, course: str) -> dict[str, str]:
        return {
            'term': self.cfg.term_id,
            'validations': '',
            'itemnames': course,
            'input': course.lower(),
            'reason': 'CODE_NUMBER',
            'current': '',
            'isimport': '0',
            'strict': '0',
        }

    def resolve(self, course: str) -> ResolvedIdentity | ResolveFailure:
        resp: SessionResponse = self.session.http_post(
            self.urls.resolver_url(), {'X-Requested-With': 'XMLHttpRequest'}, self.build_form(course)
        )
        try:
            data: object = json.loads(resp.text)
        except json.JSONDecodeError:
            log.debug(f'unparseable resolver body for ``{course}``, ``{resp.text[:200]}``')
            return ResolveFailure(f'Unparseable resolver response (HTTP {resp.status})')
        first: object = data[0] if isinstance(data, list) and data else None
        if not isinstance(first, dict):
            return ResolveFailure(NO_RESULT_ERROR)
        if first.get('error'):
            return ResolveFailure(str(first['error']))
        return ResolvedIdentity(cn_key=str(first.get('cnKey')), va=str(first.get('va')))
