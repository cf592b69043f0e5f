"""
Fetches one course's class-data XML with the current template, recapturing it at most once.

States:
  FETCHING -> SUCCESS | TOKEN_STALE | NOT_AUTHORIZED
  TOKEN_STALE -> RECAPTURING -> FETCHING (one retry; its response stands)
  NOT_AUTHORIZED -> ABORTED (returned as a verdict; the caller ends the run)
"""

import enum
import logging
from dataclasses import dataclass

from browser_session import BrowserSession, SessionResponse
from course_resolver import ResolvedIdentity
from response_classifier import ResponseClassifier
from suggestion_pool import SuggestionLister, SuggestionPool
from template_manager import SessionTemplate, TemplateManager
from timetable_config import UrlBuilder

log = logging.getLogger(__name__)


class FetchState(enum.Enum):
    FETCHING = 'fetching'
    TOKEN_STALE = 'token-stale'
    RECAPTURING = 'recapturing'
    SUCCESS = 'success'
    NOT_AUTHORIZED = 'not-authorized'
    ABORTED = 'aborted'


class FetchVerdict(enum.Enum):
    OK = 'ok'  # body may still hold a content-level <error>; the caller classifies it
    NOT_AUTHORIZED = 'not-authorized'


@dataclass(frozen=True)
class ClassDataResponse:
    status: int
    xml: str
    url: str


@dataclass(frozen=True)
class FetchResult:
    response: ClassDataResponse
    verdict: FetchVerdict
    template: SessionTemplate
    pool: SuggestionPool
    attempts: int
    trail: tuple[FetchState, ...]

    @property
    def recaptured(self) -> bool:
        return FetchState.RECAPTURING in self.trail


class ClassDataFetcher:
    """
    Applies a template to a resolved course and runs the retry state machine.
    - Builds the url via the template manager; sends api-style headers with the criteria page as referer.
    - On a stale-token body: takes the next suggestion label, captures a new template, fetches once more.
    - Reports not-authorized as a verdict so the caller can record the course before aborting.
    - Hands back the (possibly replaced) template and pool; nothing is mutated in place.
    """

    def __init__(
        self,
        session: BrowserSession,
        templates: TemplateManager,
        lister: SuggestionLister,
        classifier: ResponseClassifier,
        urls: UrlBuilder,
    ) -> None:
        self.session = session
        self.templates = templates
        self.lister = lister
        self.classifier = classifier
        self.urls = urls

    def request_headers(self) -> dict[str, str]:
        return {
            'X-Requested-With': 'XMLHttpRequest',
            'Referer': self.urls.criteria_url(),
        }

    def fetch(self, template: SessionTemplate, identity: ResolvedIdentity) -> ClassDataResponse:
        url: str = self.templates.build(template, identity.cn_key, identity.va)
        log.debug(f'fetching class-data, ``{url}``')
        resp: SessionResponse = self.session.http_get(url, self.request_headers())
        return ClassDataResponse(status=resp.status, xml=resp.text, url=url)

    def fetch_with_retry(
        self, template: SessionTemplate, pool: SuggestionPool, identity: ResolvedIdentity
    ) -> FetchResult:
        trail: list[FetchState] = [FetchState.FETCHING]
        attempts: int = 1
        response: ClassDataResponse = self.fetch(template, identity)

        if self.classifier.is_token_stale(response.xml):
            log.info(f'template tokens stale for cnKey ``{identity.cn_key}``; recapturing once')
            trail += [FetchState.TOKEN_STALE, FetchState.RECAPTURING]
            label, pool = pool.next(self.lister)
            template = self.templates.capture(label)
            trail.append(FetchState.FETCHING)
            attempts += 1
            response = self.fetch(template, identity)

        if self.classifier.is_not_authorized(response.xml):
            trail += [FetchState.NOT_AUTHORIZED, FetchState.ABORTED]
            verdict = FetchVerdict.NOT_AUTHORIZED
        else:
            trail.append(FetchState.SUCCESS)
            verdict = FetchVerdict.OK
        return FetchResult(
            response=response,
            verdict=verdict,
            template=template,
            pool=pool,
            attempts=attempts,
            trail=tuple(trail),
        )
