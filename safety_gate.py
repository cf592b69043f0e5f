"""
Network guardrails so scraping never changes the logged-in account's saved schedule.

Every request to the MyTimetable api namespace is classified before it leaves the process:
- telemetry (report-usage) is dropped
- GET is allowed (read-only)
- POST to string-to-filter (the resolver) is allowed
- anything else is blocked, and the run stops
"""

import enum
import logging
from dataclasses import dataclass

import httpx
from playwright.sync_api import Page, Route

from scrape_errors import BlockedRequestError
from timetable_config import UrlBuilder

log = logging.getLogger(__name__)


class GateDecision(enum.Enum):
    PASS = 'pass'  # outside the api namespace; not the gate's concern
    DROP = 'drop'  # telemetry; aborted silently
    ALLOW = 'allow'
    BLOCK = 'block'


@dataclass(frozen=True)
class SafetyPolicy:
    api_prefix: str
    telemetry_prefix: str
    allowed_post_urls: tuple[str, ...]

    @classmethod
    def for_urls(cls, urls: UrlBuilder) -> 'SafetyPolicy':
        return cls(
            api_prefix=urls.api_prefix(),
            telemetry_prefix=urls.report_usage_url(),
            allowed_post_urls=(urls.resolver_url(),),
        )


def same_endpoint(url: str, endpoint: str) -> bool:
    """
    True when `url` targets exactly `endpoint`, ignoring any query string or fragment.
    """
    a, b = httpx.URL(url), httpx.URL(endpoint)
    return (a.scheme, a.host, a.port, a.path) == (b.scheme, b.host, b.port, b.path)


def classify_request(policy: SafetyPolicy, method: str, url: str) -> GateDecision:
    """
    Maps a (method, url) pair to a gate decision. Pure; the table is checked top to bottom.
    """
    method = method.upper()
    if not url.startswith(policy.api_prefix):
        return GateDecision.PASS
    if url.startswith(policy.telemetry_prefix):
        return GateDecision.DROP
    if method == 'GET':
        return GateDecision.ALLOW
    if method == 'POST' and any(same_endpoint(url, allowed) for allowed in policy.allowed_post_urls):
        return GateDecision.ALLOW
    return GateDecision.BLOCK


class SafetyGate:
    """
    Applies the classification table to browser traffic and to requests the scraper issues itself.
    - `install()` routes every page request through the table.
    - `enforce()` is called before each api-context request, since those bypass page routing.
    - A block seen inside a route handler aborts that request and is re-raised by `raise_if_tripped()`.
    """

    def __init__(self, policy: SafetyPolicy) -> None:
        self.policy: SafetyPolicy = policy
        self.violation: BlockedRequestError | None = None
        self.dropped_count: int = 0

    def decide(self, method: str, url: str) -> GateDecision:
        return classify_request(self.policy, method, url)

    def enforce(self, method: str, url: str) -> bool:
        """
        Returns True when the request may go out, False when it should be dropped silently.
        Raises BlockedRequestError for blocked requests.
        """
        self.raise_if_tripped()
        decision: GateDecision = self.decide(method, url)
        if decision is GateDecision.BLOCK:
            self.violation = BlockedRequestError(method.upper(), url)
            raise self.violation
        if decision is GateDecision.DROP:
            self.dropped_count += 1
            log.debug(f'dropping telemetry request, ``{url}``')
            return False
        return True

    def handle_route(self, route: Route) -> None:
        """
        Playwright route handler.
        Called by: page.route() once installed.
        """
        request = route.request
        decision: GateDecision = self.decide(request.method, request.url)
        if decision in (GateDecision.PASS, GateDecision.ALLOW):
            route.continue_()
            return
        route.abort()
        if decision is GateDecision.DROP:
            self.dropped_count += 1
            return
        log.error(f'blocked browser request, ``{request.method} {request.url}``')
        if self.violation is None:
            self.violation = BlockedRequestError(request.method.upper(), request.url)

    def install(self, page: Page) -> None:
        page.route('**/*', self.handle_route)

    def raise_if_tripped(self) -> None:
        if self.violation is not None:
            raise self.violation
