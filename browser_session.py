"""
Playwright wrapper that the scrape components drive.

The page (and its cookies) is the logged-in MyTimetable session. Components only see the narrow
surface below, which keeps them testable with a scripted fake in place of a browser.
"""

import logging
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from playwright.sync_api import Error as PWError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PWTimeout
from playwright.sync_api import sync_playwright

from safety_gate import SafetyGate
from scrape_errors import SESSION_REFRESH_HINT, ScrapeError, TemplateCaptureError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionResponse:
    status: int
    text: str
    url: str


class BrowserSession:
    """
    Exposes navigation, role-based UI interaction, request observation and cookie-bearing http calls.
    - UI failures (navigation, clicks, waiting for a request) surface as TemplateCaptureError,
      since UI is only driven to capture a template.
    - Every http call is checked by the safety gate before it is issued.
    """

    def __init__(self, page: Page, gate: SafetyGate) -> None:
        self.page: Page = page
        self.gate: SafetyGate = gate

    def navigate(self, url: str) -> None:
        log.debug(f'navigating to ``{url}``')
        try:
            self.page.goto(url)
        except PWError as exc:
            raise TemplateCaptureError(f'navigation to ``{url}`` failed: {exc}') from exc
        self.gate.raise_if_tripped()

    def click_by_role(self, role: str, name: str | re.Pattern[str]) -> None:
        try:
            self.page.get_by_role(role, name=name).click()  # type: ignore[arg-type]
        except PWError as exc:
            raise TemplateCaptureError(f'could not click {role} ``{name}``: {exc}') from exc
        self.gate.raise_if_tripped()

    def fill_and_submit(self, role: str, name: str | re.Pattern[str], text: str) -> None:
        box = self.page.get_by_role(role, name=name)  # type: ignore[arg-type]
        try:
            box.fill(text)
            box.press('Enter')
        except PWError as exc:
            raise TemplateCaptureError(f'could not fill {role} ``{name}`` with ``{text}``: {exc}') from exc
        self.gate.raise_if_tripped()

    def await_request_matching(self, predicate: Callable[[str], bool], action: Callable[[], None]) -> str:
        """
        Runs `action` and returns the url of the first request whose url satisfies `predicate`.
        Uses playwright's default timeout; a timeout means the UI never issued the request.
        """
        try:
            with self.page.expect_request(lambda req: predicate(req.url)) as req_info:
                action()
            url: str = req_info.value.url
        except PWTimeout as exc:
            raise TemplateCaptureError(f'no matching request observed: {exc}') from exc
        except PWError as exc:
            raise TemplateCaptureError(f'browser failed while waiting for a request: {exc}') from exc
        self.gate.raise_if_tripped()
        return url

    def http_get(self, url: str, headers: dict[str, str]) -> SessionResponse:
        if not self.gate.enforce('GET', url):
            return SessionResponse(status=0, text='', url=url)
        resp = self.page.request.get(url, headers=headers)
        return SessionResponse(status=resp.status, text=resp.text(), url=url)

    def http_post(self, url: str, headers: dict[str, str], form: dict[str, str]) -> SessionResponse:
        if not self.gate.enforce('POST', url):
            return SessionResponse(status=0, text='', url=url)
        resp = self.page.request.post(url, headers=headers, form=form)  # type: ignore[arg-type]
        return SessionResponse(status=resp.status, text=resp.text(), url=url)

    def intercept_all(self, gate: SafetyGate) -> None:
        gate.install(self.page)

    def wait(self, seconds: float) -> None:
        self.page.wait_for_timeout(seconds * 1000)


@contextmanager
def open_browser_session(
    gate: SafetyGate,
    *,
    storage_state: Path | None = None,
    cdp_url: str | None = None,
    headless: bool = True,
) -> Iterator[BrowserSession]:
    """
    Yields a BrowserSession on a fresh page, with the safety gate installed before any navigation.

    Session establishment is out of band: either a storage-state file saved from a manual login,
    or an already logged-in chromium reachable over CDP.
    """
    if cdp_url is None and storage_state is not None and not storage_state.exists():
        raise ScrapeError(f'storage-state file ``{storage_state}`` not found. {SESSION_REFRESH_HINT}')
    with sync_playwright() as pw:
        try:
            if cdp_url:
                log.info(f'attaching to browser over CDP at ``{cdp_url}``')
                browser = pw.chromium.connect_over_cdp(cdp_url)
                context = browser.contexts[0] if browser.contexts else browser.new_context()
            else:
                browser = pw.chromium.launch(headless=headless)
                context = browser.new_context(storage_state=str(storage_state) if storage_state else None)
            page: Page = context.new_page()
        except PWError as exc:
            raise ScrapeError(f'could not open a browser session: {exc}. {SESSION_REFRESH_HINT}') from exc
        session = BrowserSession(page, gate)
        session.intercept_all(gate)
        try:
            yield session
        finally:
            page.close()
            if not cdp_url:
                browser.close()
