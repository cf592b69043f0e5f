# /// script
# requires-python = "==3.12.*"
# dependencies = [
#   "httpx",
#   "humanize",
#   "playwright",
#   "tqdm"
# ]
# ///

"""
Collects MyTimetable class-data XML for a list of course codes.
It's server-friendly, in that it makes sequential requests with a fixed pause after each course,
  and appends an outcome line after every course so it can be resumed after a failure
  and will continue from where it left off.

Needs an already logged-in session: a playwright storage-state file (default `auth.storage.json`),
  or a running chromium reachable with `--cdp-url`.

Usage:
  uv run ./gather_class_data.py --courses-file ./courses.txt --output-dir ./out --test-limit 4

Args:
  --courses-file (optional) -- default `courses.txt`
  --output-dir (optional) -- default `out`
  --config (optional) -- flat JSON overriding term settings
  --term-id, --delay-ms (optional) -- override the config
  --storage-state, --cdp-url, --headed (optional) -- browser session
  --test-limit (optional) -- convenient for testing
"""

import argparse
import logging
import os
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import humanize
from playwright.sync_api import Error as PWError
from tqdm import tqdm

from browser_session import BrowserSession, open_browser_session
from class_data_fetcher import ClassDataFetcher, FetchResult, FetchVerdict
from course_resolver import CourseResolver, ResolvedIdentity, ResolveFailure
from response_classifier import RegexResponseClassifier, ResponseClassifier
from results_store import (
    STAGE_CLASS_DATA,
    STAGE_RESOLVE,
    ItemOutcome,
    ResultsLog,
    XmlArtifactStore,
    load_courses,
)
from safety_gate import SafetyGate, SafetyPolicy
from scrape_errors import SESSION_REFRESH_HINT, ScrapeError, SessionExpiredError
from suggestion_pool import SuggestionLister, SuggestionPool, prime_pool
from template_manager import SessionTemplate, TemplateManager
from timetable_config import ScrapeConfig, ScrapePaths, UrlBuilder, ensure_dirs, get_paths, load_config

## setup logging ----------------------------------------------------
log_level_name: str = os.getenv('LOG_LEVEL', 'INFO').upper()
log_level = getattr(
    logging, log_level_name, logging.INFO
)  # maps the string name to the corresponding logging level constant; defaults to INFO
logging.basicConfig(
    level=log_level,
    format='[%(asctime)s] %(levelname)s [%(module)s-%(funcName)s()::%(lineno)d] %(message)s',
    datefmt='%d/%b/%Y %H:%M:%S',
)
log = logging.getLogger(__name__)
## prevent playwright's transport and httpx from logging
if log_level <= logging.INFO:
    for noisy in ('httpx', 'httpcore', 'asyncio'):
        lg = logging.getLogger(noisy)
        lg.setLevel(logging.WARNING)
        lg.propagate = False

PROGRESS_EVERY: int = 50
NOT_AUTHORIZED_ERROR: str = f'Not Authorized (session expired). {SESSION_REFRESH_HINT}'


@dataclass
class RunContext:
    """
    Per-run state owned by the scraper: the live template, the suggestion pool, the processed set
    and counters. Template and pool are replaced wholesale, never edited.
    """

    template: SessionTemplate
    pool: SuggestionPool
    processed: set[str]
    ok_count: int = 0
    fail_count: int = 0

    @property
    def terminal_count(self) -> int:
        return self.ok_count + self.fail_count

    def record(self, outcome: ItemOutcome) -> None:
        self.processed.add(outcome.course)
        if outcome.ok:
            self.ok_count += 1
        else:
            self.fail_count += 1


@dataclass(frozen=True)
class RunSummary:
    ok: int
    fail: int
    elapsed_s: float

    @property
    def total(self) -> int:
        return self.ok + self.fail


class ClassDataScraper:
    """
    Coordinates per-course processing using injected objects (eg CourseResolver, ClassDataFetcher, etc).
    - Skips courses already in the outcome log; does nothing at all when every course is done.
    - Primes the suggestion pool and captures the first template lazily, before the first pending course.
    - Resolves each course; records resolver failures and moves on.
    - Fetches class-data with one template-refresh retry; saves the raw XML whatever it says.
    - Records success/failure from the XML's `<error>` element.
    - On not-authorized: records the course, then raises SessionExpiredError.
    - Pauses after every course; logs progress every 50 courses and a final summary.
    """

    def __init__(
        self,
        resolver: CourseResolver,
        fetcher: ClassDataFetcher,
        templates: TemplateManager,
        lister: SuggestionLister,
        results_log: ResultsLog,
        artifacts: XmlArtifactStore,
        classifier: ResponseClassifier,
        *,
        delay_s: float,
        sleep: Callable[[float], None],
        show_progress: bool = True,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.templates = templates
        self.lister = lister
        self.results_log = results_log
        self.artifacts = artifacts
        self.classifier = classifier
        self.delay_s = delay_s
        self.sleep = sleep
        self.show_progress = show_progress

    def start(self, processed: set[str]) -> RunContext:
        pool: SuggestionPool = prime_pool(self.lister)
        label, pool = pool.next(self.lister)
        template: SessionTemplate = self.templates.capture(label)
        return RunContext(template=template, pool=pool, processed=processed)

    def process_course(self, ctx: RunContext, course: str) -> ItemOutcome:
        """
        Runs one course to a terminal outcome and appends it to the log.
        Raises SessionExpiredError after recording a not-authorized course.
        """
        ## resolve ------------------------------------------------------
        resolved: ResolvedIdentity | ResolveFailure = self.resolver.resolve(course)
        if isinstance(resolved, ResolveFailure):
            log.warning(f'could not resolve ``{course}``: {resolved.error}')
            outcome = ItemOutcome.failure(course, STAGE_RESOLVE, resolved.error)
            self.results_log.append(outcome)
            return outcome

        ## fetch with one template refresh ------------------------------
        result: FetchResult = self.fetcher.fetch_with_retry(ctx.template, ctx.pool, resolved)
        ctx.template = result.template
        ctx.pool = result.pool
        response = result.response
        if result.verdict is FetchVerdict.NOT_AUTHORIZED:
            self.results_log.append(
                ItemOutcome.failure(
                    course,
                    STAGE_CLASS_DATA,
                    NOT_AUTHORIZED_ERROR,
                    cn_key=resolved.cn_key,
                    va=resolved.va,
                    http_status=response.status,
                )
            )
            raise SessionExpiredError(course)

        ## save raw xml always, then classify ---------------------------
        xml_path: str = self.artifacts.save(resolved.cn_key, response.xml)
        xml_error: str | None = self.classifier.first_error(response.xml)
        if xml_error:
            log.warning(f'class-data error for ``{course}``: {xml_error}')
            outcome = ItemOutcome.failure(
                course,
                STAGE_CLASS_DATA,
                xml_error,
                cn_key=resolved.cn_key,
                va=resolved.va,
                http_status=response.status,
                xml_path=xml_path,
            )
        else:
            log.debug(f'saved class-data for ``{course}`` to ``{xml_path}``')
            outcome = ItemOutcome.success(course, resolved.cn_key, resolved.va, response.status, xml_path)
        self.results_log.append(outcome)
        return outcome

    def run(self, courses: list[str], processed: set[str], *, limit: int | None = None) -> RunSummary:
        started: float = time.monotonic()
        pending: list[str] = [c for c in courses if c not in processed]
        log.info(f'{len(courses)} courses in list; {len(courses) - len(pending)} already done; {len(pending)} to go')
        if not pending or limit == 0:
            return RunSummary(ok=0, fail=0, elapsed_s=time.monotonic() - started)

        ctx: RunContext = self.start(processed)
        for course in tqdm(pending, total=len(pending), desc='Processing courses', disable=not self.show_progress):
            if course in ctx.processed:
                continue
            outcome: ItemOutcome = self.process_course(ctx, course)
            ctx.record(outcome)
            if ctx.terminal_count % PROGRESS_EVERY == 0:
                log.info(f'Progress: {ctx.terminal_count} processed (ok={ctx.ok_count}, fail={ctx.fail_count})')
            self.sleep(self.delay_s)
            if limit is not None and ctx.terminal_count >= limit:
                log.info(f'test-limit of {limit} reached')
                break

        summary = RunSummary(ok=ctx.ok_count, fail=ctx.fail_count, elapsed_s=time.monotonic() - started)
        log.info(
            f'Done. ok={summary.ok}, fail={summary.fail}, total={summary.total} '
            f'(in {humanize.precisedelta(summary.elapsed_s)})'
        )
        return summary


def build_scraper(
    session: BrowserSession,
    cfg: ScrapeConfig,
    urls: UrlBuilder,
    paths: ScrapePaths,
    *,
    classifier: ResponseClassifier | None = None,
    sleep: Callable[[float], None] | None = None,
    show_progress: bool = True,
) -> ClassDataScraper:
    """
    Wires the scrape components around one browser session.
    Called by: main()
    """
    classifier = classifier or RegexResponseClassifier()
    lister = SuggestionLister(session, cfg, urls)
    templates = TemplateManager(session, cfg, urls)
    return ClassDataScraper(
        resolver=CourseResolver(session, cfg, urls),
        fetcher=ClassDataFetcher(session, templates, lister, classifier, urls),
        templates=templates,
        lister=lister,
        results_log=ResultsLog(paths.results_path),
        artifacts=XmlArtifactStore(paths.out_dir, cfg.term_id),
        classifier=classifier,
        delay_s=cfg.delay_s,
        sleep=sleep or session.wait,
        show_progress=show_progress,
    )


def non_negative_int(value: str) -> int:
    """
    argparse type for counts; rejects negatives.
    """
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f'expected an integer, got ``{value}``') from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f'must be 0 or more, got {number}')
    return number


class CLI:
    """
    Manages command-line parsing for the script entrypoint.
    - Accepts the course-list file and the output directory.
    - Accepts an optional JSON config plus term and pacing overrides.
    - Accepts how to reach the logged-in session: storage-state file or CDP url.
    - Accepts an optional test-limit to bound how many courses are processed this run.
    """

    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(description='Collect MyTimetable class-data XML for a list of courses.')
        parser.add_argument('--courses-file', default='courses.txt', help='Newline-delimited course codes, eg `BIO 1A03`')
        parser.add_argument('--output-dir', default='out', help='Directory to write the results log and XML')
        parser.add_argument('--config', default=None, help='Optional JSON file with term_id, term_link_text, cams, delay_ms')
        parser.add_argument('--term-id', default=None, help='Optional. Overrides the configured term id.')
        parser.add_argument('--delay-ms', type=non_negative_int, default=None, metavar='INTEGER', help='Optional. Pause after each course.')
        parser.add_argument(
            '--storage-state', default='auth.storage.json', help='Playwright storage-state file from a manual login'
        )
        parser.add_argument('--cdp-url', default=None, help='Optional. Attach to a logged-in chromium, eg http://127.0.0.1:9222')
        parser.add_argument('--headed', action='store_true', help='Show the browser window.')
        parser.add_argument(
            '--test-limit',
            type=non_negative_int,
            default=None,
            metavar='INTEGER',
            help='Optional. Stop after this many courses have been processed this run (useful for testing).',
        )
        return parser

    @staticmethod
    def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
        return CLI.build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Resolves each course code, fetches its class-data XML and appends an outcome line, with resume support.

    Flow:
    - Parses CLI args; loads config; derives output paths and ensures the XML dir exists.
    - Loads the course list (empty or missing is fatal) and replays the outcome log into a processed-set.
    - Exits early, without starting a browser, when every course is already in the log.
    - Opens the browser session with the safety gate installed, then runs the scraper.
    - On session expiry, prints how to refresh the session; the log keeps everything done so far.

    Called by: dundermain
    """
    ## handle args and config -------------------------------------
    args: argparse.Namespace = CLI.parse_args(argv)
    try:
        cfg: ScrapeConfig = load_config(
            Path(args.config) if args.config else None, term_id=args.term_id, delay_ms=args.delay_ms
        )
    except (OSError, ValueError) as exc:
        print(f'Bad config: {exc}', file=sys.stderr)
        return 1
    paths: ScrapePaths = get_paths(cfg, Path(args.courses_file), Path(args.output_dir))
    ensure_dirs(paths)

    ## load input and resume state --------------------------------
    try:
        courses: list[str] = load_courses(paths.courses_path)
    except ScrapeError as exc:
        log.error(str(exc))
        print(f'Error: {exc}', file=sys.stderr)
        return 1
    results_log = ResultsLog(paths.results_path)
    processed: set[str] = results_log.load_processed()
    prior: dict[str, int] = results_log.tally()
    log.info(f'resuming with {prior["total"]} logged outcome(s) (ok={prior["ok"]}, fail={prior["fail"]})')
    if all(c in processed for c in courses):
        print(f'Done. Nothing to do; all {len(courses)} course(s) already in ``{paths.results_path}``.')
        return 0

    ## run inside the browser session ------------------------------
    urls = UrlBuilder(cfg.base_url)
    gate = SafetyGate(SafetyPolicy.for_urls(urls))
    try:
        with open_browser_session(
            gate,
            storage_state=Path(args.storage_state) if args.storage_state else None,
            cdp_url=args.cdp_url,
            headless=not args.headed,
        ) as session:
            scraper: ClassDataScraper = build_scraper(session, cfg, urls, paths)
            summary: RunSummary = scraper.run(courses, processed, limit=args.test_limit)
    except SessionExpiredError as exc:
        log.error(str(exc))
        print(f'Fatal: {exc}', file=sys.stderr)
        return 2
    except ScrapeError as exc:
        log.error(str(exc))
        print(f'Fatal: {exc}', file=sys.stderr)
        return 1
    except PWError as exc:
        log.error(f'browser error: {exc}')
        print(f'Fatal: browser error: {exc}. {SESSION_REFRESH_HINT}', file=sys.stderr)
        return 1

    ## wrap up output -----------------------------------------------
    print(f'Done. ok={summary.ok}, fail={summary.fail}, total={summary.total}')
    print(f'Results log: {paths.results_path}')
    print(f'XML dir:     {paths.xml_dir}')
    return 0

    ## end def main()


if __name__ == '__main__':
    raise SystemExit(main())
