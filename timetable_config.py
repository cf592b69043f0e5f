"""
Term settings, output paths and endpoint urls for the class-data harvester.

Config is a flat JSON file whose keys overlay the defaults below, eg:
  {"term_id": "3202610", "term_link_text": "Winter", "delay_ms": 250}
"""

import json
import logging
import time
from dataclasses import dataclass, fields, replace
from pathlib import Path

import httpx

log = logging.getLogger(__name__)

## defaults ---------------------------------------------------------
BASE_URL: str = 'https://mytimetable.mcmaster.ca'
DEFAULT_TERM_ID: str = '3202610'
DEFAULT_TERM_LINK_TEXT: str = 'Winter'
DEFAULT_CAMS: str = 'MCMSTiOFF_MCMSTiMCMST_MCMSTiMHK_MCMSTiSNPOL_MCMSTiCON'
DEFAULT_DELAY_MS: int = 250  # polite pause between courses


@dataclass(frozen=True)
class ScrapeConfig:
    """
    Holds the per-term settings used by every scrape component.
    - `term_id` scopes api calls and output partitioning.
    - `term_link_text` is the link clicked on criteria.jsp to select the term in the UI.
    - `cams` is the campus filter the suggestions listing expects.
    - `delay_ms` is the fixed pause after every course.
    """

    term_id: str = DEFAULT_TERM_ID
    term_link_text: str = DEFAULT_TERM_LINK_TEXT
    cams: str = DEFAULT_CAMS
    delay_ms: int = DEFAULT_DELAY_MS
    base_url: str = BASE_URL

    @property
    def delay_s(self) -> float:
        return self.delay_ms / 1000.0


@dataclass(frozen=True)
class ScrapePaths:
    courses_path: Path
    out_dir: Path
    xml_dir: Path
    results_path: Path


def load_config(path: Path | None = None, **overrides: object) -> ScrapeConfig:
    """
    Builds a ScrapeConfig from defaults, an optional JSON file, then keyword overrides (eg from the CLI).
    Unknown JSON keys are logged and ignored; a value of the wrong type raises ValueError.
    Called by: gather_class_data.main()
    """
    cfg = ScrapeConfig()
    known: dict[str, type] = {f.name: type(getattr(cfg, f.name)) for f in fields(ScrapeConfig)}
    values: dict[str, object] = {}
    if path is not None:
        with path.open('r', encoding='utf-8') as fh:
            file_data: object = json.load(fh)
        if not isinstance(file_data, dict):
            raise ValueError(f'config file ``{path}`` must hold a JSON object')
        for key, value in file_data.items():
            if key not in known:
                log.warning(f'ignoring unknown config key ``{key}`` in ``{path}``')
                continue
            values[key] = value
    values.update({k: v for k, v in overrides.items() if v is not None})
    for key, value in values.items():
        expected: type = known[key]
        if (expected is int and isinstance(value, bool)) or not isinstance(value, expected):
            raise ValueError(f'config value for ``{key}`` must be {expected.__name__}, got ``{value!r}``')
    cfg = replace(cfg, **values)  # type: ignore[arg-type]
    log.debug(f'config, ``{cfg}``')
    return cfg


def get_paths(cfg: ScrapeConfig, courses_path: Path, out_dir: Path) -> ScrapePaths:
    """
    Derives where input is read and results are written.
    Raw XML goes to <out>/xml/<term>/ and outcomes to <out>/results_<term>.ndjson.
    """
    out_dir = out_dir.expanduser().resolve()
    return ScrapePaths(
        courses_path=courses_path.expanduser().resolve(),
        out_dir=out_dir,
        xml_dir=out_dir / 'xml' / cfg.term_id,
        results_path=out_dir / f'results_{cfg.term_id}.ndjson',
    )


def ensure_dirs(paths: ScrapePaths) -> None:
    paths.xml_dir.mkdir(parents=True, exist_ok=True)


def now_ms() -> int:
    """
    Returns epoch milliseconds; used for the `_` cache-buster query param.
    """
    return int(time.time() * 1000)


class UrlBuilder:
    """
    Centralizes construction of MyTimetable urls.
    - Holds a configurable `base` host to support testing and overrides.
    - Builds the suggestions listing url with term, campus and cache-buster params.
    - Exposes the api namespace and the resolver, class-data and telemetry endpoints.
    """

    def __init__(self, base: str = BASE_URL) -> None:
        self.base: str = base.rstrip('/')

    def criteria_url(self) -> str:
        return f'{self.base}/criteria.jsp'

    def api_prefix(self) -> str:
        return f'{self.base}/api/'

    def resolver_url(self) -> str:
        return f'{self.base}/api/string-to-filter'

    def report_usage_url(self) -> str:
        return f'{self.base}/api/report-usage'

    def suggestions_url(self, term_id: str, cams: str, cache_buster: int | None = None) -> str:
        params: dict[str, str] = {
            'term': term_id,
            'cams': cams,
            'course_add': 'a',
            'page_num': '0',
            'sco': '0',
            'sio': '1',
            'already': '',
            '_': str(cache_buster if cache_buster is not None else now_ms()),
        }
        return str(httpx.URL(f'{self.base}/api/courses/suggestions', params=params))
