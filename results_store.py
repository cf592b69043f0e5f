"""
Filesystem I/O for the harvester: course-list input, the NDJSON outcome log, raw class-data XML.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import humanize

from scrape_errors import CourseListError

log = logging.getLogger(__name__)

UNSAFE_FILENAME_RE: re.Pattern[str] = re.compile(r'[^\w.-]+', re.ASCII)
WHITESPACE_RE: re.Pattern[str] = re.compile(r'\s+')
LINE_BREAK_RE: re.Pattern[str] = re.compile(r'\r?\n')

STAGE_RESOLVE: str = 'resolve'
STAGE_CLASS_DATA: str = 'class-data'


def load_courses(path: Path) -> list[str]:
    """
    Reads the course list into normalized codes.
    Trims each line, drops blank lines and collapses internal whitespace (`BIO   1A03` -> `BIO 1A03`).
    """
    try:
        raw: str = path.read_text(encoding='utf-8')
    except FileNotFoundError as exc:
        raise CourseListError(f'course list ``{path}`` not found') from exc
    courses: list[str] = [WHITESPACE_RE.sub(' ', line.strip()) for line in LINE_BREAK_RE.split(raw) if line.strip()]
    if not courses:
        raise CourseListError(f'course list ``{path}`` is empty (no course codes to process)')
    return courses


@dataclass(frozen=True)
class ItemOutcome:
    """
    One terminal result for a course, written as a single log line.
    Success lines carry cnKey, va, httpStatus and xmlPath; failure lines carry stage and error,
    plus whichever identifiers were known when the course failed.
    """

    course: str
    ok: bool
    stage: str | None = None
    error: str | None = None
    cn_key: str | None = None
    va: str | None = None
    http_status: int | None = None
    xml_path: str | None = None

    @classmethod
    def success(cls, course: str, cn_key: str, va: str, http_status: int, xml_path: str) -> 'ItemOutcome':
        return cls(course=course, ok=True, cn_key=cn_key, va=va, http_status=http_status, xml_path=xml_path)

    @classmethod
    def failure(cls, course: str, stage: str, error: str, **known: object) -> 'ItemOutcome':
        return cls(course=course, ok=False, stage=stage, error=error, **known)  # type: ignore[arg-type]

    def to_record(self) -> dict[str, object]:
        record: dict[str, object] = {'course': self.course, 'ok': self.ok}
        if not self.ok:
            record['stage'] = self.stage
            record['error'] = self.error
        optional: dict[str, object] = {
            'cnKey': self.cn_key,
            'va': self.va,
            'httpStatus': self.http_status,
            'xmlPath': self.xml_path,
        }
        record.update({k: v for k, v in optional.items() if v is not None})
        return record


class ResultsLog:
    """
    Append-only NDJSON outcome log; doubles as the resume checkpoint.
    - Appends one JSON object per line; nothing already written is rewritten.
    - Replays the log into the set of course codes already handled.
    - Skips blank and malformed lines while replaying (best-effort resume).
    """

    def __init__(self, path: Path) -> None:
        self.path: Path = path

    def append(self, outcome: ItemOutcome) -> None:
        line: str = json.dumps(outcome.to_record(), ensure_ascii=False)
        with self.path.open('a', encoding='utf-8') as fh:
            fh.write(line + '\n')

    def records(self) -> list[dict[str, object]]:
        if not self.path.exists():
            return []
        found: list[dict[str, object]] = []
        with self.path.open('r', encoding='utf-8') as fh:
            for line in fh:
                if not line.strip():
                    continue
                try:
                    obj: object = json.loads(line)
                except json.JSONDecodeError:
                    log.debug(f'skipping malformed log line, ``{line[:120]}``')
                    continue
                if isinstance(obj, dict):
                    found.append(obj)
        return found

    def load_processed(self) -> set[str]:
        return {str(rec['course']) for rec in self.records() if rec.get('course')}

    def tally(self) -> dict[str, int]:
        recs: list[dict[str, object]] = [r for r in self.records() if r.get('course')]
        ok_count: int = sum(1 for r in recs if r.get('ok') is True)
        return {'ok': ok_count, 'fail': len(recs) - ok_count, 'total': len(recs)}


class XmlArtifactStore:
    """
    Writes raw class-data bodies to <out>/xml/<term>/<safe cnKey>.xml, overwriting any earlier fetch.
    """

    def __init__(self, out_dir: Path, term_id: str) -> None:
        self.out_dir: Path = out_dir
        self.term_dir: Path = out_dir / 'xml' / term_id

    @staticmethod
    def safe_name(cn_key: str) -> str:
        return UNSAFE_FILENAME_RE.sub('_', cn_key)

    def save(self, cn_key: str, body: str) -> str:
        """
        Saves `body` unmodified and returns its path relative to the output dir (used as `xmlPath`).
        """
        self.term_dir.mkdir(parents=True, exist_ok=True)
        path: Path = self.term_dir / f'{self.safe_name(cn_key)}.xml'
        path.write_text(body, encoding='utf-8', newline='')
        log.debug(f'saved {humanize.naturalsize(len(body.encode("utf-8")))} to ``{path}``')
        return path.relative_to(self.out_dir).as_posix()
