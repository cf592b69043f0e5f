"""
Checks for class-data response bodies.

The fetch/retry state machine only asks three questions of a body; answering them by pattern match
is one implementation, kept behind a small protocol so a structured parser can replace it.
"""

import re
from typing import Protocol

XML_ERROR_RE: re.Pattern[str] = re.compile(r'<error>([\s\S]*?)</error>', re.IGNORECASE)
TOKEN_STALE_RE: re.Pattern[str] = re.compile(r'timezone and time', re.IGNORECASE)  # t/e tokens expired
NOT_AUTHORIZED_RE: re.Pattern[str] = re.compile(r'Error\s*7133:\s*Not Authorized', re.IGNORECASE)


class ResponseClassifier(Protocol):
    def is_token_stale(self, body: str) -> bool: ...

    def is_not_authorized(self, body: str) -> bool: ...

    def first_error(self, body: str) -> str | None: ...


class RegexResponseClassifier:
    """
    Classifies bodies with fixed signatures.
    - stale token: the server's complaint about timezone and time (tokens t/e no longer valid)
    - not authorized: `Error 7133: Not Authorized` (whole session expired)
    - structural error: text of the first `<error>` element, trimmed
    """

    def is_token_stale(self, body: str) -> bool:
        return TOKEN_STALE_RE.search(body) is not None

    def is_not_authorized(self, body: str) -> bool:
        return NOT_AUTHORIZED_RE.search(body) is not None

    def first_error(self, body: str) -> str | None:
        m: re.Match[str] | None = XML_ERROR_RE.search(body)
        return m.group(1).strip() if m else None
