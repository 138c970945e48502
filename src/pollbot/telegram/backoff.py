from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_BASE_DELAY_S = 0.5
DEFAULT_MAX_ATTEMPTS = 5

# "retry after" then at most punctuation and one unit word before the number.
_RETRY_AFTER_RE = re.compile(
    r"retry\s+after\b[\s:=,-]*(?:[a-z]+[\s:=,-]+)?(\d+)", re.IGNORECASE
)


def parse_retry_after(text: str | None) -> int | None:
    """Extract N from free text like ``Too Many Requests: retry after 7``."""
    if not text:
        return None
    match = _RETRY_AFTER_RE.search(text)
    if match is None:
        return None
    return int(match.group(1))


def retry_after_header(headers: Mapping[str, str]) -> float | None:
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def is_rate_limited(status: int) -> bool:
    return status == 429


def is_server_error(status: int) -> bool:
    return 500 <= status < 600


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    base_delay: float = DEFAULT_BASE_DELAY_S
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    def next_delay(self, attempt: int, hint: float | None = None) -> float:
        """Delay before the attempt following ``attempt`` (1-based).

        A server-supplied hint wins over the exponential schedule.
        """
        if hint is not None:
            return float(hint)
        return self.base_delay * (2 ** max(attempt - 1, 0))

    def can_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts
