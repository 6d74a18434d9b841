from __future__ import annotations

"""Retry decisions for navigation stages.

A stage that fails with a transient code (timeout, missing element, a row that
did not open) is attempted again up to the sequencer's attempt budget. Codes
that describe an answer or a dead session are never retried.
"""

from typing import Optional, Tuple

from .error_codes import FATAL_ERROR_CODES, ErrorCode
from .logging_utils import _scraper_event

RETRYABLE_ERROR_CODES = {
    ErrorCode.TIMEOUT,
    ErrorCode.NOT_FOUND,
    ErrorCode.OPEN_FAILED,
}

NON_RETRYABLE_ERROR_CODES = FATAL_ERROR_CODES | {
    # An empty result after filtering is an answer, not a glitch.
    ErrorCode.NO_ROWS,
    # Recorded per attachment; the downloader moves on to the next row.
    ErrorCode.DOWNLOAD_INCOMPLETE,
}

BACKOFF_CAP_SECONDS = 8


def compute_backoff_seconds(attempt_index: int) -> float:
    """Seconds to wait before attempt ``attempt_index + 1``: 1, 2, 4, then 8."""

    return float(min(2 ** max(0, attempt_index - 1), BACKOFF_CAP_SECONDS))


def _classify(attempt_index: int, max_attempts: int, code: str) -> Tuple[str, bool]:
    if attempt_index >= max_attempts:
        return "capped", False
    if code in NON_RETRYABLE_ERROR_CODES:
        return "non_retryable", False
    if code in RETRYABLE_ERROR_CODES:
        return "retryable", True
    # Unclassified failures get at most one more attempt.
    return ("unknown" if code else "missing_error_code"), attempt_index < max_attempts - 1


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    error_code: Optional[str] = None,
    stage: Optional[str] = None,
) -> bool:
    """Decide whether a failed navigation stage should be attempted again."""

    code = (error_code or "").strip()
    kind, will_retry = _classify(attempt_index, max_attempts, code)
    _scraper_event(
        "state",
        phase="retry_decision",
        kind=kind,
        stage=stage,
        attempt=attempt_index,
        max_attempts=max_attempts,
        error_code=code or None,
        will_retry=will_retry,
        error_repr=repr(error) if error is not None else None,
    )
    return will_retry


__all__ = [
    "decide_retry",
    "compute_backoff_seconds",
    "RETRYABLE_ERROR_CODES",
    "NON_RETRYABLE_ERROR_CODES",
]
