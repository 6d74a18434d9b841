from __future__ import annotations

"""Centralised error code taxonomy for extraction failures.

These codes are attached to ``ExtractionResult.error_code`` and included in
structured logs so that a caller can tell a load-bearing failure (no results
table, lost session) from a degraded run. The taxonomy is intentionally small
and should stay stable for the HTTP/CLI front ends that branch on it.
"""


class ErrorCode:
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    SESSION_LOST = "session_lost"
    DOWNLOAD_INCOMPLETE = "download_incomplete"
    NO_ROWS = "no_rows"
    OPEN_FAILED = "open_failed"
    CONFIG_INVALID = "config_invalid"
    RUN_IN_PROGRESS = "run_in_progress"
    INTERNAL = "internal_error"


# Codes that abort the current run immediately.
FATAL_ERROR_CODES = frozenset(
    {
        ErrorCode.SESSION_LOST,
        ErrorCode.CONFIG_INVALID,
        ErrorCode.RUN_IN_PROGRESS,
    }
)


__all__ = ["ErrorCode", "FATAL_ERROR_CODES"]
