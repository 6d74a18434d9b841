from __future__ import annotations

"""Shared scaffolding for one orchestrated extraction run.

A run body fills a :class:`RunState` as it goes. Whatever it collected is
returned even when a later stage fails; the first hard failure is kept as the
result's ``error``/``error_code``.
"""

from typing import Callable, Dict, Optional, Tuple

from playwright.sync_api import Error as PWError, Page

from . import config
from .config_validation import Entrypoint, validate_runtime_config
from .error_codes import ErrorCode
from .logging_utils import _scraper_event
from .models import (
    ActionResult,
    AttachmentReport,
    CaseInformation,
    ExtractionResult,
    FilterSpec,
    TableRecord,
    WorkflowEntry,
)
from .navigation import NavigationSequencer
from .session import (
    RUN_GUARD,
    BrowserSession,
    RunGuard,
    RunInProgress,
    SessionLost,
    is_target_closed_error,
    require_page,
)
from .utils import ensure_dirs, log_line, setup_run_logger


class RunState:
    """Mutable accumulator used while a run is in flight."""

    def __init__(self, mode: str, filters: Optional[FilterSpec] = None) -> None:
        self.mode = mode
        self.filters = filters or FilterSpec()
        self.heading: Optional[str] = None
        self.table: Optional[TableRecord] = None
        self.workflow: Tuple[WorkflowEntry, ...] = ()
        self.case_information: Optional[CaseInformation] = None
        self.attachments: Optional[AttachmentReport] = None
        self.action_result: Optional[ActionResult] = None
        self.sequencer: Optional[NavigationSequencer] = None
        self.error: Optional[str] = None
        self.error_code: Optional[str] = None

    def fail(self, error_code: str, message: str) -> None:
        """Record a hard failure; only the first one is kept."""

        _scraper_event(
            "error",
            phase="run",
            mode=self.mode,
            error_code=error_code,
            error=message,
            first=self.error is None,
        )
        log_line(f"[EXTRACTOR][ERROR][{self.mode.upper()}] {message}")
        if self.error is None:
            self.error = message
            self.error_code = error_code

    def result(self) -> ExtractionResult:
        sequencer = self.sequencer
        return ExtractionResult(
            mode=self.mode,
            success=self.error is None,
            filters_used=self.filters.to_dict(),
            heading=self.heading,
            total_cases=sequencer.total_cases if sequencer is not None else None,
            table=self.table,
            workflow=self.workflow,
            case_information=self.case_information,
            attachments=self.attachments,
            action_result=self.action_result,
            stages=sequencer.trace if sequencer is not None else (),
            error=self.error,
            error_code=self.error_code,
        )


RunBody = Callable[[Page, RunState], None]


def execute_run(
    mode: str,
    session: Optional[BrowserSession],
    body: RunBody,
    *,
    filters: Optional[FilterSpec] = None,
    guard: Optional[RunGuard] = None,
    entrypoint: Entrypoint = "cli",
) -> ExtractionResult:
    """Run ``body`` exclusively against the session's page and collect its result.

    Never raises for run failures: session loss, a concurrent run, invalid
    configuration and unexpected errors all come back as a failed
    :class:`ExtractionResult` carrying the partial data gathered so far.
    """

    state = RunState(mode, filters)
    log_line(f"[EXTRACTOR] ==== Starting {mode} run ====")
    try:
        with (guard or RUN_GUARD).exclusive(mode):
            try:
                validate_runtime_config(entrypoint, mode=mode)
            except ValueError as exc:
                state.fail(ErrorCode.CONFIG_INVALID, str(exc))
                return state.result()
            try:
                ensure_dirs()
                if config.LOG_PER_RUN:
                    setup_run_logger()
                page = require_page(session)
                body(page, state)
            except SessionLost as exc:
                state.fail(ErrorCode.SESSION_LOST, exc.message)
            except PWError as exc:
                if is_target_closed_error(exc):
                    state.fail(ErrorCode.SESSION_LOST, f"Browser session lost: {exc}")
                else:
                    state.fail(ErrorCode.INTERNAL, f"Playwright error: {exc}")
            except Exception as exc:  # noqa: BLE001
                _scraper_event("error", context="run", error="unexpected_exception", mode=mode)
                state.fail(ErrorCode.INTERNAL, f"Unexpected error: {exc!r}")
    except RunInProgress as exc:
        state.fail(ErrorCode.RUN_IN_PROGRESS, exc.message)

    result = state.result()
    summary: Dict[str, object] = {
        "mode": mode,
        "success": result.success,
        "heading": result.heading,
        "rows": len(result.all_rows),
        "workflow": len(result.workflow),
        "error_code": result.error_code,
    }
    _scraper_event("run", step="complete", **summary)
    log_line(
        f"[EXTRACTOR] ==== {mode} run complete: heading={result.heading!r}, "
        f"rows={len(result.all_rows)}, workflow={len(result.workflow)} ===="
    )
    return result


__all__ = ["RunState", "RunBody", "execute_run"]
