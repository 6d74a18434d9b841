from __future__ import annotations

"""Court-case management module: task-list extraction and the Action tab."""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from playwright.sync_api import Error as PWError, Page, TimeoutError as PWTimeout

from . import config
from .error_codes import ErrorCode
from .locator import (
    activate_tab,
    click,
    fill,
    locate,
    read_options,
    screenshot,
    select_option_by_text,
    wait_seconds,
)
from .logging_utils import _scraper_event
from .models import ActionResult, CaseInformation, ExtractionResult, FilterSpec
from .navigation import NavigationSequencer, Stage
from .run_state import RunState, execute_run
from .selectors import COURT_CASE_ROUTE, COURT_CASE_SELECTORS, CourtCaseSelectors
from .session import (
    RUN_GUARD,
    BrowserSession,
    ExtractionError,
    RunGuard,
    SessionLost,
    is_target_closed_error,
    require_page,
)
from .tables import (
    count_body_rows,
    extract_labeled_fields,
    extract_table,
    node_text,
    parse_html,
    read_page_markup,
)
from .timeline import extract_workflow
from .utils import log_line

_CASE_NUMBER_MARKERS = ("CCMS", "UCMS", "NO/", "/")
_PLACEHOLDER_OPTION = "Select..."
HEADING_MIN_LENGTH = 10


@dataclass(frozen=True)
class ActionRequest:
    """A write-back on the Action tab: action code, remarks and draft/final."""

    action_value: Optional[str] = None
    remarks: Optional[str] = None
    final: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> Optional["ActionRequest"]:
        if not data:
            return None
        action = data.get("action_value", data.get("actionValue"))
        final = data.get("final", data.get("clickDone", False))
        return cls(
            action_value=str(action).strip() if action else None,
            remarks=data.get("remarks") or None,
            final=bool(final),
        )


def extract_court_case_heading(markup: str) -> Optional[str]:
    """A ``<strong>`` with a dashed case number, else the first long ``<strong>``."""

    strongs = [node_text(node) for node in parse_html(markup).find_all("strong")]
    for text in strongs:
        if "-" in text and any(marker in text for marker in _CASE_NUMBER_MARKERS):
            return text
    for text in strongs:
        if len(text) > HEADING_MIN_LENGTH:
            return text
    return None


def apply_court_case_filters(page: Page, filters: FilterSpec, selectors: CourtCaseSelectors) -> None:
    """Select the Action and Sector filters by option value (fuzzy text as fallback)."""

    log_line(f"[EXTRACTOR] Applying court case filters: {json.dumps(filters.to_dict())}")
    if filters.is_empty():
        log_line("[EXTRACTOR] No court case filters; reading the unfiltered task list.")
        return
    for value, chain, label in (
        (filters.action, selectors.action_dropdown, "action filter"),
        (filters.sector, selectors.sector_dropdown, "sector filter"),
    ):
        if not value:
            continue
        dropdown = locate(page, chain, label=label)
        if dropdown is None:
            log_line(f"[EXTRACTOR][WARN] Skipping {label}; dropdown not found.")
            continue
        select_option_by_text(page, dropdown, value, label=label)

    wait_seconds(page, config.DROPDOWN_SETTLE_SECONDS)
    screenshot(page, "ccms_after_filters")


def extract_case_information(page: Page, selectors: CourtCaseSelectors) -> CaseInformation:
    """Read the three Case Information panels; missing panels read as empty."""

    activate_tab(page, selectors.case_info_tab, label="Case Information")
    try:
        page.wait_for_selector(
            selectors.case_info_active,
            timeout=config.timeout_ms(config.TAB_ACTIVE_TIMEOUT_SECONDS),
        )
        _scraper_event("tab", step="confirmed", target="Case Information")
    except PWTimeout:
        log_line("[EXTRACTOR][WARN] Case Information tab did not report itself active.")
    except PWError as exc:
        if is_target_closed_error(exc):
            raise SessionLost("Page closed while opening Case Information") from exc
        log_line(f"[EXTRACTOR][WARN] Waiting for Case Information failed: {exc}")

    # Panel data arrives after the tab itself switches.
    wait_seconds(page, config.CASE_INFO_SETTLE_SECONDS)
    screenshot(page, "ccms_before_case_extract")

    panels: Dict[str, Dict[str, str]] = {}
    for key, header in selectors.case_info_panels:
        panels[key] = extract_labeled_fields(page, header)
        log_line(f"[EXTRACTOR]   {header} fields: {len(panels[key])}")

    screenshot(page, "ccms_case_info")
    return CaseInformation(
        property_information=panels.get("property_information", {}),
        case_details=panels.get("case_details", {}),
        gis_coordinates=panels.get("gis_coordinates", {}),
    )


def _read_action_options(page: Page, selectors: CourtCaseSelectors) -> List[Dict[str, str]]:
    select = locate(page, selectors.action_select, label="action select")
    if select is None:
        return []
    return [
        {"value": value, "text": text}
        for value, text in read_options(select)
        if text != _PLACEHOLDER_OPTION and value and "undefined" not in value
    ]


def _perform_action(
    page: Page, selectors: CourtCaseSelectors, request: ActionRequest
) -> ActionResult:
    def _failed(message: str, action: Optional[str] = request.action_value) -> ActionResult:
        log_line(f"[EXTRACTOR][WARN] Action not performed: {message}")
        return ActionResult(
            success=False,
            action=action,
            remarks=request.remarks,
            final=request.final,
            error=message,
        )

    chosen = request.action_value
    if request.action_value:
        select = locate(page, selectors.action_select, label="action select")
        if select is None:
            return _failed("Action dropdown not found")
        chosen = select_option_by_text(page, select, request.action_value, label="action select")
        if chosen is None:
            return _failed(f"No action option matching {request.action_value!r}")

    if request.remarks:
        remarks = locate(page, selectors.remarks_input, label="remarks input")
        if remarks is None:
            return _failed("Remarks field not found", chosen)
        if not fill(remarks, request.remarks, label="remarks input"):
            return _failed("Could not type remarks", chosen)

    name = "Done" if request.final else "Save Draft"
    chain = selectors.done_button if request.final else selectors.save_draft_button
    button = locate(page, chain, label=f"{name} button")
    if button is None:
        return _failed(f"{name} button not found", chosen)
    if not click(page, button, label=f"{name} button"):
        return _failed(f"{name} button could not be clicked", chosen)

    log_line(f"[EXTRACTOR] Clicked {name}.")
    wait_seconds(page, config.NAV_SETTLE_SECONDS)
    screenshot(page, "ccms_action_done")
    _scraper_event("action", step="submitted", action=chosen, final=request.final)
    return ActionResult(success=True, action=chosen, remarks=request.remarks, final=request.final)


def get_action_options(
    session: Optional[BrowserSession],
    *,
    selectors: CourtCaseSelectors = COURT_CASE_SELECTORS,
    guard: Optional[RunGuard] = None,
) -> List[Dict[str, str]]:
    """List ``{value, text}`` options of the open case's Action dropdown.

    Raises :class:`SessionLost` or :class:`RunInProgress` when the page is
    gone or another run holds it.
    """

    with (guard or RUN_GUARD).exclusive("action_options"):
        page = require_page(session)
        activate_tab(page, selectors.action_tab, label="Action")
        options = _read_action_options(page, selectors)
    _scraper_event("action", step="options", count=len(options))
    return options


def perform_action(
    session: Optional[BrowserSession],
    request: Union[ActionRequest, Mapping[str, Any]],
    *,
    selectors: CourtCaseSelectors = COURT_CASE_SELECTORS,
    guard: Optional[RunGuard] = None,
) -> ActionResult:
    """Select an action, type remarks and submit as draft (or final) on the open case."""

    if not isinstance(request, ActionRequest):
        request = ActionRequest.from_mapping(request) or ActionRequest()
    try:
        with (guard or RUN_GUARD).exclusive("perform_action"):
            page = require_page(session)
            if not activate_tab(page, selectors.action_tab, label="Action"):
                return ActionResult(
                    success=False,
                    action=request.action_value,
                    remarks=request.remarks,
                    final=request.final,
                    error="Action tab not found",
                )
            return _perform_action(page, selectors, request)
    except ExtractionError as exc:
        return ActionResult(
            success=False,
            action=request.action_value,
            remarks=request.remarks,
            final=request.final,
            error=exc.message,
        )


def _court_case_body(
    page: Page,
    state: RunState,
    *,
    selectors: CourtCaseSelectors,
    action: Optional[ActionRequest],
) -> None:
    sequencer = NavigationSequencer(page, COURT_CASE_ROUTE)
    state.sequencer = sequencer

    if not sequencer.enter_module():
        state.fail(ErrorCode.NOT_FOUND, "Court case module could not be reached")
        return

    def _filter() -> bool:
        apply_court_case_filters(page, state.filters, selectors)
        rows = sequencer.wait_for_primary(
            lambda: count_body_rows(page, selectors.task_card, label="court case task list"),
            label="court case rows",
        )
        return bool(rows)

    if not sequencer.run_stage(Stage.FILTERED, _filter, detail="task list rows"):
        state.fail(ErrorCode.NO_ROWS, "No rows after filter")
        return

    state.table = extract_table(
        page,
        selectors.task_card,
        config.COURT_CASE_TASK_HEADERS,
        label="court case task table",
        legacy_columns=config.LEGACY_ENCODED_COLUMNS,
    )
    if state.table is None or not state.table.rows:
        state.fail(ErrorCode.NO_ROWS, "No rows found in court case task list")
        return
    log_line(f"[EXTRACTOR] First row: {json.dumps(state.table.first_row, ensure_ascii=False)}")

    if not sequencer.open_row(
        selectors.task_card,
        selectors.row_button,
        selectors.detail_signal,
        label="court case row",
    ):
        state.fail(ErrorCode.OPEN_FAILED, "Failed to open row 0 of the court case task list")
        sequencer.return_to_landing()
        return

    state.heading = extract_court_case_heading(read_page_markup(page, label="court case heading"))
    log_line(f"[EXTRACTOR] Heading: {state.heading!r}")

    if sequencer.select_tab("Case Information", selectors.case_info_tab):
        state.case_information = extract_case_information(page, selectors)
    else:
        state.case_information = CaseInformation()

    if sequencer.select_tab(selectors.workflow.tab_name, selectors.workflow.tab):
        state.workflow = tuple(extract_workflow(page, selectors.workflow))

    if action is not None:
        if sequencer.select_tab("Action", selectors.action_tab):
            state.action_result = _perform_action(page, selectors, action)
        else:
            state.action_result = ActionResult(
                success=False,
                action=action.action_value,
                remarks=action.remarks,
                final=action.final,
                error="Action tab not found",
            )
    else:
        log_line("[EXTRACTOR] Action skipped (not requested).")

    sequencer.return_to_landing()


def run_court_case_workflow(
    session: Optional[BrowserSession],
    filters: Union[FilterSpec, Mapping[str, str], None] = None,
    action: Union[ActionRequest, Mapping[str, Any], None] = None,
    *,
    selectors: CourtCaseSelectors = COURT_CASE_SELECTORS,
    guard: Optional[RunGuard] = None,
) -> ExtractionResult:
    """Extract the first court-case task, its case information and workflow.

    When ``action`` is given the case is also written back through the Action
    tab; its outcome is reported as ``action_result``.
    """

    spec = filters if isinstance(filters, FilterSpec) else FilterSpec.from_mapping(filters)
    request = (
        action
        if isinstance(action, ActionRequest) or action is None
        else ActionRequest.from_mapping(action)
    )
    return execute_run(
        "court_case",
        session,
        lambda page, state: _court_case_body(page, state, selectors=selectors, action=request),
        filters=spec,
        guard=guard,
    )


__all__ = [
    "ActionRequest",
    "extract_court_case_heading",
    "apply_court_case_filters",
    "extract_case_information",
    "get_action_options",
    "perform_action",
    "run_court_case_workflow",
]
