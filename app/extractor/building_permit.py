from __future__ import annotations

"""Building-permit module: task-list and proposal-list extraction runs."""

import json
import re
from typing import Mapping, Optional, Union

from playwright.sync_api import Error as PWError, Page

from . import config
from .attachments import download_attachments as download_attachment_panels
from .attachments import list_downloaded_files
from .error_codes import ErrorCode
from .locator import (
    click,
    fill,
    first_locator,
    locate,
    read_text,
    screenshot,
    select_option_by_text,
    wait_seconds,
)
from .models import AttachmentReport, ExtractionResult, FilterSpec
from .navigation import NavigationSequencer, Stage
from .run_state import RunState, execute_run
from .selectors import (
    PERMIT_ROUTE,
    PERMIT_TASK_SELECTORS,
    PROPOSAL_SELECTORS,
    AttachmentSelectors,
    PermitTaskSelectors,
    ProposalSelectors,
    WorkflowSelectors,
    by_css,
)
from .session import BrowserSession, RunGuard, SessionLost, is_target_closed_error
from .tables import count_body_rows, extract_table, node_text, parse_html, read_page_markup
from .timeline import extract_workflow
from .utils import log_line

FilterInput = Union[FilterSpec, Mapping[str, str], None]

_HRDA_RE = re.compile(r"HRDA/", re.IGNORECASE)
_VERIFICATION_RE = re.compile(r"Verification", re.IGNORECASE)
_FILE_NUMBER_RE = re.compile(r"\w+/\w+/\w+/\d+/\d+-\d+")
_REQUEST_RES = (
    re.compile(r"Sec\s", re.IGNORECASE),
    re.compile(r"request", re.IGNORECASE),
    re.compile(r"Data change", re.IGNORECASE),
)


def _coerce_filters(filters: FilterInput, default: Optional[Mapping[str, str]] = None) -> FilterSpec:
    if isinstance(filters, FilterSpec):
        return filters
    if filters is None and default is not None:
        return FilterSpec.from_mapping(default)
    return FilterSpec.from_mapping(filters)


def extract_permit_heading(markup: str) -> Optional[str]:
    """Pick the application heading from a permit detail page.

    Tried in order: a ``<strong>`` holding a file number, a ``<strong>``
    naming a request, an ``h4/h5/h3/h1`` with an ``HRDA/`` number, then the
    last breadcrumb item.
    """

    soup = parse_html(markup)
    strongs = [node_text(node) for node in soup.find_all("strong")]
    for text in strongs:
        if text and (
            _HRDA_RE.search(text) or _VERIFICATION_RE.search(text) or _FILE_NUMBER_RE.search(text)
        ):
            return text
    for text in strongs:
        if text and any(pattern.search(text) for pattern in _REQUEST_RES):
            return text
    for tag in ("h4", "h5", "h3", "h1"):
        for node in soup.find_all(tag):
            text = node_text(node)
            if text and _HRDA_RE.search(text):
                return text
    crumbs = soup.select(".breadcrumb-item")
    if crumbs:
        return node_text(crumbs[-1]) or None
    return None


def _read_detail_tabs(
    page: Page,
    state: RunState,
    sequencer: NavigationSequencer,
    workflow: WorkflowSelectors,
    attachments: AttachmentSelectors,
    *,
    download: bool,
) -> None:
    scope = first_locator(page, workflow.scope) if workflow.scope else None
    if sequencer.select_tab(workflow.tab_name, workflow.tab, scope=scope):
        state.workflow = tuple(extract_workflow(page, workflow))

    if not download:
        log_line("[EXTRACTOR] Attachment download skipped.")
        state.attachments = AttachmentReport(files=tuple(list_downloaded_files()), skipped=True)
        return

    scope = first_locator(page, attachments.scope) if attachments.scope else None
    if sequencer.select_tab("Attachment", attachments.tab, scope=scope):
        state.attachments = download_attachment_panels(page, attachments)
    else:
        state.attachments = AttachmentReport(files=tuple(list_downloaded_files()))


# -- Task list ----------------------------------------------------------------


def apply_task_filters(page: Page, filters: FilterSpec, selectors: PermitTaskSelectors) -> None:
    """Set the task-list controls named by ``filters``; absent values are left alone."""

    log_line(f"[EXTRACTOR] Applying filters: {json.dumps(filters.to_dict())}")
    if filters.action:
        dropdown = locate(page, selectors.action_dropdown, label="action dropdown")
        if dropdown is not None:
            select_option_by_text(page, dropdown, filters.action, label="action dropdown")
        else:
            log_line("[EXTRACTOR][WARN] Skipping action filter; dropdown not found.")

    if filters.search_column:
        column = locate(page, selectors.search_column, label="search column")
        if column is not None:
            select_option_by_text(page, column, filters.search_column, label="search column")

    if filters.keyword:
        keyword = locate(page, selectors.search_keyword, label="search keyword")
        if keyword is not None:
            fill(keyword, filters.keyword, label="search keyword")

    wait_seconds(page, config.FILTER_SETTLE_SECONDS)
    screenshot(page, "after_filters")


def _permit_task_body(
    page: Page,
    state: RunState,
    *,
    selectors: PermitTaskSelectors,
    download: bool,
) -> None:
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)
    state.sequencer = sequencer

    if not sequencer.enter_module():
        state.fail(ErrorCode.NOT_FOUND, "Building permit module could not be reached")
        return

    def _filter() -> bool:
        apply_task_filters(page, state.filters, selectors)
        rows = sequencer.wait_for_primary(
            lambda: count_body_rows(page, selectors.table, label="task list"),
            label="task list rows",
        )
        return bool(rows)

    if not sequencer.run_stage(Stage.FILTERED, _filter, detail="task list rows"):
        state.fail(ErrorCode.NO_ROWS, "No rows after filter")
        return

    state.table = extract_table(
        page, selectors.table, config.PERMIT_TASK_HEADERS, label="permit task table"
    )
    if state.table is None or not state.table.rows:
        state.fail(ErrorCode.NO_ROWS, "No rows found in task list")
        return
    log_line(f"[EXTRACTOR] First row: {json.dumps(state.table.first_row, ensure_ascii=False)}")

    if not sequencer.open_row(
        selectors.table, selectors.row_button, selectors.detail_signal, label="permit task row"
    ):
        state.fail(ErrorCode.OPEN_FAILED, "Failed to open row 0 of the task list")
        sequencer.return_to_landing()
        return

    state.heading = extract_permit_heading(read_page_markup(page, label="permit heading"))
    log_line(f"[EXTRACTOR] Heading: {state.heading!r}")

    _read_detail_tabs(
        page,
        state,
        sequencer,
        selectors.workflow,
        selectors.attachments,
        download=download,
    )
    sequencer.return_to_landing()


def run_permit_workflow(
    session: Optional[BrowserSession],
    filters: FilterInput = None,
    *,
    download_attachments: bool = True,
    selectors: PermitTaskSelectors = PERMIT_TASK_SELECTORS,
    guard: Optional[RunGuard] = None,
) -> ExtractionResult:
    """Extract the first task-list record matching ``filters``.

    ``filters`` defaults to ``config.DEFAULT_PERMIT_FILTERS``.
    """

    spec = _coerce_filters(filters, config.DEFAULT_PERMIT_FILTERS)
    return execute_run(
        "permit",
        session,
        lambda page, state: _permit_task_body(
            page, state, selectors=selectors, download=download_attachments
        ),
        filters=spec,
        guard=guard,
    )


# -- Proposal list ------------------------------------------------------------


def apply_proposal_search(page: Page, filters: FilterSpec, selectors: ProposalSelectors) -> bool:
    """Open the Proposal List search form, fill it and press Find.

    Returns ``False`` only when the Proposal List card itself is missing.
    """

    card = locate(page, selectors.card, label="proposal list card")
    if card is None:
        return False

    search = first_locator(card, selectors.search_button)
    if search is not None and click(page, search, label="proposal search button"):
        wait_seconds(page, config.DROPDOWN_SETTLE_SECONDS)
    else:
        log_line("[EXTRACTOR][WARN] Search button not found in Proposal List header.")

    for value, chain, label in (
        (filters.file_no, selectors.file_no_input, "file no input"),
        (filters.applicant_name, selectors.applicant_input, "applicant name input"),
    ):
        if not value:
            continue
        target = locate(page, chain, label=label)
        if target is not None:
            fill(target, value, label=label)

    find = locate(page, selectors.find_button, label="find button")
    if find is not None and click(page, find, label="find button"):
        wait_seconds(page, config.FILTER_SETTLE_SECONDS)
    else:
        log_line("[EXTRACTOR][WARN] Find button not found.")

    screenshot(page, "after_proposal_search")
    return True


def close_modal(page: Page, selectors: ProposalSelectors) -> bool:
    button = locate(page, selectors.modal_close, label="modal close", quiet=True)
    if button is not None and click(page, button, label="modal close"):
        return True
    log_line("[EXTRACTOR] Modal close button not found; pressing Escape.")
    try:
        page.keyboard.press("Escape")
    except PWError as exc:
        if is_target_closed_error(exc):
            raise SessionLost("Page closed while closing the proposal modal") from exc
        log_line(f"[EXTRACTOR][WARN] Escape key failed: {exc}")
        return False
    return True


def _proposal_body(
    page: Page,
    state: RunState,
    *,
    selectors: ProposalSelectors,
    download: bool,
) -> None:
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)
    state.sequencer = sequencer

    if not sequencer.enter_module():
        state.fail(ErrorCode.NOT_FOUND, "Building permit module could not be reached")
        return

    def _search() -> bool:
        if not apply_proposal_search(page, state.filters, selectors):
            return False
        rows = sequencer.wait_for_primary(
            lambda: count_body_rows(page, selectors.card, label="proposal list"),
            label="proposal rows",
        )
        return bool(rows)

    if not sequencer.run_stage(Stage.FILTERED, _search, detail="proposal rows"):
        if locate(page, selectors.card, label="proposal list card", quiet=True) is None:
            state.fail(ErrorCode.NOT_FOUND, "Proposal List card not found")
        else:
            state.fail(ErrorCode.NO_ROWS, "No rows found in Proposal List")
        return

    state.table = extract_table(
        page, selectors.card, config.PERMIT_PROPOSAL_HEADERS, label="proposal table"
    )
    if state.table is None or not state.table.rows:
        state.fail(ErrorCode.NO_ROWS, "No rows found in Proposal List")
        return
    log_line(f"[EXTRACTOR] First row: {json.dumps(state.table.first_row, ensure_ascii=False)}")

    if not sequencer.open_row(
        selectors.card,
        selectors.row_button,
        (by_css(selectors.modal),),
        label="proposal row",
        timeout_seconds=config.MODAL_TIMEOUT_SECONDS,
    ):
        state.fail(ErrorCode.OPEN_FAILED, "Failed to open proposal row 0")
        return

    heading = read_text(locate(page, selectors.modal_heading, label="modal heading"))
    state.heading = heading or None
    log_line(f"[EXTRACTOR] Heading: {state.heading!r}")

    _read_detail_tabs(
        page,
        state,
        sequencer,
        selectors.workflow,
        selectors.attachments,
        download=download,
    )
    sequencer.return_to_landing(via=lambda: close_modal(page, selectors))


def run_proposal_workflow(
    session: Optional[BrowserSession],
    filters: FilterInput = None,
    *,
    download_attachments: bool = False,
    selectors: ProposalSelectors = PROPOSAL_SELECTORS,
    guard: Optional[RunGuard] = None,
) -> ExtractionResult:
    """Search the Proposal List by file number / applicant and read the first match."""

    return execute_run(
        "proposal",
        session,
        lambda page, state: _proposal_body(
            page, state, selectors=selectors, download=download_attachments
        ),
        filters=_coerce_filters(filters),
        guard=guard,
    )


__all__ = [
    "extract_permit_heading",
    "apply_task_filters",
    "apply_proposal_search",
    "close_modal",
    "run_permit_workflow",
    "run_proposal_workflow",
]
