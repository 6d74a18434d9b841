from __future__ import annotations

"""Element descriptors and per-view selector tables for both portals.

The portals render Angular components with few stable ids, so most lookups
are expressed as an ordered chain of :class:`Descriptor` values rather than a
single CSS selector. ``locator.locate`` walks a chain until one strategy
resolves.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class DescriptorKind(str, Enum):
    EXACT_ID = "exact_id"
    ATTRIBUTE_SELECTOR = "attribute_selector"
    FIRST_OPTION_TEXT = "first_option_text"
    HEADER_TEXT = "header_text"
    ICON_CLASS = "icon_class"
    XPATH_TEXT_CONTAINS = "xpath_text_contains"
    LABEL_TEXT = "label_text"


@dataclass(frozen=True)
class Descriptor:
    """One strategy for finding an element.

    ``value`` holds the id, CSS selector, regex pattern, icon class or literal
    text depending on ``kind``. ``tag`` narrows the candidate elements and
    ``header`` is the header selector inside a container for ``HEADER_TEXT``
    (empty means match the container's own text).
    """

    kind: DescriptorKind
    value: str
    tag: str = "*"
    header: str = ""

    def describe(self) -> str:
        if self.kind is DescriptorKind.EXACT_ID:
            return f"id={self.value}"
        if self.kind is DescriptorKind.ATTRIBUTE_SELECTOR:
            return f"css={self.value}"
        if self.kind is DescriptorKind.FIRST_OPTION_TEXT:
            return f"select[first-option~/{self.value}/]"
        if self.kind is DescriptorKind.HEADER_TEXT:
            return f"{self.tag}[{self.header or 'text'}~/{self.value}/]"
        if self.kind is DescriptorKind.ICON_CLASS:
            return f"{self.tag}:has(i.{self.value})"
        if self.kind is DescriptorKind.XPATH_TEXT_CONTAINS:
            return f"//{self.tag}[contains(., {self.value!r})]"
        return f"{self.tag}[label~/{self.value}/]"


def by_id(element_id: str) -> Descriptor:
    return Descriptor(DescriptorKind.EXACT_ID, element_id)


def by_css(selector: str) -> Descriptor:
    return Descriptor(DescriptorKind.ATTRIBUTE_SELECTOR, selector)


def by_first_option(pattern: str) -> Descriptor:
    return Descriptor(DescriptorKind.FIRST_OPTION_TEXT, pattern, tag="select")


def by_header_text(container: str, pattern: str, header: str = "") -> Descriptor:
    return Descriptor(DescriptorKind.HEADER_TEXT, pattern, tag=container, header=header)


def by_icon(tag: str, icon_class: str) -> Descriptor:
    return Descriptor(DescriptorKind.ICON_CLASS, icon_class, tag=tag)


def by_text_contains(tag: str, text: str) -> Descriptor:
    return Descriptor(DescriptorKind.XPATH_TEXT_CONTAINS, text, tag=tag)


def by_label(tag: str, pattern: str) -> Descriptor:
    return Descriptor(DescriptorKind.LABEL_TEXT, pattern, tag=tag)


Chain = Tuple[Descriptor, ...]


@dataclass(frozen=True)
class ModuleRoute:
    """How to reach a module's landing page from the post-login dashboard."""

    name: str
    view_more: Chain
    total_cases_badge: Chain
    landing_signal: Chain
    back: Chain
    card: Chain = ()
    landing_url_fragment: str = ""


@dataclass(frozen=True)
class WorkflowSelectors:
    tab: Chain
    # Container the tab chain is resolved in; empty means the whole page.
    scope: str = ""
    tab_name: str = "Workflow"
    item_candidates: Tuple[str, ...] = (
        "#tab-workflow-panel li",
        "app-workflow li",
        "app-workflow ul li",
        'div[role="tabpanel"] li',
    )
    include_detail: bool = True


@dataclass(frozen=True)
class AttachmentSelectors:
    tab: Chain
    scope: str = ""
    panels: str = "ngb-accordion .card"
    header_button: str = ".card-header button"
    rows: str = "tbody tr"
    download_button: Chain = (
        by_css('button[ngbtooltip="Download Attachment"]'),
        by_icon("button", "fa-download"),
    )


@dataclass(frozen=True)
class PermitTaskSelectors:
    action_dropdown: Chain = (by_first_option(r"action"),)
    search_column: Chain = (by_css('select[name="searchBy"]'),)
    search_keyword: Chain = (by_css('input[name="searchKeyword"]'),)
    table: Chain = (
        by_css("app-task-list table"),
        by_header_text(".card", r"Task\s*List", header=".card-header h6"),
    )
    row_button: str = "td:last-child button"
    detail_signal: Chain = (by_id("tab-workflow"), by_text_contains("a", "Workflow"))
    workflow: WorkflowSelectors = WorkflowSelectors(
        tab=(by_id("tab-workflow"), by_text_contains("a", "Workflow")),
    )
    attachments: AttachmentSelectors = AttachmentSelectors(
        tab=(by_id("tab-attachment"), by_text_contains("a", "Attachment")),
    )


@dataclass(frozen=True)
class ProposalSelectors:
    card: Chain = (by_header_text(".card", r"Proposal\s*List", header=".card-header h6"),)
    search_button: str = ".card-header button.btn-info"
    file_no_input: Chain = (
        by_css('input[name="fileNo"]'),
        by_css('input[formcontrolname="fileNo"]'),
        by_css('input[placeholder*="File"]'),
    )
    applicant_input: Chain = (
        by_css('input[name="applicantName"]'),
        by_css('input[formcontrolname="applicantName"]'),
        by_css('input[placeholder*="Applicant"]'),
    )
    find_button: Chain = (by_label("button.btn-info", r"Find"),)
    row_button: str = "td:last-child button"
    modal: str = "ngb-modal-window"
    modal_heading: Chain = (
        by_css("ngb-modal-window h1 strong"),
        by_css("ngb-modal-window strong"),
    )
    modal_close: Chain = (
        by_css('ngb-modal-window button.close'),
        by_css('ngb-modal-window button[aria-label="Close"]'),
    )
    workflow: WorkflowSelectors = WorkflowSelectors(
        tab=(by_id("tab-workflow"), by_text_contains("a", "Workflow")),
        scope="ngb-modal-window",
        item_candidates=(
            "ngb-modal-window #tab-workflow-panel li",
            "ngb-modal-window app-workflow li",
            "ngb-modal-window app-workflow ul li",
            'ngb-modal-window div[role="tabpanel"] li',
        ),
        include_detail=False,
    )
    attachments: AttachmentSelectors = AttachmentSelectors(
        tab=(by_id("tab-attachment"), by_text_contains("a", "Attachment")),
        scope="ngb-modal-window",
        panels="ngb-modal-window ngb-accordion .card",
    )


@dataclass(frozen=True)
class CourtCaseSelectors:
    action_dropdown: Chain = (by_first_option(r"Action"),)
    sector_dropdown: Chain = (by_first_option(r"Sector"),)
    task_card: Chain = (
        by_header_text(".card", r"Task\s*List", header=".card-header h6"),
        by_css("app-task-list table"),
    )
    row_button: str = "td:last-child button"
    detail_signal: Chain = (
        by_id("tab-caf"),
        by_id("tab-workflow"),
        by_text_contains("a", "Case Information"),
    )
    case_info_tab: Chain = (by_id("tab-caf"), by_text_contains("a", "Case Information"))
    case_info_active: str = '#tab-caf[aria-selected="true"]'
    case_info_panels: Tuple[Tuple[str, str], ...] = (
        ("property_information", "Property Information"),
        ("case_details", "Case Detail"),
        ("gis_coordinates", "GIS Coordinate"),
    )
    workflow: WorkflowSelectors = WorkflowSelectors(
        tab=(by_id("tab-workflow"), by_text_contains("a", "Workflow")),
        include_detail=False,
    )
    action_tab: Chain = (by_id("tab-action"), by_text_contains("a", "Action"))
    action_select: Chain = (
        by_css("#tab-action-panel select"),
        by_css('select[formcontrolname="action"]'),
        by_first_option(r"^\s*Select\.\.\.\s*$"),
    )
    remarks_input: Chain = (
        by_css("#tab-action-panel textarea"),
        by_css('textarea[formcontrolname="remarks"]'),
        by_css("textarea"),
    )
    save_draft_button: Chain = (by_label("button", r"Save\s*Draft"),)
    done_button: Chain = (by_label("button", r"^\s*Done\s*$"),)


PERMIT_ROUTE = ModuleRoute(
    name="building_permit",
    view_more=(
        by_css('a[routerlink="/private/bp-dashboard"]'),
        by_css('a[href*="bp-dashboard"]'),
    ),
    total_cases_badge=(by_css(".border-success.rounded-circle"),),
    landing_signal=(
        by_css("app-task-list"),
        by_header_text(".card", r"Task\s*List|Proposal\s*List", header=".card-header h6"),
    ),
    back=(by_css('a[href*="bp-dashboard"]'),),
    landing_url_fragment="bp-dashboard",
)

COURT_CASE_ROUTE = ModuleRoute(
    name="court_case",
    card=(by_header_text(".row.no-gutters", r"Court\s*Case\s*Management"),),
    view_more=(
        by_label("a", r"View\s*More"),
        by_css('a[routerlink*="ccms"]'),
        by_css('a[href*="ccms"]'),
    ),
    total_cases_badge=(by_css(".border-primary.rounded-circle"),),
    landing_signal=(by_first_option(r"Sector"),),
    back=(by_css('a[routerlink*="ccms"]'), by_css('a[href*="ccms"]')),
)

HOME_LINKS: Chain = (
    by_css('a[routerlink="/private"]'),
    by_css('a[href$="/private"]'),
    by_label("a", r"^\s*Home\s*$"),
)

PERMIT_TASK_SELECTORS = PermitTaskSelectors()
PROPOSAL_SELECTORS = ProposalSelectors()
COURT_CASE_SELECTORS = CourtCaseSelectors()

__all__ = [
    "DescriptorKind",
    "Descriptor",
    "Chain",
    "by_id",
    "by_css",
    "by_first_option",
    "by_header_text",
    "by_icon",
    "by_text_contains",
    "by_label",
    "ModuleRoute",
    "WorkflowSelectors",
    "AttachmentSelectors",
    "PermitTaskSelectors",
    "ProposalSelectors",
    "CourtCaseSelectors",
    "PERMIT_ROUTE",
    "COURT_CASE_ROUTE",
    "HOME_LINKS",
    "PERMIT_TASK_SELECTORS",
    "PROPOSAL_SELECTORS",
    "COURT_CASE_SELECTORS",
]
