from __future__ import annotations

"""Workflow history extraction.

Each ``<li>`` of the Workflow tab is one history entry. Entries are built
from whichever structured regions are present and fall back to the entry's
raw text; entries carrying nothing useful are dropped.
"""

import re
from typing import List, Optional, Tuple

from playwright.sync_api import Page

from . import config
from .krutidev import autoconvert_audited
from .locator import activate_tab, first_locator, read_html, screenshot, wait_for_any
from .logging_utils import _scraper_event
from .models import WorkflowEntry
from .selectors import WorkflowSelectors
from .tables import node_text, parse_html
from .utils import clean_text, log_line

_HEADING_DECORATIONS = ".badge, .float-right, .d-inline-block, .text-muted"
_PROCESS_LABEL_RE = re.compile(r"Process Name:", re.IGNORECASE)
_START_DATE_RE = re.compile(r"Start Date[:\s]*([0-9/.\-:\s]+)", re.IGNORECASE)
_END_DATE_RE = re.compile(r"End Date[:\s]*([0-9/.\-:\s]+)", re.IGNORECASE)

RAW_TEXT_MIN_LENGTH = 6
RAW_TEXT_MAX_LENGTH = 300


def _heading_fields(item) -> Tuple[Optional[str], Optional[str]]:
    heading = item.find("h4")
    if heading is None:
        return None, None

    badge = heading.select_one(".badge")
    status = node_text(badge) if badge is not None else None

    for child in heading.select(_HEADING_DECORATIONS):
        child.decompose()
    name = clean_text(_PROCESS_LABEL_RE.sub("", heading.get_text(" "), count=1))
    return status, name or None


def _dates(item) -> Tuple[Optional[str], Optional[str]]:
    start = end = None
    for region in item.select(".col-md-5"):
        text = region.get_text(" ")
        match = _START_DATE_RE.search(text)
        if match:
            start = match.group(1).strip()
        match = _END_DATE_RE.search(text)
        if match:
            end = match.group(1).strip()
    return start, end


def parse_workflow_item(markup: str, *, include_detail: bool = True) -> Optional[WorkflowEntry]:
    """Build a :class:`WorkflowEntry` from one ``<li>``; ``None`` when it has no signal."""

    soup = parse_html(markup)
    item = soup.find("li") or soup.body or soup
    raw_text = node_text(item)

    start_date, end_date = _dates(item)

    assigned_to = None
    for region in item.select(".col-md-3"):
        text = node_text(region)
        if text:
            assigned_to = text
            break

    pre = item.find("pre")
    remarks = pre.get_text().strip() if pre is not None else None

    detail_content = None
    if include_detail:
        detail = item.select_one(".collapse.show")
        if detail is not None:
            detail_content = node_text(detail)

    # Heading last: it strips decoration nodes from the tree.
    status, process_name = _heading_fields(item)

    fallback = None
    if not process_name and not remarks and len(raw_text) >= RAW_TEXT_MIN_LENGTH:
        fallback = raw_text[:RAW_TEXT_MAX_LENGTH]

    entry = WorkflowEntry(
        status=status,
        process_name=process_name,
        start_date=start_date,
        end_date=end_date,
        assigned_to=assigned_to,
        remarks=remarks,
        raw_text=fallback,
        detail_content=detail_content,
    )
    return entry if entry.has_signal else None


def convert_entry(entry: WorkflowEntry) -> Tuple[WorkflowEntry, bool]:
    """Transcode legacy remarks/raw text, keeping the input when it changed."""

    changes = {}
    converted = False
    if entry.remarks:
        audited = autoconvert_audited(entry.remarks)
        if audited.converted:
            changes["remarks"] = audited.text
            changes["remarks_original"] = audited.original
            converted = True
    if entry.raw_text:
        audited = autoconvert_audited(entry.raw_text)
        if audited.converted:
            changes["raw_text"] = audited.text
            changes["raw_text_original"] = audited.original
            converted = True
    if not changes:
        return entry, False

    values = entry.to_dict()
    values.update(changes)
    return WorkflowEntry(**values), converted


def parse_workflow_items(markups: List[str], *, include_detail: bool = True) -> List[WorkflowEntry]:
    entries: List[WorkflowEntry] = []
    converted_count = 0
    for markup in markups:
        entry = parse_workflow_item(markup, include_detail=include_detail)
        if entry is None:
            continue
        entry, converted = convert_entry(entry)
        converted_count += int(converted)
        entries.append(entry)

    if converted_count:
        log_line(f"[EXTRACTOR] Auto-converted {converted_count} Krutidev workflow entries to Unicode.")
    _scraper_event(
        "transcode",
        step="workflow",
        items=len(markups),
        kept=len(entries),
        converted=converted_count,
    )
    return entries


def extract_workflow(page: Page, selectors: WorkflowSelectors) -> List[WorkflowEntry]:
    """Activate the Workflow tab and read every history entry."""

    scope = first_locator(page, selectors.scope) if selectors.scope else None
    if selectors.scope and scope is None:
        log_line(f"[EXTRACTOR][WARN] Workflow scope {selectors.scope!r} not present.")
        return []

    if not activate_tab(page, selectors.tab, label=selectors.tab_name, scope=scope):
        screenshot(page, "debug_workflow_tab_fail")
        return []

    found = wait_for_any(
        page,
        selectors.item_candidates,
        timeout_seconds=config.WORKFLOW_ITEM_TIMEOUT_SECONDS,
        label="workflow items",
    )
    if found is None:
        log_line("[EXTRACTOR][WARN] No workflow items found.")
        screenshot(page, "debug_workflow_empty")
        return []

    items = page.locator(found)
    markups = [read_html(items.nth(index), outer=True) for index in range(items.count())]
    entries = parse_workflow_items(markups, include_detail=selectors.include_detail)

    log_line(f"[EXTRACTOR] Extracted {len(entries)} workflow items (from {found}).")
    for position, entry in enumerate(entries[:3], start=1):
        summary = entry.process_name or (entry.raw_text or "")[:60] or "N/A"
        log_line(f"  {position}. {summary} [{entry.status or ''}]")
    screenshot(page, "after_workflow")
    return entries


__all__ = [
    "parse_workflow_item",
    "parse_workflow_items",
    "convert_entry",
    "extract_workflow",
]
