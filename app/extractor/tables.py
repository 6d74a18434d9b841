from __future__ import annotations

"""Read rendered tables and label/value form groups into plain records.

Markup is read back from the page once and parsed with BeautifulSoup, so a
single extraction sees one consistent snapshot of the DOM.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag
from playwright.sync_api import Error as PWError, Page

from .krutidev import autoconvert, transcode
from .locator import Scope, locate, read_html
from .logging_utils import _scraper_event
from .models import TableRecord
from .selectors import Descriptor
from .session import SessionLost, is_target_closed_error
from .utils import clean_text, log_line

_LABEL_DECORATION_RE = re.compile(r"\s*\*\s*")
_HIDDEN_STYLE_MARKERS = ("246", "transparent")


def parse_html(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup or "", "html5lib")


def node_text(node: Optional[Tag]) -> str:
    """Approximate the element's rendered ``innerText`` (collapsed)."""

    if node is None:
        return ""
    return clean_text(node.get_text(" "))


def _table_root(soup: BeautifulSoup) -> Tag:
    table = soup.select_one("table")
    return table if table is not None else soup


def parse_table_html(
    markup: str,
    default_headers: Sequence[str],
    *,
    label: str = "table",
) -> TableRecord:
    """Zip each body row against the header cells by position.

    Missing trailing cells read as ``""``; surplus cells are ignored. When the
    table has no header cells ``default_headers`` are used and the record is
    flagged as degraded.
    """

    root = _table_root(parse_html(markup))
    headers: List[str] = [node_text(th) for th in root.select("thead th")]
    default_used = False
    if not headers:
        headers = list(default_headers)
        default_used = True
        _scraper_event(
            "table",
            step="default_headers",
            target=label,
            headers=headers,
        )
        log_line(f"[EXTRACTOR][WARN] {label}: no header row found; using default headers.")

    rows: List[Dict[str, str]] = []
    for tr in root.select("tbody tr"):
        cells = [node_text(td) for td in tr.find_all("td")]
        if not cells:
            continue
        rows.append(
            {header: cells[index] if index < len(cells) else "" for index, header in enumerate(headers)}
        )

    return TableRecord(headers=tuple(headers), rows=tuple(rows), default_headers_used=default_used)


def transcode_columns(record: TableRecord, columns: Sequence[str]) -> TableRecord:
    """Unconditionally transcode ``columns`` known to carry legacy text."""

    targets = [header for header in record.headers if header in columns]
    if not targets:
        return record

    rows = []
    for row in record.rows:
        converted = dict(row)
        for header in targets:
            converted[header] = transcode(row.get(header, "")) or ""
        rows.append(converted)
    _scraper_event("transcode", step="columns", columns=targets, rows=len(rows))
    return TableRecord(
        headers=record.headers,
        rows=tuple(rows),
        default_headers_used=record.default_headers_used,
    )


def extract_table(
    scope: Scope,
    chain: Sequence[Descriptor],
    default_headers: Sequence[str],
    *,
    label: str,
    legacy_columns: Sequence[str] = (),
) -> Optional[TableRecord]:
    """Locate the table container and read it; ``None`` when it is absent."""

    container = locate(scope, chain, label=label)
    if container is None:
        return None

    record = parse_table_html(read_html(container, outer=True), default_headers, label=label)
    if legacy_columns:
        record = transcode_columns(record, legacy_columns)

    _scraper_event(
        "table",
        step="extracted",
        target=label,
        rows=len(record.rows),
        headers=len(record.headers),
        default_headers=record.default_headers_used,
    )
    log_line(f"[EXTRACTOR] {label}: extracted {len(record.rows)} rows.")
    return record


def count_body_rows(scope: Scope, chain: Sequence[Descriptor], *, label: str) -> int:
    container = locate(scope, chain, label=label, quiet=True)
    if container is None:
        return 0
    return len(_table_root(parse_html(read_html(container, outer=True))).select("tbody tr"))


def clean_label(label: Tag) -> str:
    """Label text without hidden id spans or required-field asterisks."""

    for span in label.select("span[style]"):
        style = span.get("style") or ""
        if any(marker in style for marker in _HIDDEN_STYLE_MARKERS):
            span.decompose()
    return clean_text(_LABEL_DECORATION_RE.sub("", label.get_text(" ")))


def _find_panel(soup: BeautifulSoup, header_text: str) -> Optional[Tag]:
    needle = header_text.strip().lower()
    for heading in soup.find_all("h5"):
        if needle not in node_text(heading).lower():
            continue
        for parent in heading.parents:
            if "card" in (parent.get("class") or []):
                return parent
    return None


def _field_value(group: Tag) -> Tuple[bool, str]:
    holder = group.select_one("strong span.form-control, span.form-control")
    if holder is not None:
        return True, node_text(holder)
    letter = group.select_one(".letter-desc")
    value = node_text(letter)
    return bool(value), value


def parse_labeled_fields_html(markup: str, header_text: str) -> Dict[str, str]:
    """Read the ``.form-group`` label/value pairs of the panel titled ``header_text``.

    The panel is the closest ``.card`` around the first ``h5`` whose text
    contains ``header_text`` (case-insensitive). Values come from a
    ``span.form-control`` when present (even if empty), else from a non-empty
    ``.letter-desc``. A repeated label keeps its first value.
    """

    panel = _find_panel(parse_html(markup), header_text)
    if panel is None:
        return {}
    body = panel.select_one(".collapse.show .card-body") or panel.select_one(".card-body")
    if body is None:
        return {}

    fields: Dict[str, str] = {}
    for group in body.select(".form-group"):
        label = group.select_one("label, .form-label")
        if label is None:
            continue
        key = clean_label(label)
        if not key or key in fields:
            continue
        found, value = _field_value(group)
        if found:
            fields[key] = value
    return fields


def read_page_markup(page: Page, *, label: str) -> str:
    """Return the current document's HTML, or ``""`` when it cannot be read."""

    try:
        return page.content()
    except PWError as exc:
        if is_target_closed_error(exc):
            raise SessionLost(f"Page closed while reading {label!r}") from exc
        log_line(f"[EXTRACTOR][WARN] Reading page content for {label!r} failed: {exc}")
        return ""


def extract_labeled_fields(
    page: Page,
    header_text: str,
    *,
    convert: bool = True,
) -> Dict[str, str]:
    """Read one titled panel of the current page; absent panels give ``{}``."""

    fields = parse_labeled_fields_html(read_page_markup(page, label=header_text), header_text)
    if convert:
        fields = {key: autoconvert(value) or "" for key, value in fields.items()}
    _scraper_event("fields", step="extracted", panel=header_text, count=len(fields))
    return fields


__all__ = [
    "parse_html",
    "node_text",
    "parse_table_html",
    "transcode_columns",
    "extract_table",
    "count_body_rows",
    "clean_label",
    "parse_labeled_fields_html",
    "read_page_markup",
    "extract_labeled_fields",
]
