from __future__ import annotations

"""Attachment accordion walker and download confirmation.

Completion is observed on disk: the browser writes into ``DOWNLOAD_DIR`` and a
download counts as finished once a new complete file exists and no
in-progress file remains. Runs are serialised, so a plain before/after
directory diff is enough to attribute new files to the current click.
"""

import math
import time
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from playwright.sync_api import Error as PWError, Locator, Page, TimeoutError as PWTimeout

from . import config
from .error_codes import ErrorCode
from .locator import (
    activate_tab,
    click,
    extract_attr,
    first_locator,
    locate,
    read_text,
    screenshot,
    wait_seconds,
)
from .logging_utils import _scraper_event
from .models import AttachmentRecord, AttachmentReport
from .selectors import AttachmentSelectors
from .session import SessionLost, is_target_closed_error
from .utils import log_line


def _is_in_progress(name: str, suffixes: Sequence[str]) -> bool:
    return any(name.endswith(suffix) for suffix in suffixes)


def snapshot_directory(directory: Path) -> FrozenSet[str]:
    """Return the set of filenames currently in ``directory``."""

    try:
        return frozenset(entry.name for entry in directory.iterdir() if entry.is_file())
    except FileNotFoundError:
        return frozenset()


def is_download_complete(
    before: Iterable[str],
    current: Iterable[str],
    suffixes: Sequence[str] = config.IN_PROGRESS_DOWNLOAD_SUFFIXES,
) -> bool:
    """True when ``current`` has a new complete file and nothing in progress."""

    before_set = set(before)
    current_list = list(current)
    if any(_is_in_progress(name, suffixes) for name in current_list):
        return False
    return any(name not in before_set for name in current_list)


def wait_for_download(
    directory: Path,
    before: Iterable[str],
    *,
    timeout_seconds: Optional[float] = None,
    poll_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll ``directory`` until a download triggered after ``before`` completes."""

    timeout = config.DOWNLOAD_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
    interval = config.DOWNLOAD_POLL_SECONDS if poll_seconds is None else poll_seconds
    polls = max(1, int(math.ceil(timeout / interval))) if interval > 0 else 1
    before_set = frozenset(before)

    for _ in range(polls):
        sleep(interval)
        current = snapshot_directory(directory)
        if is_download_complete(before_set, current):
            new_files = sorted(current - before_set)
            _scraper_event("download", step="complete", files=new_files)
            return True

    _scraper_event(
        "download",
        step="timeout",
        error_code=ErrorCode.DOWNLOAD_INCOMPLETE,
        timeout_seconds=timeout,
        pending=sorted(
            name
            for name in snapshot_directory(directory)
            if _is_in_progress(name, config.IN_PROGRESS_DOWNLOAD_SUFFIXES)
        ),
    )
    log_line("[EXTRACTOR][WARN] Download wait timed out (may still be downloading).")
    return False


def list_downloaded_files(directory: Optional[Path] = None) -> List[str]:
    """Complete filenames in the download directory, sorted."""

    target = directory or config.DOWNLOAD_DIR
    return sorted(
        name
        for name in snapshot_directory(target)
        if not _is_in_progress(name, config.IN_PROGRESS_DOWNLOAD_SUFFIXES)
    )


def _panel(page: Page, selectors: AttachmentSelectors, index: int) -> Optional[Locator]:
    panels = page.locator(selectors.panels)
    return panels.nth(index) if index < panels.count() else None


def _panel_title(panel: Locator, selectors: AttachmentSelectors, index: int) -> str:
    header = first_locator(panel, selectors.header_button)
    if header is not None:
        try:
            lines = [line.strip() for line in header.inner_text().split("\n")]
        except PWTimeout:
            lines = []
        if lines and lines[0]:
            return lines[0]
    return f"Attachment_{index + 1}"


def _set_expanded(page: Page, panel: Locator, selectors: AttachmentSelectors, expanded: bool) -> None:
    header = first_locator(panel, selectors.header_button)
    if header is None:
        return
    is_expanded = extract_attr(header, ("aria-expanded",)) == "true"
    if is_expanded == expanded:
        return
    if click(page, header, label="attachment panel header"):
        wait_seconds(
            page, config.PANEL_EXPAND_SECONDS if expanded else config.PANEL_COLLAPSE_SECONDS
        )


def _row_metadata(row: Locator) -> List[str]:
    cells = row.locator("td")
    return [read_text(cells.nth(index)) for index in (1, 2) if index < cells.count()]


def _download_row(
    page: Page,
    row: Locator,
    selectors: AttachmentSelectors,
    title: str,
    download_dir: Path,
) -> AttachmentRecord:
    metadata = _row_metadata(row) + ["", ""]
    description, date = metadata[0], metadata[1]

    button = locate(row, selectors.download_button, label="download button")
    if button is None:
        log_line(f"[EXTRACTOR]   No download button for {description!r}.")
        return AttachmentRecord(panel_title=title, description=description, date=date)

    log_line(f"[EXTRACTOR]   Downloading: {description!r} ({date})")
    before = snapshot_directory(download_dir)
    if not click(page, button, label="download button"):
        return AttachmentRecord(panel_title=title, description=description, date=date)

    downloaded = wait_for_download(download_dir, before)
    return AttachmentRecord(
        panel_title=title, description=description, date=date, downloaded=downloaded
    )


def download_attachments(
    page: Page,
    selectors: AttachmentSelectors,
    *,
    download_dir: Optional[Path] = None,
) -> AttachmentReport:
    """Expand every attachment panel in turn and download each of its rows.

    Panel and row handles are looked up again before every row because
    expanding or collapsing a panel re-renders the accordion.
    """

    target_dir = download_dir or config.DOWNLOAD_DIR
    target_dir.mkdir(parents=True, exist_ok=True)

    scope = first_locator(page, selectors.scope) if selectors.scope else None
    if selectors.scope and scope is None:
        log_line(f"[EXTRACTOR][WARN] Attachment scope {selectors.scope!r} not present.")
        return AttachmentReport(files=tuple(list_downloaded_files(target_dir)))

    if not activate_tab(page, selectors.tab, label="Attachment", scope=scope):
        return AttachmentReport(files=tuple(list_downloaded_files(target_dir)))

    try:
        page.wait_for_selector(
            selectors.panels,
            state="visible",
            timeout=config.timeout_ms(config.ATTACHMENT_PANEL_TIMEOUT_SECONDS),
        )
    except PWTimeout:
        log_line("[EXTRACTOR][WARN] No attachment panels found.")
        return AttachmentReport(files=tuple(list_downloaded_files(target_dir)))
    except PWError as exc:
        if is_target_closed_error(exc):
            raise SessionLost("Page closed while waiting for attachment panels") from exc
        log_line(f"[EXTRACTOR][WARN] Waiting for attachment panels failed: {exc}")
        return AttachmentReport(files=tuple(list_downloaded_files(target_dir)))

    panel_count = page.locator(selectors.panels).count()
    log_line(f"[EXTRACTOR] Found {panel_count} attachment panels.")

    records: List[AttachmentRecord] = []
    for index in range(panel_count):
        try:
            panel = _panel(page, selectors, index)
            if panel is None:
                continue
            title = _panel_title(panel, selectors, index)
            log_line(f"[EXTRACTOR] Panel {index + 1}: {title!r}")
            _set_expanded(page, panel, selectors, True)

            panel = _panel(page, selectors, index)
            row_count = panel.locator(selectors.rows).count() if panel is not None else 0
            if not row_count:
                log_line("[EXTRACTOR]   No attachment rows in this panel.")
            for row_index in range(row_count):
                panel = _panel(page, selectors, index)
                if panel is None:
                    break
                rows = panel.locator(selectors.rows)
                if row_index >= rows.count():
                    break
                records.append(
                    _download_row(page, rows.nth(row_index), selectors, title, target_dir)
                )

            panel = _panel(page, selectors, index)
            if panel is not None:
                _set_expanded(page, panel, selectors, False)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise SessionLost("Page closed while downloading attachments") from exc
            log_line(f"[EXTRACTOR][WARN] Error in attachment panel {index + 1}: {exc}")
            _scraper_event("download", step="panel_error", panel=index + 1, error=str(exc))

    files = list_downloaded_files(target_dir)
    confirmed = sum(1 for record in records if record.downloaded)
    _scraper_event(
        "download",
        step="summary",
        panels=panel_count,
        rows=len(records),
        confirmed=confirmed,
        files_on_disk=len(files),
    )
    log_line(
        f"[EXTRACTOR] Downloads complete. {confirmed}/{len(records)} confirmed, "
        f"{len(files)} files on disk."
    )
    screenshot(page, "after_attachments")
    return AttachmentReport(panels=tuple(records), files=tuple(files))


__all__ = [
    "snapshot_directory",
    "is_download_complete",
    "wait_for_download",
    "list_downloaded_files",
    "download_attachments",
]
