from __future__ import annotations

from pathlib import Path

import pytest

from app.extractor import attachments, config
from app.extractor.error_codes import ErrorCode
from app.extractor.selectors import PERMIT_TASK_SELECTORS
from tests import fakes


@pytest.fixture(autouse=True)
def runtime(tmp_path, monkeypatch: pytest.MonkeyPatch):
    return fakes.configure_runtime(tmp_path, monkeypatch)


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(attachments, "_scraper_event", _record)
    return events


@pytest.mark.parametrize(
    "current, expected",
    [
        ({"a.pdf"}, False),
        ({"a.pdf", "b.pdf.crdownload"}, False),
        ({"a.pdf", "b.pdf.part"}, False),
        ({"a.pdf", "b.pdf"}, True),
    ],
)
def test_is_download_complete(current: set, expected: bool) -> None:
    assert attachments.is_download_complete({"a.pdf"}, current) is expected


def test_wait_for_download_waits_for_partial_suffix_to_clear(
    tmp_path: Path, event_recorder: list[tuple[str, dict]]
) -> None:
    directory = tmp_path / "dl"
    directory.mkdir()
    (directory / "a.pdf").write_bytes(b"a")
    before = attachments.snapshot_directory(directory)
    partial = directory / "b.pdf.crdownload"
    partial.write_bytes(b"b")
    sleeps: list[float] = []

    def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 3:
            partial.rename(directory / "b.pdf")

    done = attachments.wait_for_download(
        directory, before, timeout_seconds=5, poll_seconds=0.5, sleep=_sleep
    )

    assert done is True
    assert sleeps == [0.5, 0.5, 0.5]
    phase, fields = event_recorder[-1]
    assert phase == "download"
    assert fields["step"] == "complete"
    assert fields["files"] == ["b.pdf"]


def test_wait_for_download_timeout_reports_pending(
    tmp_path: Path, event_recorder: list[tuple[str, dict]]
) -> None:
    (tmp_path / "c.pdf.crdownload").write_bytes(b"c")
    sleeps: list[float] = []

    done = attachments.wait_for_download(
        tmp_path, set(), timeout_seconds=2, poll_seconds=0.5, sleep=sleeps.append
    )

    assert done is False
    assert len(sleeps) == 4
    _, fields = event_recorder[-1]
    assert fields["step"] == "timeout"
    assert fields["error_code"] == ErrorCode.DOWNLOAD_INCOMPLETE
    assert fields["pending"] == ["c.pdf.crdownload"]


def test_list_downloaded_files_skips_in_progress(tmp_path: Path) -> None:
    for name in ("b.pdf", "a.pdf", "c.pdf.part", "d.tmp"):
        (tmp_path / name).write_bytes(b"x")
    (tmp_path / "nested").mkdir()

    assert attachments.list_downloaded_files(tmp_path) == ["a.pdf", "b.pdf"]
    assert attachments.list_downloaded_files(tmp_path / "missing") == []


def _detail_with_panels() -> str:
    panels = fakes.attachment_panel_html(
        "Plans", [("Site Plan", "01/02/2024"), ("Elevation", "02/02/2024")]
    ) + fakes.attachment_panel_html("Ownership", [("Sale Deed", "05/01/2024")])
    return fakes.permit_detail_html(attachment_panels=panels)


def test_download_attachments_walks_every_panel_and_row() -> None:
    page = fakes.FakePage(_detail_with_panels(), url=fakes.DETAIL_URL)
    page.on_click('button[ngbtooltip="Download Attachment"]', fakes.write_download)

    report = attachments.download_attachments(page, PERMIT_TASK_SELECTORS.attachments)

    assert [(r.panel_title, r.description, r.date, r.downloaded) for r in report.panels] == [
        ("Plans", "Site Plan", "01/02/2024", True),
        ("Plans", "Elevation", "02/02/2024", True),
        ("Ownership", "Sale Deed", "05/01/2024", True),
    ]
    assert report.files == ("Elevation.pdf", "Sale Deed.pdf", "Site Plan.pdf")
    assert report.skipped is False
    # Every panel is collapsed again once its rows are done.
    expanded = page.locator(".card-header button[aria-expanded='true']").count()
    assert expanded == 0


def test_download_that_never_lands_is_recorded_not_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "DOWNLOAD_TIMEOUT_SECONDS", 0.05)
    panels = fakes.attachment_panel_html("Plans", [("Site Plan", "01/02/2024")])
    page = fakes.FakePage(fakes.permit_detail_html(attachment_panels=panels), url=fakes.DETAIL_URL)

    report = attachments.download_attachments(page, PERMIT_TASK_SELECTORS.attachments)

    assert len(report.panels) == 1
    assert report.panels[0].downloaded is False
    assert report.files == ()


def test_no_panels_gives_empty_report() -> None:
    page = fakes.FakePage(fakes.permit_detail_html(), url=fakes.DETAIL_URL)

    report = attachments.download_attachments(page, PERMIT_TASK_SELECTORS.attachments)

    assert report.panels == ()
    assert report.to_dict() == {"panels": [], "files": [], "skipped": False}


def test_missing_attachment_tab_lists_existing_files() -> None:
    config.DOWNLOAD_DIR.mkdir(parents=True, exist_ok=True)
    (config.DOWNLOAD_DIR / "old.pdf").write_bytes(b"x")
    page = fakes.FakePage("<p>no tabs here</p>", url=fakes.DETAIL_URL)

    report = attachments.download_attachments(page, PERMIT_TASK_SELECTORS.attachments)

    assert report.panels == ()
    assert report.files == ("old.pdf",)
