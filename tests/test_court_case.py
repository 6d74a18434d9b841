from __future__ import annotations

import pytest

from app.extractor import court_case
from app.extractor.court_case import (
    ActionRequest,
    extract_court_case_heading,
    get_action_options,
    perform_action,
    run_court_case_workflow,
)
from app.extractor.error_codes import ErrorCode
from app.extractor.session import RunGuard, RunInProgress
from tests import fakes


@pytest.fixture(autouse=True)
def runtime(tmp_path, monkeypatch: pytest.MonkeyPatch):
    return fakes.configure_runtime(tmp_path, monkeypatch)


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(court_case, "_scraper_event", _record)
    return events


@pytest.fixture
def portal() -> fakes.FakePage:
    page = fakes.FakePage(fakes.dashboard_html(ccms_total="4"))
    fakes.wire_court_case_portal(page)
    _record_buttons(page)
    return page


@pytest.fixture
def detail_page() -> fakes.FakePage:
    page = fakes.FakePage(fakes.court_case_detail_html(), url=fakes.DETAIL_URL)
    _record_buttons(page)
    return page


def _record_buttons(page: fakes.FakePage) -> None:
    page.pressed = []
    page.on_click("#tab-action-panel button", lambda p, el: p.pressed.append(el.get_text(strip=True)))


def test_court_case_run_with_final_action(portal: fakes.FakePage, event_recorder) -> None:
    result = run_court_case_workflow(
        fakes.FakeSession(portal),
        {"actionFilter": "Hearing", "sector": "S4"},
        action={"actionValue": "Forward", "remarks": "Forwarded for hearing", "clickDone": True},
        guard=RunGuard(),
    )

    assert result.success is True
    assert result.mode == "court_case"
    assert result.total_cases == "4"
    assert result.filters_used == {"action": "Hearing", "sector": "S4"}
    selected = [event[1] for event in portal.events if event[0] == "select"]
    assert selected[:2] == ["A1", "S4"]

    assert result.first_row["File/Case No."] == "CCMS/2024/9"
    assert result.first_row["Defendent"] == "राम कुमार"
    assert result.heading == "Hearing (CCMS) - NO/2024/77"

    info = result.case_information
    assert info.property_information == {"Owner Name": "Ram Kumar", "Khasra No.": ""}
    assert info.case_details == {"Description": "कार्यालय"}
    assert info.gis_coordinates == {}
    assert [entry.process_name for entry in result.workflow] == ["Sec Verification"]

    assert result.action_result.success is True
    assert result.action_result.action == "FWD"
    assert result.action_result.final is True
    assert ("fill", "Forwarded for hearing") in [event[:2] for event in portal.events]
    assert portal.pressed == ["Done"]
    assert ("action", {"step": "submitted", "action": "FWD", "final": True}) in event_recorder

    assert [r.detail for r in result.stages if r.stage == "tab_selected"] == [
        "Case Information",
        "Workflow",
        "Action",
    ]
    assert portal.url == fakes.CCMS_LANDING_URL


def test_court_case_run_without_action_skips_action_tab(portal: fakes.FakePage) -> None:
    result = run_court_case_workflow(fakes.FakeSession(portal), guard=RunGuard())

    assert result.success is True
    assert result.action_result is None
    assert result.to_dict()["action_result"] is None
    assert not any(event[0] == "select" for event in portal.events)


def test_court_case_run_with_no_rows(portal: fakes.FakePage) -> None:
    portal.click_handlers.clear()
    fakes.wire_court_case_portal(portal, task_rows=[])

    result = run_court_case_workflow(fakes.FakeSession(portal), guard=RunGuard())

    assert result.success is False
    assert result.error_code == ErrorCode.NO_ROWS
    assert result.case_information is None


def test_action_failure_does_not_fail_the_run(portal: fakes.FakePage) -> None:
    result = run_court_case_workflow(
        fakes.FakeSession(portal),
        action=ActionRequest(action_value="Escalate"),
        guard=RunGuard(),
    )

    assert result.success is True
    assert result.action_result.success is False
    assert result.action_result.error == "No action option matching 'Escalate'"


def test_get_action_options_skips_placeholders(detail_page: fakes.FakePage) -> None:
    options = get_action_options(fakes.FakeSession(detail_page), guard=RunGuard())

    assert options == [
        {"value": "FWD", "text": "Forward to Officer"},
        {"value": "CLS", "text": "Close Case"},
    ]
    assert any("tab-action" in target for target in detail_page.clicked())


def test_get_action_options_rejects_concurrent_run(detail_page: fakes.FakePage) -> None:
    guard = RunGuard()

    with guard.exclusive("court_case"):
        with pytest.raises(RunInProgress):
            get_action_options(fakes.FakeSession(detail_page), guard=guard)


def test_perform_action_saves_draft(detail_page: fakes.FakePage) -> None:
    result = perform_action(
        fakes.FakeSession(detail_page),
        {"action_value": "CLS", "remarks": "Closed after hearing"},
        guard=RunGuard(),
    )

    assert result.success is True
    assert (result.action, result.final) == ("CLS", False)
    assert ("select", "CLS") in [event[:2] for event in detail_page.events]
    assert detail_page.pressed == ["Save Draft"]


def test_perform_action_unknown_option(detail_page: fakes.FakePage) -> None:
    result = perform_action(
        fakes.FakeSession(detail_page), {"actionValue": "Escalate"}, guard=RunGuard()
    )

    assert result.success is False
    assert result.error == "No action option matching 'Escalate'"
    assert detail_page.pressed == []


def test_perform_action_on_closed_page_reports_error(detail_page: fakes.FakePage) -> None:
    detail_page.close()

    result = perform_action(
        fakes.FakeSession(detail_page), {"actionValue": "FWD"}, guard=RunGuard()
    )

    assert result.success is False
    assert result.error == "No active page in session"


def test_perform_action_without_action_tab() -> None:
    page = fakes.FakePage("<p>case list</p>", url=fakes.CCMS_LANDING_URL)

    result = perform_action(fakes.FakeSession(page), {"actionValue": "FWD"}, guard=RunGuard())

    assert result.error == "Action tab not found"


@pytest.mark.parametrize(
    "data, expected",
    [
        (None, None),
        ({}, None),
        ({"actionValue": " FWD ", "clickDone": True}, ActionRequest("FWD", None, True)),
        ({"action_value": "CLS", "remarks": "ok"}, ActionRequest("CLS", "ok", False)),
        ({"remarks": ""}, ActionRequest(None, None, False)),
    ],
)
def test_action_request_from_mapping(data, expected) -> None:
    assert ActionRequest.from_mapping(data) == expected


@pytest.mark.parametrize(
    "markup, expected",
    [
        ("<strong>Owner</strong><strong>Hearing (CCMS) - NO/2024/77</strong>", "Hearing (CCMS) - NO/2024/77"),
        ("<strong>Notice - UCMS/12</strong>", "Notice - UCMS/12"),
        ("<strong>Short</strong><strong>Encroachment notice</strong>", "Encroachment notice"),
        ("<strong>A - B</strong>", None),
        ("<p>no strong</p>", None),
    ],
)
def test_extract_court_case_heading(markup: str, expected) -> None:
    assert extract_court_case_heading(markup) == expected
