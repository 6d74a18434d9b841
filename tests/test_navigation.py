from __future__ import annotations

import pytest

from app.extractor import navigation
from app.extractor.error_codes import ErrorCode
from app.extractor.navigation import NavigationSequencer, Stage, poll_for_signal
from app.extractor.selectors import COURT_CASE_ROUTE, PERMIT_ROUTE, PERMIT_TASK_SELECTORS
from tests import fakes


@pytest.fixture(autouse=True)
def runtime(tmp_path, monkeypatch: pytest.MonkeyPatch):
    return fakes.configure_runtime(tmp_path, monkeypatch)


def _advance(sequencer: NavigationSequencer, *stages: Stage) -> None:
    for stage in stages:
        assert sequencer.run_stage(stage, lambda: True)


def test_stage_order_is_enforced() -> None:
    sequencer = NavigationSequencer(fakes.FakePage(""), PERMIT_ROUTE)

    with pytest.raises(ValueError):
        sequencer.run_stage(Stage.FILTERED, lambda: True)

    _advance(sequencer, Stage.DASHBOARD, Stage.MODULE_LANDING)
    with pytest.raises(ValueError):
        sequencer.run_stage(Stage.DETAIL_OPEN, lambda: True)


def test_tabs_may_repeat_and_any_stage_may_return() -> None:
    sequencer = NavigationSequencer(fakes.FakePage(""), PERMIT_ROUTE)
    _advance(
        sequencer,
        Stage.DASHBOARD,
        Stage.MODULE_LANDING,
        Stage.FILTERED,
        Stage.DETAIL_OPEN,
        Stage.TAB_SELECTED,
        Stage.TAB_SELECTED,
        Stage.RETURNED,
    )
    assert sequencer.stage is Stage.RETURNED

    early = NavigationSequencer(fakes.FakePage(""), PERMIT_ROUTE)
    _advance(early, Stage.DASHBOARD, Stage.RETURNED)


def test_failed_primary_stage_retries_then_stays_put() -> None:
    page = fakes.FakePage("")
    sequencer = NavigationSequencer(page, PERMIT_ROUTE, max_attempts=2)
    calls: list[int] = []

    ok = sequencer.run_stage(
        Stage.DASHBOARD, lambda: calls.append(1) and False, error_code=ErrorCode.TIMEOUT
    )

    assert ok is False
    assert len(calls) == 2
    assert page.waits_ms == [1000]
    assert sequencer.stage is None
    record = sequencer.trace[-1]
    assert (record.stage, record.ok, record.attempts) == ("dashboard", False, 2)


def test_non_retryable_stage_is_tried_once() -> None:
    sequencer = NavigationSequencer(fakes.FakePage(""), PERMIT_ROUTE, max_attempts=3)
    calls: list[int] = []

    sequencer.run_stage(Stage.DASHBOARD, lambda: calls.append(1) and False, error_code=ErrorCode.NO_ROWS)

    assert len(calls) == 1


def test_failed_secondary_stage_still_advances() -> None:
    page = fakes.FakePage("<p>detail without tabs</p>")
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)
    _advance(sequencer, Stage.DASHBOARD, Stage.MODULE_LANDING, Stage.FILTERED, Stage.DETAIL_OPEN)

    assert sequencer.select_tab("Workflow", PERMIT_TASK_SELECTORS.workflow.tab) is False

    assert sequencer.stage is Stage.TAB_SELECTED
    record = sequencer.trace[-1]
    assert (record.stage, record.ok, record.detail) == ("tab_selected", False, "Workflow")


def test_enter_module_from_dashboard_reads_total_cases() -> None:
    page = fakes.FakePage(fakes.dashboard_html(permit_total="12"))
    fakes.wire_permit_portal(page)
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)

    assert sequencer.enter_module() is True

    assert sequencer.total_cases == "12"
    assert sequencer.stage is Stage.MODULE_LANDING
    assert [(r.stage, r.ok, r.skipped) for r in sequencer.trace] == [
        ("dashboard", True, False),
        ("module_landing", True, False),
    ]
    assert page.url == fakes.PERMIT_LANDING_URL


def test_zero_badge_is_reported_without_failing() -> None:
    page = fakes.FakePage(fakes.dashboard_html(permit_total="0"))
    fakes.wire_permit_portal(page)
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)

    assert sequencer.enter_module() is True
    assert sequencer.total_cases == "0"


def test_enter_module_skips_ahead_when_already_on_landing() -> None:
    page = fakes.FakePage(fakes.permit_task_list_html(), url=fakes.PERMIT_LANDING_URL)
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)

    assert sequencer.enter_module() is True

    assert page.clicked() == []
    assert sequencer.total_cases is None
    assert [(r.stage, r.skipped) for r in sequencer.trace] == [
        ("dashboard", True),
        ("module_landing", True),
    ]


def test_landing_signal_without_url_fragment_is_not_landing() -> None:
    page = fakes.FakePage(fakes.permit_task_list_html(), url=fakes.DETAIL_URL)
    assert NavigationSequencer(page, PERMIT_ROUTE).on_module_landing() is False


def test_unknown_page_renavigates_to_dashboard() -> None:
    page = fakes.FakePage("<p>session expired banner</p>", url="https://portal.test/easeapp/other")
    fakes.wire_permit_portal(page)
    page.goto_handler = lambda p, url: p.set_html(fakes.dashboard_html())

    sequencer = NavigationSequencer(page, PERMIT_ROUTE)

    assert sequencer.enter_module() is True
    assert ("goto", fakes.DASHBOARD_URL) in page.events


def test_court_case_view_more_is_scoped_to_its_card() -> None:
    page = fakes.FakePage(fakes.dashboard_html(ccms_total="4"))
    fakes.wire_court_case_portal(page)
    sequencer = NavigationSequencer(page, COURT_CASE_ROUTE)

    assert sequencer.enter_module() is True

    assert sequencer.total_cases == "4"
    assert page.url == fakes.CCMS_LANDING_URL


def test_open_row_and_return_to_landing() -> None:
    page = fakes.FakePage(fakes.permit_task_list_html(), url=fakes.PERMIT_LANDING_URL)
    fakes.wire_permit_portal(page)
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)
    assert sequencer.enter_module()
    _advance(sequencer, Stage.FILTERED)

    opened = sequencer.open_row(
        PERMIT_TASK_SELECTORS.table,
        PERMIT_TASK_SELECTORS.row_button,
        PERMIT_TASK_SELECTORS.detail_signal,
    )

    assert opened is True
    assert page.url == fakes.DETAIL_URL
    assert sequencer.return_to_landing() is True
    assert sequencer.stage is Stage.RETURNED
    assert page.url == fakes.PERMIT_LANDING_URL


def test_open_row_out_of_range_fails() -> None:
    page = fakes.FakePage(fakes.permit_task_list_html(), url=fakes.PERMIT_LANDING_URL)
    sequencer = NavigationSequencer(page, PERMIT_ROUTE, max_attempts=1)
    assert sequencer.enter_module()
    _advance(sequencer, Stage.FILTERED)

    opened = sequencer.open_row(
        PERMIT_TASK_SELECTORS.table,
        PERMIT_TASK_SELECTORS.row_button,
        PERMIT_TASK_SELECTORS.detail_signal,
        row_index=3,
    )

    assert opened is False
    assert sequencer.stage is Stage.FILTERED


def test_unverified_return_falls_back_to_dashboard() -> None:
    page = fakes.FakePage("<p>orphan detail</p>", url=fakes.DETAIL_URL)
    page.goto_handler = lambda p, url: p.set_html(fakes.dashboard_html())
    sequencer = NavigationSequencer(page, PERMIT_ROUTE)
    _advance(sequencer, Stage.DASHBOARD, Stage.MODULE_LANDING, Stage.FILTERED, Stage.DETAIL_OPEN)

    assert sequencer.return_to_landing() is False

    assert ("go_back",) in page.events
    assert ("goto", fakes.DASHBOARD_URL) in page.events
    assert sequencer.stage is Stage.RETURNED
    assert sequencer.trace[-1].ok is False


def test_poll_for_signal_budget_is_counted_in_probes() -> None:
    page = fakes.FakePage("")
    probes: list[int] = []

    value = poll_for_signal(
        page,
        lambda: probes.append(1),
        timeout_seconds=2,
        interval_seconds=0.5,
        label="never",
    )

    assert value is None
    assert len(probes) == 4
    assert page.waits_ms == [500, 500, 500]


def test_poll_for_signal_returns_first_truthy_value() -> None:
    values = iter([None, "", "7"])
    assert (
        poll_for_signal(None, lambda: next(values), timeout_seconds=5, interval_seconds=1, label="badge")
        == "7"
    )


def test_return_to_dashboard_prefers_home_link() -> None:
    page = fakes.FakePage(fakes.permit_task_list_html(), url=fakes.PERMIT_LANDING_URL)
    fakes.wire_permit_portal(page)

    assert navigation.return_to_dashboard(page) is True

    assert page.url == fakes.DASHBOARD_URL
    assert not any(event[0] == "goto" for event in page.events)
