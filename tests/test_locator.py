from __future__ import annotations

import pytest

from app.extractor import locator
from app.extractor.selectors import (
    COURT_CASE_SELECTORS,
    PERMIT_TASK_SELECTORS,
    by_css,
    by_first_option,
    by_id,
    by_text_contains,
)
from app.extractor.session import SessionLost
from tests import fakes


@pytest.fixture(autouse=True)
def runtime(tmp_path, monkeypatch: pytest.MonkeyPatch):
    return fakes.configure_runtime(tmp_path, monkeypatch)


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(locator, "_scraper_event", _record)
    return events


@pytest.mark.parametrize(
    "wanted, expected",
    [
        ("1", ("1", "Sec Verification")),
        ("sec verification", ("1", "Sec Verification")),
        ("SEC", ("1", "Sec Verification")),
        ("Sec Verification (pending)", ("1", "Sec Verification")),
        ("data CHANGE", ("2", "Data change request")),
        ("Hearing", None),
        ("", None),
    ],
)
def test_choose_option(wanted: str, expected) -> None:
    options = [("1", "Sec Verification"), ("2", "Data change request")]
    assert locator.choose_option(options, wanted) == expected


@pytest.mark.parametrize(
    "wanted, expected",
    [
        ("Sec Verification", ("2", "Sec Verification")),
        (" sec verification ", ("2", "Sec Verification")),
        ("Pending", ("1", "Sec Verification Pending")),
    ],
)
def test_choose_option_prefers_exact_text_over_containment(wanted: str, expected) -> None:
    options = [("1", "Sec Verification Pending"), ("2", "Sec Verification")]
    assert locator.choose_option(options, wanted) == expected


def test_select_option_by_text_fuzzy_match(event_recorder: list[tuple[str, dict]]) -> None:
    page = fakes.FakePage(
        '<select id="action"><option value="1">Sec Verification</option></select>'
    )
    select = page.locator("#action").first

    value = locator.select_option_by_text(page, select, "sec verification", label="action")

    assert value == "1"
    assert ("select", "1", "#action >> nth=0") in page.events
    dispatched = [event[1] for event in page.events if event[0] == "dispatch"]
    assert dispatched == ["change", "input"]
    _, fields = event_recorder[-1]
    assert fields["step"] == "selected"
    assert fields["exact"] is False


def test_select_option_by_text_no_match_returns_none(event_recorder) -> None:
    page = fakes.FakePage('<select><option value="1">Sec Verification</option></select>')

    value = locator.select_option_by_text(page, page.locator("select").first, "Hearing", label="action")

    assert value is None
    _, fields = event_recorder[-1]
    assert fields["step"] == "no_match"
    assert fields["options"] == ["Sec Verification"]


def test_read_options_uses_text_when_value_missing() -> None:
    page = fakes.FakePage("<select><option>Alpha</option><option value='b'>Beta</option></select>")
    assert locator.read_options(page.locator("select").first) == [("Alpha", "Alpha"), ("b", "Beta")]


def test_locate_reports_fallback_hit(event_recorder: list[tuple[str, dict]]) -> None:
    page = fakes.FakePage('<ul><li><a class="nav-link">Workflow</a></li></ul>')

    found = locator.locate(
        page, (by_id("tab-workflow"), by_text_contains("a", "Workflow")), label="workflow tab"
    )

    assert found is not None
    assert locator.read_text(found) == "Workflow"
    phase, fields = event_recorder[-1]
    assert phase == "locator"
    assert fields["step"] == "fallback_hit"
    assert fields["tried"] == ["id=tab-workflow"]


def test_locate_miss_lists_every_strategy(event_recorder: list[tuple[str, dict]]) -> None:
    page = fakes.FakePage("<p>empty</p>")

    found = locator.locate(page, PERMIT_TASK_SELECTORS.table, label="task table")

    assert found is None
    _, fields = event_recorder[-1]
    assert fields["step"] == "not_found"
    assert len(fields["tried"]) == len(PERMIT_TASK_SELECTORS.table)


def test_locate_quiet_miss_emits_nothing(event_recorder: list[tuple[str, dict]]) -> None:
    page = fakes.FakePage("<p>empty</p>")
    assert locator.locate(page, (by_css("table"),), label="table", quiet=True) is None
    assert event_recorder == []


def test_locate_by_first_option_text() -> None:
    page = fakes.FakePage(fakes.court_case_task_list_html(), url=fakes.CCMS_LANDING_URL)

    sector = locator.locate(page, COURT_CASE_SELECTORS.sector_dropdown, label="sector")

    assert sector is not None
    assert locator.read_options(sector)[1] == ("S4", "Sector 4")


def test_locate_on_closed_page_raises_session_lost() -> None:
    page = fakes.FakePage("<table></table>")
    page.close()
    with pytest.raises(SessionLost):
        locator.locate(page, (by_css("table"),), label="table")


def test_click_falls_back_to_dispatched_event(event_recorder: list[tuple[str, dict]]) -> None:
    page = fakes.FakePage('<button id="go">Go</button>')
    page.click_timeouts.append("#go")

    assert locator.click(page, page.locator("#go").first, label="go button") is True
    assert ("dispatch", "click", "#go >> nth=0") in page.events
    assert page.clicked() == ["#go >> nth=0"]
    _, fields = event_recorder[-1]
    assert fields["step"] == "dispatched"


def test_activate_tab_is_idempotent(event_recorder: list[tuple[str, dict]]) -> None:
    page = fakes.FakePage(fakes.permit_detail_html(), url=fakes.DETAIL_URL)
    chain = PERMIT_TASK_SELECTORS.workflow.tab

    assert locator.activate_tab(page, chain, label="Workflow") is True
    assert locator.activate_tab(page, chain, label="Workflow") is True

    assert len(page.clicked()) == 1
    steps = [fields["step"] for phase, fields in event_recorder if phase == "tab"]
    assert steps == ["activated", "already_active"]


def test_activate_missing_tab_returns_false() -> None:
    page = fakes.FakePage("<p>no tabs</p>")
    assert locator.activate_tab(page, (by_id("tab-action"),), label="Action") is False


def test_wait_for_any_returns_first_visible_selector() -> None:
    page = fakes.FakePage(fakes.permit_detail_html(), url=fakes.DETAIL_URL)

    found = locator.wait_for_any(
        page, ("#missing li", "app-workflow li"), timeout_seconds=1, label="items"
    )

    assert found == "app-workflow li"
    assert locator.wait_for_any(page, ("#missing li",), timeout_seconds=1, label="items") is None


def test_fill_types_into_input() -> None:
    page = fakes.FakePage('<input name="searchKeyword">')
    target = page.locator('input[name="searchKeyword"]').first

    assert locator.fill(target, "HRDA/2024", label="keyword") is True
    assert target.get_attribute("value") == "HRDA/2024"


def test_first_option_descriptor_ignores_later_options() -> None:
    page = fakes.FakePage(
        "<select><option>Pick one</option><option>Action required</option></select>"
    )
    assert locator.locate(page, (by_first_option("Action"),), label="action", quiet=True) is None


def test_wait_seconds_skips_closed_page() -> None:
    page = fakes.FakePage("")
    locator.wait_seconds(page, 1.5)
    page.close()
    locator.wait_seconds(page, 2.0)
    assert page.waits_ms == [1500]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Take Action", '"Take Action"'),
        ('Say "Done"', "'Say \"Done\"'"),
        ("Owner's \"Name\"", "concat(\"Owner's \", '\"', \"Name\", '\"', \"\")"),
    ],
)
def test_xpath_literal_quotes_any_text(text: str, expected: str) -> None:
    assert locator._xpath_literal(text) == expected
