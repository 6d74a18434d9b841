from __future__ import annotations

import pytest
from bs4 import BeautifulSoup

from app.extractor import config, tables
from app.extractor.models import TableRecord
from app.extractor.selectors import COURT_CASE_SELECTORS, PERMIT_TASK_SELECTORS
from app.extractor.session import SessionLost
from tests import fakes


@pytest.fixture(autouse=True)
def runtime(tmp_path, monkeypatch: pytest.MonkeyPatch):
    return fakes.configure_runtime(tmp_path, monkeypatch)


def test_short_row_pads_missing_cells() -> None:
    markup = (
        "<table><thead><tr><th>A</th><th>B</th><th>C</th></tr></thead>"
        "<tbody><tr><td>x</td><td>y</td></tr></tbody></table>"
    )
    record = tables.parse_table_html(markup, ("unused",))

    assert record.headers == ("A", "B", "C")
    assert record.rows == ({"A": "x", "B": "y", "C": ""},)
    assert record.default_headers_used is False


def test_surplus_cells_and_empty_rows_are_ignored() -> None:
    markup = (
        "<table><thead><tr><th>A</th></tr></thead><tbody>"
        "<tr><td> one </td><td>extra</td></tr>"
        "<tr></tr>"
        "</tbody></table>"
    )
    record = tables.parse_table_html(markup, ())
    assert record.rows == ({"A": "one"},)


def test_table_rows_are_read_only() -> None:
    source = {"A": "x"}
    record = TableRecord(headers=("A",), rows=(source,))
    source["A"] = "changed"

    with pytest.raises(TypeError):
        record.rows[0]["A"] = "y"
    assert record.rows[0]["A"] == "x"
    first = record.first_row
    first["A"] = "copy"
    assert record.rows[0]["A"] == "x"
    assert record.to_dict()["rows"] == [{"A": "x"}]


def test_missing_header_row_falls_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[tuple[str, dict]] = []
    monkeypatch.setattr(tables, "_scraper_event", lambda label, **fields: events.append((label, fields)))

    markup = "<table><tbody><tr><td>1</td><td>APP-7</td></tr></tbody></table>"
    record = tables.parse_table_html(markup, ("#", "Application No.", "File No."), label="proposal")

    assert record.default_headers_used is True
    assert record.first_row == {"#": "1", "Application No.": "APP-7", "File No.": ""}
    label, fields = events[0]
    assert label == "table"
    assert fields["step"] == "default_headers"
    assert fields["target"] == "proposal"


def test_extract_table_from_page() -> None:
    page = fakes.FakePage(fakes.permit_task_list_html(), url=fakes.PERMIT_LANDING_URL)

    record = tables.extract_table(
        page, PERMIT_TASK_SELECTORS.table, config.PERMIT_TASK_HEADERS, label="task list"
    )

    assert record is not None
    assert record.headers == ("#", "Application No.", "File No.", "Applicant Name", "Action")
    assert record.first_row == {
        "#": "1",
        "Application No.": "APP-101",
        "File No.": "HRDA/2024/17",
        "Applicant Name": "Ram Kumar",
        "Action": "View",
    }


def test_extract_table_absent_container_returns_none() -> None:
    page = fakes.FakePage(fakes.dashboard_html())
    assert tables.extract_table(page, PERMIT_TASK_SELECTORS.table, (), label="task list") is None
    assert tables.count_body_rows(page, PERMIT_TASK_SELECTORS.table, label="task list") == 0


def test_extract_table_transcodes_legacy_columns() -> None:
    page = fakes.FakePage(fakes.court_case_task_list_html(), url=fakes.CCMS_LANDING_URL)

    record = tables.extract_table(
        page,
        COURT_CASE_SELECTORS.task_card,
        config.COURT_CASE_TASK_HEADERS,
        label="court cases",
        legacy_columns=config.LEGACY_ENCODED_COLUMNS,
    )

    assert record is not None
    assert record.first_row["Defendent"] == "राम कुमार"
    assert record.first_row["File/Case No."] == "CCMS/2024/9"


def test_clean_label_strips_hidden_ids_and_asterisks() -> None:
    soup = BeautifulSoup(
        '<label>Plot Area <span style="color: transparent">991</span> <b>*</b></label>',
        "html5lib",
    )
    assert tables.clean_label(soup.find("label")) == "Plot Area"


def test_labeled_fields_first_label_wins_and_empty_holders_count() -> None:
    markup = fakes.court_case_detail_html()

    fields = tables.parse_labeled_fields_html(markup, "property information")

    assert fields == {"Owner Name": "Ram Kumar", "Khasra No.": ""}


def test_labeled_fields_letter_description_needs_text() -> None:
    fields = tables.parse_labeled_fields_html(fakes.court_case_detail_html(), "Case Detail")
    assert fields == {"Description": "dk;kZy;"}


def test_labeled_fields_missing_panel_is_empty() -> None:
    assert tables.parse_labeled_fields_html(fakes.court_case_detail_html(), "GIS Coordinate") == {}


def test_labeled_fields_without_open_collapse_reads_card_body() -> None:
    markup = """
    <div class="card"><div class="card-header"><h5>GIS Coordinates</h5></div>
      <div class="collapse"><div class="card-body">
        <div class="form-group"><label>Latitude</label><span class="form-control">30.31</span></div>
      </div></div>
    </div>
    """
    assert tables.parse_labeled_fields_html(markup, "GIS Coordinate") == {"Latitude": "30.31"}


def test_extract_labeled_fields_autoconverts_values() -> None:
    page = fakes.FakePage(fakes.court_case_detail_html(), url=fakes.DETAIL_URL)

    fields = tables.extract_labeled_fields(page, "Case Detail")

    assert fields == {"Description": "कार्यालय"}


def test_read_page_markup_on_closed_page_raises_session_lost() -> None:
    page = fakes.FakePage("<p>gone</p>")
    page.close()
    with pytest.raises(SessionLost):
        tables.read_page_markup(page, label="heading")
