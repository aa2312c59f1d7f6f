"""Tests for page record extraction."""
from carrier_scraper.errors import ExtractionFieldMiss
from carrier_scraper.parse.fields import get_field_extractor
from carrier_scraper.parse.records import extract_page, extract_records

from tests.fakes import detail_panel, results_page, summary_row


def test_extract_full_record():
    """Summary and detail fields are merged into one record."""
    records = extract_records(results_page(["1001"]))
    assert len(records) == 1
    record = records[0]
    assert record.policy_number == "1001"
    assert record.applicant_name == "Jane Doe"
    assert record.plan_name == "Final Expense"
    assert record.face_amount == "$10,000"
    assert record.status == "Active"
    assert record.updated_date == "01/15/2024"
    assert record.issue_date == "02/01/24"
    assert record.application_date == "01/10/2024"
    assert record.premium == "$45.10"
    assert record.state == "TX"
    assert record.agent_name == "Sam Agent"
    assert record.agent_number == "A123"
    assert record.plan_code == "FE100"
    assert record.dob == "03/04/1950"
    assert record.gender == "F"
    assert record.age == "74"
    assert record.notes == "Call back Monday"


def test_records_keep_dom_order():
    records = extract_records(results_page(["3", "1", "2"]))
    assert [r.policy_number for r in records] == ["3", "1", "2"]


def test_missing_detail_panel_keeps_record():
    """A row without its detail panel is emitted with summary fields only."""
    html = (
        "<html><body>"
        + summary_row("2001")
        + detail_panel("2002").replace("2002", "9999")
        + summary_row("2002")
        + detail_panel("2002")
        + "</body></html>"
    )
    extraction = extract_page(html, 1, get_field_extractor("gtl"))

    assert [r.policy_number for r in extraction.records] == ["2001", "2002"]
    bare = extraction.records[0]
    assert bare.applicant_name == "Jane Doe"
    assert bare.issue_date is None
    assert bare.premium is None
    assert bare.notes is None
    assert extraction.missing_details == 1
    assert extraction.records[1].issue_date == "02/01/24"


def test_missing_labeled_field_is_reported():
    panel = detail_panel("3001").replace("<p>State: TX</p>", "")
    html = "<html><body>" + summary_row("3001") + panel + "</body></html>"
    extraction = extract_page(html, 1, get_field_extractor("gtl"))

    record = extraction.records[0]
    assert record.state is None
    assert record.premium == "$45.10"
    assert any(isinstance(m, ExtractionFieldMiss) and m.field == "state" for m in extraction.misses)
    assert extraction.missing_details == 0


def test_labeled_values_are_kept_as_shown():
    """Dates, states and amounts are stored as the portal wrote them, whatever their format."""
    panel = (
        detail_panel("3002")
        .replace("Issue Date: 02/01/24", "Issue Date: Pending")
        .replace("Application Date: 01/10/2024", "Application Date: 1/2/2024")
        .replace("State: TX", "State: Texas")
    )
    html = "<html><body>" + summary_row("3002") + panel + "</body></html>"
    extraction = extract_page(html, 1, get_field_extractor("gtl"))

    record = extraction.records[0]
    assert record.issue_date == "Pending"
    assert record.application_date == "1/2/2024"
    assert record.state == "Texas"
    assert record.premium == "$45.10"
    assert extraction.misses == []


def test_ssn_is_never_extracted():
    records = extract_records(results_page(["4001"]))
    assert "123-45-6789" not in records[0].model_dump_json()


def test_empty_page():
    extraction = extract_page("", 4, get_field_extractor("gtl"))
    assert extraction.records == []
    assert extraction.has_next is False


def test_page_without_rows():
    extraction = extract_page(results_page([], page_links=[1, 2]), 3, get_field_extractor("gtl"))
    assert extraction.records == []
    assert extraction.total_pages == 2
    assert extraction.has_next is False
