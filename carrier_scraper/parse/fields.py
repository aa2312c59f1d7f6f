"""Per-portal field extraction.

Everything that knows how a particular carrier portal lays out its results
table lives here: the summary-row selector, the column order, how a row is
correlated with its detail panel, the labeled-text patterns inside that panel,
and how the pager is read. The pagination and session logic only ever talks to
a ``PortalFieldExtractor`` obtained from ``get_field_extractor``.
"""
import logging
import re
from typing import Any, Optional

from selectolax.parser import HTMLParser, Node

from carrier_scraper.errors import ExtractionFieldMiss

logger = logging.getLogger(__name__)

# A captured value that is itself a "Label:" means the field was blank.
_LABEL_RE = re.compile(r"^[A-Za-z][A-Za-z #/]*:")


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def match_labeled_field(text: str, pattern: re.Pattern) -> Optional[str]:
    """Return the first capture of ``pattern`` in ``text`` if it is a real value."""
    match = pattern.search(text)
    if not match:
        return None
    value = clean_text(match.group(1))
    if value and _LABEL_RE.match(value):
        return None
    return value


class PortalFieldExtractor:
    """Base class: how to read records out of one portal's results page."""

    portal_id: str = ""
    row_selector: str = ""
    # Summary-row column index -> record field
    summary_columns: tuple[str, ...] = ()
    column_selector: str = ""
    # Record field -> pattern applied to the detail panel's text
    labeled_patterns: dict[str, re.Pattern] = {}

    def rows(self, parser: HTMLParser) -> list[Node]:
        return parser.css(self.row_selector)

    def parse_summary(self, row: Node) -> dict[str, Optional[str]]:
        cells = row.css(self.column_selector)
        values: dict[str, Optional[str]] = {}
        for index, field_name in enumerate(self.summary_columns):
            values[field_name] = clean_text(cells[index].text(strip=True)) if index < len(cells) else None
        return values

    def find_detail(self, parser: HTMLParser, row: Node) -> Optional[Node]:
        raise NotImplementedError

    def parse_detail(self, detail: Node, policy_number: str) -> tuple[dict[str, Any], list[ExtractionFieldMiss]]:
        raise NotImplementedError

    def total_pages(self, parser: HTMLParser) -> Optional[int]:
        """Highest page number the pager links to, or None when there is no pager."""
        return None

    def has_next_page(self, parser: HTMLParser, current_page: int) -> bool:
        return True


class GTLFieldExtractor(PortalFieldExtractor):
    """GTL "My Business" results table.

    Summary rows are ``.DivTableRow`` elements whose id starts with ``GTL``;
    the matching detail panel is ``div.DivTableDetail`` with
    ``aria-labelledby`` set to that id.
    """

    portal_id = "gtl"
    row_selector = '.DivTableRow[id^="GTL"]'
    column_selector = '[class*="col-"]'
    summary_columns = (
        "updated_date",
        "policy_number",
        "plan_name",
        "applicant_name",
        "face_amount",
        "status",
    )
    labeled_patterns = {
        "issue_date": re.compile(r"\bIssue Date:\s*([^\n]+)"),
        "application_date": re.compile(r"\bApplication Date:\s*([^\n]+)"),
        "premium": re.compile(r"\bPremium:\s*([^\n]+)"),
        "state": re.compile(r"\bState:\s*([^\n]+)"),
        "agent_name": re.compile(r"\bAgent:\s*([^\n]+)"),
        "agent_number": re.compile(r"\bAgent #:\s*([^\n]+)"),
        "plan_code": re.compile(r"\bPlan Code:\s*([^\n]+)"),
    }
    # Applicant table: second row holds name, ssn, dob, gender, age.
    # Name and SSN are never read.
    demographic_cells = {"dob": 2, "gender": 3, "age": 4}
    notes_selector = "textarea.MyBusinessNotes"
    pager_link_selector = 'a[href*="page="]'
    _page_re = re.compile(r"[?&]page=(\d+)")

    def find_detail(self, parser: HTMLParser, row: Node) -> Optional[Node]:
        row_id = row.attributes.get("id")
        if not row_id:
            return None
        for detail in parser.css("div.DivTableDetail[aria-labelledby]"):
            if detail.attributes.get("aria-labelledby") == row_id:
                return detail
        return None

    def parse_detail(self, detail: Node, policy_number: str) -> tuple[dict[str, Any], list[ExtractionFieldMiss]]:
        values: dict[str, Any] = {}
        misses: list[ExtractionFieldMiss] = []

        text = detail.text(separator="\n", strip=True)
        for field_name, pattern in self.labeled_patterns.items():
            value = match_labeled_field(text, pattern)
            values[field_name] = value
            if value is None:
                misses.append(ExtractionFieldMiss(policy_number, field_name))

        table_rows = detail.css("table tr")
        cells = table_rows[1].css("td") if len(table_rows) > 1 else []
        if len(cells) >= 5:
            for field_name, index in self.demographic_cells.items():
                values[field_name] = clean_text(cells[index].text(strip=True))
        else:
            for field_name in self.demographic_cells:
                values[field_name] = None
            misses.append(ExtractionFieldMiss(policy_number, "applicant_table", "fewer than 5 cells"))

        notes = detail.css_first(self.notes_selector)
        values["notes"] = clean_text(notes.text(strip=False)) if notes else None

        return values, misses

    def _linked_pages(self, parser: HTMLParser) -> list[int]:
        pages = []
        for link in parser.css(self.pager_link_selector):
            match = self._page_re.search(link.attributes.get("href") or "")
            if match:
                pages.append(int(match.group(1)))
        return pages

    def total_pages(self, parser: HTMLParser) -> Optional[int]:
        pages = self._linked_pages(parser)
        return max(pages) if pages else None

    def has_next_page(self, parser: HTMLParser, current_page: int) -> bool:
        pages = self._linked_pages(parser)
        if not pages:
            # No pager at all: cannot tell, keep going within the page bound
            return True
        return (current_page + 1) in pages


FIELD_EXTRACTORS: dict[str, type[PortalFieldExtractor]] = {
    GTLFieldExtractor.portal_id: GTLFieldExtractor,
}


def get_field_extractor(portal_id: str) -> PortalFieldExtractor:
    """Return the field extractor registered for ``portal_id``."""
    try:
        return FIELD_EXTRACTORS[portal_id.lower()]()
    except KeyError:
        raise ValueError(
            f"No field extractor for portal '{portal_id}' (known: {', '.join(sorted(FIELD_EXTRACTORS))})"
        ) from None
