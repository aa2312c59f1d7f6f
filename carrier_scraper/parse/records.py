"""Extract policy records from one loaded results page."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from selectolax.parser import HTMLParser

from carrier_scraper.errors import ExtractionFieldMiss
from carrier_scraper.parse.fields import PortalFieldExtractor, get_field_extractor
from carrier_scraper.parse.models import DETAIL_COLUMNS, PolicyRecord

logger = logging.getLogger(__name__)


@dataclass
class PageExtraction:
    """Records found on one page plus what the pager says about the rest."""

    page_number: int
    records: list[PolicyRecord] = field(default_factory=list)
    misses: list[ExtractionFieldMiss] = field(default_factory=list)
    total_pages: Optional[int] = None
    has_next: bool = True

    @property
    def missing_details(self) -> int:
        return sum(1 for miss in self.misses if miss.field == "detail_panel")


def extract_page(
    html_content: str | None,
    page_number: int,
    extractor: PortalFieldExtractor,
) -> PageExtraction:
    """
    Extract every summary row on the page, in DOM order.
    A row whose detail panel is missing or unreadable is still emitted with
    its summary fields; detail fields stay None.
    """
    result = PageExtraction(page_number=page_number)
    if not html_content:
        result.has_next = False
        return result

    parser = HTMLParser(html_content)
    result.total_pages = extractor.total_pages(parser)
    result.has_next = extractor.has_next_page(parser, page_number)

    for row in extractor.rows(parser):
        summary = extractor.parse_summary(row)
        policy_number = summary.pop("policy_number", None) or ""
        detail_values = {column: None for column in DETAIL_COLUMNS}

        try:
            detail = extractor.find_detail(parser, row)
            if detail is None:
                raise ExtractionFieldMiss(policy_number, "detail_panel", "no panel for row")
            parsed, misses = extractor.parse_detail(detail, policy_number)
            detail_values.update(parsed)
            result.misses.extend(misses)
        except ExtractionFieldMiss as miss:
            logger.debug(str(miss))
            result.misses.append(miss)
        except Exception as e:
            logger.warning(
                f"Detail parse error for policy {policy_number or '<blank>'} on page {page_number}: {e}",
                exc_info=True,
            )
            result.misses.append(ExtractionFieldMiss(policy_number, "detail_panel", str(e)))

        merged = {**detail_values, **{k: v for k, v in summary.items() if k not in DETAIL_COLUMNS}}
        result.records.append(PolicyRecord(policy_number=policy_number, **merged))

    if result.misses:
        logger.info(
            f"Page {page_number}: {len(result.records)} records, "
            f"{result.missing_details} without detail panel, {len(result.misses)} field misses"
        )
    return result


def extract_records(html_content: str | None, portal_id: str = "gtl") -> list[PolicyRecord]:
    """Records on a single page for the given portal."""
    return extract_page(html_content, 1, get_field_extractor(portal_id)).records
