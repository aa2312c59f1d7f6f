"""Drive the record extractor across the portal's result pages."""
import asyncio
import logging
from typing import AsyncIterator, Optional

from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError

from carrier_scraper.auth.login_detector import is_login_page
from carrier_scraper.browser.endpoints import Portal
from carrier_scraper.config import config
from carrier_scraper.errors import LoginRequiredError, PortalUnreachableError
from carrier_scraper.parse.fields import PortalFieldExtractor
from carrier_scraper.parse.records import PageExtraction, extract_page
from carrier_scraper.parse.redact import redact_string

logger = logging.getLogger(__name__)


class PaginationDriver:
    """Walks pages 1..N strictly in order on a single tab.

    Never goes past ``max_pages``. Ends early, without error, when a page
    has no link to the next one. ``total_pages`` tracks the pager so
    progress can be reported against the real page count.
    """

    def __init__(
        self,
        page: Page,
        portal: Portal,
        extractor: PortalFieldExtractor,
        max_pages: int | None = None,
        settle_timeout: float | None = None,
        settle_delay: float | None = None,
        inter_page_delay: float | None = None,
        navigation_timeout: float | None = None,
        session_id: str | None = None,
    ):
        self.page = page
        self.portal = portal
        self.extractor = extractor
        self.max_pages = max_pages or config.MAX_PAGES
        self.settle_timeout = config.PAGE_SETTLE_TIMEOUT if settle_timeout is None else settle_timeout
        self.settle_delay = config.PAGE_SETTLE_DELAY if settle_delay is None else settle_delay
        self.inter_page_delay = config.INTER_PAGE_DELAY if inter_page_delay is None else inter_page_delay
        self.navigation_timeout = config.NAVIGATION_TIMEOUT if navigation_timeout is None else navigation_timeout
        self.tag = f"[Session {session_id}]" if session_id else "[Pagination]"

        self.total_pages = self.max_pages
        self.current_page = 0
        self.visited_urls: list[str] = []

    async def _settle(self, page_number: int) -> None:
        """Wait for the results table; sleep only if it never shows up."""
        try:
            await self.page.wait_for_selector(
                self.portal.data_marker,
                state="attached",
                timeout=self.settle_timeout * 1000,
            )
        except PlaywrightTimeoutError:
            logger.debug(
                f"{self.tag} No results marker on page {page_number} after {self.settle_timeout}s, "
                f"waiting {self.settle_delay}s"
            )
            await asyncio.sleep(self.settle_delay)

    async def _load(self, page_number: int) -> None:
        if page_number == 1 and self.portal.is_landing_url(self.page.url):
            return
        url = self.portal.page_url(page_number)
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout * 1000)
        except PlaywrightError as e:
            raise PortalUnreachableError(
                f"Navigation to page {page_number} failed: {redact_string(str(e))}"
            ) from e
        self.visited_urls.append(url)
        await self._settle(page_number)

    async def pages(self) -> AsyncIterator[PageExtraction]:
        """Yield one extraction per page, in page order."""
        page_number = 1
        while True:
            if page_number > 1 and self.inter_page_delay > 0:
                await asyncio.sleep(self.inter_page_delay)

            logger.info(f"{self.tag} Scraping page {page_number}/{self.total_pages}...")
            await self._load(page_number)
            html_content = await self.page.content()

            if page_number == 1 and is_login_page(html_content, self.page.url, self.portal):
                raise LoginRequiredError(
                    f"{self.portal.carrier_name} portal is showing its login form. "
                    "Log in through the remote browser and start a new session."
                )

            extraction = extract_page(html_content, page_number, self.extractor)
            # Without a pager, an empty page is the end
            unpaged_and_empty = extraction.total_pages is None and not extraction.records
            is_last = page_number >= self.max_pages or not extraction.has_next or unpaged_and_empty
            self._update_total(extraction.total_pages, page_number, is_last)

            self.current_page = page_number
            logger.info(f"{self.tag} Page {page_number}: extracted {len(extraction.records)} policies")
            yield extraction

            if is_last:
                if unpaged_and_empty:
                    logger.info(f"{self.tag} No pager and no policies on page {page_number}, pagination finished")
                elif page_number < self.max_pages:
                    logger.info(f"{self.tag} No link to page {page_number + 1}, pagination finished")
                break
            page_number += 1

    def _update_total(self, reported: Optional[int], page_number: int, is_last: bool) -> None:
        """Best current estimate of the page count, never above max_pages."""
        if is_last:
            self.total_pages = page_number
            return
        if not reported:
            return
        if reported > self.max_pages and page_number == 1:
            logger.warning(
                f"{self.tag} Portal reports {reported} pages, capped at MAX_PAGES={self.max_pages}"
            )
        self.total_pages = max(page_number + 1, min(reported, self.max_pages))
