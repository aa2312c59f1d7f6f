"""Connect to the session's remote browser and find the portal tab."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from carrier_scraper.auth.login_detector import is_login_page
from carrier_scraper.browser.endpoints import Portal
from carrier_scraper.browser.provider import BrowserAllocation, BrowserProvider
from carrier_scraper.config import config
from carrier_scraper.errors import PortalUnreachableError, ProvisioningError
from carrier_scraper.parse.redact import redact_string

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (ProvisioningError, PlaywrightError, OSError, asyncio.TimeoutError)


class BrowserConnectionManager:
    """Owns one remote browser connection for the lifetime of a session.

    Never types credentials: the operator logs in through the provider's
    browser before confirming the session is ready.
    """

    def __init__(
        self,
        provider: BrowserProvider,
        portal: Portal,
        attempts: int | None = None,
        retry_delay: float | None = None,
        ready_timeout: float | None = None,
        navigation_timeout: float | None = None,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
        session_id: str | None = None,
    ):
        self.provider = provider
        self.portal = portal
        self.attempts = attempts or config.ALLOCATION_ATTEMPTS
        self.retry_delay = config.ALLOCATION_RETRY_DELAY if retry_delay is None else retry_delay
        self.ready_timeout = config.PORTAL_READY_TIMEOUT if ready_timeout is None else ready_timeout
        self.navigation_timeout = config.NAVIGATION_TIMEOUT if navigation_timeout is None else navigation_timeout
        self._connect = connect or self._connect_over_cdp
        self.tag = f"[Session {session_id}]" if session_id else "[Browser]"

        self.attempts_made = 0
        self.allocation: Optional[BrowserAllocation] = None
        self.browser: Optional[Browser] = None
        self._playwright: Optional[Playwright] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _connect_over_cdp(self, endpoint: str) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.connect_over_cdp(
            endpoint, timeout=self.navigation_timeout * 1000
        )

    async def _allocate_and_connect(self) -> Browser:
        self.attempts_made += 1
        logger.info(f"{self.tag} Browser startup attempt {self.attempts_made}/{self.attempts}")
        self.allocation = await self.provider.allocate()
        try:
            return await self._connect(self.allocation.endpoint)
        except Exception:
            await self.provider.release()
            self.allocation = None
            raise

    async def connect(self) -> Browser:
        """
        Allocate the remote browser and attach over CDP.
        Retries a fixed number of times with a fixed delay; raises
        ProvisioningError (a ConnectionError) once the budget is spent.
        """
        if self.browser is not None:
            return self.browser
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_fixed(self.retry_delay),
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    self.browser = await self._allocate_and_connect()
        except RETRYABLE_ERRORS as e:
            raise ProvisioningError(
                f"Browser startup failed after {self.attempts_made} attempts: {redact_string(str(e))}"
            ) from e
        logger.info(f"{self.tag} Browser connected")
        return self.browser

    def _open_tabs(self) -> list[Page]:
        return [page for context in self.browser.contexts for page in context.pages]

    async def open_portal_tab(self) -> Page:
        """
        Return a tab on the portal.
        Prefers an already open portal tab; otherwise reuses the first tab
        (or opens one) and navigates it to the landing page, then waits for
        the results table or the login form.
        """
        await self.connect()
        tabs = self._open_tabs()
        logger.info(f"{self.tag} Found {len(tabs)} open tabs")

        for tab in tabs:
            if self.portal.owns_url(tab.url):
                logger.info(f"{self.tag} Using open portal tab: {tab.url}")
                return tab

        if tabs:
            tab = tabs[0]
        else:
            context = self.browser.contexts[0] if self.browser.contexts else await self.browser.new_context()
            tab = await context.new_page()

        logger.info(f"{self.tag} No portal tab open, navigating to {self.portal.landing_url}")
        try:
            await tab.goto(
                self.portal.landing_url,
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout * 1000,
            )
        except PlaywrightError as e:
            raise PortalUnreachableError(
                f"Could not open {self.portal.landing_url}: {redact_string(str(e))}"
            ) from e

        try:
            await tab.wait_for_selector(
                f"{self.portal.data_marker}, {self.portal.login_marker}",
                state="attached",
                timeout=self.ready_timeout * 1000,
            )
        except PlaywrightTimeoutError as e:
            raise PortalUnreachableError(
                f"Neither results nor login form appeared on {tab.url} within {self.ready_timeout:.0f}s"
            ) from e

        if is_login_page(await tab.content(), tab.url, self.portal):
            logger.warning(f"{self.tag} Portal is showing its login form")
        return tab

    async def close(self) -> None:
        """Disconnect and hand the browser back to the provider."""
        if self.browser is not None:
            try:
                await self.browser.close()
            except PlaywrightError as e:
                logger.warning(f"{self.tag} Error closing browser connection: {e}")
            self.browser = None
        if self.allocation is not None:
            await self.provider.release()
            self.allocation = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
