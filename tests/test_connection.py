"""Tests for the browser connection manager."""
import pytest
from playwright.async_api import Error as PlaywrightError

from carrier_scraper.browser.connection import BrowserConnectionManager
from carrier_scraper.browser.endpoints import GTL
from carrier_scraper.errors import PortalUnreachableError, ProvisioningError

from tests.fakes import LOGIN_PAGE, FakeBrowser, FakePage, FakeProvider, results_page


def make_manager(provider, tabs, **kwargs):
    browser = FakeBrowser(tabs)
    endpoints = []

    async def connect(endpoint):
        endpoints.append(endpoint)
        return browser

    manager = BrowserConnectionManager(
        provider,
        GTL,
        attempts=3,
        retry_delay=0,
        ready_timeout=0,
        connect=connect,
        **kwargs,
    )
    return manager, browser, endpoints


@pytest.mark.asyncio
async def test_prefers_open_portal_tab():
    other = FakePage({}, url="https://mail.example.com/")
    portal_tab = FakePage({1: results_page(["1"])}, url="https://gtlink.gtlic.com/MyBusiness?page=3")
    manager, _, _ = make_manager(FakeProvider(), [other, portal_tab])

    tab = await manager.open_portal_tab()
    assert tab is portal_tab
    assert portal_tab.visited == []


@pytest.mark.asyncio
async def test_reuses_first_tab_and_navigates():
    blank = FakePage({1: results_page(["1"])}, url="about:blank")
    manager, _, _ = make_manager(FakeProvider(), [blank])

    tab = await manager.open_portal_tab()
    assert tab is blank
    assert blank.visited == [GTL.landing_url]


@pytest.mark.asyncio
async def test_login_form_counts_as_reachable():
    tab = FakePage({1: LOGIN_PAGE}, url="about:blank")
    manager, _, _ = make_manager(FakeProvider(), [tab])
    assert await manager.open_portal_tab() is tab


@pytest.mark.asyncio
async def test_neither_marker_is_unreachable():
    tab = FakePage({1: "<html><body><p>Maintenance</p></body></html>"}, url="about:blank")
    manager, _, _ = make_manager(FakeProvider(), [tab])
    with pytest.raises(PortalUnreachableError):
        await manager.open_portal_tab()


@pytest.mark.asyncio
async def test_navigation_failure_is_unreachable():
    tab = FakePage({}, url="about:blank")
    tab.fail_goto = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
    manager, _, _ = make_manager(FakeProvider(), [tab])
    with pytest.raises(PortalUnreachableError):
        await manager.open_portal_tab()


@pytest.mark.asyncio
async def test_retries_allocation():
    provider = FakeProvider(fail_times=2)
    manager, browser, endpoints = make_manager(provider, [])

    assert await manager.connect() is browser
    assert provider.allocations == 3
    assert manager.attempts_made == 3
    assert len(endpoints) == 1


@pytest.mark.asyncio
async def test_retry_budget_exhausted():
    provider = FakeProvider(fail_times=5)
    manager, _, endpoints = make_manager(provider, [])

    with pytest.raises(ProvisioningError) as exc_info:
        await manager.connect()
    assert isinstance(exc_info.value, ConnectionError)
    assert "after 3 attempts" in str(exc_info.value)
    assert provider.allocations == 3
    assert endpoints == []


@pytest.mark.asyncio
async def test_close_releases_browser():
    provider = FakeProvider()
    manager, browser, _ = make_manager(provider, [])
    async with manager:
        await manager.connect()
    assert browser.closed is True
    assert provider.releases == 1
