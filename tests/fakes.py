"""Fakes for tests: results-page HTML builders, Playwright stand-ins, a hookable store."""
from typing import Awaitable, Callable, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from selectolax.parser import HTMLParser

from carrier_scraper.browser.connection import BrowserConnectionManager
from carrier_scraper.browser.endpoints import GTL
from carrier_scraper.browser.provider import BrowserAllocation, BrowserProvider
from carrier_scraper.errors import ProvisioningError
from carrier_scraper.jobs.runner import SessionRunner
from carrier_scraper.jobs.session_machine import SessionStateMachine
from carrier_scraper.store.sqlite_store import SqliteStore


def summary_row(policy_number: str, name: str = "Jane Doe", status: str = "Active") -> str:
    return (
        f'<div class="DivTableRow" id="GTL{policy_number}">'
        f'<div class="col-1">01/15/2024</div>'
        f'<div class="col-2">{policy_number}</div>'
        f'<div class="col-3">Final Expense</div>'
        f'<div class="col-4">{name}</div>'
        f'<div class="col-5">$10,000</div>'
        f'<div class="col-6">{status}</div>'
        f"</div>"
    )


def detail_panel(policy_number: str, notes: str = "Call back Monday") -> str:
    return (
        f'<div class="DivTableDetail" aria-labelledby="GTL{policy_number}">'
        f"<p>Issue Date: 02/01/24</p>"
        f"<p>Application Date: 01/10/2024</p>"
        f"<p>Premium: $45.10</p>"
        f"<p>State: TX</p>"
        f"<p>Agent: Sam Agent</p>"
        f"<p>Agent #: A123</p>"
        f"<p>Plan Code: FE100</p>"
        f"<table>"
        f"<tr><th>Name</th><th>SSN</th><th>DOB</th><th>Gender</th><th>Age</th></tr>"
        f"<tr><td>Jane Doe</td><td>123-45-6789</td><td>03/04/1950</td><td>F</td><td>74</td></tr>"
        f"</table>"
        f'<textarea class="MyBusinessNotes">{notes}</textarea>'
        f"</div>"
    )


def results_page(
    policy_numbers: list[str],
    page_links: Optional[list[int]] = None,
    with_details: bool = True,
) -> str:
    """A GTL "My Business" page with one summary row (and panel) per policy."""
    body = []
    for number in policy_numbers:
        body.append(summary_row(number))
        if with_details:
            body.append(detail_panel(number))
    pager = ""
    if page_links:
        links = "".join(f'<a href="/MyBusiness?page={n}">{n}</a>' for n in page_links)
        pager = f'<div class="pager">{links}</div>'
    return f"<html><body><div class=\"DivTable\">{''.join(body)}</div>{pager}</body></html>"


def paged_site(rows_per_page: list[int]) -> dict[int, str]:
    """HTML for each page of an N-page result set; every page links to all others."""
    total = len(rows_per_page)
    pages = {}
    counter = 0
    for page_number, count in enumerate(rows_per_page, start=1):
        numbers = []
        for _ in range(count):
            counter += 1
            numbers.append(f"P{counter:05d}")
        links = [n for n in range(1, total + 1) if n != page_number]
        pages[page_number] = results_page(numbers, page_links=links)
    return pages


LOGIN_PAGE = (
    "<html><body><form action=\"/login\">"
    '<input name="username"><input name="password" type="password">'
    "<button>Log In</button></form></body></html>"
)


class FakePage:
    """The subset of playwright's Page the scraper uses, backed by canned HTML."""

    def __init__(self, pages: dict[int, str], url: str = GTL.landing_url, portal=GTL):
        self.pages = pages
        self.url = url
        self.portal = portal
        self.visited: list[str] = []
        self.fail_goto: Optional[Exception] = None
        self._current = 1

    async def goto(self, url: str, wait_until: str = "load", timeout: float = 0):
        if self.fail_goto is not None:
            raise self.fail_goto
        self.visited.append(url)
        self.url = url
        # Unknown URLs render an empty page
        self._current = 1 if self.portal.is_landing_url(url) else 0
        for number in self.pages:
            if url == self.portal.page_url(number):
                self._current = number
        return None

    async def content(self) -> str:
        return self.pages.get(self._current, "")

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: float = 0):
        html = self.pages.get(self._current, "")
        node = HTMLParser(html).css_first(selector) if html else None
        if node is None:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return node


class FakeContext:
    def __init__(self, pages: list[FakePage]):
        self.pages = pages

    async def new_page(self) -> FakePage:
        page = FakePage({}, url="about:blank")
        self.pages.append(page)
        return page


class FakeBrowser:
    def __init__(self, tabs: list[FakePage]):
        self.contexts = [FakeContext(tabs)]
        self.closed = False

    async def new_context(self) -> FakeContext:
        context = FakeContext([])
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


class FakeProvider(BrowserProvider):
    """Provider that fails the first ``fail_times`` allocations."""

    name = "fake"

    def __init__(self, fail_times: int = 0, browser_url: str = "https://remote.example/browser"):
        self.fail_times = fail_times
        self.browser_url = browser_url
        self.allocations = 0
        self.releases = 0

    async def allocate(self) -> BrowserAllocation:
        self.allocations += 1
        if self.allocations <= self.fail_times:
            raise ProvisioningError(f"allocation {self.allocations} refused")
        return BrowserAllocation(endpoint="ws://fake/cdp?token=secret", browser_url=self.browser_url)

    async def release(self) -> None:
        self.releases += 1


class HookedStore(SqliteStore):
    """SqliteStore whose policy inserts and job updates can fail or run a callback."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.inserts = 0
        self.fail_on_insert: Optional[int] = None
        self.after_insert: Optional[Callable[[int], Awaitable[None]]] = None
        self.job_updates = 0
        self.fail_job_update: Optional[int] = None

    async def update_job(self, job_id, **fields):
        self.job_updates += 1
        if self.job_updates == self.fail_job_update:
            raise RuntimeError("datastore timeout")
        await super().update_job(job_id, **fields)

    async def insert_policies(self, job_id, records):
        if not records:
            return
        self.inserts += 1
        if self.fail_on_insert is not None and self.inserts >= self.fail_on_insert:
            raise RuntimeError("insert rejected: connection reset")
        await super().insert_policies(job_id, records)
        if self.after_insert is not None:
            await self.after_insert(self.inserts)


class Harness:
    """A runner wired to a fake remote browser showing ``pages``."""

    def __init__(self, store, pages, provider=None, max_pages=19):
        self.store = store
        self.provider = provider or FakeProvider()
        self.tab = FakePage(pages)
        self.browser = FakeBrowser([self.tab])
        self.connections = []
        self.runner = SessionRunner(
            store,
            self.provider,
            batch_size=3,
            max_pages=max_pages,
            connection_factory=self.connection,
            settle_timeout=0,
            settle_delay=0,
            inter_page_delay=0,
            export_metrics=False,
        )

    def connection(self, session_id):
        async def connect(endpoint):
            return self.browser

        manager = BrowserConnectionManager(
            self.provider,
            GTL,
            attempts=3,
            retry_delay=0,
            ready_timeout=0,
            connect=connect,
            session_id=session_id,
        )
        self.connections.append(manager)
        return manager

    async def ready_session(self):
        machine = SessionStateMachine(self.store, FakeProvider())
        session_id, _ = await machine.start("June book")
        return await machine.confirm_ready(session_id)
