"""Scrape one claimed session from browser connection to final status."""
import logging
from contextlib import aclosing
from typing import Callable, Optional

from carrier_scraper.browser.connection import BrowserConnectionManager
from carrier_scraper.browser.endpoints import Portal, get_portal
from carrier_scraper.browser.provider import BrowserProvider
from carrier_scraper.config import config
from carrier_scraper.errors import SessionStopped
from carrier_scraper.jobs.metrics import Metrics
from carrier_scraper.jobs.metrics_exporter import MetricsExporter
from carrier_scraper.jobs.pagination import PaginationDriver
from carrier_scraper.jobs.persister import BatchPersister
from carrier_scraper.jobs.progress import ProgressReporter
from carrier_scraper.jobs.run_control import RunControl
from carrier_scraper.jobs.session_machine import SessionStateMachine
from carrier_scraper.parse.fields import PortalFieldExtractor, get_field_extractor
from carrier_scraper.parse.models import Session
from carrier_scraper.store.base import ScraperStore

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str], BrowserConnectionManager]


class SessionRunner:
    """Orchestrates the scraping pipeline for a single session.

    Connection -> pagination -> per page: progress, batch write, stop check.
    Every exit path leaves the session in a terminal status and releases
    the remote browser.
    """

    def __init__(
        self,
        store: ScraperStore,
        provider: BrowserProvider,
        portal: Optional[Portal] = None,
        extractor: Optional[PortalFieldExtractor] = None,
        machine: Optional[SessionStateMachine] = None,
        batch_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        settle_timeout: Optional[float] = None,
        settle_delay: Optional[float] = None,
        inter_page_delay: Optional[float] = None,
        export_metrics: bool = True,
    ):
        self.store = store
        self.provider = provider
        self.portal = portal or get_portal(config.PORTAL)
        self.extractor = extractor or get_field_extractor(self.portal.portal_id)
        self.max_pages = max_pages or config.MAX_PAGES
        self.machine = machine or SessionStateMachine(store, provider, self.portal, self.max_pages)
        self.batch_size = batch_size or config.BATCH_SIZE
        self.connection_factory = connection_factory or self._default_connection
        self.settle_timeout = settle_timeout
        self.settle_delay = settle_delay
        self.inter_page_delay = inter_page_delay
        self.export_metrics = export_metrics

    def _default_connection(self, session_id: str) -> BrowserConnectionManager:
        return BrowserConnectionManager(self.provider, self.portal, session_id=session_id)

    async def run(self, session: Session) -> Optional[Session]:
        """
        Claim ``session`` and scrape it.
        Returns the final session, or None when the claim was lost.
        """
        if not await self.machine.claim_for_scraping(session.id):
            return None

        tag = f"[Session {session.id}]"
        metrics = Metrics(self.max_pages)
        exporter = MetricsExporter(session.id) if self.export_metrics else None
        reporter = ProgressReporter(self.store)
        persister = BatchPersister(self.store, self.batch_size)
        run_control = RunControl(self.store, session.id)
        connection = self.connection_factory(session.id)
        driver: Optional[PaginationDriver] = None
        status = "failed"

        try:
            tab = await connection.open_portal_tab()
            driver = PaginationDriver(
                tab,
                self.portal,
                self.extractor,
                max_pages=self.max_pages,
                settle_timeout=self.settle_timeout,
                settle_delay=self.settle_delay,
                inter_page_delay=self.inter_page_delay,
                session_id=session.id,
            )
            async with aclosing(driver.pages()) as pages:
                async for extraction in pages:
                    metrics.total_pages = driver.total_pages
                    metrics.increment("pages")
                    metrics.increment("records", len(extraction.records))
                    metrics.increment("field_misses", len(extraction.misses))

                    await reporter.report_page(
                        session.id, session.job_id, extraction.page_number, driver.total_pages
                    )
                    await persister.persist(session.job_id, extraction.records)
                    metrics.increment("saved", len(extraction.records))
                    await reporter.report_persisted(session.id, session.job_id, persister.total_saved)

                    metrics.report(f"{tag} ")
                    await self._export(exporter, session, metrics, driver, "scraping")
                    await run_control.check()

            result = await self.machine.complete(session.id, persister.total_saved)
            status = "completed"
        except SessionStopped as e:
            logger.warning(f"{tag} Scraping stopped after {persister.total_saved} policies: {e}")
            await reporter.report_persisted(session.id, session.job_id, persister.total_saved)
            result = await self.store.get_session(session.id)
            status = "stopped"
        except Exception as e:
            logger.error(f"{tag} Scraping failed: {e}", exc_info=True)
            await reporter.report_persisted(session.id, session.job_id, persister.total_saved)
            result = await self._fail(session, str(e))
        finally:
            await connection.close()

        summary = run_control.get_summary()
        logger.info("=" * 60)
        logger.info(f"{tag} FINAL REPORT")
        logger.info(f"{tag} Status: {status}")
        logger.info(f"{tag} Pages: {metrics.counters.get('pages', 0)}")
        logger.info(f"{tag} Policies saved: {persister.total_saved}")
        logger.info(f"{tag} Missing detail fields: {metrics.counters.get('field_misses', 0)}")
        logger.info(f"{tag} Elapsed: {summary['elapsed_minutes']:.2f} minutes")
        logger.info("=" * 60)
        await self._export(exporter, session, metrics, driver, status)
        return result

    async def _fail(self, session: Session, message: str) -> Optional[Session]:
        try:
            return await self.machine.fail(session.id, message)
        except Exception as e:
            logger.error(f"[Session {session.id}] Could not record failure: {e}")
            return await self.store.get_session(session.id)

    async def _export(
        self,
        exporter: Optional[MetricsExporter],
        session: Session,
        metrics: Metrics,
        driver: Optional[PaginationDriver],
        status: str,
    ) -> None:
        if exporter is None:
            return
        summary = metrics.get_summary()
        try:
            await exporter.export_metrics(
                job_id=session.job_id,
                status=status,
                current_page=driver.current_page if driver else 0,
                total_pages=driver.total_pages if driver else self.max_pages,
                records=summary["records"],
                saved=summary["saved"],
                field_misses=summary["field_misses"],
                rps=summary["rate"],
                eta=summary["eta_seconds"],
            )
        except OSError as e:
            logger.warning(f"[Session {session.id}] Failed to export metrics: {e}")
