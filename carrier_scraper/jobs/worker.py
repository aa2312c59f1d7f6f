"""Polling worker: picks up ready sessions one at a time."""
import asyncio
import logging
from typing import Optional

from carrier_scraper.config import config
from carrier_scraper.jobs.runner import SessionRunner
from carrier_scraper.parse.models import Session, SessionStatus
from carrier_scraper.store.base import ScraperStore

logger = logging.getLogger(__name__)


class Worker:
    """Single-session polling loop.

    Several workers may poll the same datastore; the conditional claim in
    the state machine makes sure only one of them scrapes a given session.
    """

    def __init__(self, store: ScraperStore, runner: SessionRunner, poll_interval: Optional[float] = None):
        self.store = store
        self.runner = runner
        self.poll_interval = config.POLL_INTERVAL if poll_interval is None else poll_interval
        self.sessions_completed = 0
        self.sessions_failed = 0
        self._running = False

    async def tick(self) -> Optional[Session]:
        """Run the oldest ready session, if any. Returns its final state."""
        session = await self.store.oldest_ready_session()
        if session is None:
            return None

        logger.info(f"[Session {session.id}] Found ready session for job {session.job_id}")
        result = await self.runner.run(session)
        if result is not None:
            if result.status == SessionStatus.COMPLETED:
                self.sessions_completed += 1
            elif result.status == SessionStatus.FAILED:
                self.sessions_failed += 1
            logger.info(
                f"Worker totals: {self.sessions_completed} completed, {self.sessions_failed} failed"
            )
        return result

    async def run(self, once: bool = False) -> None:
        """Poll until stopped; ``once`` runs a single tick."""
        self._running = True
        logger.info(f"Worker started (poll interval {self.poll_interval}s)")
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Worker tick failed: {e}", exc_info=True)
            if once:
                break
            await asyncio.sleep(self.poll_interval)
        self._running = False
        logger.info("Worker stopped")

    def stop(self) -> None:
        self._running = False
