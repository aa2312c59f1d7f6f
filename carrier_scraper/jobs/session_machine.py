"""Lifecycle of one scraping session and its job.

    initializing -> waiting_for_login -> ready -> scraping -> completed
    (any non-terminal) -> failed

Every transition is a conditional update on the session row, so two
callers racing for the same move cannot both win.
"""
import logging
from typing import Any, Optional

from carrier_scraper.browser.endpoints import Portal, get_portal
from carrier_scraper.browser.provider import BrowserProvider
from carrier_scraper.config import config
from carrier_scraper.errors import InvalidTransition, ProvisioningError, SessionNotFound
from carrier_scraper.parse.models import JobStatus, Session, SessionStatus, utcnow
from carrier_scraper.parse.redact import redact_string
from carrier_scraper.store.base import ScraperStore

logger = logging.getLogger(__name__)

TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.INITIALIZING: frozenset({SessionStatus.WAITING_FOR_LOGIN, SessionStatus.FAILED}),
    SessionStatus.WAITING_FOR_LOGIN: frozenset({SessionStatus.READY, SessionStatus.FAILED}),
    SessionStatus.READY: frozenset({SessionStatus.SCRAPING, SessionStatus.FAILED}),
    SessionStatus.SCRAPING: frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}

STOPPED_BY_USER = "Stopped by user"


def sources_of(target: SessionStatus) -> list[SessionStatus]:
    """Statuses a session may be in for ``target`` to be reachable."""
    return [status for status, targets in TRANSITIONS.items() if target in targets]


class SessionStateMachine:
    """Moves sessions forward and mirrors terminal states onto the job."""

    def __init__(
        self,
        store: ScraperStore,
        provider: Optional[BrowserProvider] = None,
        portal: Optional[Portal] = None,
        max_pages: int | None = None,
    ):
        self.store = store
        self.provider = provider
        self.portal = portal or get_portal(config.PORTAL)
        self.max_pages = max_pages or config.MAX_PAGES

    async def get(self, session_id: str) -> Session:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def start(self, job_name: str, created_by: str | None = None) -> tuple[str, str]:
        """
        Create a pending job and an initializing session, then ask the
        provider for a browser the operator can log in through.
        Returns (session_id, job_id).
        """
        if not job_name or not job_name.strip():
            raise ValueError("job_name is required")
        if self.provider is None:
            raise ProvisioningError("No browser provider configured")

        job = await self.store.create_job(
            job_name=job_name.strip(),
            carrier_name=self.portal.carrier_name,
            created_by=created_by or "anonymous",
            config=self.portal.as_job_config(),
        )
        session = await self.store.create_session(job.id, total_pages=self.max_pages)
        logger.info(f"[Session {session.id}] Started for job {job.id}")

        try:
            allocation = await self.provider.allocate()
        except ProvisioningError as e:
            await self.fail(session.id, str(e))
            raise

        await self.mark_waiting_for_login(session.id, browser_url=allocation.browser_url)
        return session.id, job.id

    async def _transition(self, session_id: str, target: SessionStatus, **fields: Any) -> tuple[Session, bool]:
        """Returns (session, changed); repeating a transition already made is a no-op."""
        session = await self.get(session_id)
        if session.status == target:
            return session, False
        if target not in TRANSITIONS[session.status]:
            raise InvalidTransition(session_id, session.status.value, target.value)

        changed = await self.store.transition_session(
            session_id, sources_of(target), status=target, **fields
        )
        if not changed:
            # Someone else moved the session in between
            current = await self.get(session_id)
            if current.status == target:
                return current, False
            raise InvalidTransition(session_id, current.status.value, target.value)

        logger.info(f"[Session {session_id}] {session.status.value} -> {target.value}")
        return await self.get(session_id), True

    async def mark_waiting_for_login(self, session_id: str, browser_url: str | None = None) -> Session:
        fields = {"browser_url": browser_url} if browser_url else {}
        session, _ = await self._transition(session_id, SessionStatus.WAITING_FOR_LOGIN, **fields)
        return session

    async def confirm_ready(self, session_id: str) -> Session:
        """The operator says they are logged in."""
        session, _ = await self._transition(session_id, SessionStatus.READY)
        return session

    async def claim_for_scraping(self, session_id: str) -> bool:
        """
        Take a ready session for this worker.
        Returns False, without changing anything, if the session is no longer
        ready or another worker claimed it first.
        """
        session = await self.get(session_id)
        if session.status != SessionStatus.READY:
            logger.info(f"[Session {session_id}] Session status changed to {session.status.value}, skipping")
            return False

        claimed = await self.store.transition_session(
            session_id,
            [SessionStatus.READY],
            status=SessionStatus.SCRAPING,
            current_page=0,
            scraped_count=0,
        )
        if not claimed:
            logger.info(f"[Session {session_id}] Claimed by another worker, skipping")
            return False

        try:
            await self.store.update_job(session.job_id, status=JobStatus.IN_PROGRESS, started_at=utcnow())
        except Exception as e:
            # The session is already scraping; leave it terminal before propagating
            await self.fail(session_id, f"Could not start job: {e}")
            raise
        logger.info(f"[Session {session_id}] Claimed for scraping")
        return True

    async def complete(self, session_id: str, final_count: int) -> Session:
        session, changed = await self._transition(
            session_id, SessionStatus.COMPLETED, scraped_count=final_count
        )
        if changed:
            await self.store.update_job(
                session.job_id,
                status=JobStatus.COMPLETED,
                total_records=final_count,
                scraped_records=final_count,
                progress=100,
                completed_at=utcnow(),
            )
            logger.info(f"[Session {session_id}] Completed with {final_count} policies")
        return session

    async def fail(self, session_id: str, message: str) -> Session:
        message = redact_string(message or "Unknown error")
        session, changed = await self._transition(session_id, SessionStatus.FAILED, error_message=message)
        if changed:
            await self.store.update_job(
                session.job_id,
                status=JobStatus.FAILED,
                error_message=message,
                completed_at=utcnow(),
            )
            logger.error(f"[Session {session_id}] Failed: {message}")
        return session

    async def stop(self, session_id: str) -> Session:
        """Operator stop; a running worker notices at its next stop check."""
        return await self.fail(session_id, STOPPED_BY_USER)
