"""Run control: operator stop checks between pages."""
import time
import logging
from typing import Optional
from dataclasses import dataclass, field

from carrier_scraper.errors import SessionStopped
from carrier_scraper.parse.models import SessionStatus
from carrier_scraper.store.base import ScraperStore

logger = logging.getLogger(__name__)


@dataclass
class RunControl:
    """Re-reads the session between steps so an operator stop takes effect.

    A stop cannot interrupt a page that is being extracted; it only keeps
    the next page from starting.
    """

    store: ScraperStore
    session_id: str

    # Internal state
    start_time: float = field(default_factory=time.time)
    checks: int = 0
    last_status: Optional[SessionStatus] = None

    async def should_stop(self) -> tuple[bool, Optional[str]]:
        """Check if the run should stop. Returns (should_stop, reason)."""
        self.checks += 1
        try:
            session = await self.store.get_session(self.session_id)
        except Exception as e:
            # A failed read is not a stop request
            logger.warning(f"[Session {self.session_id}] Stop check could not read session: {e}")
            return False, None

        if session is None:
            return True, "Session no longer exists"
        self.last_status = session.status
        if session.status != SessionStatus.SCRAPING:
            reason = session.error_message or f"Session status changed to {session.status.value}"
            return True, reason
        return False, None

    async def check(self) -> None:
        """Raise SessionStopped if the run should stop."""
        should_stop, reason = await self.should_stop()
        if should_stop:
            logger.warning(f"[Session {self.session_id}] Stop condition met: {reason}")
            raise SessionStopped(reason)

    def get_summary(self) -> dict:
        """Get summary statistics."""
        elapsed_minutes = (time.time() - self.start_time) / 60
        return {
            "elapsed_minutes": round(elapsed_minutes, 2),
            "stop_checks": self.checks,
            "last_status": self.last_status.value if self.last_status else None,
        }
