"""Progress updates on the session and its job."""
import logging

from carrier_scraper.store.base import ScraperStore

logger = logging.getLogger(__name__)


def progress_percent(current_page: int, total_pages: int) -> int:
    """Percentage of pages processed, rounded half up, clamped to 0-100."""
    if total_pages <= 0:
        return 0
    return max(0, min(100, int(current_page * 100 / total_pages + 0.5)))


class ProgressReporter:
    """Best-effort writes: a failed update is logged and scraping goes on."""

    def __init__(self, store: ScraperStore):
        self.store = store

    async def report_page(self, session_id: str, job_id: str, current_page: int, total_pages: int) -> bool:
        """A page has been extracted (not necessarily persisted yet)."""
        try:
            await self.store.update_session(session_id, current_page=current_page, total_pages=total_pages)
            await self.store.update_job(job_id, progress=progress_percent(current_page, total_pages))
            return True
        except Exception as e:
            logger.warning(f"[Session {session_id}] Failed to report page {current_page}/{total_pages}: {e}")
            return False

    async def report_persisted(self, session_id: str, job_id: str, scraped_count: int) -> bool:
        """Records durably written so far."""
        try:
            await self.store.update_session(session_id, scraped_count=scraped_count)
            await self.store.update_job(job_id, scraped_records=scraped_count)
            return True
        except Exception as e:
            logger.warning(f"[Session {session_id}] Failed to report {scraped_count} scraped records: {e}")
            return False
