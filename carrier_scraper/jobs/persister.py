"""Write extracted records to the datastore in fixed-size batches."""
import logging
from typing import Sequence

from carrier_scraper.config import config
from carrier_scraper.errors import PersistenceError
from carrier_scraper.parse.models import PolicyRecord
from carrier_scraper.parse.redact import redact_string
from carrier_scraper.store.base import ScraperStore

logger = logging.getLogger(__name__)


class BatchPersister:
    """Append-only batch writer for one job's policy records."""

    def __init__(self, store: ScraperStore, batch_size: int | None = None):
        self.store = store
        self.batch_size = batch_size or config.BATCH_SIZE
        self.total_saved = 0

    async def persist(self, job_id: str, records: Sequence[PolicyRecord]) -> int:
        """
        Insert ``records`` batch by batch and return how many were written.
        The first failing batch raises PersistenceError; batches written
        before it stay in place.
        """
        saved = 0
        for start in range(0, len(records), self.batch_size):
            batch = records[start : start + self.batch_size]
            try:
                await self.store.insert_policies(job_id, batch)
            except Exception as e:
                logger.error(f"[Job {job_id}] Failed to save batch at offset {start}: {e}")
                raise PersistenceError(
                    f"Saving policies failed after {self.total_saved} records: {redact_string(str(e))}"
                ) from e
            saved += len(batch)
            self.total_saved += len(batch)
            logger.info(f"[Job {job_id}] Saved {saved}/{len(records)} policies")
        return saved
