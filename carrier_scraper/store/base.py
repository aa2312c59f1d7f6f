"""Datastore interface shared by the Supabase and SQLite backends."""
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from carrier_scraper.parse.models import Job, PolicyRecord, Session, SessionStatus

SESSION_COLUMNS = (
    "status",
    "browser_url",
    "current_page",
    "total_pages",
    "scraped_count",
    "error_message",
)

JOB_COLUMNS = (
    "status",
    "scraped_records",
    "total_records",
    "progress",
    "error_message",
    "started_at",
    "completed_at",
)


def to_db_value(value: Any) -> Any:
    """Plain JSON-compatible value for a column."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def check_columns(fields: dict[str, Any], allowed: Iterable[str], entity: str) -> dict[str, Any]:
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown {entity} columns: {', '.join(sorted(unknown))}")
    return {key: to_db_value(value) for key, value in fields.items()}


class ScraperStore:
    """Row-level access to jobs, sessions and scraped policies.

    The session row is the only state shared between the control API and the
    workers; nothing is cached in memory.
    """

    async def initialize(self) -> None:
        """Prepare the backend (create tables where the backend owns them)."""

    async def test_connection(self) -> bool:
        raise NotImplementedError

    # Jobs
    async def create_job(
        self,
        job_name: str,
        carrier_name: str,
        created_by: str = "anonymous",
        config: Optional[dict] = None,
    ) -> Job:
        raise NotImplementedError

    async def get_job(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError

    async def update_job(self, job_id: str, **fields: Any) -> None:
        raise NotImplementedError

    # Sessions
    async def create_session(self, job_id: str, total_pages: int) -> Session:
        raise NotImplementedError

    async def get_session(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    async def list_sessions(self, limit: int = 5) -> list[Session]:
        """Most recent sessions first."""
        raise NotImplementedError

    async def oldest_ready_session(self) -> Optional[Session]:
        raise NotImplementedError

    async def update_session(self, session_id: str, **fields: Any) -> None:
        raise NotImplementedError

    async def transition_session(
        self,
        session_id: str,
        expected: Sequence[SessionStatus],
        **fields: Any,
    ) -> bool:
        """Update the session only if its status is one of ``expected``.

        Returns True when a row changed. This is the compare-and-swap used to
        make sure only one worker wins a claim.
        """
        raise NotImplementedError

    # Policies
    async def insert_policies(self, job_id: str, records: Sequence[PolicyRecord]) -> None:
        """Insert one batch. No retry: a failure leaves earlier batches in place."""
        raise NotImplementedError

    async def count_policies(self, job_id: str) -> int:
        raise NotImplementedError

    async def list_policies(self, job_id: str) -> list[PolicyRecord]:
        """All stored policies for the job in insertion order."""
        raise NotImplementedError
