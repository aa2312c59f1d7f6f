"""Supabase datastore (hosted Postgres via PostgREST)."""
import asyncio
import logging
from functools import partial
from typing import Any, Callable, Optional, Sequence

from supabase import create_client, Client
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from carrier_scraper.config import config
from carrier_scraper.parse.models import (
    POLICY_COLUMNS,
    Job,
    JobStatus,
    PolicyRecord,
    Session,
    SessionStatus,
    utcnow,
)
from carrier_scraper.store.base import JOB_COLUMNS, SESSION_COLUMNS, ScraperStore, check_columns

logger = logging.getLogger(__name__)

# PostgREST caps a single select at 1000 rows by default
PAGE_SIZE = 1000

_retry_idempotent = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((Exception,)),
    reraise=True,
)


class SupabaseStore(ScraperStore):
    """Jobs, sessions and policies in Supabase tables.

    The Supabase client is synchronous, so every call runs in the default
    thread pool. Reads and by-id updates are retried; policy inserts are not.
    """

    def __init__(self, client: Client | None = None):
        if client is None:
            if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE:
                raise ValueError("Supabase configuration missing")
            client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE)
        self.client: Client = client
        self.jobs_table = config.JOBS_TABLE
        self.sessions_table = config.SESSIONS_TABLE
        self.policies_table = config.POLICIES_TABLE

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    @_retry_idempotent
    def _select_sync(self, table: str, column: str, value: Any) -> list[dict]:
        response = self.client.table(table).select("*").eq(column, value).limit(1).execute()
        return response.data or []

    @_retry_idempotent
    def _update_sync(self, table: str, row_id: str, fields: dict[str, Any]) -> None:
        self.client.table(table).update(fields).eq("id", row_id).execute()

    def _insert_sync(self, table: str, rows: dict | list[dict]) -> list[dict]:
        response = self.client.table(table).insert(rows).execute()
        return response.data or []

    async def test_connection(self) -> bool:
        """Test Supabase connection."""
        try:
            await self._run(
                lambda: self.client.table(self.sessions_table).select("id", count="exact").limit(1).execute()
            )
            logger.info("Supabase connection successful")
            return True
        except Exception as e:
            logger.error(f"Supabase connection test failed: {e}")
            return False

    # Jobs

    async def create_job(
        self,
        job_name: str,
        carrier_name: str,
        created_by: str = "anonymous",
        config: Optional[dict] = None,
    ) -> Job:
        rows = await self._run(
            self._insert_sync,
            self.jobs_table,
            {
                "job_name": job_name,
                "carrier_name": carrier_name,
                "status": JobStatus.PENDING.value,
                "created_by": created_by,
                "config": config or {},
            },
        )
        return Job(**rows[0])

    async def get_job(self, job_id: str) -> Optional[Job]:
        rows = await self._run(self._select_sync, self.jobs_table, "id", job_id)
        return Job(**rows[0]) if rows else None

    async def update_job(self, job_id: str, **fields: Any) -> None:
        values = check_columns(fields, JOB_COLUMNS, "job")
        values["updated_at"] = utcnow().isoformat()
        await self._run(self._update_sync, self.jobs_table, job_id, values)

    # Sessions

    async def create_session(self, job_id: str, total_pages: int) -> Session:
        rows = await self._run(
            self._insert_sync,
            self.sessions_table,
            {
                "job_id": job_id,
                "status": SessionStatus.INITIALIZING.value,
                "browser_url": None,
                "current_page": 0,
                "total_pages": total_pages,
                "scraped_count": 0,
            },
        )
        return Session(**rows[0])

    async def get_session(self, session_id: str) -> Optional[Session]:
        rows = await self._run(self._select_sync, self.sessions_table, "id", session_id)
        return Session(**rows[0]) if rows else None

    async def list_sessions(self, limit: int = 5) -> list[Session]:
        response = await self._run(
            lambda: self.client.table(self.sessions_table)
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [Session(**row) for row in response.data or []]

    async def oldest_ready_session(self) -> Optional[Session]:
        response = await self._run(
            lambda: self.client.table(self.sessions_table)
            .select("*")
            .eq("status", SessionStatus.READY.value)
            .order("created_at")
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return Session(**rows[0]) if rows else None

    async def update_session(self, session_id: str, **fields: Any) -> None:
        values = check_columns(fields, SESSION_COLUMNS, "session")
        values["updated_at"] = utcnow().isoformat()
        await self._run(self._update_sync, self.sessions_table, session_id, values)

    async def transition_session(
        self,
        session_id: str,
        expected: Sequence[SessionStatus],
        **fields: Any,
    ) -> bool:
        values = check_columns(fields, SESSION_COLUMNS, "session")
        values["updated_at"] = utcnow().isoformat()
        statuses = [SessionStatus(status).value for status in expected]
        # Conditional update: PostgREST returns only the rows it changed
        response = await self._run(
            lambda: self.client.table(self.sessions_table)
            .update(values)
            .eq("id", session_id)
            .in_("status", statuses)
            .execute()
        )
        return len(response.data or []) == 1

    # Policies

    async def insert_policies(self, job_id: str, records: Sequence[PolicyRecord]) -> None:
        if not records:
            return
        rows = [record.to_row(job_id) for record in records]
        await self._run(self._insert_sync, self.policies_table, rows)

    async def count_policies(self, job_id: str) -> int:
        response = await self._run(
            lambda: self.client.table(self.policies_table)
            .select("id", count="exact")
            .eq("job_id", job_id)
            .limit(1)
            .execute()
        )
        return response.count or 0

    async def list_policies(self, job_id: str) -> list[PolicyRecord]:
        columns = ",".join(("job_id", *POLICY_COLUMNS))
        records: list[PolicyRecord] = []
        start = 0
        while True:
            response = await self._run(
                lambda: self.client.table(self.policies_table)
                .select(columns)
                .eq("job_id", job_id)
                .order("id")
                .range(start, start + PAGE_SIZE - 1)
                .execute()
            )
            rows = response.data or []
            records.extend(PolicyRecord(**row) for row in rows)
            if len(rows) < PAGE_SIZE:
                return records
            start += PAGE_SIZE
