"""SQLite datastore for local runs and tests."""
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Optional, Sequence

import aiosqlite

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


class SqliteStore(ScraperStore):
    """Same tables as the hosted schema, in a local SQLite file."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path or config.SQLITE_PATH)
        self.jobs_table = config.JOBS_TABLE
        self.sessions_table = config.SESSIONS_TABLE
        self.policies_table = config.POLICIES_TABLE

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self.db_path)

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        policy_columns = ",\n".join(f"{column} TEXT" for column in POLICY_COLUMNS if column != "policy_number")
        async with self._connect() as db:
            await db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.jobs_table} (
                    id TEXT PRIMARY KEY,
                    job_name TEXT NOT NULL,
                    carrier_name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_by TEXT,
                    config TEXT,
                    scraped_records INTEGER NOT NULL DEFAULT 0,
                    total_records INTEGER,
                    progress INTEGER NOT NULL DEFAULT 0,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT
                )
                """
            )
            await db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.sessions_table} (
                    id TEXT PRIMARY KEY,
                    job_id TEXT NOT NULL REFERENCES {self.jobs_table}(id),
                    status TEXT NOT NULL,
                    browser_url TEXT,
                    current_page INTEGER NOT NULL DEFAULT 0,
                    total_pages INTEGER NOT NULL DEFAULT 0,
                    scraped_count INTEGER NOT NULL DEFAULT 0,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                f"""
                CREATE INDEX IF NOT EXISTS idx_{self.sessions_table}_status
                ON {self.sessions_table}(status, created_at)
                """
            )
            await db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.policies_table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    job_id TEXT NOT NULL REFERENCES {self.jobs_table}(id),
                    policy_number TEXT NOT NULL,
                    {policy_columns},
                    created_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                f"""
                CREATE INDEX IF NOT EXISTS idx_{self.policies_table}_job
                ON {self.policies_table}(job_id)
                """
            )
            await db.commit()
            logger.info(f"SQLite datastore initialized at {self.db_path}")

    async def test_connection(self) -> bool:
        try:
            async with self._connect() as db:
                await db.execute(f"SELECT 1 FROM {self.sessions_table} LIMIT 1")
            return True
        except Exception as e:
            logger.error(f"SQLite connection test failed: {e}")
            return False

    async def _fetch_one(self, query: str, params: Sequence[Any]) -> Optional[dict[str, Any]]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def _fetch_all(self, query: str, params: Sequence[Any]) -> list[dict[str, Any]]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            return [dict(row) for row in await cursor.fetchall()]

    async def _update(self, table: str, where: str, params: Sequence[Any], fields: dict[str, Any]) -> int:
        fields = {**fields, "updated_at": utcnow().isoformat()}
        assignments = ", ".join(f"{column} = ?" for column in fields)
        async with self._connect() as db:
            cursor = await db.execute(
                f"UPDATE {table} SET {assignments} WHERE {where}",
                (*fields.values(), *params),
            )
            await db.commit()
            return cursor.rowcount

    @staticmethod
    def _job_from_row(row: dict[str, Any]) -> Job:
        row["config"] = json.loads(row["config"]) if row.get("config") else {}
        return Job(**row)

    # Jobs

    async def create_job(
        self,
        job_name: str,
        carrier_name: str,
        created_by: str = "anonymous",
        config: Optional[dict] = None,
    ) -> Job:
        now = utcnow().isoformat()
        job_id = str(uuid.uuid4())
        async with self._connect() as db:
            await db.execute(
                f"""
                INSERT INTO {self.jobs_table}
                    (id, job_name, carrier_name, status, created_by, config, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (job_id, job_name, carrier_name, JobStatus.PENDING.value, created_by, json.dumps(config or {}), now, now),
            )
            await db.commit()
        return await self.get_job(job_id)

    async def get_job(self, job_id: str) -> Optional[Job]:
        row = await self._fetch_one(f"SELECT * FROM {self.jobs_table} WHERE id = ?", (job_id,))
        return self._job_from_row(row) if row else None

    async def update_job(self, job_id: str, **fields: Any) -> None:
        values = check_columns(fields, JOB_COLUMNS, "job")
        await self._update(self.jobs_table, "id = ?", (job_id,), values)

    # Sessions

    async def create_session(self, job_id: str, total_pages: int) -> Session:
        now = utcnow().isoformat()
        session_id = str(uuid.uuid4())
        async with self._connect() as db:
            await db.execute(
                f"""
                INSERT INTO {self.sessions_table}
                    (id, job_id, status, total_pages, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (session_id, job_id, SessionStatus.INITIALIZING.value, total_pages, now, now),
            )
            await db.commit()
        return await self.get_session(session_id)

    async def get_session(self, session_id: str) -> Optional[Session]:
        row = await self._fetch_one(f"SELECT * FROM {self.sessions_table} WHERE id = ?", (session_id,))
        return Session(**row) if row else None

    async def list_sessions(self, limit: int = 5) -> list[Session]:
        rows = await self._fetch_all(
            f"SELECT * FROM {self.sessions_table} ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [Session(**row) for row in rows]

    async def oldest_ready_session(self) -> Optional[Session]:
        row = await self._fetch_one(
            f"""
            SELECT * FROM {self.sessions_table}
            WHERE status = ?
            ORDER BY created_at ASC, rowid ASC
            LIMIT 1
            """,
            (SessionStatus.READY.value,),
        )
        return Session(**row) if row else None

    async def update_session(self, session_id: str, **fields: Any) -> None:
        values = check_columns(fields, SESSION_COLUMNS, "session")
        await self._update(self.sessions_table, "id = ?", (session_id,), values)

    async def transition_session(
        self,
        session_id: str,
        expected: Sequence[SessionStatus],
        **fields: Any,
    ) -> bool:
        values = check_columns(fields, SESSION_COLUMNS, "session")
        statuses = [SessionStatus(status).value for status in expected]
        placeholders = ", ".join("?" for _ in statuses)
        changed = await self._update(
            self.sessions_table,
            f"id = ? AND status IN ({placeholders})",
            (session_id, *statuses),
            values,
        )
        return changed == 1

    # Policies

    async def insert_policies(self, job_id: str, records: Sequence[PolicyRecord]) -> None:
        if not records:
            return
        now = utcnow().isoformat()
        columns = ("job_id", *POLICY_COLUMNS, "created_at")
        placeholders = ", ".join("?" for _ in columns)
        rows = []
        for record in records:
            row = record.to_row(job_id)
            rows.append((job_id, *(row[column] for column in POLICY_COLUMNS), now))
        async with self._connect() as db:
            await db.executemany(
                f"INSERT INTO {self.policies_table} ({', '.join(columns)}) VALUES ({placeholders})",
                rows,
            )
            await db.commit()

    async def count_policies(self, job_id: str) -> int:
        row = await self._fetch_one(
            f"SELECT COUNT(*) AS n FROM {self.policies_table} WHERE job_id = ?",
            (job_id,),
        )
        return row["n"] if row else 0

    async def list_policies(self, job_id: str) -> list[PolicyRecord]:
        rows = await self._fetch_all(
            f"SELECT job_id, {', '.join(POLICY_COLUMNS)} FROM {self.policies_table} WHERE job_id = ? ORDER BY id",
            (job_id,),
        )
        return [PolicyRecord(**row) for row in rows]
