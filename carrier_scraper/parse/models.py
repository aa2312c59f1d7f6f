"""Data models for sessions, jobs and scraped policy records."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    WAITING_FOR_LOGIN = "waiting_for_login"
    READY = "ready"
    SCRAPING = "scraping"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """Unit of work a consumer polls for status and results."""

    id: str
    job_name: str
    carrier_name: str = "GTL"
    status: JobStatus = JobStatus.PENDING
    created_by: str = "anonymous"
    config: dict[str, Any] = Field(default_factory=dict)
    scraped_records: int = 0
    total_records: Optional[int] = None
    progress: int = 0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class Session(BaseModel):
    """One scraping attempt against the portal."""

    id: str
    job_id: str
    status: SessionStatus = SessionStatus.INITIALIZING
    browser_url: Optional[str] = None
    current_page: int = 0
    total_pages: int = 0
    scraped_count: int = 0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Export column order; policy attributes only.
POLICY_COLUMNS: tuple[str, ...] = (
    "policy_number",
    "applicant_name",
    "plan_name",
    "plan_code",
    "face_amount",
    "premium",
    "status",
    "updated_date",
    "issue_date",
    "application_date",
    "dob",
    "gender",
    "age",
    "state",
    "agent_name",
    "agent_number",
    "notes",
)

# Filled from the expandable detail panel rather than the summary row.
DETAIL_COLUMNS: tuple[str, ...] = (
    "plan_code",
    "premium",
    "issue_date",
    "application_date",
    "dob",
    "gender",
    "age",
    "state",
    "agent_name",
    "agent_number",
    "notes",
)


class PolicyRecord(BaseModel):
    """One extracted row of carrier data.

    Values are opaque strings exactly as the portal shows them. A field the
    portal did not show is None, never an empty string.
    """

    policy_number: str = Field(..., description="Carrier policy number, kept verbatim")
    applicant_name: Optional[str] = None
    plan_name: Optional[str] = None
    plan_code: Optional[str] = None
    face_amount: Optional[str] = None
    premium: Optional[str] = None
    status: Optional[str] = None
    updated_date: Optional[str] = None
    issue_date: Optional[str] = None
    application_date: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[str] = None
    state: Optional[str] = None
    agent_name: Optional[str] = None
    agent_number: Optional[str] = None
    notes: Optional[str] = None
    job_id: Optional[str] = None

    def to_row(self, job_id: Optional[str] = None) -> dict[str, Any]:
        """Row payload for the policies table."""
        row = {column: getattr(self, column) for column in POLICY_COLUMNS}
        row["job_id"] = job_id or self.job_id
        return row
