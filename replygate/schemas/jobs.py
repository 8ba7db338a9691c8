"""Job queue schema and status."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobType(str, Enum):
    AI_GENERATION = "ai_generation"
    CAMPAIGN_SEND = "campaign_send"
    CRM_SYNC = "crm_sync"
    LEAD_IMPORT = "lead_import"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


class JobOptions(BaseModel):
    """Per-job enqueue options."""

    # Higher = sooner. Bounded so broker scores stay exact.
    priority: int = Field(default=0, ge=-500, le=500)
    scheduled_for: datetime | None = None
    max_attempts: int = Field(default=3, ge=1)
    idempotency_key: str | None = None

    @field_validator("scheduled_for")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class Job(BaseModel):
    """A unit of deferred work."""

    id: str = Field(default_factory=lambda: new_job_id())
    type: JobType
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    priority: int = 0
    attempts: int = 0
    max_attempts: int = 3
    last_error: str | None = None
    idempotency_key: str | None = None
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("scheduled_for", "started_at", "completed_at", "created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @property
    def due_at(self) -> datetime:
        """Effective due time used for ordering: scheduled_for, else created_at."""
        return self.scheduled_for or self.created_at

    def is_due(self, now: datetime) -> bool:
        return self.scheduled_for is None or self.scheduled_for <= now


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    dead_letter: int = 0


class AiGenerationPayload(BaseModel):
    """Payload of an ``ai_generation`` job."""

    conversation_id: str
    message_id: str | None = None
    tenant_id: str | None = None


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


def backoff_seconds(attempts: int) -> int:
    """Exponential retry delay after ``attempts`` failed attempts."""
    return 2 ** attempts
