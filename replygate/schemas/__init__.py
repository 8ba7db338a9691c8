"""Schemas for the reply pipeline."""

from replygate.schemas.conversations import (
    AiMode,
    Conversation,
    Direction,
    Lead,
    Message,
    OptOut,
    SafetyPolicy,
    TenantSettings,
)
from replygate.schemas.generations import (
    Generation,
    GenerationStatus,
    SafetyCheckResult,
    Severity,
    Violation,
    ViolationDetail,
    ViolationType,
)
from replygate.schemas.jobs import (
    AiGenerationPayload,
    Job,
    JobOptions,
    JobStatus,
    JobType,
    QueueStats,
    as_utc,
    backoff_seconds,
    new_job_id,
    utcnow,
)
from replygate.schemas.prompts import Prompt, PromptCreate

__all__ = [
    "AiGenerationPayload",
    "AiMode",
    "Conversation",
    "Direction",
    "Generation",
    "GenerationStatus",
    "Job",
    "JobOptions",
    "JobStatus",
    "JobType",
    "Lead",
    "Message",
    "OptOut",
    "Prompt",
    "PromptCreate",
    "QueueStats",
    "SafetyCheckResult",
    "SafetyPolicy",
    "Severity",
    "TenantSettings",
    "Violation",
    "ViolationDetail",
    "ViolationType",
    "as_utc",
    "backoff_seconds",
    "new_job_id",
    "utcnow",
]
