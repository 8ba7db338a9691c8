"""AI reply generations, safety violations and validator results."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from replygate.schemas.jobs import utcnow


class GenerationStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    AUTO_SENT = "auto_sent"
    BLOCKED = "blocked"
    APPROVED = "approved"
    EDITED = "edited"


class ViolationType(str, Enum):
    PRICE_MENTION = "price_mention"
    LEGAL_ADVICE = "legal_advice"
    FINANCIAL_ADVICE = "financial_advice"
    PERSONAL_DATA_LEAK = "personal_data_leak"
    AGGRESSIVE_LANGUAGE = "aggressive_language"
    COMPETITOR_MENTION = "competitor_mention"
    AVAILABILITY_CLAIM = "availability_claim"
    SPAM_PATTERN = "spam_pattern"
    OFF_TOPIC = "off_topic"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ViolationDetail(BaseModel):
    """One safety-rule hit, as reported by the validator."""

    type: ViolationType
    severity: Severity
    detected_text: str
    rule_matched: str
    explanation: str
    context: str | None = None


class SafetyCheckResult(BaseModel):
    passed: bool
    risk_score: int
    violations: list[ViolationDetail] = Field(default_factory=list)
    should_escalate: bool = False
    should_block: bool = False


class Violation(ViolationDetail):
    """A persisted violation row linked to a generation."""

    id: str = Field(default_factory=lambda: f"vio_{uuid.uuid4().hex[:16]}")
    tenant_id: str
    generation_id: str
    was_blocked: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Generation(BaseModel):
    """One AI reply attempt plus its safety and approval metadata."""

    id: str = Field(default_factory=lambda: f"gen_{uuid.uuid4().hex[:16]}")
    tenant_id: str
    conversation_id: str
    message_id: str | None = None
    prompt_id: str
    prompt_version: str
    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    detected_intent: str | None = None
    intent_confidence: float | None = None
    sentiment: str | None = None
    urgency: str | None = None
    draft_message: str
    safety_passed: bool = False
    risk_score: int = 0
    should_escalate: bool = False
    violations: list[ViolationDetail] = Field(default_factory=list)
    status: GenerationStatus
    approved_by: str | None = None
    approved_at: datetime | None = None
    edited_message: str | None = None
    sent_at: datetime | None = None
    outbound_message_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
