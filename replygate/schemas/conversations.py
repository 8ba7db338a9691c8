"""Conversation, message, lead and tenant AI settings read by the pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from replygate.schemas.jobs import utcnow


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class AiMode(str, Enum):
    COPILOT = "copilot"      # every draft waits for a human
    AUTOPILOT = "autopilot"  # allow-listed intents may be cleared to send


class Lead(BaseModel):
    id: str | None = None
    name: str | None = None
    phone: str | None = None
    property_type: str | None = None
    location: str | None = None
    budget: str | None = None
    bedrooms: str | None = None


class Conversation(BaseModel):
    id: str = Field(default_factory=lambda: f"conv_{uuid.uuid4().hex[:16]}")
    tenant_id: str
    whatsapp_number: str
    lead: Lead = Field(default_factory=Lead)
    last_message_at: datetime | None = None
    last_direction: Direction | None = None


class Message(BaseModel):
    id: str = Field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:16]}")
    conversation_id: str
    direction: Direction
    body: str
    sender_id: str | None = None
    provider_message_id: str | None = None
    sent_at: datetime = Field(default_factory=utcnow)


class SafetyPolicy(BaseModel):
    """The subset of tenant settings the safety validator reads."""

    allowed_intents: list[str] = Field(default_factory=list)
    auto_send_intents: list[str] = Field(default_factory=list)
    min_confidence: float = 0.7
    max_message_length: int = 1000
    max_risk_score: int = 30
    tone: str = "professional"
    languages: list[str] = Field(default_factory=lambda: ["en"])
    respect_opt_out: bool = True
    opt_out_keywords: list[str] = Field(default_factory=lambda: ["stop", "unsubscribe"])
    escalate_keywords: list[str] = Field(default_factory=list)


class TenantSettings(SafetyPolicy):
    """Per-tenant AI configuration."""

    tenant_id: str
    ai_enabled: bool = False
    ai_provider: str = "openai"
    ai_mode: AiMode = AiMode.COPILOT

    def policy(self) -> SafetyPolicy:
        return SafetyPolicy.model_validate(self.model_dump(include=set(SafetyPolicy.model_fields)))


class OptOut(BaseModel):
    tenant_id: str
    phone: str
    reason: str | None = None
    opted_out_at: datetime = Field(default_factory=utcnow)
    # None means the number is currently opted out
    opted_in_at: datetime | None = None
