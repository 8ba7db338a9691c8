"""Versioned prompt templates."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from replygate.schemas.jobs import utcnow


class PromptCreate(BaseModel):
    """Fields accepted when registering a new prompt version."""

    tenant_id: str | None = None
    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    system_prompt: str = Field(min_length=1)
    user_prompt_template: str = Field(min_length=1)
    variables: list[str] = Field(default_factory=list)
    model: str = "gpt-4-turbo"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, gt=0)
    description: str | None = None
    created_by: str | None = None


class Prompt(PromptCreate):
    """A stored prompt version. New versions start inactive."""

    id: str = Field(default_factory=lambda: f"prompt_{uuid.uuid4().hex[:16]}")
    is_active: bool = False
    activated_at: datetime | None = None
    deactivated_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
