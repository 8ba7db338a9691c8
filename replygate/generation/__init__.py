"""AI reply drafting, gating and approval."""

from replygate.generation.intent import Intent, detect_intent
from replygate.generation.orchestrator import (
    REPLY_PROMPT_NAME,
    GenerationOrchestrator,
    build_context,
)
from replygate.generation.pricing import estimate_cost
from replygate.generation.template import render_template

__all__ = [
    "GenerationOrchestrator",
    "Intent",
    "REPLY_PROMPT_NAME",
    "build_context",
    "detect_intent",
    "estimate_cost",
    "render_template",
]
