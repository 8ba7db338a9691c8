"""Prompt registry: versioned templates and active-version resolution."""

from replygate.prompts.resolver import DEFAULT_TTL_SECONDS, PromptResolver

__all__ = ["DEFAULT_TTL_SECONDS", "PromptResolver"]
