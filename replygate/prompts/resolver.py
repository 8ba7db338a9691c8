"""Versioned prompt lookup with tenant-to-global fallback and a TTL cache."""

from __future__ import annotations

import logging
import time
from typing import Callable

from replygate.errors import NotFoundError
from replygate.schemas import Prompt, PromptCreate, utcnow
from replygate.store.base import Store

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class PromptResolver:
    """Resolve the active prompt version for a tenant.

    Lookups try the tenant's own active version first, then the global one.
    Hits are cached per ``(tenant_id or "global", name)`` for ``ttl_seconds``;
    misses are not cached so a newly activated prompt shows up immediately.
    """

    def __init__(
        self,
        store: Store,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[tuple[str, str], tuple[Prompt, float]] = {}

    def get_active_prompt(self, tenant_id: str | None, name: str) -> Prompt | None:
        key = (tenant_id or "global", name)
        entry = self._cache.get(key)
        if entry is not None:
            prompt, expires_at = entry
            if self._clock() < expires_at:
                return prompt
            self._cache.pop(key, None)

        prompt = None
        if tenant_id:
            prompt = self._store.find_active_prompt(tenant_id, name)
        if prompt is None:
            prompt = self._store.find_active_prompt(None, name)
        if prompt is None:
            logger.warning("No active prompt '%s' for tenant %s", name, tenant_id or "global")
            return None

        self._cache[key] = (prompt, self._clock() + self.ttl_seconds)
        return prompt

    def create_prompt(self, data: PromptCreate) -> Prompt:
        """Store a new, inactive prompt version."""
        prompt = self._store.insert_prompt(Prompt(**data.model_dump()))
        logger.info("Created prompt %s '%s' v%s", prompt.id, prompt.name, prompt.version)
        return prompt

    def activate_prompt(self, prompt_id: str) -> Prompt:
        """Make one version active and retire its siblings, then drop cached copies."""
        if self._store.get_prompt(prompt_id) is None:
            raise NotFoundError(f"Prompt {prompt_id} not found")
        prompt = self._store.activate_prompt(prompt_id, utcnow())
        self.invalidate(prompt.name)
        logger.info("Activated prompt %s '%s' v%s", prompt.id, prompt.name, prompt.version)
        return prompt

    def list_prompts(self, tenant_id: str | None, name: str | None = None) -> list[Prompt]:
        return self._store.list_prompts(tenant_id, name)

    def invalidate(self, name: str) -> None:
        """Drop every cached entry for ``name``, across all tenants."""
        for key in [k for k in self._cache if k[1] == name]:
            self._cache.pop(key, None)

    def clear_cache(self) -> None:
        self._cache.clear()
