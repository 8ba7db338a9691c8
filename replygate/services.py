"""Wire settings into the store, queue, resolver, validator and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass

from replygate.config import Settings, get_settings
from replygate.generation import GenerationOrchestrator
from replygate.jobs import QueueDriver, get_queue
from replygate.llm import provider_factory
from replygate.messaging import get_messenger
from replygate.prompts import PromptResolver
from replygate.safety import SafetyValidator
from replygate.store import get_store
from replygate.store.base import Store


@dataclass
class Services:
    settings: Settings
    store: Store
    queue: QueueDriver
    resolver: PromptResolver
    validator: SafetyValidator
    orchestrator: GenerationOrchestrator


def build_services(settings: Settings | None = None) -> Services:
    settings = settings or get_settings()
    store = get_store(settings)
    resolver = PromptResolver(store, ttl_seconds=settings.replygate_prompt_cache_ttl)
    validator = SafetyValidator(store)
    orchestrator = GenerationOrchestrator(
        store,
        resolver,
        validator,
        provider_factory(settings),
        messenger=get_messenger(settings),
    )
    return Services(
        settings=settings,
        store=store,
        queue=get_queue(settings, store),
        resolver=resolver,
        validator=validator,
        orchestrator=orchestrator,
    )
