"""LLM adapter layer: OpenAI and Anthropic behind a common protocol."""

from replygate.config import Settings
from replygate.llm.anthropic_provider import AnthropicProvider
from replygate.llm.base import Completion, LLMProvider
from replygate.llm.openai_provider import OpenAIProvider


def get_provider(provider_name: str, **kwargs: object) -> LLMProvider:
    """Return the LLM provider. provider_name: 'openai' | 'anthropic'."""
    if provider_name.lower() == "anthropic":
        return AnthropicProvider(**kwargs)
    return OpenAIProvider(**kwargs)


def provider_factory(settings: Settings):
    """Build a ``name -> LLMProvider`` callable from settings, caching clients."""
    cache: dict[str, LLMProvider] = {}

    def _get(provider_name: str) -> LLMProvider:
        name = provider_name.lower()
        if name not in cache:
            if name == "anthropic":
                cache[name] = get_provider(
                    name,
                    api_key=settings.anthropic_api_key,
                    model=settings.replygate_anthropic_model,
                    timeout=settings.replygate_llm_timeout,
                )
            else:
                cache[name] = get_provider(
                    name,
                    api_key=settings.openai_api_key,
                    model=settings.replygate_openai_model,
                    timeout=settings.replygate_llm_timeout,
                )
        return cache[name]

    return _get


__all__ = [
    "AnthropicProvider",
    "Completion",
    "LLMProvider",
    "OpenAIProvider",
    "get_provider",
    "provider_factory",
]
