"""Abstract AI completion provider protocol."""

from typing import Protocol

from pydantic import BaseModel


class Completion(BaseModel):
    """Result of one completion call."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model_used: str


class LLMProvider(Protocol):
    """Protocol for completion backends (OpenAI, Anthropic)."""

    name: str

    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> Completion:
        """Return generated text, token counts and the model that answered.

        Raises ProviderError on any API failure or timeout.
        """
        ...
