"""Anthropic messages backend."""

from anthropic import Anthropic, APIError, APITimeoutError

from replygate.errors import ProviderError
from replygate.llm.base import Completion


class AnthropicProvider:
    """Anthropic messages API with a system instruction and a user prompt."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
        timeout: float = 30.0,
    ):
        self._client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model

    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> Completion:
        # Prompts default to OpenAI model names; only pass through Claude ones
        chosen = model if model and model.startswith("claude") else self._model
        try:
            response = self._client.messages.create(
                model=chosen,
                system=system_instruction,
                max_tokens=max_tokens,
                temperature=min(temperature, 1.0),
                messages=[{"role": "user", "content": user_prompt}],
            )
        except APITimeoutError as e:
            raise ProviderError(self.name, f"timed out: {e}") from e
        except APIError as e:
            raise ProviderError(self.name, str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return Completion(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model_used=response.model or chosen,
        )
