"""OpenAI chat completion backend."""

from openai import APIError, APITimeoutError, OpenAI

from replygate.errors import ProviderError
from replygate.llm.base import Completion


class OpenAIProvider:
    """OpenAI chat completion with a system instruction and a user prompt."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4-turbo",
        timeout: float = 30.0,
    ):
        # Retries belong to the job queue, not the SDK
        self._client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
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
        try:
            response = self._client.chat.completions.create(
                model=model or self._model,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APITimeoutError as e:
            raise ProviderError(self.name, f"timed out: {e}") from e
        except APIError as e:
            raise ProviderError(self.name, str(e)) from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        usage = response.usage
        return Completion(
            text=text,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model_used=response.model or model or self._model,
        )
