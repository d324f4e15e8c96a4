"""OpenAI-compatible LLM provider.

Works with any OpenAI API-compatible endpoint including:
- OpenAI API
- Azure OpenAI
- vLLM
- LiteLLM
- Gemini (OpenAI compatibility endpoint)
"""

import os
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from agentlab.exceptions import LLMProviderError, ProviderConfigError
from agentlab.models.config import LLMConfig
from agentlab.providers.base import LLMProvider, LLMResponse, Message, SchemaT, parse_structured
from agentlab.providers.factory import ProviderRegistry

# Default max tokens value from LLMConfig
DEFAULT_MAX_TOKENS = 4096


@ProviderRegistry.register("openai")
class OpenAICompatibleProvider(LLMProvider):
    """OpenAI-compatible provider for LLM inference."""

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the OpenAI-compatible provider.

        Args:
            config: LLM configuration with model, optional base_url, and api_key.

        Raises:
            ProviderConfigError: If no API key is available.
        """
        super().__init__(config)

        # Config takes priority over the environment
        api_key: str | None = None
        if config.api_key:
            api_key = config.api_key.get_secret_value()
        else:
            api_key = os.environ.get("OPENAI_API_KEY")

        if not api_key:
            msg = (
                "OpenAI API key not found. Provide via config.api_key "
                "or OPENAI_API_KEY environment variable."
            )
            raise ProviderConfigError(msg)

        client_kwargs: dict[str, Any] = {"api_key": api_key}
        if config.base_url:
            client_kwargs["base_url"] = config.base_url

        self._client = AsyncOpenAI(**client_kwargs)

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to OpenAI chat format."""
        return [{"role": msg.role, "content": msg.content} for msg in messages]

    def _request_kwargs(
        self,
        messages: list[Message],
        *,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        """Build request kwargs shared by every call shape."""
        request_kwargs: dict[str, Any] = {
            "model": model or self._config.model,
            "messages": self._convert_messages(messages),
        }

        if temperature is not None:
            request_kwargs["temperature"] = temperature
        elif self._config.temperature != 0.0:
            request_kwargs["temperature"] = self._config.temperature

        if max_tokens is not None:
            request_kwargs["max_tokens"] = max_tokens
        elif self._config.max_tokens != DEFAULT_MAX_TOKENS:
            request_kwargs["max_tokens"] = self._config.max_tokens

        return request_kwargs

    async def generate(
        self,
        messages: list[Message],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion from messages.

        Raises:
            LLMProviderError: If the API call fails.
        """
        request_kwargs = self._request_kwargs(
            messages, model=None, temperature=temperature, max_tokens=max_tokens
        )

        try:
            response = await self._client.chat.completions.create(**request_kwargs)
        except Exception as e:
            msg = f"OpenAI API error: {e}"
            raise LLMProviderError(msg) from e

        choice = response.choices[0]
        usage: dict[str, int] = {
            "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
            "completion_tokens": response.usage.completion_tokens if response.usage else 0,
        }

        return LLMResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
            raw_response=response,
        )

    async def generate_structured(
        self,
        messages: list[Message],
        response_schema: type[SchemaT],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> SchemaT:
        """Generate a structured response matching the schema.

        Raises:
            LLMProviderError: If the API call fails or response doesn't match schema.
        """
        request_kwargs = self._request_kwargs(
            messages, model=None, temperature=temperature, max_tokens=max_tokens
        )
        request_kwargs["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": response_schema.__name__,
                "schema": response_schema.model_json_schema(),
                "strict": True,
            },
        }

        try:
            response = await self._client.chat.completions.create(**request_kwargs)
        except Exception as e:
            msg = f"OpenAI API error: {e}"
            raise LLMProviderError(msg) from e

        return parse_structured(response.choices[0].message.content, response_schema, "OpenAI")

    async def stream(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion as text deltas.

        Raises:
            LLMProviderError: If the API call fails.
        """
        request_kwargs = self._request_kwargs(
            messages, model=model, temperature=temperature, max_tokens=max_tokens
        )
        request_kwargs["stream"] = True

        try:
            response = await self._client.chat.completions.create(**request_kwargs)
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except Exception as e:
            msg = f"OpenAI API error: {e}"
            raise LLMProviderError(msg) from e
