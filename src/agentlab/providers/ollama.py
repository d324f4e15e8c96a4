"""Ollama LLM provider.

Uses the ollama Python SDK for local model inference.
"""

from collections.abc import AsyncIterator
from typing import Any, NoReturn

import ollama

from agentlab.exceptions import LLMProviderError
from agentlab.models.config import LLMConfig
from agentlab.providers.base import LLMProvider, LLMResponse, Message, SchemaT, parse_structured
from agentlab.providers.factory import ProviderRegistry

# Default max tokens value from LLMConfig
DEFAULT_MAX_TOKENS = 4096

# Default context size for Ollama (much larger than Ollama's default of 2048)
DEFAULT_CONTEXT_SIZE = 65536

# Valid reasoning levels for Ollama models that support thinking
VALID_REASONING_LEVELS = {"low", "medium", "high"}


@ProviderRegistry.register("ollama")
class OllamaProvider(LLMProvider):
    """Ollama provider for local LLM inference."""

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the Ollama provider.

        Args:
            config: LLM configuration with model and optional base_url.
        """
        super().__init__(config)

        client_kwargs: dict[str, Any] = {}
        if config.base_url:
            client_kwargs["host"] = config.base_url

        self._client = ollama.AsyncClient(**client_kwargs)

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama chat format."""
        return [{"role": msg.role, "content": msg.content} for msg in messages]

    def _options(self, temperature: float | None, max_tokens: int | None) -> dict[str, Any]:
        """Build the Ollama options dictionary."""
        options: dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        elif self._config.temperature != 0.0:
            options["temperature"] = self._config.temperature

        if max_tokens is not None:
            options["num_predict"] = max_tokens
        elif self._config.max_tokens != DEFAULT_MAX_TOKENS:
            options["num_predict"] = self._config.max_tokens

        # Ollama defaults to only 2048 tokens of context
        options["num_ctx"] = self._config.context_size or DEFAULT_CONTEXT_SIZE

        if self._config.reasoning and self._config.reasoning in VALID_REASONING_LEVELS:
            options["think"] = self._config.reasoning

        return options

    def _raise_api_error(self, error: Exception, model: str) -> NoReturn:
        """Translate an SDK error into an LLMProviderError with a helpful message."""
        if isinstance(error, ollama.ResponseError) and "not found" in str(error).lower():
            msg = (
                f"Ollama model '{model}' not found. "
                f"Check that the model exists on the server "
                f"(run 'ollama list' or check /api/tags endpoint). "
                f"Original error: {error}"
            )
        else:
            msg = f"Ollama API error: {error}"
        raise LLMProviderError(msg) from error

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
        try:
            response = await self._client.chat(
                model=self._config.model,
                messages=self._convert_messages(messages),
                options=self._options(temperature, max_tokens),
            )
        except Exception as e:
            self._raise_api_error(e, self._config.model)

        usage: dict[str, int] = {
            "prompt_tokens": response.prompt_eval_count or 0,
            "completion_tokens": response.eval_count or 0,
        }

        return LLMResponse(
            content=response.message.content or "",
            finish_reason=response.done_reason or "stop",
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
        try:
            response = await self._client.chat(
                model=self._config.model,
                messages=self._convert_messages(messages),
                format=response_schema.model_json_schema(),
                options=self._options(temperature, max_tokens),
            )
        except Exception as e:
            self._raise_api_error(e, self._config.model)

        return parse_structured(response.message.content, response_schema, "Ollama")

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
        model_name = model or self._config.model
        try:
            parts = await self._client.chat(
                model=model_name,
                messages=self._convert_messages(messages),
                options=self._options(temperature, max_tokens),
                stream=True,
            )
            async for part in parts:
                content = part.message.content
                if content:
                    yield content
        except Exception as e:
            self._raise_api_error(e, model_name)
