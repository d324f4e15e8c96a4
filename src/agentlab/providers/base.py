"""Abstract base class for LLM providers.

Defines the interface that all LLM provider implementations must follow,
plus the shared parsing of structured (JSON) responses.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, TypeVar

from pydantic import BaseModel

from agentlab.exceptions import LLMProviderError
from agentlab.models.config import LLMConfig

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Matches an opening ```json / ``` fence or a closing ``` fence
CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?|\n?```")


class Message(BaseModel):
    """Unified message format for LLM conversations."""

    role: str  # "user", "assistant", "system"
    content: str


class LLMResponse(BaseModel):
    """Unified response format from LLM providers."""

    content: str
    finish_reason: str
    usage: dict[str, int]  # prompt_tokens, completion_tokens
    raw_response: Any = None  # Provider-specific response for debugging


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences wrapped around a JSON payload."""
    return CODE_FENCE_PATTERN.sub("", content).strip()


def parse_structured(content: str | None, response_schema: type[SchemaT], source: str) -> SchemaT:
    """Validate an LLM response against a schema.

    Args:
        content: Raw response text, possibly wrapped in code fences.
        response_schema: Pydantic model class to validate against.
        source: Provider name used in error messages.

    Returns:
        Instance of response_schema.

    Raises:
        LLMProviderError: If the response is empty or doesn't match the schema.
    """
    if not content:
        msg = f"{source} returned empty response for structured generation"
        raise LLMProviderError(msg)

    try:
        return response_schema.model_validate_json(strip_code_fences(content))
    except ValueError as e:
        msg = f"Failed to parse {source} response as {response_schema.__name__}: {e}"
        raise LLMProviderError(msg) from e


class LLMProvider(ABC):
    """Abstract base class for all LLM providers."""

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the provider with configuration."""
        self._config = config

    @property
    def config(self) -> LLMConfig:
        """Get the provider configuration."""
        return self._config

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion from messages.

        Args:
            messages: List of conversation messages.
            temperature: Override the configured temperature.
            max_tokens: Override the configured max tokens.

        Returns:
            LLMResponse with the generated content and metadata.

        Raises:
            LLMProviderError: If the API call fails.
        """
        ...

    @abstractmethod
    async def generate_structured(
        self,
        messages: list[Message],
        response_schema: type[SchemaT],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> SchemaT:
        """Generate a structured response matching the schema.

        Args:
            messages: List of conversation messages.
            response_schema: Pydantic model class defining the expected response.
            temperature: Override the configured temperature.
            max_tokens: Override the configured max tokens.

        Returns:
            Instance of response_schema populated with the generated data.

        Raises:
            LLMProviderError: If the API call fails or response doesn't match schema.
        """
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion as text deltas.

        Args:
            messages: List of conversation messages.
            model: Override the configured model for this call.
            temperature: Override the configured temperature.
            max_tokens: Override the configured max tokens.

        Yields:
            Successive pieces of generated text.

        Raises:
            LLMProviderError: If the API call fails.
        """
        ...
