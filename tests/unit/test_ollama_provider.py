"""Tests for Ollama provider."""

from unittest.mock import AsyncMock, MagicMock

import ollama
import pytest
from pydantic import BaseModel

from agentlab.exceptions import LLMProviderError
from agentlab.models.config import LLMConfig
from agentlab.providers.base import Message
from agentlab.providers.ollama import DEFAULT_CONTEXT_SIZE, OllamaProvider


class _Parts:
    """Async iterator standing in for an Ollama stream."""

    def __init__(self, contents: list[str]) -> None:
        self._parts = []
        for content in contents:
            part = MagicMock()
            part.message.content = content
            self._parts.append(part)

    def __aiter__(self) -> "_Parts":
        return self

    async def __anext__(self) -> MagicMock:
        if not self._parts:
            raise StopAsyncIteration
        return self._parts.pop(0)


@pytest.fixture
def provider() -> OllamaProvider:
    """Create a provider with test config."""
    config = LLMConfig(
        provider="ollama",
        model="test-model:latest",
        base_url="http://localhost:11434",
    )
    return OllamaProvider(config)


class TestOllamaProviderErrorHandling:
    """Tests for Ollama provider error messages."""

    @pytest.mark.asyncio
    async def test_model_not_found_error_message(self, provider: OllamaProvider) -> None:
        """Model-not-found errors point at the server's model list."""
        provider._client = AsyncMock()
        provider._client.chat = AsyncMock(
            side_effect=ollama.ResponseError("model 'test-model:latest' not found")
        )

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.generate([Message(role="user", content="test")])

        error_msg = str(exc_info.value)
        assert "test-model:latest" in error_msg
        assert "ollama list" in error_msg
        assert "/api/tags" in error_msg

    @pytest.mark.asyncio
    async def test_other_response_error_preserved(self, provider: OllamaProvider) -> None:
        """Other ResponseErrors are passed through."""
        provider._client = AsyncMock()
        provider._client.chat = AsyncMock(side_effect=ollama.ResponseError("connection refused"))

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.generate([Message(role="user", content="test")])

        assert "Ollama API error" in str(exc_info.value)
        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_stream_model_not_found_names_override(self, provider: OllamaProvider) -> None:
        """Streaming errors name the model actually requested."""
        provider._client = AsyncMock()
        provider._client.chat = AsyncMock(
            side_effect=ollama.ResponseError("model 'qwen3' not found")
        )

        with pytest.raises(LLMProviderError) as exc_info:
            async for _ in provider.stream([Message(role="user", content="t")], model="qwen3"):
                pass

        assert "'qwen3'" in str(exc_info.value)


class TestOllamaRequests:
    """Tests for request shaping."""

    def test_options_default_context_size(self, provider: OllamaProvider) -> None:
        """Context window defaults well above Ollama's 2048."""
        assert provider._options(None, None) == {"num_ctx": DEFAULT_CONTEXT_SIZE}

    def test_options_overrides(self) -> None:
        """Explicit settings map to Ollama option names."""
        provider = OllamaProvider(
            LLMConfig(
                provider="ollama",
                model="m",
                context_size=8192,
                reasoning="high",
            )
        )
        options = provider._options(0.5, 100)
        assert options == {"temperature": 0.5, "num_predict": 100, "num_ctx": 8192, "think": "high"}

    @pytest.mark.asyncio
    async def test_generate_structured_passes_schema(self, provider: OllamaProvider) -> None:
        """The response schema is sent as the format constraint."""

        class Verdict(BaseModel):
            score: int

        response = MagicMock()
        response.message.content = '{"score": 7}'
        provider._client = AsyncMock()
        provider._client.chat = AsyncMock(return_value=response)

        result = await provider.generate_structured([Message(role="user", content="x")], Verdict)

        assert result.score == 7
        assert provider._client.chat.call_args.kwargs["format"] == Verdict.model_json_schema()

    @pytest.mark.asyncio
    async def test_stream_yields_contents(self, provider: OllamaProvider) -> None:
        """Streamed parts are yielded, empty ones skipped."""
        provider._client = AsyncMock()
        provider._client.chat = AsyncMock(return_value=_Parts(["a", "", "b"]))

        deltas = [d async for d in provider.stream([Message(role="user", content="x")])]

        assert deltas == ["a", "b"]
        call_kwargs = provider._client.chat.call_args.kwargs
        assert call_kwargs["stream"] is True
        assert call_kwargs["model"] == "test-model:latest"
