"""Configuration data models.

Defines LLM provider settings, the remote backend connection and the
console's chat and evaluation settings.
"""

from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_serializer

Language = Literal["en", "zh"]


class LLMConfig(BaseModel):
    """Configuration for an LLM provider."""

    provider: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, ge=1)
    api_key: SecretStr | None = None
    base_url: str | None = None
    # Context window size (mainly for Ollama, which defaults to only 2048)
    context_size: int | None = Field(default=None, ge=1024)
    # Reasoning/thinking effort level (maps to provider-specific options)
    reasoning: Literal["low", "medium", "high"] | None = None


class ConnectionSettings(BaseModel):
    """Base URL and optional credential for the remote agent backend."""

    base_url: str | None = None
    api_key: SecretStr | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)

    @property
    def is_configured(self) -> bool:
        """Whether a backend URL is available."""
        return bool(self.base_url)

    @field_serializer("api_key", when_used="json")
    def _reveal_api_key(self, value: SecretStr | None) -> str | None:
        # The connection slot must round-trip the credential.
        return value.get_secret_value() if value else None


class ChatSettings(BaseModel):
    """User-facing chat preferences."""

    language: Language = "en"
    user_name: str | None = None


class EvaluationSettings(BaseModel):
    """Evaluation runner settings."""

    max_concurrency: int = Field(default=1, ge=1)


class StateSettings(BaseModel):
    """Where persisted slots live."""

    dir: str = ".agentlab"
