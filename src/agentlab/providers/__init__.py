"""LLM provider abstractions."""

from agentlab.providers.base import (
    LLMProvider,
    LLMResponse,
    Message,
    parse_structured,
    strip_code_fences,
)
from agentlab.providers.factory import (
    ProviderRegistry,
    create_component_providers,
    create_provider,
)
from agentlab.providers.ollama import OllamaProvider
from agentlab.providers.openai_compat import OpenAICompatibleProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "Message",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "ProviderRegistry",
    "create_component_providers",
    "create_provider",
    "parse_structured",
    "strip_code_fences",
]
