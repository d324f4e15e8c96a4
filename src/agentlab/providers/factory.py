"""Provider registry and construction helpers.

Providers register themselves by name with a class decorator; the console
builds one provider per LLM component (chat, judge, suggestions) from the
resolved configuration.
"""

import logging
from collections.abc import Callable, Mapping
from typing import ClassVar

from agentlab.exceptions import ProviderConfigError, ProviderError, ProviderNotFoundError
from agentlab.models.config import LLMConfig
from agentlab.providers.base import LLMProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Name to provider-class mapping."""

    _providers: ClassVar[dict[str, type[LLMProvider]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[LLMProvider]], type[LLMProvider]]:
        """Class decorator registering a provider under ``name``.

        Example:
            @ProviderRegistry.register("ollama")
            class OllamaProvider(LLMProvider):
                ...
        """

        def decorator(provider_class: type[LLMProvider]) -> type[LLMProvider]:
            cls._providers[name.lower()] = provider_class
            return provider_class

        return decorator

    @classmethod
    def get(cls, name: str) -> type[LLMProvider]:
        """Provider class registered under ``name`` (case-insensitive).

        Raises:
            ProviderNotFoundError: If nothing is registered under that name.
        """
        try:
            return cls._providers[name.lower()]
        except KeyError:
            available = ", ".join(cls.list_providers()) or "none"
            msg = f"Provider '{name}' not found. Available: {available}"
            raise ProviderNotFoundError(msg) from None

    @classmethod
    def list_providers(cls) -> list[str]:
        return sorted(cls._providers)


def create_provider(config: LLMConfig) -> LLMProvider:
    """Instantiate the provider named by ``config.provider``.

    Raises:
        ProviderNotFoundError: If the provider is not registered.
        ProviderConfigError: If the provider rejects the configuration.
    """
    provider_class = ProviderRegistry.get(config.provider)
    try:
        return provider_class(config)
    except Exception as e:
        msg = f"Failed to create provider '{config.provider}': {e}"
        raise ProviderConfigError(msg) from e


def create_component_providers(
    configs: Mapping[str, LLMConfig],
) -> dict[str, LLMProvider | None]:
    """Build a provider for each LLM component.

    Components with identical configuration share one provider instance.
    A component whose provider cannot be created maps to None and a warning
    is logged; the features relying on it report themselves unconfigured.

    Args:
        configs: Resolved configuration keyed by component name.

    Returns:
        Provider (or None) keyed by component name.
    """
    built: list[tuple[LLMConfig, LLMProvider | None]] = []
    providers: dict[str, LLMProvider | None] = {}

    for component, config in configs.items():
        for seen_config, seen_provider in built:
            if seen_config == config:
                providers[component] = seen_provider
                break
        else:
            provider: LLMProvider | None
            try:
                provider = create_provider(config)
            except ProviderError as e:
                logger.warning("%s provider unavailable: %s", component, e)
                provider = None
            built.append((config, provider))
            providers[component] = provider

    return providers
