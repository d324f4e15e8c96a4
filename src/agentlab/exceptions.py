"""Custom exception hierarchy for agentlab.

All exceptions inherit from AgentLabError for easy catching at the top level.
Remote and provider failures are raised as typed errors and converted into
content (error messages, fallback judge results) at the component boundaries.
"""


class AgentLabError(Exception):
    """Base exception for all agentlab errors."""


class ConfigurationError(AgentLabError):
    """Configuration-related errors."""


class ProviderError(AgentLabError):
    """LLM provider errors."""


class ProviderNotFoundError(ProviderError):
    """Requested provider is not registered."""


class ProviderConfigError(ProviderError):
    """Provider configuration is invalid."""


class LLMProviderError(ProviderError):
    """Error during LLM API call."""


class RemoteExecutionError(AgentLabError):
    """Error talking to the remote agent-serving backend."""


class PersistenceError(AgentLabError):
    """Stored state could not be read or written."""
