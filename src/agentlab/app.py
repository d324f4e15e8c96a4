"""Application container.

Builds every store and manager once from resolved configuration and wires
their dependencies together.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from agentlab.chat.manager import ChatSessionManager
from agentlab.chat.playground import PlaygroundManager
from agentlab.chat.streamer import ProviderResponseStreamer
from agentlab.chat.suggestions import SuggestionGenerator
from agentlab.config.loader import (
    LLM_COMPONENTS,
    CLIOverrides,
    ConfigLoader,
    FileConfig,
    RemoteOverrides,
)
from agentlab.evaluation.engine import EvaluationEngine
from agentlab.exceptions import ConfigurationError
from agentlab.judge.judge import OutputJudge
from agentlab.models.config import ChatSettings, ConnectionSettings, EvaluationSettings
from agentlab.models.judgment import PerformanceEvaluation
from agentlab.persistence.storage import Slot, StateStore
from agentlab.providers.base import LLMProvider
from agentlab.providers.factory import create_component_providers
from agentlab.registry.registry import AgentRegistry
from agentlab.remote.client import RemoteExecutionClient, create_remote_client

logger = logging.getLogger(__name__)

_CONNECTION_ADAPTER = TypeAdapter(ConnectionSettings)


def load_connection(store: StateStore) -> ConnectionSettings:
    """Connection settings saved in the state directory."""
    return store.load(Slot.CONNECTION, _CONNECTION_ADAPTER, ConnectionSettings)


def update_connection(store: StateStore, changes: dict[str, Any]) -> ConnectionSettings:
    """Merge changes into the saved connection settings and persist them."""
    return store.update(
        Slot.CONNECTION,
        _CONNECTION_ADAPTER,
        ConnectionSettings,
        lambda current: current.model_copy(update=changes),
    )


def reset_connection(store: StateStore) -> None:
    """Forget the saved connection settings."""
    store.clear(Slot.CONNECTION)


class AgentLab:
    """Owns the registry, chat, playground and evaluation components."""

    def __init__(  # noqa: PLR0913 - Every collaborator is injected explicitly
        self,
        store: StateStore,
        *,
        chat_provider: LLMProvider | None = None,
        judge_provider: LLMProvider | None = None,
        suggestion_provider: LLMProvider | None = None,
        remote: RemoteExecutionClient | None = None,
        chat_settings: ChatSettings | None = None,
        evaluation_settings: EvaluationSettings | None = None,
    ) -> None:
        """Wire the components together.

        Args:
            store: State store shared by every component.
            chat_provider: LLM backing chat replies.
            judge_provider: LLM backing the judge.
            suggestion_provider: LLM backing follow-up suggestions.
            remote: Remote agent backend used by evaluations and the playground.
            chat_settings: Language and user display preferences.
            evaluation_settings: Evaluation runner settings.
        """
        self.store = store
        self.remote = remote
        self.chat_settings = chat_settings or ChatSettings()

        self.registry = AgentRegistry(store)
        self.judge = OutputJudge(judge_provider)
        self.evaluation = EvaluationEngine(store, self.judge, remote, evaluation_settings)
        self.chat = ChatSessionManager(
            store,
            self.registry,
            ProviderResponseStreamer(chat_provider) if chat_provider else None,
            SuggestionGenerator(suggestion_provider) if suggestion_provider else None,
            self.chat_settings,
        )
        self.playground = PlaygroundManager(self.registry, remote, self.chat_settings)

    @classmethod
    def from_config(
        cls,
        file_config: FileConfig | None,
        *,
        llm_overrides: CLIOverrides | None = None,
        remote_overrides: RemoteOverrides | None = None,
        state_dir: Path | None = None,
        language: str | None = None,
        max_concurrency: int | None = None,
    ) -> "AgentLab":
        """Build the application from a config file and CLI overrides.

        Providers that cannot be created are left unconfigured; the
        components relying on them report that when used.

        Raises:
            ConfigurationError: If the settings are invalid.
        """
        store = StateStore(ConfigLoader.resolve_state_dir(file_config, cli_state_dir=state_dir))

        providers = create_component_providers(
            {
                component: ConfigLoader.resolve_llm_config(file_config, component, llm_overrides)
                for component in LLM_COMPONENTS
            }
        )

        connection = ConfigLoader.resolve_connection(
            file_config, load_connection(store), remote_overrides
        )
        logger.debug(
            "State in %s, remote backend %s", store.state_dir, connection.base_url or "unset"
        )

        return cls(
            store,
            chat_provider=providers["chat"],
            judge_provider=providers["judge"],
            suggestion_provider=providers["suggestions"],
            remote=create_remote_client(connection),
            chat_settings=ConfigLoader.resolve_chat_settings(file_config, cli_language=language),
            evaluation_settings=ConfigLoader.resolve_evaluation_settings(
                file_config, cli_max_concurrency=max_concurrency
            ),
        )

    async def evaluate_performance(self, agent_id: str) -> PerformanceEvaluation:
        """Grade an agent on the current chat session.

        The quality score is only updated when the judge produced a verdict.

        Raises:
            ConfigurationError: If the agent does not exist.
        """
        agent = self.registry.get(agent_id)
        if agent is None:
            msg = f"Unknown agent: {agent_id}"
            raise ConfigurationError(msg)

        evaluation = await self.judge.evaluate_performance(agent, self.chat.messages)
        if evaluation.graded:
            self.registry.apply_performance(agent_id, evaluation)
        return evaluation

    async def aclose(self) -> None:
        """Release network resources."""
        if self.remote is not None:
            await self.remote.aclose()
