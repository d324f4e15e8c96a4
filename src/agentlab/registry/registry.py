"""Agent registry.

Owns agent configurations, their draft/live duality and version history.
Every operation on an unknown agent id is a silent no-op, so callers holding
a stale id after a deletion never fail.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import TypeAdapter

from agentlab.models.agent import (
    DEFAULT_AGENTS,
    AgentConfig,
    AgentMetrics,
    DraftConfig,
    PromptVersion,
    TestCase,
)
from agentlab.models.judgment import PerformanceEvaluation
from agentlab.persistence.storage import Slot, StateStore

logger = logging.getLogger(__name__)

DEFAULT_CHANGE_LOG = "Published from draft"
VERSION_AUTHOR = "Admin"

_AGENTS_ADAPTER = TypeAdapter(list[AgentConfig])


def default_agents() -> list[AgentConfig]:
    """Fresh copies of the built-in agents."""
    return [agent.model_copy(deep=True) for agent in DEFAULT_AGENTS]


class AgentRegistry:
    """Persistent collection of agent configurations."""

    def __init__(self, store: StateStore) -> None:
        """Load agents from the store, seeding defaults on first use.

        Args:
            store: State store holding the agents slot.
        """
        self._store = store
        self._agents: list[AgentConfig] = store.load(Slot.AGENTS, _AGENTS_ADAPTER, default_agents)

    @property
    def agents(self) -> list[AgentConfig]:
        """All agents in creation order."""
        return list(self._agents)

    def get(self, agent_id: str) -> AgentConfig | None:
        """Look up an agent by id."""
        for agent in self._agents:
            if agent.id == agent_id:
                return agent
        return None

    def _persist(self) -> None:
        self._store.save(Slot.AGENTS, _AGENTS_ADAPTER, self._agents)

    def _replace(self, agent_id: str, change: Callable[[AgentConfig], AgentConfig]) -> bool:
        """Swap the agent with ``change(agent)`` and persist if anything changed."""
        for index, agent in enumerate(self._agents):
            if agent.id != agent_id:
                continue
            updated = change(agent)
            if updated is agent:
                return False
            self._agents[index] = updated
            self._persist()
            return True
        logger.debug("Ignoring update for unknown agent %s", agent_id)
        return False

    def create_agent(self, agent: AgentConfig) -> None:
        """Append a fully-formed agent."""
        self._agents.append(agent)
        self._persist()

    def delete_agent(self, agent_id: str) -> None:
        """Remove an agent."""
        remaining = [agent for agent in self._agents if agent.id != agent_id]
        if len(remaining) != len(self._agents):
            self._agents = remaining
            self._persist()

    def save_draft(self, agent_id: str, patch: DraftConfig) -> None:
        """Merge ``patch`` into the agent's draft, seeding it from live if absent.

        The live fields are never touched.
        """

        def change(agent: AgentConfig) -> AgentConfig:
            current = agent.draft_config or DraftConfig(
                name=agent.name,
                description=agent.description,
                system_instruction=agent.system_instruction,
            )
            return agent.model_copy(update={"draft_config": current.merged(patch)})

        self._replace(agent_id, change)

    def discard_draft(self, agent_id: str) -> None:
        """Drop any pending draft."""
        self._replace(agent_id, lambda agent: agent.model_copy(update={"draft_config": None}))

    def publish_draft(self, agent_id: str, change_log: str = "") -> None:
        """Apply the draft to the live configuration.

        Every publish increments ``current_version``. A prompt history entry
        is only recorded when the instruction text changed, so the version
        counts publish events rather than prompt revisions.
        """

        def change(agent: AgentConfig) -> AgentConfig:
            draft = agent.draft_config
            if draft is None:
                return agent

            new_version = agent.current_version + 1
            versions = agent.prompt_versions
            instruction = draft.system_instruction
            if instruction and instruction != agent.system_instruction:
                entry = PromptVersion(
                    version=new_version,
                    timestamp=datetime.now(),
                    system_instruction=instruction,
                    change_log=change_log or DEFAULT_CHANGE_LOG,
                    author=VERSION_AUTHOR,
                )
                versions = [entry, *versions]

            return agent.model_copy(
                update={
                    **draft.set_fields(),
                    "current_version": new_version,
                    "prompt_versions": versions,
                    "draft_config": None,
                }
            )

        if self._replace(agent_id, change):
            logger.info("Published agent %s", agent_id)

    def restore_version(self, agent_id: str, version: int) -> None:
        """Stage a historical instruction in the draft for review."""

        def change(agent: AgentConfig) -> AgentConfig:
            target = next((v for v in agent.prompt_versions if v.version == version), None)
            if target is None:
                return agent
            current = agent.draft_config or DraftConfig()
            restored = current.merged(DraftConfig(system_instruction=target.system_instruction))
            return agent.model_copy(update={"draft_config": restored})

        self._replace(agent_id, change)

    def update_test_cases(self, agent_id: str, test_cases: list[TestCase]) -> None:
        """Replace the agent's embedded test cases."""
        self._replace(
            agent_id, lambda agent: agent.model_copy(update={"test_cases": list(test_cases)})
        )

    def update_metrics(self, agent_id: str, metrics: AgentMetrics) -> None:
        """Replace the agent's aggregate metrics."""
        self._replace(agent_id, lambda agent: agent.model_copy(update={"metrics": metrics}))

    def record_interaction(self, agent_id: str) -> None:
        """Count one completed chat turn for the agent."""

        def change(agent: AgentConfig) -> AgentConfig:
            metrics = agent.metrics.model_copy(
                update={"interaction_count": agent.metrics.interaction_count + 1}
            )
            return agent.model_copy(update={"metrics": metrics})

        self._replace(agent_id, change)

    def apply_performance(self, agent_id: str, evaluation: PerformanceEvaluation) -> None:
        """Use a performance evaluation as the agent's quality score."""

        def change(agent: AgentConfig) -> AgentConfig:
            metrics = agent.metrics.model_copy(
                update={"quality_score": evaluation.overall_score}
            )
            return agent.model_copy(update={"metrics": metrics})

        self._replace(agent_id, change)
