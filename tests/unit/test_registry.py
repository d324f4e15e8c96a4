"""Tests for the agent registry."""

from pathlib import Path

import pytest

from agentlab.models.agent import AgentConfig, AgentMetrics, DraftConfig, TestCase
from agentlab.models.judgment import PerformanceEvaluation
from agentlab.persistence import StateStore
from agentlab.registry import AgentRegistry, default_agents
from agentlab.registry.registry import DEFAULT_CHANGE_LOG, VERSION_AUTHOR


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    """Create a store in a fresh state directory."""
    return StateStore(tmp_path / "state")


@pytest.fixture
def registry(store: StateStore) -> AgentRegistry:
    """Registry holding a single known agent."""
    registry = AgentRegistry(store)
    for agent in registry.agents:
        registry.delete_agent(agent.id)
    registry.create_agent(
        AgentConfig(
            id="writer",
            name="Writer",
            description="Writes things",
            system_instruction="Write clearly.",
        )
    )
    return registry


def _agent(registry: AgentRegistry) -> AgentConfig:
    agent = registry.get("writer")
    assert agent is not None
    return agent


class TestDefaults:
    """Tests for first-run seeding."""

    def test_seeds_default_agents(self, store: StateStore) -> None:
        """A fresh state directory starts with the built-in agents."""
        registry = AgentRegistry(store)
        assert [a.id for a in registry.agents] == [a.id for a in default_agents()]

    def test_default_agents_are_copies(self) -> None:
        """Mutating a returned default does not leak into later calls."""
        first = default_agents()
        first[0].metrics.interaction_count = 99
        assert default_agents()[0].metrics.interaction_count == 0


class TestDrafts:
    """Tests for the draft lifecycle."""

    def test_save_draft_seeds_from_live(self, registry: AgentRegistry) -> None:
        """The first draft copies live values and applies the patch."""
        registry.save_draft("writer", DraftConfig(system_instruction="Write tersely."))

        draft = _agent(registry).draft_config
        assert draft == DraftConfig(
            name="Writer", description="Writes things", system_instruction="Write tersely."
        )

    def test_save_draft_merges_patches(self, registry: AgentRegistry) -> None:
        """Later patches only replace the fields they set."""
        registry.save_draft("writer", DraftConfig(system_instruction="Write tersely."))
        registry.save_draft("writer", DraftConfig(name="Terse Writer"))

        draft = _agent(registry).draft_config
        assert draft is not None
        assert draft.name == "Terse Writer"
        assert draft.system_instruction == "Write tersely."

    def test_draft_rejects_unknown_fields(self) -> None:
        """Only draftable fields can be patched."""
        with pytest.raises(ValueError):
            DraftConfig.model_validate({"current_version": 7})

    def test_discard_draft_leaves_live_untouched(self, registry: AgentRegistry) -> None:
        """Saving then discarding a draft never changes live fields."""
        before = _agent(registry)

        registry.save_draft("writer", DraftConfig(name="Other", system_instruction="Other."))
        assert _agent(registry).name == "Writer"
        registry.discard_draft("writer")

        assert _agent(registry) == before

    def test_unknown_agent_is_noop(self, registry: AgentRegistry) -> None:
        """Operations on unknown ids do nothing."""
        before = registry.agents
        registry.save_draft("ghost", DraftConfig(name="x"))
        registry.publish_draft("ghost")
        registry.restore_version("ghost", 1)
        assert registry.agents == before


class TestPublish:
    """Tests for publishing drafts."""

    def test_publish_without_draft_is_noop(self, registry: AgentRegistry) -> None:
        """The same agent object remains when there is nothing to publish."""
        before = _agent(registry)
        registry.publish_draft("writer")
        assert _agent(registry) is before

    def test_publish_applies_draft_and_records_version(self, registry: AgentRegistry) -> None:
        """Changed instructions produce a history entry at the new version."""
        registry.save_draft("writer", DraftConfig(system_instruction="Write tersely."))
        registry.publish_draft("writer", "Shorter answers")

        agent = _agent(registry)
        assert agent.system_instruction == "Write tersely."
        assert agent.current_version == 2
        assert agent.draft_config is None
        assert len(agent.prompt_versions) == 1
        entry = agent.prompt_versions[0]
        assert entry.version == 2
        assert entry.change_log == "Shorter answers"
        assert entry.author == VERSION_AUTHOR

    def test_publish_default_change_log(self, registry: AgentRegistry) -> None:
        """A blank change log is replaced by the default."""
        registry.save_draft("writer", DraftConfig(system_instruction="New."))
        registry.publish_draft("writer")

        assert _agent(registry).prompt_versions[0].change_log == DEFAULT_CHANGE_LOG

    def test_rename_bumps_version_without_history(self, registry: AgentRegistry) -> None:
        """Every publish counts, but only instruction changes are recorded."""
        registry.save_draft("writer", DraftConfig(name="Author"))
        registry.publish_draft("writer")

        agent = _agent(registry)
        assert agent.name == "Author"
        assert agent.current_version == 2
        assert agent.prompt_versions == []

    def test_history_newest_first_without_gaps(self, registry: AgentRegistry) -> None:
        """Consecutive instruction changes give versions increasing by one."""
        for text in ("One.", "Two.", "Three."):
            registry.save_draft("writer", DraftConfig(system_instruction=text))
            registry.publish_draft("writer")

        agent = _agent(registry)
        assert agent.current_version == 4
        assert [v.version for v in agent.prompt_versions] == [4, 3, 2]
        assert [v.system_instruction for v in agent.prompt_versions] == ["Three.", "Two.", "One."]


class TestRestore:
    """Tests for restoring historical versions."""

    def test_restore_stages_instruction_in_draft(self, registry: AgentRegistry) -> None:
        """Restoring only touches the draft's instruction."""
        for text in ("One.", "Two."):
            registry.save_draft("writer", DraftConfig(system_instruction=text))
            registry.publish_draft("writer")

        registry.restore_version("writer", 2)

        agent = _agent(registry)
        assert agent.system_instruction == "Two."
        assert agent.draft_config == DraftConfig(system_instruction="One.")

    def test_restore_keeps_other_draft_fields(self, registry: AgentRegistry) -> None:
        """An existing draft keeps its pending name."""
        registry.save_draft("writer", DraftConfig(system_instruction="One."))
        registry.publish_draft("writer")
        registry.save_draft("writer", DraftConfig(name="Renamed"))

        registry.restore_version("writer", 2)

        draft = _agent(registry).draft_config
        assert draft is not None
        assert draft.name == "Renamed"
        assert draft.system_instruction == "One."

    def test_restore_unknown_version_is_noop(self, registry: AgentRegistry) -> None:
        """Missing versions leave the agent unchanged."""
        before = _agent(registry)
        registry.restore_version("writer", 42)
        assert _agent(registry) is before


class TestMetricsAndCases:
    """Tests for test cases and metrics."""

    def test_update_test_cases(self, registry: AgentRegistry) -> None:
        """Test cases are replaced wholesale."""
        cases = [TestCase(id="c1", input="Hi", expected_output="Hello")]
        registry.update_test_cases("writer", cases)
        assert _agent(registry).test_cases == cases

    def test_record_interaction(self, registry: AgentRegistry) -> None:
        """Each completed turn increments the interaction count."""
        registry.record_interaction("writer")
        registry.record_interaction("writer")
        assert _agent(registry).metrics.interaction_count == 2

    def test_update_metrics_and_performance(self, registry: AgentRegistry) -> None:
        """Performance reviews set the quality score."""
        registry.update_metrics("writer", AgentMetrics(quality_score=50, satisfaction_rate=90))
        registry.apply_performance("writer", PerformanceEvaluation(overall_score=73))

        metrics = _agent(registry).metrics
        assert metrics.quality_score == 73
        assert metrics.satisfaction_rate == 90


class TestPersistence:
    """Tests for registry persistence."""

    def test_round_trip_preserves_every_field(
        self, registry: AgentRegistry, store: StateStore
    ) -> None:
        """Reloading reproduces agents with and without drafts."""
        registry.save_draft("writer", DraftConfig(system_instruction="One."))
        registry.publish_draft("writer", "first")
        registry.save_draft("writer", DraftConfig(name_zh="作者"))
        registry.update_test_cases("writer", [TestCase(id="c1", input="Hi")])
        registry.create_agent(AgentConfig(id="plain", name="Plain"))

        reloaded = AgentRegistry(store)

        assert reloaded.agents == registry.agents
        assert reloaded.get("writer").has_draft  # type: ignore[union-attr]
        assert not reloaded.get("plain").has_draft  # type: ignore[union-attr]
