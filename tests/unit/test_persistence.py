"""Tests for persistence module."""

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import SecretStr, TypeAdapter

from agentlab.exceptions import PersistenceError
from agentlab.models.chat import Message, Role, Session
from agentlab.models.config import ConnectionSettings
from agentlab.persistence import Slot, StateStore

SESSIONS = TypeAdapter(list[Session])
CONNECTION = TypeAdapter(ConnectionSettings)


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    """Create a store in a fresh state directory."""
    return StateStore(tmp_path / "state")


class TestStateStore:
    """Tests for slot loading and saving."""

    def test_missing_slot_returns_default(self, store: StateStore) -> None:
        """A never-written slot yields the default without creating files."""
        assert store.load(Slot.CHAT_SESSIONS, SESSIONS, list) == []
        assert not store.exists(Slot.CHAT_SESSIONS)
        assert not store.state_dir.exists()

    def test_save_creates_directory_and_file(self, store: StateStore) -> None:
        """Saving writes <slot>.json inside a created state directory."""
        path = store.save(Slot.CHAT_SESSIONS, SESSIONS, [])

        assert path == store.state_dir / "chat_sessions.json"
        assert path.read_text(encoding="utf-8").strip() == "[]"
        assert store.exists(Slot.CHAT_SESSIONS)

    def test_round_trip_preserves_nested_models(self, store: StateStore) -> None:
        """Sessions with messages reload equal to what was saved."""
        sessions = [
            Session(
                id="s1",
                title="Hello",
                agent_id="general-assistant",
                messages=[
                    Message(id="m1", role=Role.USER, text="Hello"),
                    Message(id="m2", role=Role.MODEL, text="Hi!", metrics={"chunks": 2}),
                ],
            )
        ]

        store.save(Slot.CHAT_SESSIONS, SESSIONS, sessions)

        assert store.load(Slot.CHAT_SESSIONS, SESSIONS, list) == sessions

    def test_corrupt_slot_falls_back_to_default(self, store: StateStore) -> None:
        """Unparseable JSON is discarded with a warning, never raised."""
        store.state_dir.mkdir(parents=True)
        (store.state_dir / "chat_sessions.json").write_text("{not json", encoding="utf-8")

        with patch("agentlab.persistence.storage.logger") as mock_logger:
            result = store.load(Slot.CHAT_SESSIONS, SESSIONS, list)

        assert result == []
        mock_logger.warning.assert_called_once()

    def test_wrong_shape_falls_back_to_default(self, store: StateStore) -> None:
        """Valid JSON of the wrong shape also falls back."""
        store.state_dir.mkdir(parents=True)
        (store.state_dir / "chat_sessions.json").write_text('{"a": 1}', encoding="utf-8")

        assert store.load(Slot.CHAT_SESSIONS, SESSIONS, list) == []

    def test_connection_api_key_round_trips(self, store: StateStore) -> None:
        """The backend credential survives a save/load cycle."""
        settings = ConnectionSettings(base_url="http://b", api_key=SecretStr("token"))

        store.save(Slot.CONNECTION, CONNECTION, settings)
        loaded = store.load(Slot.CONNECTION, CONNECTION, ConnectionSettings)

        assert loaded.api_key is not None
        assert loaded.api_key.get_secret_value() == "token"

    def test_update_applies_mutation(self, store: StateStore) -> None:
        """update reads, mutates and writes back."""
        session = Session(id="s1", title="t", agent_id="a")

        store.update(Slot.CHAT_SESSIONS, SESSIONS, list, lambda current: [*current, session])
        result = store.update(
            Slot.CHAT_SESSIONS, SESSIONS, list, lambda current: [*current, session]
        )

        assert len(result) == 2
        assert store.load(Slot.CHAT_SESSIONS, SESSIONS, list) == result

    def test_clear_removes_slot(self, store: StateStore) -> None:
        """Cleared slots load as default again."""
        store.save(Slot.CONNECTION, CONNECTION, ConnectionSettings(base_url="http://b"))

        store.clear(Slot.CONNECTION)
        store.clear(Slot.CONNECTION)

        assert not store.exists(Slot.CONNECTION)

    def test_unwritable_directory_raises(self, tmp_path: Path) -> None:
        """Write failures surface as PersistenceError."""
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        store = StateStore(blocker / "state")

        with pytest.raises(PersistenceError, match="Failed to write"):
            store.save(Slot.AGENTS, SESSIONS, [])
