"""Tests for the chat session manager."""

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import TypeAdapter

from agentlab.chat.manager import LANGUAGE_DIRECTIVES, ChatSessionManager, export_filename
from agentlab.chat.streamer import ResponseStreamer
from agentlab.exceptions import ConfigurationError
from agentlab.models.agent import AgentConfig
from agentlab.models.chat import Attachment, Message, Role, Session
from agentlab.models.config import ChatSettings
from agentlab.persistence import Slot, StateStore
from agentlab.registry import AgentRegistry
from agentlab.remote.client import ChunkCallback, CompleteCallback, ErrorCallback


class FakeStreamer(ResponseStreamer):
    """Echoes the prompt, optionally pausing mid-stream until released."""

    def __init__(self, error: Exception | None = None, paused: bool = False) -> None:
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        if not paused:
            self.release.set()

    async def stream_response(
        self,
        agent: AgentConfig,
        history: list[Message],
        text: str,
        attachments: list[Attachment],
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        self.calls.append({"agent": agent, "history": history, "text": text})
        on_chunk("Ech")
        self.started.set()
        await self.release.wait()
        if self.error is not None:
            on_error(self.error)
            return
        on_complete(f"Echo: {text}", {"chunks": 2})


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    """Create a store in a fresh state directory."""
    return StateStore(tmp_path / "state")


@pytest.fixture
def registry(store: StateStore) -> AgentRegistry:
    """Registry seeded with the default agents."""
    return AgentRegistry(store)


@pytest.fixture
def streamer() -> FakeStreamer:
    """Streamer that completes immediately."""
    return FakeStreamer()


@pytest.fixture
def manager(
    store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
) -> ChatSessionManager:
    """Manager without a suggestion generator."""
    return ChatSessionManager(store, registry, streamer)


class TestSendMessage:
    """Tests for sending messages."""

    @pytest.mark.asyncio
    async def test_first_message_creates_session(self, manager: ChatSessionManager) -> None:
        """A send without a session starts one titled from the text."""
        reply = await manager.send_message("Hello there")

        session = manager.current_session
        assert session is not None
        assert session.title == "Hello there"
        assert session.agent_id == "general-assistant"
        assert [m.role for m in session.messages] == [Role.USER, Role.MODEL]
        assert reply is not None
        assert reply.text == "Echo: Hello there"
        assert not reply.is_streaming
        assert reply.metrics == {"chunks": 2}
        assert reply.agent_name == "General Assistant"

    @pytest.mark.asyncio
    async def test_long_title_is_truncated(self, manager: ChatSessionManager) -> None:
        """Titles keep the first 30 characters."""
        text = "Please explain the theory of relativity in detail"

        await manager.send_message(text)

        assert manager.current_session is not None
        assert manager.current_session.title == text[:30] + "..."

    @pytest.mark.asyncio
    async def test_history_passed_to_streamer(
        self, manager: ChatSessionManager, streamer: FakeStreamer
    ) -> None:
        """Later sends see earlier turns, but not the new prompt."""
        await manager.send_message("One")
        await manager.send_message("Two")

        history = streamer.calls[1]["history"]
        assert [m.text for m in history] == ["One", "Echo: One"]
        assert streamer.calls[1]["text"] == "Two"

    @pytest.mark.asyncio
    async def test_language_directive_appended(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """The reply language is appended to the system instruction."""
        manager = ChatSessionManager(
            store, registry, streamer, settings=ChatSettings(language="zh")
        )

        reply = await manager.send_message("你好")

        agent = streamer.calls[0]["agent"]
        assert agent.system_instruction.endswith(LANGUAGE_DIRECTIVES["zh"])
        assert reply is not None
        assert reply.agent_name == "通用助手"

    @pytest.mark.asyncio
    async def test_model_override(
        self, manager: ChatSessionManager, streamer: FakeStreamer
    ) -> None:
        """A selected model replaces the agent's own."""
        manager.set_model("special-model")

        await manager.send_message("Hi")

        assert streamer.calls[0]["agent"].model == "special-model"

    @pytest.mark.asyncio
    async def test_error_becomes_message_text(
        self, store: StateStore, registry: AgentRegistry
    ) -> None:
        """Stream errors end the reply with an error text."""
        manager = ChatSessionManager(store, registry, FakeStreamer(error=RuntimeError("offline")))

        reply = await manager.send_message("Hi")

        assert reply is not None
        assert reply.text == "Error: offline"
        assert not reply.is_streaming

    @pytest.mark.asyncio
    async def test_completed_reply_counts_interaction(
        self, manager: ChatSessionManager, registry: AgentRegistry
    ) -> None:
        """Each completed reply is counted for the agent."""
        await manager.send_message("Hi")

        agent = registry.get("general-assistant")
        assert agent is not None
        assert agent.metrics.interaction_count == 1

    @pytest.mark.asyncio
    async def test_without_chat_model_raises(
        self, store: StateStore, registry: AgentRegistry
    ) -> None:
        """Sending needs a configured chat model and creates nothing otherwise."""
        manager = ChatSessionManager(store, registry, None)

        with pytest.raises(ConfigurationError):
            await manager.send_message("Hi")
        assert manager.sessions == []

    @pytest.mark.asyncio
    async def test_sessions_survive_reload(
        self, manager: ChatSessionManager, store: StateStore, registry: AgentRegistry
    ) -> None:
        """Sessions are restored from the state directory."""
        await manager.send_message("Hi")

        reloaded = ChatSessionManager(store, registry, FakeStreamer())

        assert reloaded.sessions == manager.sessions
        assert reloaded.current_session_id == manager.current_session_id


class TestSessionOrdering:
    """Tests for session ordering and navigation."""

    @pytest.mark.asyncio
    async def test_mutated_session_moves_to_front(self, manager: ChatSessionManager) -> None:
        """Any change to a session puts it first."""
        await manager.send_message("First")
        first_id = manager.current_session_id
        manager.new_chat()
        await manager.send_message("Second")
        assert manager.sessions[0].title == "Second"

        assert first_id is not None
        manager.select_session(first_id)
        await manager.send_message("Again")

        assert manager.sessions[0].id == first_id

    @pytest.mark.asyncio
    async def test_feedback_moves_session_to_front(self, manager: ChatSessionManager) -> None:
        """Feedback is a message mutation too."""
        reply = await manager.send_message("First")
        first_id = manager.current_session_id
        manager.new_chat()
        await manager.send_message("Second")

        assert first_id is not None and reply is not None
        manager.select_session(first_id)
        manager.set_feedback(reply.id, "up")

        assert manager.sessions[0].id == first_id
        assert manager.messages[-1].feedback == "up"

    @pytest.mark.asyncio
    async def test_select_session_switches_agent(self, manager: ChatSessionManager) -> None:
        """Selecting a session activates the agent it belongs to."""
        manager.change_agent("code-reviewer")
        await manager.send_message("Review this")
        reviewer_session = manager.current_session_id
        manager.change_agent("general-assistant")

        assert reviewer_session is not None
        manager.select_session(reviewer_session)

        assert manager.active_agent is not None
        assert manager.active_agent.id == "code-reviewer"

    @pytest.mark.asyncio
    async def test_delete_current_session(self, manager: ChatSessionManager) -> None:
        """Deleting the current session leaves none selected."""
        await manager.send_message("Hi")
        session_id = manager.current_session_id
        assert session_id is not None

        manager.delete_session(session_id)

        assert manager.sessions == []
        assert manager.current_session is None
        assert manager.messages == []

    @pytest.mark.asyncio
    async def test_clear_chat(self, manager: ChatSessionManager) -> None:
        """Clearing keeps the session but drops its messages."""
        await manager.send_message("Hi")

        manager.clear_chat()

        assert manager.current_session is not None
        assert manager.messages == []


class TestEditAndDelete:
    """Tests for message edits and deletions."""

    @pytest.mark.asyncio
    async def test_edit_discards_later_messages(
        self, manager: ChatSessionManager, streamer: FakeStreamer
    ) -> None:
        """Editing regenerates from the edited message."""
        await manager.send_message("One")
        await manager.send_message("Two")
        first_user = manager.messages[0]

        await manager.edit_message(first_user.id, "Uno")

        assert [m.text for m in manager.messages] == ["Uno", "Echo: Uno"]
        assert manager.messages[0].id == first_user.id
        assert streamer.calls[-1]["history"] == []

    @pytest.mark.asyncio
    async def test_delete_user_message_removes_reply(self, manager: ChatSessionManager) -> None:
        """A user message and the reply after it go together."""
        await manager.send_message("One")
        await manager.send_message("Two")

        manager.delete_message(manager.messages[0].id)

        assert [m.text for m in manager.messages] == ["Two", "Echo: Two"]

    @pytest.mark.asyncio
    async def test_delete_model_message_removes_prompt(self, manager: ChatSessionManager) -> None:
        """A reply and the user message before it go together."""
        await manager.send_message("One")
        await manager.send_message("Two")

        manager.delete_message(manager.messages[3].id)

        assert [m.text for m in manager.messages] == ["One", "Echo: One"]

    def test_delete_trailing_unpaired_user_message(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """A user message without a reply is removed alone."""
        messages = [
            Message(id="u1", role=Role.USER, text="One"),
            Message(id="m1", role=Role.MODEL, text="Echo: One"),
            Message(id="u2", role=Role.USER, text="Two"),
        ]
        store.save(
            Slot.CHAT_SESSIONS,
            TypeAdapter(list[Session]),
            [Session(id="s1", title="One", agent_id="general-assistant", messages=messages)],
        )
        manager = ChatSessionManager(store, registry, streamer)

        manager.delete_message("u2")

        assert [m.id for m in manager.messages] == ["u1", "m1"]


class TestCancellation:
    """Tests for in-flight stream cancellation."""

    @pytest.mark.asyncio
    async def test_switching_session_cancels_stream(
        self, store: StateStore, registry: AgentRegistry
    ) -> None:
        """Leaving a session keeps the partial reply and stops streaming."""
        streamer = FakeStreamer(paused=True)
        manager = ChatSessionManager(store, registry, streamer)

        task = asyncio.create_task(manager.send_message("Hi"))
        await streamer.started.wait()
        assert manager.is_streaming
        session_id = manager.current_session_id

        manager.new_chat()
        reply = await task

        assert reply is not None
        assert reply.text == "Ech"
        assert not reply.is_streaming
        assert not manager.is_streaming
        assert session_id is not None
        manager.select_session(session_id)
        assert manager.messages[-1].text == "Ech"

    @pytest.mark.asyncio
    async def test_deleting_streaming_message_drops_late_writes(
        self, store: StateStore, registry: AgentRegistry
    ) -> None:
        """A deleted placeholder is not resurrected by its stream."""
        streamer = FakeStreamer(paused=True)
        manager = ChatSessionManager(store, registry, streamer)

        task = asyncio.create_task(manager.send_message("Hi"))
        await streamer.started.wait()
        manager.delete_message(manager.messages[0].id)
        streamer.release.set()
        reply = await task

        assert reply is None
        assert manager.messages == []


class TestSuggestions:
    """Tests for follow-up suggestions."""

    @pytest.mark.asyncio
    async def test_suggestions_after_reply(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """A completed reply produces suggestions for the full conversation."""
        generator = MagicMock()
        generator.generate = AsyncMock(return_value=["Why?", "How?"])
        manager = ChatSessionManager(store, registry, streamer, generator)

        await manager.send_message("Hi")

        assert await manager.wait_for_suggestions() == ["Why?", "How?"]
        assert not manager.is_generating_suggestions
        conversation = generator.generate.call_args.args[0]
        assert [m.text for m in conversation] == ["Hi", "Echo: Hi"]

    @pytest.mark.asyncio
    async def test_suggestions_cleared_on_navigation(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """Suggestions belong to the turn that produced them."""
        generator = MagicMock()
        generator.generate = AsyncMock(return_value=["Why?"])
        manager = ChatSessionManager(store, registry, streamer, generator)
        await manager.send_message("Hi")

        manager.new_chat()

        assert manager.suggestions == []

    @pytest.mark.asyncio
    async def test_clear_suggestions(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """Suggestions can be dismissed explicitly."""
        generator = MagicMock()
        generator.generate = AsyncMock(return_value=["Why?"])
        manager = ChatSessionManager(store, registry, streamer, generator)
        await manager.send_message("Hi")
        await manager.wait_for_suggestions()

        manager.clear_suggestions()

        assert manager.suggestions == []

    @pytest.mark.asyncio
    async def test_no_suggestions_after_error(
        self, store: StateStore, registry: AgentRegistry
    ) -> None:
        """Failed replies do not ask for suggestions."""
        generator = MagicMock()
        generator.generate = AsyncMock(return_value=["Why?"])
        manager = ChatSessionManager(
            store, registry, FakeStreamer(error=RuntimeError("x")), generator
        )

        await manager.send_message("Hi")

        generator.generate.assert_not_called()
        assert manager.suggestions == []

    @pytest.mark.asyncio
    async def test_reply_finishes_before_suggestions(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """The turn is over while suggestions are still being generated."""
        gate = asyncio.Event()

        async def gated(conversation: list[Message], language: str) -> list[str]:
            await gate.wait()
            return ["Why?"]

        generator = MagicMock()
        generator.generate = AsyncMock(side_effect=gated)
        manager = ChatSessionManager(store, registry, streamer, generator)

        reply = await asyncio.wait_for(manager.send_message("hello"), timeout=1)

        assert reply is not None
        assert reply.text == "Echo: hello"
        assert reply.is_streaming is False
        assert manager.is_streaming is False
        assert manager.is_generating_suggestions is True
        assert manager.suggestions == []

        gate.set()
        assert await manager.wait_for_suggestions() == ["Why?"]
        assert manager.is_generating_suggestions is False

    @pytest.mark.asyncio
    async def test_pending_suggestions_are_cancelled(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """Leaving the turn stops suggestion generation."""
        gate = asyncio.Event()

        async def gated(conversation: list[Message], language: str) -> list[str]:
            await gate.wait()
            return ["Why?"]

        generator = MagicMock()
        generator.generate = AsyncMock(side_effect=gated)
        manager = ChatSessionManager(store, registry, streamer, generator)
        await manager.send_message("hello")

        manager.new_chat()
        gate.set()

        assert await manager.wait_for_suggestions() == []
        assert manager.is_generating_suggestions is False

    @pytest.mark.asyncio
    async def test_generator_failure_is_logged(
        self, store: StateStore, registry: AgentRegistry, streamer: FakeStreamer
    ) -> None:
        """Suggestion failures leave the list empty."""
        generator = MagicMock()
        generator.generate = AsyncMock(side_effect=RuntimeError("x"))
        manager = ChatSessionManager(store, registry, streamer, generator)

        reply = await manager.send_message("Hi")

        assert reply is not None
        assert await manager.wait_for_suggestions() == []
        assert not manager.is_generating_suggestions


class TestExport:
    """Tests for markdown export."""

    def test_export_without_messages_is_noop(
        self, manager: ChatSessionManager, tmp_path: Path
    ) -> None:
        """Nothing is written for an empty chat."""
        out = tmp_path / "exports"

        assert manager.export_chat(out) is None
        assert not out.exists()

    @pytest.mark.asyncio
    async def test_export_writes_markdown(
        self, manager: ChatSessionManager, tmp_path: Path
    ) -> None:
        """Each message becomes a labelled block."""
        await manager.send_message("Hello there")

        path = manager.export_chat(tmp_path)

        assert path == tmp_path / "hello_there.md"
        content = path.read_text(encoding="utf-8")
        assert content.startswith("### User (")
        assert "\n---\n\n### General Assistant (" in content
        assert "Echo: Hello there" in content

    def test_export_filename(self) -> None:
        """Unsafe characters become underscores."""
        assert export_filename("What's up?") == "what_s_up_.md"
        assert export_filename("") == "chat_export.md"
