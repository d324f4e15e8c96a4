"""Chat session manager.

Owns the conversation threads, drives streamed reply assembly and the
edit/delete/regenerate semantics of messages.

Every stream runs as an ``asyncio.Task`` keyed by (session id, message id).
Starting a new generation in a session, or leaving the session, cancels its
in-flight stream; a cancelled reply keeps the text received so far. Writes
for messages that no longer exist are dropped.

Follow-up suggestions are generated in a separate task once a turn has
finished, so a reply is complete before suggestions arrive.
"""

import asyncio
import logging
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import TypeAdapter

from agentlab.chat.streamer import ResponseStreamer
from agentlab.chat.suggestions import SuggestionGenerator
from agentlab.exceptions import ConfigurationError
from agentlab.models.agent import AgentConfig
from agentlab.models.chat import Attachment, Message, Role, Session, derive_title
from agentlab.models.config import ChatSettings
from agentlab.persistence.storage import Slot, StateStore
from agentlab.registry.registry import AgentRegistry

logger = logging.getLogger(__name__)

LANGUAGE_DIRECTIVES = {
    "en": "\n\nPlease answer in English unless requested otherwise.",
    "zh": "\n\n请主要使用中文回答，除非用户要求其他语言。",
}
USER_LABELS = {"en": "User", "zh": "用户"}
DEFAULT_EXPORT_NAME = "chat-export"

_SESSIONS_ADAPTER = TypeAdapter(list[Session])


def export_filename(title: str) -> str:
    """File name for an exported chat."""
    safe = re.sub(r"[^a-z0-9]", "_", title or DEFAULT_EXPORT_NAME, flags=re.IGNORECASE)
    return f"{safe.lower()}.md"


class ChatSessionManager:
    """Multi-session chat state machine.

    Sessions are kept most-recently-modified first; any mutation moves the
    session to the front.
    """

    def __init__(
        self,
        store: StateStore,
        registry: AgentRegistry,
        streamer: ResponseStreamer | None,
        suggestions: SuggestionGenerator | None = None,
        settings: ChatSettings | None = None,
    ) -> None:
        """Initialize the manager and restore saved sessions.

        Args:
            store: State store holding the chat sessions slot.
            registry: Agent registry used for live agent lookup.
            streamer: Reply generator, or None when no chat model is configured.
            suggestions: Optional follow-up suggestion generator.
            settings: Language and user display preferences.
        """
        self._store = store
        self._registry = registry
        self._streamer = streamer
        self._suggestion_generator = suggestions
        self._settings = settings or ChatSettings()

        self._sessions: list[Session] = store.load(Slot.CHAT_SESSIONS, _SESSIONS_ADAPTER, list)
        self._current_session_id: str | None = None
        self._active_agent_id: str | None = None
        self._model_id: str | None = None

        self._suggestions: list[str] = []
        self._is_generating_suggestions = False
        self._suggestion_epoch = 0
        self._suggestion_task: asyncio.Task[None] | None = None
        self._streams: dict[tuple[str, str], asyncio.Task[None]] = {}

        if self._sessions:
            self._current_session_id = self._sessions[0].id
            self._active_agent_id = self._sessions[0].agent_id
        if self.active_agent is None and registry.agents:
            self._active_agent_id = registry.agents[0].id

    @property
    def language(self) -> str:
        return self._settings.language

    @property
    def sessions(self) -> list[Session]:
        """Sessions, most recently modified first."""
        return list(self._sessions)

    @property
    def current_session_id(self) -> str | None:
        return self._current_session_id

    @property
    def current_session(self) -> Session | None:
        if self._current_session_id is None:
            return None
        return self._find_session(self._current_session_id)

    @property
    def messages(self) -> list[Message]:
        """Messages of the current session."""
        session = self.current_session
        return list(session.messages) if session else []

    @property
    def active_agent(self) -> AgentConfig | None:
        """The active agent, looked up live so renames show immediately."""
        if self._active_agent_id is None:
            return None
        return self._registry.get(self._active_agent_id)

    @property
    def model_id(self) -> str | None:
        """Model override, else the active agent's model."""
        if self._model_id:
            return self._model_id
        agent = self.active_agent
        return agent.model if agent else None

    @property
    def is_streaming(self) -> bool:
        """Whether the current session has a reply in flight."""
        return any(
            key[0] == self._current_session_id and not task.done()
            for key, task in self._streams.items()
        )

    @property
    def suggestions(self) -> list[str]:
        return list(self._suggestions)

    @property
    def is_generating_suggestions(self) -> bool:
        return self._is_generating_suggestions

    def _require_agent(self) -> AgentConfig:
        if self._streamer is None:
            msg = "Chat model provider not configured."
            raise ConfigurationError(msg)
        agent = self.active_agent
        if agent is None:
            msg = "No agent available to answer."
            raise ConfigurationError(msg)
        return agent

    def _find_session(self, session_id: str) -> Session | None:
        return next((s for s in self._sessions if s.id == session_id), None)

    def _persist(self) -> None:
        self._store.save(Slot.CHAT_SESSIONS, _SESSIONS_ADAPTER, self._sessions)

    def _touch(self, session_id: str, **changes: Any) -> Session | None:
        """Apply changes to a session, stamp it and move it to the front."""
        session = self._find_session(session_id)
        if session is None:
            return None
        updated = session.model_copy(update={**changes, "last_modified": datetime.now()})
        self._sessions = [updated, *(s for s in self._sessions if s.id != session_id)]
        self._persist()
        return updated

    def _update_message(self, session_id: str, message_id: str, **changes: Any) -> None:
        session = self._find_session(session_id)
        if session is None or session.find_message(message_id) == -1:
            logger.debug("Dropping update for vanished message %s", message_id)
            return
        messages = [
            m.model_copy(update=changes) if m.id == message_id else m for m in session.messages
        ]
        self._touch(session_id, messages=messages)

    def _cancel_streams(self, session_id: str, message_ids: set[str] | None = None) -> None:
        for (stream_session, stream_message), task in list(self._streams.items()):
            if stream_session != session_id or task.done():
                continue
            if message_ids is None or stream_message in message_ids:
                task.cancel()

    def clear_suggestions(self) -> None:
        """Invalidate current and pending suggestions."""
        if self._suggestion_task is not None and not self._suggestion_task.done():
            self._suggestion_task.cancel()
        self._suggestion_task = None
        self._suggestions = []
        self._is_generating_suggestions = False
        self._suggestion_epoch += 1

    async def wait_for_suggestions(self) -> list[str]:
        """Wait for pending suggestion generation and return the result."""
        task = self._suggestion_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return self.suggestions

    def change_agent(self, agent_id: str) -> None:
        """Make another agent active for new sessions."""
        if self._registry.get(agent_id) is None:
            return
        self._active_agent_id = agent_id
        self._model_id = None

    def set_model(self, model_id: str | None) -> None:
        """Override the model used for replies."""
        self._model_id = model_id

    def new_chat(self) -> None:
        """Deselect the current session; the next send starts a new one."""
        if self._current_session_id:
            self._cancel_streams(self._current_session_id)
        self._current_session_id = None
        self.clear_suggestions()

    def select_session(self, session_id: str) -> None:
        """Switch to a session and to the agent it is bound to."""
        session = self._find_session(session_id)
        if session is None:
            return
        if self._current_session_id and self._current_session_id != session_id:
            self._cancel_streams(self._current_session_id)
        self._current_session_id = session_id
        if self._registry.get(session.agent_id) is not None:
            self._active_agent_id = session.agent_id
        elif self._registry.agents:
            self._active_agent_id = self._registry.agents[0].id
        self._model_id = None
        self.clear_suggestions()

    def delete_session(self, session_id: str) -> None:
        """Delete a session, cancelling its in-flight reply."""
        self._cancel_streams(session_id)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        self._persist()
        if self._current_session_id == session_id:
            self._current_session_id = None
            self.clear_suggestions()

    def clear_chat(self) -> None:
        """Remove every message of the current session."""
        if not self._current_session_id:
            return
        self._cancel_streams(self._current_session_id)
        self._touch(self._current_session_id, messages=[])
        self.clear_suggestions()

    def set_feedback(self, message_id: str, feedback: Literal["up", "down"]) -> None:
        """Record a thumbs up/down on a message of the current session."""
        if self._current_session_id:
            self._update_message(self._current_session_id, message_id, feedback=feedback)

    async def send_message(
        self,
        text: str,
        attachments: list[Attachment] | None = None,
    ) -> Message | None:
        """Send a user message and stream the reply.

        Creates a session on first use. The user message is persisted before
        any network activity.

        Returns:
            The final model message, or None if it vanished meanwhile.

        Raises:
            ConfigurationError: If no agent or chat model is available.
        """
        agent = self._require_agent()

        attachments = attachments or []
        self.clear_suggestions()

        session = self.current_session
        if session is None:
            session = Session(id=uuid.uuid4().hex, title=derive_title(text), agent_id=agent.id)
            self._sessions.insert(0, session)
            self._current_session_id = session.id

        history = list(session.messages)
        user_message = Message(
            id=uuid.uuid4().hex,
            role=Role.USER,
            text=text,
            attachments=attachments,
        )
        self._touch(session.id, messages=[*history, user_message])
        return await self._generate(session.id, history, user_message)

    async def edit_message(self, message_id: str, new_text: str) -> Message | None:
        """Rewrite a message and regenerate from it, discarding later messages."""
        self._require_agent()
        session = self.current_session
        if session is None:
            return None
        index = session.find_message(message_id)
        if index == -1:
            return None

        history = session.messages[:index]
        edited = session.messages[index].model_copy(
            update={"text": new_text, "timestamp": datetime.now()}
        )
        self._cancel_streams(session.id)
        self._touch(session.id, messages=[*history, edited])
        return await self._generate(session.id, history, edited)

    def delete_message(self, message_id: str) -> None:
        """Delete a message together with its user/model counterpart."""
        session = self.current_session
        if session is None:
            return
        index = session.find_message(message_id)
        if index == -1:
            return

        messages = list(session.messages)
        start, end = index, index + 1
        role = messages[index].role
        if role == Role.USER:
            if index + 1 < len(messages) and messages[index + 1].role == Role.MODEL:
                end = index + 2
        elif role == Role.MODEL and index > 0 and messages[index - 1].role == Role.USER:
            start = index - 1

        removed = {m.id for m in messages[start:end]}
        del messages[start:end]
        self._cancel_streams(session.id, removed)
        self._touch(session.id, messages=messages)

        if not messages or messages[-1].role == Role.USER:
            self.clear_suggestions()

    async def _generate(
        self,
        session_id: str,
        history: list[Message],
        prompt: Message,
    ) -> Message | None:
        """Append a placeholder reply and stream into it until done or cancelled."""
        agent = self._require_agent()

        self._cancel_streams(session_id)
        self.clear_suggestions()

        placeholder = Message(
            id=uuid.uuid4().hex,
            role=Role.MODEL,
            is_streaming=True,
            agent_name=agent.display_name(self.language),
        )
        session = self._find_session(session_id)
        if session is None:
            return None
        self._touch(session_id, messages=[*session.messages, placeholder])

        configured = agent.model_copy(
            update={
                "system_instruction": agent.system_instruction
                + LANGUAGE_DIRECTIVES[self.language],
                "model": self.model_id,
            }
        )
        key = (session_id, placeholder.id)
        task = asyncio.create_task(
            self._stream(
                session_id, placeholder.id, configured, history, prompt, self._suggestion_epoch
            )
        )
        self._streams[key] = task
        task.add_done_callback(lambda _: self._streams.pop(key, None))
        await asyncio.wait({task})

        session = self._find_session(session_id)
        if session is None:
            return None
        index = session.find_message(placeholder.id)
        return session.messages[index] if index != -1 else None

    async def _stream(
        self,
        session_id: str,
        message_id: str,
        agent: AgentConfig,
        history: list[Message],
        prompt: Message,
        epoch: int,
    ) -> None:
        if self._streamer is None:
            return
        final_text: str | None = None

        def on_chunk(text: str) -> None:
            self._update_message(session_id, message_id, text=text)

        def on_complete(text: str, metrics: dict[str, Any] | None) -> None:
            nonlocal final_text
            final_text = text
            self._update_message(
                session_id, message_id, text=text, is_streaming=False, metrics=metrics
            )

        def on_error(error: Exception) -> None:
            self._update_message(
                session_id, message_id, text=f"Error: {error}", is_streaming=False
            )

        try:
            await self._streamer.stream_response(
                agent,
                history,
                prompt.text,
                prompt.attachments,
                on_chunk,
                on_complete,
                on_error,
            )
        except asyncio.CancelledError:
            self._update_message(session_id, message_id, is_streaming=False)
            raise
        except Exception as e:
            logger.exception("Reply generation failed in session %s", session_id)
            on_error(e)
            return

        if final_text is None:
            return
        self._registry.record_interaction(agent.id)

        reply = Message(id=message_id, role=Role.MODEL, text=final_text)
        self._schedule_suggestions(session_id, epoch, [*history, prompt, reply])

    def _schedule_suggestions(
        self,
        session_id: str,
        epoch: int,
        conversation: list[Message],
    ) -> None:
        """Start suggestion generation in the background after a finished turn."""
        if self._suggestion_generator is None:
            return
        if epoch != self._suggestion_epoch or session_id != self._current_session_id:
            return

        self._is_generating_suggestions = True
        self._suggestion_task = asyncio.create_task(
            self._refresh_suggestions(session_id, epoch, conversation)
        )

    async def _refresh_suggestions(
        self,
        session_id: str,
        epoch: int,
        conversation: list[Message],
    ) -> None:
        if self._suggestion_generator is None:
            return
        try:
            suggestions = await self._suggestion_generator.generate(conversation, self.language)
        except Exception as e:
            logger.warning("Failed to generate suggestions: %s", e)
            suggestions = []
        if epoch != self._suggestion_epoch or session_id != self._current_session_id:
            return
        self._suggestions = suggestions
        self._is_generating_suggestions = False

    def export_chat(self, directory: Path) -> Path | None:
        """Write the current session as a markdown document.

        Returns:
            Path of the written file, or None when there is nothing to export.
        """
        session = self.current_session
        if session is None or not session.messages:
            return None

        agent = self.active_agent
        agent_label = agent.display_name(self.language) if agent else "Agent"
        user_label = self._settings.user_name or USER_LABELS[self.language]

        blocks = []
        for message in session.messages:
            if message.role == Role.USER:
                label = user_label
            elif message.role == Role.MODEL:
                label = message.agent_name or agent_label
            else:
                label = "System"
            stamp = message.timestamp.strftime("%c")
            blocks.append(f"### {label} ({stamp})\n\n{message.text}\n")

        directory.mkdir(parents=True, exist_ok=True)
        path = directory / export_filename(session.title)
        path.write_text("\n---\n\n".join(blocks), encoding="utf-8")
        return path
