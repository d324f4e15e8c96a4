"""Agent playground.

Per-agent debug sessions run directly against the remote backend, so an
agent can be exercised exactly as it is served. Sessions live in memory
only.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from agentlab.exceptions import ConfigurationError
from agentlab.models.chat import Attachment, Message, Role, Session, derive_title
from agentlab.models.config import ChatSettings
from agentlab.registry.registry import AgentRegistry
from agentlab.remote.client import RemoteExecutionClient

logger = logging.getLogger(__name__)


class PlaygroundManager:
    """Debug sessions for trying agents against the remote backend."""

    def __init__(
        self,
        registry: AgentRegistry,
        remote: RemoteExecutionClient | None,
        settings: ChatSettings | None = None,
    ) -> None:
        self._registry = registry
        self._remote = remote
        self._settings = settings or ChatSettings()
        self._sessions: list[Session] = []
        self._current: dict[str, str] = {}  # agent id -> session id
        self._remote_sessions: dict[str, str] = {}  # session id -> backend session id

    def sessions_for(self, agent_id: str) -> list[Session]:
        """An agent's debug sessions, most recently modified first."""
        sessions = [s for s in self._sessions if s.agent_id == agent_id]
        return sorted(sessions, key=lambda s: s.last_modified, reverse=True)

    def active_session(self, agent_id: str) -> Session:
        """The agent's selected session, creating the first one if needed."""
        sessions = self.sessions_for(agent_id)
        selected = self._current.get(agent_id)
        for session in sessions:
            if session.id == selected:
                return session
        if sessions:
            self._current[agent_id] = sessions[0].id
            return sessions[0]
        return self.new_session(agent_id)

    def new_session(self, agent_id: str) -> Session:
        """Start another debug session for an agent."""
        count = len(self.sessions_for(agent_id))
        session = Session(
            id=uuid.uuid4().hex,
            title=f"Debug Session {count + 1}",
            agent_id=agent_id,
        )
        self._sessions.insert(0, session)
        self._current[agent_id] = session.id
        return session

    def select_session(self, session_id: str) -> None:
        for session in self._sessions:
            if session.id == session_id:
                self._current[session.agent_id] = session_id
                return

    def delete_session(self, session_id: str) -> None:
        """Delete a debug session, selecting the agent's next one."""
        session = next((s for s in self._sessions if s.id == session_id), None)
        if session is None:
            return
        self._sessions = [s for s in self._sessions if s.id != session_id]
        self._remote_sessions.pop(session_id, None)
        if self._current.get(session.agent_id) == session_id:
            remaining = self.sessions_for(session.agent_id)
            if remaining:
                self._current[session.agent_id] = remaining[0].id
            else:
                self._current.pop(session.agent_id, None)

    def _update(self, session_id: str, **changes: Any) -> None:
        self._sessions = [
            s.model_copy(update=changes) if s.id == session_id else s for s in self._sessions
        ]

    def _update_message(self, session_id: str, message_id: str, **changes: Any) -> None:
        for session in self._sessions:
            if session.id != session_id:
                continue
            messages = [
                m.model_copy(update=changes) if m.id == message_id else m
                for m in session.messages
            ]
            self._update(session_id, messages=messages, last_modified=datetime.now())
            return

    async def send(
        self,
        agent_id: str,
        text: str,
        attachments: list[Attachment] | None = None,
    ) -> Message | None:
        """Send a message in the agent's active debug session.

        Returns:
            The final model message, or None for an unknown agent.

        Raises:
            ConfigurationError: If the remote backend is not configured.
        """
        agent = self._registry.get(agent_id)
        if agent is None:
            return None
        if self._remote is None:
            msg = "Please configure the remote service URL in settings."
            raise ConfigurationError(msg)

        session = self.active_session(agent_id)
        title = derive_title(text) if not session.messages else session.title
        user_message = Message(
            id=uuid.uuid4().hex, role=Role.USER, text=text, attachments=attachments or []
        )
        placeholder = Message(
            id=uuid.uuid4().hex,
            role=Role.MODEL,
            is_streaming=True,
            agent_name=agent.display_name(self._settings.language),
        )
        self._update(
            session.id,
            title=title,
            messages=[*session.messages, user_message, placeholder],
            last_modified=datetime.now(),
        )

        def on_chunk(chunk: str) -> None:
            self._update_message(session.id, placeholder.id, text=chunk)

        def on_complete(full_text: str, metrics: dict[str, Any] | None) -> None:
            self._update_message(
                session.id, placeholder.id, text=full_text, is_streaming=False, metrics=metrics
            )

        def on_error(error: Exception) -> None:
            self._update_message(
                session.id,
                placeholder.id,
                text=f"Error: {error}",
                is_streaming=False,
                logs=[str(error)],
            )

        try:
            remote_session_id = self._remote_sessions.get(session.id)
            if remote_session_id is None:
                remote_session = await self._remote.create_session(agent.id, title)
                remote_session_id = remote_session.session_id
                self._remote_sessions[session.id] = remote_session_id
            await self._remote.create_agent_run_stream(
                agent.id, remote_session_id, text, on_chunk, on_complete, on_error
            )
        except Exception as e:
            logger.exception("Playground run failed for agent %s", agent.id)
            on_error(e)

        current = next((s for s in self._sessions if s.id == session.id), None)
        if current is None:
            return None
        index = current.find_message(placeholder.id)
        return current.messages[index] if index != -1 else None
