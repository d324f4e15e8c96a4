"""Streamed response generation for chat sessions."""

import base64
import binascii
import logging
import time
from abc import ABC, abstractmethod

from agentlab.models.agent import AgentConfig
from agentlab.models.chat import Attachment, Role
from agentlab.models.chat import Message as ChatMessage
from agentlab.providers.base import LLMProvider, Message
from agentlab.remote.client import ChunkCallback, CompleteCallback, ErrorCallback

logger = logging.getLogger(__name__)

ROLE_MAP = {Role.USER: "user", Role.MODEL: "assistant", Role.SYSTEM: "system"}


class ResponseStreamer(ABC):
    """Generates an agent reply, pushing cumulative text to callbacks."""

    @abstractmethod
    async def stream_response(
        self,
        agent: AgentConfig,
        history: list[ChatMessage],
        text: str,
        attachments: list[Attachment],
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Generate a reply to ``text`` given the prior ``history``.

        ``on_chunk`` receives the full text so far. Exactly one of
        ``on_complete`` or ``on_error`` fires before returning.
        """
        ...


def render_attachments(attachments: list[Attachment]) -> str:
    """Inline text attachments and reference the others by name."""
    parts: list[str] = []
    for attachment in attachments:
        if attachment.mime_type.startswith("text/"):
            try:
                body = base64.b64decode(attachment.data).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                logger.warning("Could not decode attachment %s", attachment.name)
            else:
                parts.append(f"--- {attachment.name} ---\n{body}")
                continue
        parts.append(f"[Attachment: {attachment.name} ({attachment.mime_type})]")
    return "\n\n".join(parts)


def build_messages(
    agent: AgentConfig,
    history: list[ChatMessage],
    text: str,
    attachments: list[Attachment],
) -> list[Message]:
    """Assemble the provider conversation for one reply."""
    messages = [Message(role="system", content=agent.system_instruction)]
    for past in history:
        if past.role == Role.MODEL and (past.is_streaming or not past.text):
            continue
        content = past.text
        if past.attachments:
            content = f"{content}\n\n{render_attachments(past.attachments)}"
        messages.append(Message(role=ROLE_MAP[past.role], content=content))

    content = text
    if attachments:
        content = f"{text}\n\n{render_attachments(attachments)}"
    messages.append(Message(role="user", content=content))
    return messages


class ProviderResponseStreamer(ResponseStreamer):
    """Streams replies straight from an LLM provider using the agent's instruction."""

    def __init__(self, provider: LLMProvider) -> None:
        """Initialize the streamer.

        Args:
            provider: LLM provider used for chat replies.
        """
        self._provider = provider

    async def stream_response(
        self,
        agent: AgentConfig,
        history: list[ChatMessage],
        text: str,
        attachments: list[Attachment],
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Stream a reply, converting provider failures into ``on_error``."""
        messages = build_messages(agent, history, text, attachments)
        started = time.monotonic()
        output = ""
        chunks = 0
        try:
            async for delta in self._provider.stream(messages, model=agent.model):
                output += delta
                chunks += 1
                on_chunk(output)
        except Exception as e:
            logger.warning("Chat stream for agent %s failed: %s", agent.id, e)
            on_error(e)
            return

        on_complete(
            output,
            {
                "duration_seconds": round(time.monotonic() - started, 3),
                "chunks": chunks,
                "model": agent.model or self._provider.config.model,
            },
        )
