"""Chat session data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

TITLE_MAX_LENGTH = 30


class Role(str, Enum):
    """Author of a chat message."""

    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


class Attachment(BaseModel):
    """File attached to a user message."""

    name: str
    mime_type: str
    data: str  # base64 encoded


class Message(BaseModel):
    """Single message in a chat session.

    A model message moves from an empty placeholder (``is_streaming=True``)
    through progressively longer text to its final text
    (``is_streaming=False``).
    """

    id: str
    role: Role
    text: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)
    is_streaming: bool = False
    agent_name: str | None = None
    feedback: Literal["up", "down"] | None = None
    metrics: dict[str, Any] | None = None
    logs: list[str] = Field(default_factory=list)


class Session(BaseModel):
    """Independent conversation thread bound to an agent."""

    id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    agent_id: str
    last_modified: datetime = Field(default_factory=datetime.now)

    def find_message(self, message_id: str) -> int:
        """Index of a message by id, or -1."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return -1


def derive_title(text: str) -> str:
    """Session title from the first user message."""
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + "..."
    return text
