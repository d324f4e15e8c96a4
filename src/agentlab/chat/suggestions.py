"""Follow-up suggestion generation.

After a completed model turn, proposes short questions the user might ask
next.
"""

from pydantic import BaseModel, ConfigDict

from agentlab.judge.prompts import format_transcript
from agentlab.models.chat import Message as ChatMessage
from agentlab.models.config import Language
from agentlab.providers.base import LLMProvider, Message

MAX_SUGGESTIONS = 3

LANGUAGE_NAMES = {"en": "English", "zh": "Simplified Chinese"}

SUGGESTIONS_PROMPT = """\
You help a user continue a conversation with an AI assistant.

## Conversation So Far
{conversation_transcript}

## Your Task
Propose {count} short follow-up questions (under 12 words each) the user is
likely to ask next, written in {language}.

Respond with a pure JSON object (no markdown):
{{"suggestions": ["...", "...", "..."]}}
"""


class ChatSuggestions(BaseModel):
    """Structured output for follow-up suggestions."""

    model_config = ConfigDict(extra="forbid")

    suggestions: list[str]


class SuggestionGenerator:
    """LLM-backed follow-up suggestion generator."""

    def __init__(self, provider: LLMProvider) -> None:
        self._provider = provider

    async def generate(self, messages: list[ChatMessage], language: Language = "en") -> list[str]:
        """Suggest follow-up questions for a conversation.

        Raises:
            LLMProviderError: If the provider call or parsing fails.
        """
        prompt = SUGGESTIONS_PROMPT.format(
            conversation_transcript=format_transcript(messages),
            count=MAX_SUGGESTIONS,
            language=LANGUAGE_NAMES[language],
        )
        result = await self._provider.generate_structured(
            messages=[Message(role="user", content=prompt)],
            response_schema=ChatSuggestions,
        )
        return [s.strip() for s in result.suggestions if s.strip()][:MAX_SUGGESTIONS]
