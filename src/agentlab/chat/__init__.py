"""Chat sessions, streamed replies and the agent playground."""

from agentlab.chat.manager import ChatSessionManager, export_filename
from agentlab.chat.playground import PlaygroundManager
from agentlab.chat.streamer import ProviderResponseStreamer, ResponseStreamer, build_messages
from agentlab.chat.suggestions import ChatSuggestions, SuggestionGenerator

__all__ = [
    "ChatSessionManager",
    "ChatSuggestions",
    "PlaygroundManager",
    "ProviderResponseStreamer",
    "ResponseStreamer",
    "SuggestionGenerator",
    "build_messages",
    "export_filename",
]
