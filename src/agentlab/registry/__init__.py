"""Agent lifecycle: drafts, publishing and version history."""

from agentlab.registry.registry import AgentRegistry, default_agents

__all__ = [
    "AgentRegistry",
    "default_agents",
]
