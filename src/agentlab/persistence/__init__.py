"""Persistence module for storing console state in named JSON slots."""

from agentlab.persistence.storage import Slot, StateStore

__all__ = [
    "Slot",
    "StateStore",
]
