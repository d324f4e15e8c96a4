"""Slot storage implementation.

Each named slot is a single JSON document in the state directory. Every
write replaces the whole document; there is no cross-process coordination,
so the last writer wins.
"""

import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import TypeVar

from pydantic import TypeAdapter, ValidationError

from agentlab.exceptions import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Slot(str, Enum):
    """Named persisted slots."""

    AGENTS = "agents"
    CHAT_SESSIONS = "chat_sessions"
    EVAL_SUITES = "eval_suites"
    EVAL_RUNS = "eval_runs"
    CONNECTION = "connection"


class StateStore:
    """Reads and writes JSON-serializable state to named slots on disk."""

    def __init__(self, state_dir: Path) -> None:
        """Initialize the store.

        Args:
            state_dir: Directory holding one ``<slot>.json`` file per slot.
        """
        self._state_dir = state_dir

    @property
    def state_dir(self) -> Path:
        """Directory holding the slot files."""
        return self._state_dir

    def _slot_path(self, slot: Slot) -> Path:
        return self._state_dir / f"{slot.value}.json"

    def exists(self, slot: Slot) -> bool:
        """Whether a slot has ever been written."""
        return self._slot_path(slot).exists()

    def load(self, slot: Slot, adapter: TypeAdapter[T], default: Callable[[], T]) -> T:
        """Load and validate a slot.

        Missing or corrupt slots fall back to ``default()``; corruption is
        logged, never raised.

        Args:
            slot: Slot to read.
            adapter: Pydantic adapter describing the slot contents.
            default: Factory for the fallback value.

        Returns:
            The validated slot value, or the default.
        """
        path = self._slot_path(slot)
        if not path.exists():
            return default()

        try:
            return adapter.validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            logger.warning("Discarding unreadable %s state at %s: %s", slot.value, path, e)
            return default()

    def save(self, slot: Slot, adapter: TypeAdapter[T], value: T) -> Path:
        """Overwrite a slot with ``value``.

        Args:
            slot: Slot to write.
            adapter: Pydantic adapter describing the slot contents.
            value: New slot contents.

        Returns:
            Path of the written file.

        Raises:
            PersistenceError: If the slot cannot be written.
        """
        path = self._slot_path(slot)
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(adapter.dump_json(value, indent=2))
        except OSError as e:
            msg = f"Failed to write {slot.value} state to {path}: {e}"
            raise PersistenceError(msg) from e
        return path

    def update(
        self,
        slot: Slot,
        adapter: TypeAdapter[T],
        default: Callable[[], T],
        mutate: Callable[[T], T],
    ) -> T:
        """Read-modify-write a slot.

        Args:
            slot: Slot to update.
            adapter: Pydantic adapter describing the slot contents.
            default: Factory used when the slot is missing or corrupt.
            mutate: Function returning the new value from the current one.

        Returns:
            The value that was written.
        """
        value = mutate(self.load(slot, adapter, default))
        self.save(slot, adapter, value)
        return value

    def clear(self, slot: Slot) -> None:
        """Delete a slot file if present."""
        self._slot_path(slot).unlink(missing_ok=True)
