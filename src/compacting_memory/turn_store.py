"""Turn store — append-only, per-conversation ordered turn log."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable

from .turns import Turn, resolve_conversation_id

logger = logging.getLogger(__name__)

_DEFAULT_MAX_MESSAGES = 20


class StaleTurnsError(RuntimeError):
    """Raised when a conversation no longer starts with the expected turns."""


def _starts_with(turns: list[Turn], prefix: list[Turn]) -> bool:
    return len(turns) >= len(prefix) and all(a is b for a, b in zip(turns, prefix))


class TurnStore(ABC):
    """Abstract interface for conversation turn storage."""

    @property
    @abstractmethod
    def max_messages(self) -> int:
        """Upper bound on stored turns per conversation."""

    @abstractmethod
    def append(self, conversation_id: str | None, turn: Turn) -> None:
        """Append *turn*, evicting from the front if the bound is exceeded."""

    @abstractmethod
    def read_all(self, conversation_id: str | None) -> list[Turn]:
        """Return the conversation's turns in chronological order."""

    @abstractmethod
    def clear(self, conversation_id: str | None) -> None:
        """Remove every turn of the conversation. Idempotent."""

    def replace(self, conversation_id: str | None, turns: Iterable[Turn]) -> None:
        """Swap the whole turn sequence for *turns*.

        Subclasses should override this to make the swap atomic.
        """
        self.clear(conversation_id)
        for turn in turns:
            self.append(conversation_id, turn)

    def replace_prefix(
        self,
        conversation_id: str | None,
        expected_prefix: list[Turn],
        replacement: Turn,
    ) -> list[Turn]:
        """Swap *expected_prefix* for *replacement*, keeping every later turn.

        Raises :class:`StaleTurnsError` when the conversation no longer starts
        with *expected_prefix*. Returns the rewritten sequence. The default
        is a read-check-replace; subclasses should make it atomic.
        """
        key = resolve_conversation_id(conversation_id)
        current = self.read_all(key)
        if not _starts_with(current, expected_prefix):
            msg = f"conversation {key} changed under compaction"
            raise StaleTurnsError(msg)
        rewritten = [replacement, *current[len(expected_prefix):]]
        self.replace(key, rewritten)
        return rewritten

    @abstractmethod
    def conversation_ids(self) -> list[str]:
        """Return ids of conversations that currently hold turns."""


class InMemoryTurnStore(TurnStore):
    """Dict-of-lists store guarded by a single lock.

    Every public operation takes the lock, so each one is linearizable even
    when called outside of any per-conversation serialization.
    """

    def __init__(self, max_messages: int = _DEFAULT_MAX_MESSAGES) -> None:
        if max_messages <= 0:
            msg = "max_messages must be positive"
            raise ValueError(msg)
        self._max_messages = max_messages
        self._turns: dict[str, list[Turn]] = {}
        self._lock = threading.Lock()

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def append(self, conversation_id: str | None, turn: Turn) -> None:
        key = resolve_conversation_id(conversation_id)
        with self._lock:
            turns = self._turns.setdefault(key, [])
            turns.append(turn)
            self._evict(key, turns)

    def read_all(self, conversation_id: str | None) -> list[Turn]:
        key = resolve_conversation_id(conversation_id)
        with self._lock:
            return list(self._turns.get(key, ()))

    def clear(self, conversation_id: str | None) -> None:
        key = resolve_conversation_id(conversation_id)
        with self._lock:
            self._turns.pop(key, None)

    def replace(self, conversation_id: str | None, turns: Iterable[Turn]) -> None:
        key = resolve_conversation_id(conversation_id)
        new_turns = list(turns)
        with self._lock:
            if not new_turns:
                self._turns.pop(key, None)
                return
            self._turns[key] = new_turns
            self._evict(key, new_turns)

    def replace_prefix(
        self,
        conversation_id: str | None,
        expected_prefix: list[Turn],
        replacement: Turn,
    ) -> list[Turn]:
        key = resolve_conversation_id(conversation_id)
        with self._lock:
            current = self._turns.get(key, [])
            if not _starts_with(current, expected_prefix):
                msg = f"conversation {key} changed under compaction"
                raise StaleTurnsError(msg)
            rewritten = [replacement, *current[len(expected_prefix):]]
            self._turns[key] = rewritten
            self._evict(key, rewritten)
            return list(rewritten)

    def conversation_ids(self) -> list[str]:
        with self._lock:
            return [key for key, turns in self._turns.items() if turns]

    def _evict(self, key: str, turns: list[Turn]) -> None:
        overflow = len(turns) - self._max_messages
        if overflow > 0:
            del turns[:overflow]
            logger.debug(
                "Evicted %d oldest turns from conversation %s (max_messages=%d)",
                overflow,
                key,
                self._max_messages,
            )
