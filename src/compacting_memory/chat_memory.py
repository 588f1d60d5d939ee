"""Compacting chat memory — wraps each chat exchange with history management."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from .compaction import CompactionEngine, CompactionResult
from .provider import ChatMessage, ChatRequest, ChatRole, LLMProvider, turns_to_messages
from .telemetry import trace_chat_turn
from .token_estimator import estimate_turn_tokens
from .turns import Turn, resolve_conversation_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClearResult:
    """What a clear removed."""

    conversation_id: str
    messages_removed: int
    tokens_removed: int

    def describe(self) -> str:
        return (
            f"Cleared conversation '{self.conversation_id}': removed "
            f"{self.messages_removed} messages ({self.tokens_removed} tokens)"
        )


class ConversationLocks:
    """One :class:`asyncio.Lock` per conversation id.

    A lock is created on first use and dropped once nothing holds or awaits
    it, so idle and cleared conversations leave no entry behind.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the conversation's lock for the duration of the block."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[conversation_id] -= 1
            if not self._users[conversation_id]:
                del self._users[conversation_id]
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)


class CompactingChatMemory:
    """Runs chat exchanges against a model with automatically compacted history.

    Each exchange for a conversation runs under that conversation's lock:
    check-and-compact, append the user turn, read the history, call the model,
    append the reply. Different conversations never wait on each other.
    """

    def __init__(
        self,
        engine: CompactionEngine,
        provider: LLMProvider,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self._engine = engine
        self._store = engine.store
        self._provider = provider
        self._model = model or provider.model
        self._system_prompt = system_prompt
        self._locks = ConversationLocks()

    @property
    def engine(self) -> CompactionEngine:
        return self._engine

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    @property
    def system_prompt(self) -> str | None:
        return self._system_prompt

    async def chat(self, text: str, conversation_id: str | None = None) -> str:
        """Send *text* as the next user turn and return the model's reply.

        Model failures propagate; the user turn then stays stored without a
        reply.
        """
        cid = resolve_conversation_id(conversation_id)
        logger.debug("Processing request for conversation: %s", cid)
        async with self._locks.hold(cid):
            with trace_chat_turn(cid) as span:
                compaction = await self._engine.check_and_maybe_compact(cid)
                span.set_attribute("memory.compacted", compaction is not None)

                if text:
                    self._store.append(cid, Turn.user(text))

                history = self._store.read_all(cid)
                logger.debug(
                    "Retrieved %d messages (%d tokens) from memory for conversation %s",
                    len(history),
                    estimate_turn_tokens(history),
                    cid,
                )

                response = await self._provider.chat(
                    ChatRequest(model=self._model, messages=self._build_messages(history))
                )
                self._store.append(cid, Turn.assistant(response.content))
                logger.debug("Added assistant response to memory for conversation %s", cid)
                return response.content

    async def compact(self, conversation_id: str | None = None) -> CompactionResult:
        """Operator-triggered compaction."""
        cid = resolve_conversation_id(conversation_id)
        logger.debug("Manual compaction requested for conversation: %s", cid)
        async with self._locks.hold(cid):
            return await self._engine.compact(cid)

    async def clear(self, conversation_id: str | None = None) -> ClearResult:
        """Drop the conversation's history. Safe on unknown ids and when repeated."""
        cid = resolve_conversation_id(conversation_id)
        async with self._locks.hold(cid):
            turns = self._store.read_all(cid)
            self._store.clear(cid)
        result = ClearResult(
            conversation_id=cid,
            messages_removed=len(turns),
            tokens_removed=estimate_turn_tokens(turns),
        )
        logger.info(
            "Cleared %d messages (%d tokens) from conversation %s",
            result.messages_removed,
            result.tokens_removed,
            cid,
        )
        return result

    def history(self, conversation_id: str | None = None) -> list[Turn]:
        return self._store.read_all(conversation_id)

    def stats(self, conversation_id: str | None = None) -> dict[str, Any]:
        """Return a summary of the conversation state."""
        cid = resolve_conversation_id(conversation_id)
        turns = self._store.read_all(cid)
        config = self._engine.config
        return {
            "conversation_id": cid,
            "turn_count": len(turns),
            "estimated_tokens": estimate_turn_tokens(turns),
            "has_summary": any(t.is_summary for t in turns),
            "max_messages": self._store.max_messages,
            "compaction_threshold": config.compaction_threshold,
            "messages_to_compact": config.messages_to_compact,
        }

    def _build_messages(self, history: list[Turn]) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        if self._system_prompt:
            messages.append(ChatMessage(role=ChatRole.SYSTEM, content=self._system_prompt))
        messages.extend(turns_to_messages(history))
        return messages
