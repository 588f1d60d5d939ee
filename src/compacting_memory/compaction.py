"""Compaction policy engine — fold the oldest turns into one summary turn.

The engine decides *when* a conversation is compacted (turn count reaches
``compaction_threshold``), *what* is compacted (the first
``messages_to_compact`` turns), and rewrites the store as
``[summary, *remaining turns]`` once the summary has been produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import CompactionConfig, CompactionConfigError
from .summarizer import Summarizer
from .telemetry import trace_compaction, trace_summarize
from .token_estimator import estimate_turn_tokens
from .turn_store import InMemoryTurnStore, StaleTurnsError, TurnStore
from .turns import Turn, resolve_conversation_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompactionResult:
    """Outcome of one compaction attempt.

    ``tokens_saved`` may be negative when the summary is longer than what it
    replaced; that is reported, not corrected.
    """

    conversation_id: str
    compacted: bool
    messages_compacted: int
    messages_before: int
    messages_after: int
    tokens_before: int
    tokens_after: int
    summarizer_called: bool = False
    summary: str = ""
    minimum_messages: int = 0

    @property
    def tokens_saved(self) -> int:
        return self.tokens_before - self.tokens_after

    def describe(self) -> str:
        """Human-readable one-liner for operator surfaces."""
        if not self.compacted:
            return (
                f"Not enough messages to compact. Current: {self.messages_before}, "
                f"minimum: {self.minimum_messages}"
            )
        return (
            f"Compacted {self.messages_compacted} messages into summary. "
            f"Messages: {self.messages_before} -> {self.messages_after}, "
            f"Tokens: {self.tokens_before} -> {self.tokens_after} "
            f"(saved {self.tokens_saved} tokens)"
        )


class CompactionEngine:
    """Threshold-driven summarizing compaction over a :class:`TurnStore`.

    The engine holds no per-conversation state and does not serialize
    callers. The rewrite is a compare-and-swap on the compacted prefix, so an
    out-of-band compaction never drops turns appended while it waited on the
    summarizer.
    """

    def __init__(
        self,
        store: TurnStore,
        summarizer: Summarizer,
        config: CompactionConfig | None = None,
    ) -> None:
        self._config = config or CompactionConfig()
        self._config.validate()
        if store.max_messages <= self._config.compaction_threshold:
            msg = (
                f"store max_messages ({store.max_messages}) must be greater than "
                f"compaction_threshold ({self._config.compaction_threshold}), "
                "otherwise eviction drops turns before they can be compacted"
            )
            raise CompactionConfigError(msg)
        self._store = store
        self._summarizer = summarizer

    @classmethod
    def in_memory(
        cls,
        summarizer: Summarizer,
        config: CompactionConfig | None = None,
    ) -> CompactionEngine:
        """Engine over a fresh :class:`InMemoryTurnStore` bounded by ``config.max_messages``."""
        config = config or CompactionConfig()
        config.validate()
        return cls(InMemoryTurnStore(max_messages=config.max_messages), summarizer, config)

    @property
    def config(self) -> CompactionConfig:
        return self._config

    @property
    def store(self) -> TurnStore:
        return self._store

    async def check_and_maybe_compact(self, conversation_id: str | None) -> CompactionResult | None:
        """Compact when the conversation has reached the threshold.

        Returns ``None`` when no compaction was needed.
        """
        cid = resolve_conversation_id(conversation_id)
        turns = self._store.read_all(cid)
        threshold = self._config.compaction_threshold
        logger.debug(
            "Checking compaction threshold: messages=%d/%d, tokens=%d, conversation=%s",
            len(turns),
            threshold,
            estimate_turn_tokens(turns),
            cid,
        )
        if len(turns) < threshold:
            return None
        logger.debug(
            "Compaction threshold reached (%d/%d) for conversation %s",
            len(turns),
            threshold,
            cid,
        )
        return await self.compact_turns(cid, turns)

    async def compact(self, conversation_id: str | None) -> CompactionResult:
        """Compact regardless of the threshold, if there is enough history.

        With fewer than ``messages_to_compact`` turns the store is left alone
        and the returned result has ``compacted=False``.
        """
        cid = resolve_conversation_id(conversation_id)
        turns = self._store.read_all(cid)
        minimum = self._config.messages_to_compact
        if len(turns) < minimum:
            logger.debug(
                "Not enough messages to compact conversation %s. Current: %d, minimum: %d",
                cid,
                len(turns),
                minimum,
            )
            tokens = estimate_turn_tokens(turns)
            return CompactionResult(
                conversation_id=cid,
                compacted=False,
                messages_compacted=0,
                messages_before=len(turns),
                messages_after=len(turns),
                tokens_before=tokens,
                tokens_after=tokens,
                minimum_messages=minimum,
            )
        return await self.compact_turns(cid, turns)

    async def compact_turns(self, conversation_id: str | None, turns: list[Turn]) -> CompactionResult:
        """Replace the first ``messages_to_compact`` of *turns* with a summary turn.

        *turns* is a snapshot read from the store. The store is only rewritten
        after the summarizer returns, so a summarizer failure leaves it
        untouched. Turns appended meanwhile survive the rewrite; if the
        snapshot's prefix was cleared or compacted away, :class:`StaleTurnsError`
        is raised and the store keeps its current content.
        """
        cid = resolve_conversation_id(conversation_id)
        count = self._config.messages_to_compact
        if len(turns) < count:
            msg = f"need at least {count} turns to compact, got {len(turns)}"
            raise ValueError(msg)

        prefix = turns[:count]
        tokens_before = estimate_turn_tokens(turns)
        logger.debug(
            "Starting compaction for conversation %s. Total messages: %d, tokens: %d, "
            "compacting oldest: %d",
            cid,
            len(turns),
            tokens_before,
            count,
        )

        with trace_compaction(cid, len(turns)) as span:
            summary, summarizer_called = await self._summarize_prefix(prefix)

            try:
                rewritten = self._store.replace_prefix(cid, prefix, Turn.summary(summary))
            except StaleTurnsError:
                logger.warning(
                    "Conversation %s changed while its summary was produced; "
                    "compaction discarded",
                    cid,
                )
                raise

            # Turns appended during summarization are kept after the summary
            before = [*prefix, *rewritten[1:]]
            result = CompactionResult(
                conversation_id=cid,
                compacted=True,
                messages_compacted=count,
                messages_before=len(before),
                messages_after=len(rewritten),
                tokens_before=estimate_turn_tokens(before),
                tokens_after=estimate_turn_tokens(rewritten),
                summarizer_called=summarizer_called,
                summary=summary,
                minimum_messages=count,
            )
            span.set_attribute("memory.messages_after", result.messages_after)
            span.set_attribute("memory.tokens_saved", result.tokens_saved)

        logger.info(
            "Compaction complete for conversation %s. Messages: %d -> %d, "
            "Tokens: %d -> %d (saved %d tokens)",
            cid,
            result.messages_before,
            result.messages_after,
            result.tokens_before,
            result.tokens_after,
            result.tokens_saved,
        )
        return result

    async def _summarize_prefix(self, prefix: list[Turn]) -> tuple[str, bool]:
        """Return ``(summary, summarizer_called)`` for the compacted prefix.

        Earlier summaries are never fed back to the summarizer. When the
        prefix holds nothing else, their bodies are carried forward as-is.
        """
        eligible = [t for t in prefix if not t.is_summary]
        if not eligible:
            carried = "\n".join(t.summary_body() for t in prefix)
            logger.debug(
                "Prefix holds only %d summary turns; merging without summarizer call",
                len(prefix),
            )
            return carried, False

        transcript = "\n".join(t.render() for t in eligible)
        logger.debug(
            "Sending %d messages (%d tokens) for summarization",
            len(eligible),
            estimate_turn_tokens(eligible),
        )
        with trace_summarize(len(eligible)):
            summary = await self._summarizer.summarize(transcript)
        return summary, True
