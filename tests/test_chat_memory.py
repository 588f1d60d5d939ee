"""Tests for CompactingChatMemory — the per-exchange interception layer."""

from __future__ import annotations

import asyncio

import pytest

from compacting_memory.chat_memory import ClearResult, CompactingChatMemory, ConversationLocks
from compacting_memory.compaction import CompactionEngine
from compacting_memory.config import CompactionConfig
from compacting_memory.provider import ChatRequest, ChatResponse, ChatRole, LLMProvider
from compacting_memory.summarizer import Summarizer
from compacting_memory.turns import DEFAULT_CONVERSATION_ID, SUMMARY_PREFIX, Turn, TurnRole

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FixedSummarizer(Summarizer):
    def __init__(self) -> None:
        self.calls = 0

    async def summarize(self, transcript: str) -> str:
        self.calls += 1
        return f"recap #{self.calls}"


class _RecordingProvider(LLMProvider):
    """Replies ``reply N`` and records every request."""

    def __init__(self) -> None:
        self.requests: list[ChatRequest] = []

    def name(self) -> str:
        return "recording"

    @property
    def model(self) -> str:
        return "recording-model"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        await asyncio.sleep(0)
        return ChatResponse(content=f"reply {len(self.requests)}")


class _BrokenProvider(_RecordingProvider):
    async def chat(self, request: ChatRequest) -> ChatResponse:
        raise ConnectionError("model unavailable")


def _memory(
    provider: LLMProvider | None = None,
    config: CompactionConfig | None = None,
    system_prompt: str | None = None,
) -> CompactingChatMemory:
    engine = CompactionEngine.in_memory(
        _FixedSummarizer(),
        config or CompactionConfig(max_messages=20, compaction_threshold=8, messages_to_compact=4),
    )
    return CompactingChatMemory(engine, provider or _RecordingProvider(), system_prompt=system_prompt)


# ---------------------------------------------------------------------------
# chat()
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_chat_stores_user_and_assistant_turns():
    provider = _RecordingProvider()
    memory = _memory(provider)

    reply = await memory.chat("hello", "c1")

    assert reply == "reply 1"
    turns = memory.history("c1")
    assert [(t.role, t.text) for t in turns] == [
        (TurnRole.USER, "hello"),
        (TurnRole.ASSISTANT, "reply 1"),
    ]


@pytest.mark.asyncio
async def test_chat_forwards_full_history_including_new_turn():
    provider = _RecordingProvider()
    memory = _memory(provider)

    await memory.chat("first", "c1")
    await memory.chat("second", "c1")

    request = provider.requests[-1]
    assert request.model == "recording-model"
    assert [(m.role, m.content) for m in request.messages] == [
        (ChatRole.USER, "first"),
        (ChatRole.ASSISTANT, "reply 1"),
        (ChatRole.USER, "second"),
    ]


@pytest.mark.asyncio
async def test_chat_without_id_uses_default_conversation():
    memory = _memory()
    await memory.chat("hi")
    assert len(memory.history(DEFAULT_CONVERSATION_ID)) == 2


@pytest.mark.asyncio
async def test_empty_user_text_is_not_stored():
    provider = _RecordingProvider()
    memory = _memory(provider)

    await memory.chat("", "c1")

    turns = memory.history("c1")
    assert [t.role for t in turns] == [TurnRole.ASSISTANT]
    assert provider.requests[0].messages == []


@pytest.mark.asyncio
async def test_chat_compacts_before_appending_user_turn():
    provider = _RecordingProvider()
    memory = _memory(provider)
    for i in range(4):
        await memory.chat(f"message {i}", "c1")
    assert len(memory.history("c1")) == 8

    await memory.chat("after threshold", "c1")

    request = provider.requests[-1]
    # summary + 4 surviving turns + the new user turn
    assert len(request.messages) == 1 + (8 - 4) + 1
    assert request.messages[0].role == ChatRole.SYSTEM
    assert request.messages[0].content == f"{SUMMARY_PREFIX}recap #1"
    assert request.messages[-1].content == "after threshold"
    assert len(memory.history("c1")) == 7


@pytest.mark.asyncio
async def test_chat_keeps_suffix_in_order_after_compaction():
    memory = _memory()
    for i in range(4):
        await memory.chat(f"message {i}", "c1")
    suffix = memory.history("c1")[4:]

    await memory.chat("next", "c1")

    turns = memory.history("c1")
    assert turns[0].is_summary
    assert turns[1:5] == suffix


@pytest.mark.asyncio
async def test_system_prompt_is_forwarded_but_not_stored():
    provider = _RecordingProvider()
    memory = _memory(provider, system_prompt="Be brief.")

    await memory.chat("hi", "c1")

    messages = provider.requests[0].messages
    assert messages[0].role == ChatRole.SYSTEM
    assert messages[0].content == "Be brief."
    assert all(t.text != "Be brief." for t in memory.history("c1"))


@pytest.mark.asyncio
async def test_model_failure_propagates_and_keeps_user_turn():
    memory = _memory(_BrokenProvider())

    with pytest.raises(ConnectionError, match="model unavailable"):
        await memory.chat("hello", "c1")

    assert [t.text for t in memory.history("c1")] == ["hello"]


# ---------------------------------------------------------------------------
# Operator surface
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_manual_compact_on_empty_conversation():
    memory = _memory()
    result = await memory.compact()
    assert not result.compacted
    assert result.describe() == "Not enough messages to compact. Current: 0, minimum: 4"
    assert memory.history() == []


@pytest.mark.asyncio
async def test_manual_compact_after_some_chat():
    memory = _memory()
    for i in range(3):
        await memory.chat(f"message {i}")

    result = await memory.compact()

    assert result.compacted
    assert result.messages_before == 6
    assert result.messages_after == 3
    assert memory.history()[0].is_summary


@pytest.mark.asyncio
async def test_clear_reports_removed_turns():
    memory = _memory()
    await memory.chat("hello")

    result = await memory.clear()

    assert isinstance(result, ClearResult)
    assert result.conversation_id == DEFAULT_CONVERSATION_ID
    assert result.messages_removed == 2
    assert result.tokens_removed > 0
    assert result.describe().startswith("Cleared conversation 'default': removed 2 messages")
    assert memory.history() == []


@pytest.mark.asyncio
async def test_clear_twice_and_on_untouched_conversation():
    memory = _memory()
    first = await memory.clear("never-used")
    second = await memory.clear("never-used")
    assert first.messages_removed == 0
    assert second.messages_removed == 0
    assert memory.history("never-used") == []


@pytest.mark.asyncio
async def test_stats_reflect_conversation_state():
    memory = _memory()
    for i in range(4):
        await memory.chat(f"message {i}", "c1")
    await memory.chat("one more", "c1")

    stats = memory.stats("c1")
    assert stats["conversation_id"] == "c1"
    assert stats["turn_count"] == 7
    assert stats["has_summary"] is True
    assert stats["estimated_tokens"] > 0
    assert stats["max_messages"] == 20
    assert stats["compaction_threshold"] == 8
    assert stats["messages_to_compact"] == 4


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_concurrent_conversations_do_not_interleave():
    memory = _memory(config=CompactionConfig(100, 50, 4))

    async def talk(cid: str) -> None:
        for i in range(5):
            await memory.chat(f"{cid} says {i}", cid)

    await asyncio.gather(talk("alpha"), talk("beta"))

    for cid in ("alpha", "beta"):
        user_texts = [t.text for t in memory.history(cid) if t.role == TurnRole.USER]
        assert user_texts == [f"{cid} says {i}" for i in range(5)]


@pytest.mark.asyncio
async def test_same_conversation_requests_are_serialized():
    in_flight = 0
    peak = 0

    class _SlowProvider(_RecordingProvider):
        async def chat(self, request: ChatRequest) -> ChatResponse:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await super().chat(request)

    memory = _memory(_SlowProvider(), config=CompactionConfig(100, 50, 4))
    await asyncio.gather(*(memory.chat(f"msg {i}", "shared") for i in range(5)))

    assert peak == 1
    turns = memory.history("shared")
    assert len(turns) == 10
    # Every user turn is immediately answered
    assert [t.role for t in turns] == [TurnRole.USER, TurnRole.ASSISTANT] * 5


@pytest.mark.asyncio
async def test_slow_conversation_does_not_block_others():
    release = asyncio.Event()

    class _GatedProvider(_RecordingProvider):
        async def chat(self, request: ChatRequest) -> ChatResponse:
            if request.messages[-1].content == "wait":
                await release.wait()
            else:
                release.set()
            return await super().chat(request)

    memory = _memory(_GatedProvider())
    await asyncio.wait_for(
        asyncio.gather(memory.chat("wait", "slow"), memory.chat("go", "fast")),
        timeout=2,
    )
    assert len(memory.history("slow")) == 2
    assert len(memory.history("fast")) == 2


@pytest.mark.asyncio
async def test_concurrent_chats_across_threshold_keep_invariant():
    memory = _memory()
    await asyncio.gather(*(memory.chat(f"msg {i}", "busy") for i in range(10)))

    turns = memory.history("busy")
    assert sum(t.is_summary for t in turns) == 1
    assert turns[0].is_summary
    assert turns[-1].role == TurnRole.ASSISTANT
    assert len(turns) < 20


@pytest.mark.asyncio
async def test_conversation_locks_are_dropped_when_idle():
    locks = ConversationLocks()
    async with locks.hold("a"):
        async with locks.hold("b"):
            assert len(locks) == 2
        assert len(locks) == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_conversation_lock_kept_while_waiters_remain():
    locks = ConversationLocks()
    events: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("a"):
            events.append(f"{name} in")
            await asyncio.sleep(0.01)
            events.append(f"{name} out")

    await asyncio.gather(worker("x"), worker("y"), worker("z"))

    assert events == ["x in", "x out", "y in", "y out", "z in", "z out"]
    assert len(locks) == 0


def test_history_of_unknown_conversation_is_empty():
    memory = _memory()
    assert memory.history("nobody") == []
    assert isinstance(memory.history("nobody"), list)
    assert all(isinstance(t, Turn) for t in memory.history("nobody"))
