"""Compacting memory vs. a plain sliding window.

Runs the same 12-exchange conversation through:
1. a bare InMemoryTurnStore that silently evicts its oldest turns
2. CompactingChatMemory, which folds the oldest turns into a summary

Uses the stub provider -- no real LLM needed.

Run: python examples/compaction_demo.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from compacting_memory import (
    CompactingChatMemory,
    CompactionConfig,
    CompactionEngine,
    InMemoryTurnStore,
    LLMSummarizer,
    StubLLMProvider,
    Turn,
    estimate_turn_tokens,
)

_QUESTIONS = [
    "My name is Ada and I run a bakery",
    "We open at six every morning",
    "Sourdough is our best seller",
    "I want to add a lunch menu",
    "Budget is around two thousand dollars",
    "We have space for eight extra seats",
    "Suggest three sandwiches",
    "Which one pairs with sourdough",
    "What price should I charge",
    "How many staff do I need at noon",
    "Draft a flyer headline",
    "Remind me what my bakery is known for",
]


def _check(condition: bool, msg: str) -> None:  # noqa: FBT001
    """Raise RuntimeError if *condition* is False (demo validation)."""
    if not condition:
        raise RuntimeError(msg)


async def run_demo() -> None:
    config = CompactionConfig(max_messages=8, compaction_threshold=6, messages_to_compact=4)

    print("=" * 60)
    print("Compacting Memory Demo")
    print("=" * 60)

    # ------------------------------------------------------------------
    # Step 1: plain sliding window
    # ------------------------------------------------------------------
    print(f"\n[1/2] Sliding window (max_messages={config.max_messages})...")
    window = InMemoryTurnStore(max_messages=config.max_messages)
    for question in _QUESTIONS:
        window.append("demo", Turn.user(question))
        window.append("demo", Turn.assistant("ok"))
    kept = window.read_all("demo")
    print(f"  Turns kept : {len(kept)}")
    print(f"  Oldest turn: {kept[0].render()}")
    _check(all("Ada" not in t.text for t in kept), "Window should have dropped the intro")

    # ------------------------------------------------------------------
    # Step 2: compacting memory
    # ------------------------------------------------------------------
    print(
        f"\n[2/2] Compacting memory (threshold={config.compaction_threshold}, "
        f"messages_to_compact={config.messages_to_compact})..."
    )
    engine = CompactionEngine.in_memory(LLMSummarizer(StubLLMProvider()), config)
    memory = CompactingChatMemory(engine, StubLLMProvider())
    for question in _QUESTIONS:
        await memory.chat(question, "demo")

    turns = memory.history("demo")
    print(f"  Turns kept : {len(turns)} ({estimate_turn_tokens(turns)} tokens)")
    for turn in turns:
        print(f"    - {turn.render()[:72]}")
    _check(turns[0].is_summary, "First turn should be the running summary")

    print("\n" + "=" * 60)
    print("Demo complete -- all checks passed!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(run_demo())
