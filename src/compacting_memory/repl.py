"""Interactive REPL for chatting through compacting memory."""

from __future__ import annotations

import asyncio
import logging
import os

from .chat_memory import CompactingChatMemory
from .compaction import CompactionEngine
from .config import CompactionConfig
from .provider_factory import ProviderFactory
from .summarizer import LLMSummarizer
from .telemetry import TelemetryConfig, configure_tracing
from .turns import DEFAULT_CONVERSATION_ID

_BANNER = "Compacting Memory REPL v0.1.0"


def build_memory() -> CompactingChatMemory:
    """Wire config, providers, engine and chat memory from the environment."""
    config = CompactionConfig.from_env()
    summarizer = LLMSummarizer(ProviderFactory.create_summarizer_provider())
    engine = CompactionEngine.in_memory(summarizer, config)
    return CompactingChatMemory(engine, ProviderFactory.create())


async def async_main(memory: CompactingChatMemory | None = None) -> None:
    """Read commands and chat lines until quit/EOF.

    Set ``CMEM_LLM_PROVIDER`` to ``gemini`` or ``stub`` (default).
    """
    memory = memory or build_memory()
    config = memory.engine.config
    conversation_id = DEFAULT_CONVERSATION_ID

    print(_BANNER)
    print(f"Provider: {ProviderFactory.describe(memory.provider)}")
    print(
        f"Compaction: threshold={config.compaction_threshold}, "
        f"messages_to_compact={config.messages_to_compact}, "
        f"max_messages={config.max_messages}"
    )
    print("Type 'help' for commands, 'quit' or 'exit' to leave")
    print()

    while True:
        try:
            user_input = input(f"{conversation_id}> ")
        except (EOFError, KeyboardInterrupt):
            print("\nBye!")
            break

        stripped = user_input.strip()
        if not stripped:
            continue
        if stripped in ("quit", "exit"):
            print("Bye!")
            break
        if stripped == "help":
            print("Commands: compact, clear, status, history, use <id>, help, quit/exit")
            print("Anything else is sent as a chat message")
            continue
        if stripped == "compact":
            result = await memory.compact(conversation_id)
            print(f"  {result.describe()}")
            continue
        if stripped == "clear":
            cleared = await memory.clear(conversation_id)
            print(f"  {cleared.describe()}")
            continue
        if stripped == "status":
            for key, value in memory.stats(conversation_id).items():
                print(f"  {key}: {value}")
            continue
        if stripped == "history":
            for index, turn in enumerate(memory.history(conversation_id), start=1):
                print(f"  {index:>3}. {turn.render()}")
            continue
        if stripped.startswith("use "):
            conversation_id = stripped[4:].strip() or DEFAULT_CONVERSATION_ID
            print(f"  Switched to conversation '{conversation_id}'")
            continue

        reply = await memory.chat(stripped, conversation_id)
        print(f"  {reply}")


def main() -> None:
    """Entry point for the ``compacting-memory-repl`` command.

    ``CMEM_OTEL_EXPORTER`` (``none``, ``stdout`` or ``otlp``) turns on span export.
    """
    level = os.environ.get("CMEM_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    tracer = configure_tracing(TelemetryConfig.from_env())
    try:
        asyncio.run(async_main())
    finally:
        tracer.shutdown()


if __name__ == "__main__":
    main()
