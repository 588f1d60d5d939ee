"""Compacting Memory — conversation history bounded by summarizing compaction."""

from __future__ import annotations

__version__ = "0.1.0"

from .chat_memory import ClearResult, CompactingChatMemory, ConversationLocks
from .compaction import CompactionEngine, CompactionResult
from .config import CompactionConfig, CompactionConfigError
from .gemini_provider import GeminiCliError, GeminiCliProvider
from .provider import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatRole,
    LLMProvider,
    StubLLMProvider,
    TokenUsage,
)
from .provider_factory import ProviderFactory
from .summarizer import LLMSummarizer, Summarizer, build_summary_prompt
from .telemetry import (
    MemoryTracer,
    TelemetryConfig,
    configure_tracing,
    trace_chat_turn,
    trace_compaction,
    trace_summarize,
)
from .token_estimator import estimate_tokens, estimate_turn_tokens
from .turn_store import InMemoryTurnStore, StaleTurnsError, TurnStore
from .turns import DEFAULT_CONVERSATION_ID, SUMMARY_PREFIX, Turn, TurnRole

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatRole",
    "ClearResult",
    "CompactingChatMemory",
    "CompactionConfig",
    "CompactionConfigError",
    "CompactionEngine",
    "CompactionResult",
    "ConversationLocks",
    "DEFAULT_CONVERSATION_ID",
    "GeminiCliError",
    "GeminiCliProvider",
    "InMemoryTurnStore",
    "LLMProvider",
    "LLMSummarizer",
    "MemoryTracer",
    "ProviderFactory",
    "SUMMARY_PREFIX",
    "StaleTurnsError",
    "StubLLMProvider",
    "Summarizer",
    "TelemetryConfig",
    "TokenUsage",
    "Turn",
    "TurnRole",
    "TurnStore",
    "build_summary_prompt",
    "configure_tracing",
    "estimate_tokens",
    "estimate_turn_tokens",
    "trace_chat_turn",
    "trace_compaction",
    "trace_summarize",
]
