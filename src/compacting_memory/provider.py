"""LLM provider abstraction — the model call behind chat and summarization."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel

from .turns import Turn, TurnRole

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class ChatRole(StrEnum):
    """Role of a message participant as seen by the model."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


_TURN_TO_CHAT_ROLE: dict[TurnRole, ChatRole] = {
    TurnRole.USER: ChatRole.USER,
    TurnRole.ASSISTANT: ChatRole.ASSISTANT,
    TurnRole.SUMMARY: ChatRole.SYSTEM,
}


class ChatMessage(BaseModel):
    """Single message in a model request."""

    role: ChatRole
    content: str

    @classmethod
    def from_turn(cls, turn: Turn) -> ChatMessage:
        """Summary turns are forwarded as system messages."""
        return cls(role=_TURN_TO_CHAT_ROLE[turn.role], content=turn.text)


def turns_to_messages(turns: Iterable[Turn]) -> list[ChatMessage]:
    return [ChatMessage.from_turn(t) for t in turns]


class ChatRequest(BaseModel):
    """Request payload sent to an LLM provider."""

    model: str
    messages: list[ChatMessage]
    max_tokens: int | None = None
    temperature: float | None = None


class TokenUsage(BaseModel):
    """Token consumption reported by a provider for one request."""

    prompt_tokens: int
    completion_tokens: int


class ChatResponse(BaseModel):
    """Response returned from an LLM provider."""

    content: str
    usage: TokenUsage | None = None


# ---------------------------------------------------------------------------
# LLMProvider ABC
# ---------------------------------------------------------------------------


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the canonical provider name (e.g. 'gemini', 'stub')."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model name used when a request does not specify one."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a chat completion request."""


# ---------------------------------------------------------------------------
# Stub implementation (for testing / offline development)
# ---------------------------------------------------------------------------


class StubLLMProvider(LLMProvider):
    """Deterministic provider that never leaves the process.

    Replies quote the first words of the last user message so a transcript
    stays readable in the REPL.
    """

    _QUOTE_WORDS = 8

    def __init__(self, model: str = "stub-model") -> None:
        self._model = model

    def name(self) -> str:
        return "stub"

    @property
    def model(self) -> str:
        return self._model

    async def chat(self, request: ChatRequest) -> ChatResponse:
        last_user = next(
            (m.content for m in reversed(request.messages) if m.role == ChatRole.USER),
            "",
        )
        words = last_user.split()
        quoted = " ".join(words[: self._QUOTE_WORDS])
        if len(words) > self._QUOTE_WORDS:
            quoted += " ..."
        reply = f"Stub reply to: {quoted} (model={request.model or self._model})"
        prompt_tokens = sum(len(m.content.split()) for m in request.messages)
        return ChatResponse(
            content=reply,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=len(reply.split()),
            ),
        )
