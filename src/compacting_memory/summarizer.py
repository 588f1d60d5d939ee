"""Summarization gateway — turns a rendered transcript into summary text."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .provider import ChatMessage, ChatRequest, ChatRole, LLMProvider

logger = logging.getLogger(__name__)

SUMMARY_INSTRUCTION = (
    "Summarize the following conversation concisely, "
    "preserving key information and context:\n\n"
)


def build_summary_prompt(transcript: str) -> str:
    return f"{SUMMARY_INSTRUCTION}{transcript}"


class Summarizer(ABC):
    """Text-in/text-out summarization capability.

    Implementations must not swallow failures: an exception here aborts the
    compaction before the store is touched.
    """

    @abstractmethod
    async def summarize(self, transcript: str) -> str:
        """Return a summary of *transcript*."""


class LLMSummarizer(Summarizer):
    """Summarizer backed by a single :class:`LLMProvider` chat call."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._provider = provider
        self._model = model or provider.model
        self._max_tokens = max_tokens

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    async def summarize(self, transcript: str) -> str:
        request = ChatRequest(
            model=self._model,
            messages=[ChatMessage(role=ChatRole.USER, content=build_summary_prompt(transcript))],
            max_tokens=self._max_tokens,
        )
        logger.debug(
            "Requesting summary from %s (model=%s, %d chars)",
            self._provider.name(),
            self._model,
            len(transcript),
        )
        response = await self._provider.chat(request)
        return response.content.strip()
