"""Provider factory — deterministic provider selection from environment."""

from __future__ import annotations

import os

from .gemini_provider import GeminiCliProvider
from .provider import LLMProvider, StubLLMProvider

_VALID_PROVIDERS = frozenset({"gemini", "stub"})

CHAT_PROVIDER_ENV = "CMEM_LLM_PROVIDER"
SUMMARY_PROVIDER_ENV = "CMEM_SUMMARY_PROVIDER"


class ProviderFactory:
    """Creates LLM providers for chat replies and for summarization.

    Resolution logic:
        1. ``CMEM_LLM_PROVIDER`` (gemini | stub) picks the chat provider;
           unset means stub.
        2. ``CMEM_SUMMARY_PROVIDER`` picks the summarization provider;
           unset means "same choice as the chat provider".
    """

    @staticmethod
    def create() -> LLMProvider:
        """Create the chat provider.

        Raises:
            ValueError: If ``CMEM_LLM_PROVIDER`` names an unknown provider.
        """
        return ProviderFactory.from_name(_env_choice(CHAT_PROVIDER_ENV) or "stub")

    @staticmethod
    def create_summarizer_provider() -> LLMProvider:
        """Create the provider used for compaction summaries."""
        choice = _env_choice(SUMMARY_PROVIDER_ENV) or _env_choice(CHAT_PROVIDER_ENV)
        return ProviderFactory.from_name(choice or "stub")

    @staticmethod
    def from_name(provider_name: str) -> LLMProvider:
        """Create a specific provider by name."""
        if provider_name not in _VALID_PROVIDERS:
            msg = (
                f"Unknown provider '{provider_name}'. "
                f"Valid values: {', '.join(sorted(_VALID_PROVIDERS))}"
            )
            raise ValueError(msg)
        if provider_name == "gemini":
            return GeminiCliProvider()
        return StubLLMProvider()

    @staticmethod
    def describe(provider: LLMProvider) -> str:
        """Return a human-readable description of a provider for REPL output."""
        if isinstance(provider, GeminiCliProvider):
            return f"GeminiCliProvider (model={provider.model})"
        if isinstance(provider, StubLLMProvider):
            return "StubLLMProvider (deterministic responses)"
        return f"{type(provider).__name__} (model={provider.model})"


def _env_choice(name: str) -> str:
    return os.environ.get(name, "").strip().lower()
