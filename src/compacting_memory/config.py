"""Compaction configuration — three integers, validated once."""

from __future__ import annotations

import os
from dataclasses import dataclass

_ENV_MAX_MESSAGES = "CMEM_MAX_MESSAGES"
_ENV_COMPACT_THRESHOLD = "CMEM_COMPACT_THRESHOLD"
_ENV_MESSAGES_TO_COMPACT = "CMEM_MESSAGES_TO_COMPACT"


class CompactionConfigError(ValueError):
    """Raised when the compaction thresholds are inconsistent."""


@dataclass(frozen=True)
class CompactionConfig:
    """Limits that drive automatic compaction.

    - ``max_messages``: store-level bound on turns kept per conversation.
    - ``compaction_threshold``: turn count at which compaction runs.
    - ``messages_to_compact``: number of oldest turns folded into a summary.
    """

    max_messages: int = 20
    compaction_threshold: int = 8
    messages_to_compact: int = 4

    def validate(self) -> None:
        """Raise :class:`CompactionConfigError` unless
        ``2 <= messages_to_compact < compaction_threshold < max_messages``."""
        if self.compaction_threshold >= self.max_messages:
            msg = (
                f"compaction_threshold ({self.compaction_threshold}) must be less than "
                f"max_messages ({self.max_messages})"
            )
            raise CompactionConfigError(msg)
        if self.messages_to_compact >= self.compaction_threshold:
            msg = (
                f"messages_to_compact ({self.messages_to_compact}) must be less than "
                f"compaction_threshold ({self.compaction_threshold})"
            )
            raise CompactionConfigError(msg)
        if self.messages_to_compact < 2:
            msg = "messages_to_compact must be at least 2"
            raise CompactionConfigError(msg)

    @classmethod
    def from_env(cls) -> CompactionConfig:
        """Build a config from ``CMEM_*`` environment variables.

        Unset variables keep the dataclass defaults. The result is validated.
        """
        defaults = cls()
        config = cls(
            max_messages=_int_from_env(_ENV_MAX_MESSAGES, defaults.max_messages),
            compaction_threshold=_int_from_env(
                _ENV_COMPACT_THRESHOLD, defaults.compaction_threshold
            ),
            messages_to_compact=_int_from_env(
                _ENV_MESSAGES_TO_COMPACT, defaults.messages_to_compact
            ),
        )
        config.validate()
        return config


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        msg = f"{name} must be an integer, got {raw!r}"
        raise CompactionConfigError(msg) from exc
