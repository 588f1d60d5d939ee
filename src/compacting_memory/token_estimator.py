"""Token estimation for reporting — never used to trigger compaction."""

from __future__ import annotations

import math
from collections.abc import Iterable

from .turns import Turn


def estimate_tokens(text: str) -> int:
    """Estimate token count from text. Rough heuristic: words * 1.3."""
    if not text:
        return 0
    words = len(text.split())
    return math.ceil(words * 1.3)


def estimate_turn_tokens(turns: Iterable[Turn]) -> int:
    """Sum of :func:`estimate_tokens` over the turns' text."""
    return sum(estimate_tokens(turn.text) for turn in turns)
