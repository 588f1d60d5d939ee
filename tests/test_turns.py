"""Tests for the turn data model."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from compacting_memory.turns import (
    DEFAULT_CONVERSATION_ID,
    SUMMARY_PREFIX,
    Turn,
    TurnRole,
    resolve_conversation_id,
)


def test_turn_role_values():
    assert TurnRole.USER == "user"
    assert TurnRole.ASSISTANT == "assistant"
    assert TurnRole.SUMMARY == "summary"


def test_render_uses_role_label():
    assert Turn.user("hi there").render() == "User: hi there"
    assert Turn.assistant("hello").render() == "Assistant: hello"


def test_summary_turn_has_prefix_and_role():
    turn = Turn.summary("they talked about cats")
    assert turn.role == TurnRole.SUMMARY
    assert turn.is_summary
    assert turn.text == f"{SUMMARY_PREFIX}they talked about cats"
    assert turn.summary_body() == "they talked about cats"


def test_summary_body_without_prefix_returns_text():
    turn = Turn(role=TurnRole.SUMMARY, text="hand written")
    assert turn.summary_body() == "hand written"


def test_turns_are_immutable():
    turn = Turn.user("original")
    with pytest.raises(ValidationError):
        turn.text = "changed"  # type: ignore[misc]


def test_ordinary_turns_are_not_summaries():
    assert not Turn.user("x").is_summary
    assert not Turn.assistant("y").is_summary


def test_turn_serialization():
    turn = Turn(role=TurnRole.USER, text="test content", timestamp=1000.0)
    data = turn.model_dump()
    assert data == {"role": "user", "text": "test content", "timestamp": 1000.0}
    assert Turn.model_validate(data) == turn


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_blank_conversation_id_maps_to_default(raw: str | None):
    assert resolve_conversation_id(raw) == DEFAULT_CONVERSATION_ID


def test_explicit_conversation_id_is_kept():
    assert resolve_conversation_id("session-42") == "session-42"
