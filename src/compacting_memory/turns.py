"""Conversation turns — the immutable unit stored per conversation."""

from __future__ import annotations

import time
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONVERSATION_ID = "default"

SUMMARY_PREFIX = "Summary of previous conversation: "


class TurnRole(StrEnum):
    """Who produced a turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SUMMARY = "summary"

    @property
    def label(self) -> str:
        """Label used when rendering a turn for the summarizer."""
        return _LABELS[self]


_LABELS: dict[TurnRole, str] = {
    TurnRole.USER: "User",
    TurnRole.ASSISTANT: "Assistant",
    TurnRole.SUMMARY: "Summary",
}


class Turn(BaseModel):
    """A single role-tagged piece of conversation text.

    Turns are frozen: the store only ever appends or removes whole turns.
    """

    model_config = ConfigDict(frozen=True)

    role: TurnRole
    text: str
    timestamp: float = Field(default_factory=time.time)

    @classmethod
    def user(cls, text: str) -> Turn:
        return cls(role=TurnRole.USER, text=text)

    @classmethod
    def assistant(cls, text: str) -> Turn:
        return cls(role=TurnRole.ASSISTANT, text=text)

    @classmethod
    def summary(cls, summary: str) -> Turn:
        """Build the summary turn that replaces a compacted prefix."""
        return cls(role=TurnRole.SUMMARY, text=f"{SUMMARY_PREFIX}{summary}")

    @property
    def is_summary(self) -> bool:
        return self.role == TurnRole.SUMMARY

    def render(self) -> str:
        """Render as ``"<Role>: <text>"``."""
        return f"{self.role.label}: {self.text}"

    def summary_body(self) -> str:
        """Return the summary text without the fixed prefix."""
        if self.text.startswith(SUMMARY_PREFIX):
            return self.text[len(SUMMARY_PREFIX) :]
        return self.text


def resolve_conversation_id(conversation_id: str | None) -> str:
    """Map a missing or blank id to the default conversation."""
    if conversation_id is None or not conversation_id.strip():
        return DEFAULT_CONVERSATION_ID
    return conversation_id
