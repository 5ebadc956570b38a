"""Chronological message transcript of a session."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from .schemas import AgentReasoning, ChatMessage, Envelope, MessageItem, MessageKind, MessageRole, ReasoningItem
from .timestamps import parse_timestamp

REASONING_PLACEHOLDER = "Reasoning content not available"
ROLE_ALIASES: dict[str, MessageRole] = {
    "user": "user",
    "assistant": "assistant",
    "system": "system",
    "developer": "system",
}


def build_transcript(envelopes: Iterable[Envelope]) -> list[ChatMessage]:
    """Extract message, reasoning, and status turns sorted by timestamp.

    Message ids are `<timestamp>-<kind>-<emission index>`, so re-deriving from
    the same log yields the same ids. Turns without a parseable timestamp
    cannot be placed in time and are left out.
    """
    entries: list[tuple[datetime, ChatMessage]] = []
    emitted = 0
    for envelope in envelopes:
        turn = _turn_fields(envelope.item)
        if turn is None:
            continue
        parsed = parse_timestamp(envelope.timestamp)
        if parsed is None:
            continue
        role, kind, id_tag, text = turn
        entries.append(
            (
                parsed,
                ChatMessage(
                    id=f"{envelope.timestamp}-{id_tag}-{emitted}",
                    timestamp=envelope.timestamp,
                    role=role,
                    kind=kind,
                    text=text,
                ),
            )
        )
        emitted += 1

    entries.sort(key=lambda entry: entry[0])
    return [message for _, message in entries]


def _turn_fields(item: object) -> tuple[MessageRole, MessageKind, str, str] | None:
    if isinstance(item, MessageItem):
        return ROLE_ALIASES.get(item.role or "", "assistant"), "text", "message", item.text
    if isinstance(item, ReasoningItem):
        return "assistant", "reasoning", "reasoning", item.text or REASONING_PLACEHOLDER
    if isinstance(item, AgentReasoning):
        return "assistant", "status", "agent", item.text
    return None
