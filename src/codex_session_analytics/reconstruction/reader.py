"""Decoding of Codex rollout JSONL logs into typed envelopes."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import orjson

from .errors import SourceAccessError
from .schemas import (
    TOKEN_FIELDS,
    AgentReasoning,
    Envelope,
    EnvelopeItem,
    MessageItem,
    ReasoningItem,
    SessionMeta,
    TokenCount,
    TokenUsageSnapshot,
    ToolCallResult,
    ToolCallStart,
)

LOGGER = logging.getLogger(__name__)

# Codex interleaves this truncation notice with JSON records in some rollouts.
DIAGNOSTIC_LINE_PREFIXES: tuple[bytes, ...] = (b"Total output lines",)

TOOL_CALL_START_TYPES: dict[str, tuple[str, str]] = {
    "function_call": ("function", "arguments"),
    "custom_tool_call": ("custom", "input"),
}
TOOL_CALL_RESULT_TYPES: dict[str, str] = {
    "function_call_output": "function",
    "custom_tool_call_output": "custom",
}


def read_envelopes(session_file_path: Path) -> list[Envelope]:
    """Read one session log; only failing to access the file raises."""
    try:
        with session_file_path.open("rb") as handle:
            return list(iter_envelopes(handle))
    except OSError as exc:
        raise SourceAccessError(f"Failed to read session log {session_file_path}: {exc}") from exc


def iter_envelopes(lines: Iterable[bytes | str]) -> Iterator[Envelope]:
    """Yield envelopes in input line order, skipping lines that do not decode."""
    skipped = 0
    for line_number, raw_line in enumerate(lines, start=1):
        envelope = decode_line(raw_line)
        if envelope is None:
            if raw_line.strip():
                skipped += 1
                LOGGER.debug("Skipped undecodable line %d.", line_number)
            continue
        yield envelope
    if skipped:
        LOGGER.debug("Skipped %d undecodable lines in total.", skipped)


def decode_line(raw_line: bytes | str) -> Envelope | None:
    """Decode one JSONL line; None for blank, diagnostic, malformed, or non-object lines."""
    if isinstance(raw_line, str):
        raw_line = raw_line.encode("utf-8")
    stripped = raw_line.strip()
    if not stripped or stripped.startswith(DIAGNOSTIC_LINE_PREFIXES):
        return None

    try:
        record = orjson.loads(stripped)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(record, dict):
        return None

    timestamp = record.get("timestamp")
    kind = record.get("type")
    payload = record.get("payload")
    kind = kind if isinstance(kind, str) else ""
    payload = payload if isinstance(payload, dict) else None
    return Envelope(
        timestamp=timestamp if isinstance(timestamp, str) else None,
        kind=kind,
        payload=payload,
        item=decode_item(kind, payload),
    )


def decode_item(kind: str, payload: dict[str, Any] | None) -> EnvelopeItem | None:
    """Decode the payload of a recognized envelope kind into its tagged variant."""
    if payload is None:
        return None
    if kind == "session_meta":
        return SessionMeta(
            session_id=_optional_str(payload.get("id")),
            timestamp=_optional_str(payload.get("timestamp")),
            cwd=_optional_str(payload.get("cwd")),
        )
    if kind == "response_item":
        return _decode_response_item(payload)
    if kind == "event_msg":
        return _decode_event_msg(payload)
    return None


def _decode_response_item(payload: dict[str, Any]) -> EnvelopeItem | None:
    item_type = payload.get("type")
    if item_type == "message":
        return MessageItem(role=_optional_str(payload.get("role")), segments=_text_segments(payload.get("content")))
    if item_type == "reasoning":
        return ReasoningItem(segments=_text_segments(payload.get("summary")))

    call_id = payload.get("call_id")
    if not isinstance(call_id, str) or not call_id:
        return None
    if item_type in TOOL_CALL_START_TYPES:
        tool_kind, input_field = TOOL_CALL_START_TYPES[item_type]
        return ToolCallStart(
            call_id=call_id,
            tool_kind=tool_kind,
            name=_optional_str(payload.get("name")),
            input=_as_text(payload.get(input_field)),
        )
    if item_type in TOOL_CALL_RESULT_TYPES:
        return ToolCallResult(call_id=call_id, tool_kind=TOOL_CALL_RESULT_TYPES[item_type], output=payload.get("output"))
    return None


def _decode_event_msg(payload: dict[str, Any]) -> EnvelopeItem | None:
    message_type = payload.get("type")
    if message_type == "agent_reasoning":
        return AgentReasoning(text=_optional_str(payload.get("text")) or "")
    if message_type != "token_count":
        return None

    info = payload.get("info")
    if not isinstance(info, dict):
        return TokenCount(total_usage=None, context_window_size=None)

    context_window = info.get("model_context_window")
    return TokenCount(
        total_usage=_usage_snapshot(info.get("total_token_usage")),
        context_window_size=context_window if _is_count(context_window) else None,
    )


def _usage_snapshot(raw_snapshot: Any) -> TokenUsageSnapshot | None:
    """Extract one usage snapshot; None when a counter is absent or not an integer."""
    if not isinstance(raw_snapshot, dict):
        return None

    values: dict[str, int] = {}
    for field_name in TOKEN_FIELDS:
        raw_value = raw_snapshot.get(field_name)
        if not _is_count(raw_value):
            return None
        values[field_name] = raw_value
    return TokenUsageSnapshot(**values)


def _text_segments(content: Any) -> tuple[str, ...]:
    """Collect the `text` fields of a structured content list."""
    if not isinstance(content, list):
        return ()
    return tuple(
        chunk["text"] for chunk in content if isinstance(chunk, dict) and isinstance(chunk.get("text"), str)
    )


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return orjson.dumps(value).decode("utf-8")


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
