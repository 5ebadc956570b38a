"""Reconciliation of tool call starts and results into one ledger entry per call."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import orjson

from .schemas import Envelope, ToolCallRecord, ToolCallResult, ToolCallStart, ToolKind
from .timestamps import parse_timestamp

LOGGER = logging.getLogger(__name__)

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
DEFAULT_TOOL_NAMES: dict[str, str] = {
    "function": "function_call",
    "custom": "custom_tool",
}


@dataclass
class _ToolCallState:
    """Mutable per-call state while folding one session."""

    call_id: str
    tool_kind: ToolKind
    first_seen: int
    status: str = STATUS_IN_PROGRESS
    name: str | None = None
    input: str | None = None
    output: str | None = None
    metadata: dict[str, Any] | None = None
    started_at: datetime | None = None
    started_at_raw: str | None = None
    completed_at: datetime | None = None
    completed_at_raw: str | None = None


def reconcile_tool_calls(envelopes: Iterable[Envelope]) -> list[ToolCallRecord]:
    """Merge call-start and call-result sightings by correlation id.

    Either sighting may come first. A start only fills fields that are still
    empty; a result marks the call completed and nothing reverts that.
    """
    states: dict[str, _ToolCallState] = {}

    for envelope in envelopes:
        item = envelope.item
        if isinstance(item, ToolCallStart):
            state = _get_or_create(states, item.call_id, item.tool_kind)
            _apply_start(state, item, envelope.timestamp)
        elif isinstance(item, ToolCallResult):
            state = states.get(item.call_id)
            if state is None:
                LOGGER.debug("Tool call result for %s arrived before its start.", item.call_id)
                state = _get_or_create(states, item.call_id, item.tool_kind)
            _apply_result(state, item, envelope.timestamp)

    ordered = sorted(states.values(), key=_sort_key)
    return [_to_record(state) for state in ordered]


def decode_custom_tool_output(raw_output: Any) -> tuple[str | None, dict[str, Any] | None]:
    """Decode a custom tool result document into `(output, metadata)`.

    The document is JSON text of the form `{"output": ..., "metadata": {...}}`.
    When it does not decode to that shape the raw value is the output.
    """
    document = raw_output
    if isinstance(raw_output, str):
        try:
            document = orjson.loads(raw_output)
        except orjson.JSONDecodeError:
            return raw_output, None

    if not isinstance(document, dict):
        return _as_output_text(raw_output), None

    metadata = document.get("metadata")
    metadata = metadata if isinstance(metadata, dict) else None
    output = document.get("output")
    if isinstance(output, str) and output:
        return output, metadata
    return _as_output_text(raw_output), metadata


def _get_or_create(states: dict[str, _ToolCallState], call_id: str, tool_kind: ToolKind) -> _ToolCallState:
    state = states.get(call_id)
    if state is None:
        state = _ToolCallState(call_id=call_id, tool_kind=tool_kind, first_seen=len(states))
        states[call_id] = state
    return state


def _apply_start(state: _ToolCallState, item: ToolCallStart, timestamp: str | None) -> None:
    if state.name is None:
        state.name = item.name
    if state.input is None:
        state.input = item.input
    if state.started_at is None:
        parsed = parse_timestamp(timestamp)
        if parsed is not None:
            state.started_at = parsed
            state.started_at_raw = timestamp


def _apply_result(state: _ToolCallState, item: ToolCallResult, timestamp: str | None) -> None:
    if item.tool_kind == "custom":
        output, metadata = decode_custom_tool_output(item.output)
    else:
        output, metadata = _as_output_text(item.output), None

    if state.output is None:
        state.output = output
    if state.metadata is None:
        state.metadata = metadata
    if state.completed_at is None:
        parsed = parse_timestamp(timestamp)
        if parsed is not None:
            state.completed_at = parsed
            state.completed_at_raw = timestamp
    state.status = STATUS_COMPLETED


def _sort_key(state: _ToolCallState) -> tuple[int, datetime | None, int]:
    """Timed calls first, by start (else completion) time; untimed calls last; ties by first sighting."""
    anchor = state.started_at or state.completed_at
    if anchor is None:
        return (1, None, state.first_seen)
    return (0, anchor, state.first_seen)


def _to_record(state: _ToolCallState) -> ToolCallRecord:
    duration_ms: int | None = None
    if state.started_at is not None and state.completed_at is not None:
        # Clock anomalies surface as negative durations.
        duration_ms = (state.completed_at - state.started_at) // timedelta(milliseconds=1)
    return ToolCallRecord(
        id=state.call_id,
        name=state.name or DEFAULT_TOOL_NAMES[state.tool_kind],
        tool_kind=state.tool_kind,
        status=state.status,
        input=state.input,
        output=state.output,
        metadata=state.metadata,
        started_at=state.started_at_raw,
        completed_at=state.completed_at_raw,
        duration_ms=duration_ms,
    )


def _as_output_text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return orjson.dumps(value).decode("utf-8")
