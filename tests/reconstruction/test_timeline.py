"""Tests for the token timeline builder."""

from __future__ import annotations

import orjson

from codex_session_analytics.reconstruction.reader import iter_envelopes
from codex_session_analytics.reconstruction.schemas import Envelope, ToolCallRecord
from codex_session_analytics.reconstruction.timeline import (
    build_token_timeline,
    build_tool_call_insights,
    compute_timeline_deltas,
)


def test_timeline_is_sorted_by_timestamp_and_keeps_ties_in_encounter_order() -> None:
    """Out-of-order snapshots come back ascending; equal timestamps keep file order."""
    envelopes = _decode(
        [
            _token_event("2026-02-15T00:00:05Z", total=50),
            _token_event("2026-02-15T00:00:01Z", total=10),
            _token_event("2026-02-15T00:00:05Z", total=55),
            _token_event("2026-02-15T00:00:03Z", total=30),
        ]
    )

    timeline = build_token_timeline(envelopes)

    assert [point.usage.total_tokens for point in timeline] == [10, 30, 50, 55]
    timestamps = [point.timestamp_ms for point in timeline]
    assert timestamps == sorted(timestamps)


def test_timeline_drops_snapshots_without_usable_timestamp_or_usage() -> None:
    """Missing/garbled timestamps and `info: null` produce no point."""
    envelopes = _decode(
        [
            _token_event(None, total=5),
            _token_event("not-a-date", total=6),
            {"timestamp": "2026-02-15T00:00:01Z", "type": "event_msg", "payload": {"type": "token_count", "info": None}},
            _token_event("2026-02-15T00:00:02Z", total=7),
        ]
    )

    timeline = build_token_timeline(envelopes)

    assert len(timeline) == 1
    assert timeline[0].timestamp == "2026-02-15T00:00:02Z"
    assert timeline[0].timestamp_ms == 1771113602000


def test_timeline_point_derives_user_tokens_and_context_window() -> None:
    """User tokens exclude cached input and never go negative."""
    envelopes = _decode(
        [
            _token_event("2026-02-15T00:00:01Z", total=120, input_tokens=100, cached=40, context_window=272000),
            _token_event("2026-02-15T00:00:02Z", total=130, input_tokens=10, cached=40),
        ]
    )

    first, second = build_token_timeline(envelopes)

    assert first.derived_user_tokens == 60
    assert first.context_window_size == 272000
    assert second.derived_user_tokens == 0
    assert second.context_window_size is None


def test_deltas_report_counter_resets_as_negative_values() -> None:
    """A cumulative reset must surface as a negative step rather than being clamped."""
    envelopes = _decode(
        [
            _token_event("2026-02-15T00:00:01Z", total=100, input_tokens=80),
            _token_event("2026-02-15T00:00:02Z", total=150, input_tokens=120),
            _token_event("2026-02-15T00:00:03Z", total=20, input_tokens=20),
        ]
    )

    deltas = compute_timeline_deltas(build_token_timeline(envelopes))

    assert [delta.total_tokens for delta in deltas] == [50, -130]
    assert [delta.input_tokens for delta in deltas] == [40, -100]
    assert deltas[1].timestamp == "2026-02-15T00:00:03Z"


def test_deltas_of_short_timelines_are_empty() -> None:
    assert compute_timeline_deltas([]) == []
    assert compute_timeline_deltas(build_token_timeline(_decode([_token_event("2026-02-15T00:00:01Z", 1)]))) == []


def test_tool_call_insights_anchor_on_next_point_and_report_growth() -> None:
    """Calls anchor on the first point at/after completion, else on the last point."""
    timeline = build_token_timeline(
        _decode(
            [
                _token_event("2026-02-15T00:00:01Z", total=100),
                _token_event("2026-02-15T00:00:10Z", total=180),
                _token_event("2026-02-15T00:00:20Z", total=200),
            ]
        )
    )
    calls = [
        ToolCallRecord(
            id="c1",
            name="shell",
            tool_kind="function",
            status="completed",
            started_at="2026-02-15T00:00:02Z",
            completed_at="2026-02-15T00:00:05Z",
        ),
        ToolCallRecord(id="c2", name="shell", tool_kind="function", status="in_progress", started_at="2026-02-15T00:01:00Z"),
        ToolCallRecord(id="c3", name="custom_tool", tool_kind="custom", status="completed"),
    ]

    insights = build_tool_call_insights(timeline, calls)

    assert insights["c1"].anchor_timestamp_ms == timeline[1].timestamp_ms
    assert insights["c1"].delta_tokens == 80
    assert insights["c2"].anchor_timestamp_ms == timeline[2].timestamp_ms
    assert insights["c2"].delta_tokens == 20
    assert insights["c3"].event_timestamp_ms is None
    assert insights["c3"].anchor_timestamp_ms == timeline[2].timestamp_ms


def test_tool_call_insights_without_timeline_have_no_anchor() -> None:
    call = ToolCallRecord(id="c1", name="shell", tool_kind="function", status="completed", started_at="2026-02-15T00:00:02Z")

    insight = build_tool_call_insights([], [call])["c1"]

    assert insight.anchor_timestamp_ms is None
    assert insight.delta_tokens is None
    assert insight.event_timestamp_ms == 1771113602000


def test_timeline_is_idempotent() -> None:
    envelopes = _decode([_token_event("2026-02-15T00:00:02Z", total=20), _token_event("2026-02-15T00:00:01Z", 10)])

    assert orjson.dumps(build_token_timeline(envelopes)) == orjson.dumps(build_token_timeline(envelopes))


def _decode(events: list[dict[str, object]]) -> list[Envelope]:
    return list(iter_envelopes(orjson.dumps(event) for event in events))


def _token_event(
    timestamp: str | None,
    total: int,
    input_tokens: int | None = None,
    cached: int = 0,
    context_window: int | None = None,
) -> dict[str, object]:
    """Build a token_count event with a cumulative snapshot."""
    info: dict[str, object] = {
        "total_token_usage": {
            "input_tokens": total if input_tokens is None else input_tokens,
            "cached_input_tokens": cached,
            "output_tokens": 0,
            "reasoning_output_tokens": 0,
            "total_tokens": total,
        },
    }
    if context_window is not None:
        info["model_context_window"] = context_window
    event: dict[str, object] = {"type": "event_msg", "payload": {"type": "token_count", "info": info}}
    if timestamp is not None:
        event["timestamp"] = timestamp
    return event
