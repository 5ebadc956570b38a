"""Token usage timeline built from cumulative `token_count` snapshots."""

from __future__ import annotations

from collections.abc import Iterable

from .schemas import (
    TOKEN_FIELDS,
    Envelope,
    TokenCount,
    TokenTimelineDelta,
    TokenTimelinePoint,
    ToolCallInsight,
    ToolCallRecord,
)
from .timestamps import parse_timestamp, to_epoch_ms


def build_token_timeline(envelopes: Iterable[Envelope]) -> list[TokenTimelinePoint]:
    """Emit one point per timestamped cumulative snapshot, sorted by time.

    Snapshots without a parseable timestamp have no place on the timeline and
    are dropped. Ties keep encounter order.
    """
    points: list[TokenTimelinePoint] = []
    for envelope in envelopes:
        item = envelope.item
        if not isinstance(item, TokenCount) or item.total_usage is None:
            continue
        parsed = parse_timestamp(envelope.timestamp)
        if parsed is None:
            continue
        points.append(
            TokenTimelinePoint(
                timestamp=envelope.timestamp,
                timestamp_ms=to_epoch_ms(parsed),
                usage=item.total_usage,
                derived_user_tokens=item.total_usage.user_tokens,
                context_window_size=item.context_window_size,
            )
        )
    return sorted(points, key=lambda point: point.timestamp_ms)


def compute_timeline_deltas(points: list[TokenTimelinePoint]) -> list[TokenTimelineDelta]:
    """Return `current - previous` for each adjacent pair of points.

    Deltas are not clamped: a negative value means the source reset its counters.
    """
    deltas: list[TokenTimelineDelta] = []
    for previous, current in zip(points, points[1:]):
        values = {
            field_name: current.usage.field_value(field_name) - previous.usage.field_value(field_name)
            for field_name in TOKEN_FIELDS
        }
        deltas.append(TokenTimelineDelta(timestamp=current.timestamp, timestamp_ms=current.timestamp_ms, **values))
    return deltas


def build_tool_call_insights(
    timeline: list[TokenTimelinePoint],
    tool_calls: list[ToolCallRecord],
) -> dict[str, ToolCallInsight]:
    """Anchor each tool call on the timeline and report the context growth at that point.

    The anchor is the first point at or after the call's completion (or start)
    time, else the last point of the session.
    """
    delta_by_timestamp_ms = {
        current.timestamp_ms: current.usage.total_tokens - previous.usage.total_tokens
        for previous, current in zip(timeline, timeline[1:])
    }

    insights: dict[str, ToolCallInsight] = {}
    for call in tool_calls:
        event_timestamp_ms = _call_timestamp_ms(call)
        anchor = _find_anchor(timeline, event_timestamp_ms)
        insights[call.id] = ToolCallInsight(
            call_id=call.id,
            event_timestamp_ms=event_timestamp_ms,
            anchor_timestamp_ms=anchor.timestamp_ms if anchor is not None else None,
            delta_tokens=delta_by_timestamp_ms.get(anchor.timestamp_ms) if anchor is not None else None,
        )
    return insights


def _call_timestamp_ms(call: ToolCallRecord) -> int | None:
    for candidate in (call.completed_at, call.started_at):
        parsed = parse_timestamp(candidate)
        if parsed is not None:
            return to_epoch_ms(parsed)
    return None


def _find_anchor(timeline: list[TokenTimelinePoint], event_timestamp_ms: int | None) -> TokenTimelinePoint | None:
    if not timeline:
        return None
    if event_timestamp_ms is not None:
        for point in timeline:
            if point.timestamp_ms >= event_timestamp_ms:
                return point
    return timeline[-1]
