"""Display formatters for timestamps, ids, and durations."""

from __future__ import annotations

import math
from datetime import datetime
from zoneinfo import ZoneInfo

from ..reconstruction.timestamps import parse_timestamp

DEFAULT_DATETIME_FORMAT = "%b %d %H:%M"
MISSING_VALUE = "-"


def format_datetime(value: str | None, timezone: ZoneInfo | None = None, fmt: str = DEFAULT_DATETIME_FORMAT) -> str:
    """Format a log timestamp in the selected timezone (or local system timezone)."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return MISSING_VALUE
    return parsed.astimezone(timezone).strftime(fmt)


def format_relative(value: str | None, now: datetime) -> str:
    """Describe how long ago a timestamp was, relative to `now`."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return MISSING_VALUE

    minutes = _round_half_up((now - parsed).total_seconds() / 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = _round_half_up(minutes / 60)
    if hours < 24:
        return f"{hours}h ago"
    days = _round_half_up(hours / 24)
    if days < 7:
        return f"{days}d ago"
    weeks = _round_half_up(days / 7)
    if weeks < 4:
        return f"{weeks}w ago"
    return f"{_round_half_up(days / 30)}mo ago"


def short_id(value: str, visible: int = 4) -> str:
    """Abbreviate a long identifier to its head and tail."""
    if len(value) <= visible * 2:
        return value
    return f"{value[:visible]}...{value[-visible:]}"


def format_duration_ms(duration_ms: int | None) -> str:
    if duration_ms is None:
        return MISSING_VALUE
    if abs(duration_ms) < 1000:
        return f"{duration_ms}ms"
    return f"{duration_ms / 1000:.1f}s"


def format_signed(value: int | None) -> str:
    if value is None:
        return MISSING_VALUE
    return f"{value:+,}"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
