"""Timestamp helpers shared by the reconstruction builders."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC3339-style timestamp into an aware datetime; None when unusable."""
    if not isinstance(value, str) or not value:
        return None

    normalized = value.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_epoch_ms(value: datetime) -> int:
    """Return whole milliseconds since the Unix epoch."""
    return (value - EPOCH) // timedelta(milliseconds=1)
