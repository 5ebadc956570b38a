"""Session summary fold and its mtime-keyed memoization."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path, PurePosixPath

from .cache import SummaryCache
from .errors import SourceAccessError
from .reader import read_envelopes
from .schemas import (
    Envelope,
    MessageItem,
    SessionMeta,
    SessionSource,
    SessionSummary,
    TokenCount,
    TokenUsageSnapshot,
    ToolCallResult,
    ToolCallStart,
)
from .timestamps import parse_timestamp

LOGGER = logging.getLogger(__name__)

PREVIEW_LIMIT = 180
PREVIEW_ELLIPSIS = "..."
EMPTY_PREVIEW = "(no prompt logged)"
UNKNOWN_PROJECT = "unknown"
ROLLOUT_FILE_PATTERN = re.compile(r"^rollout-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-(.+)$")

_WHITESPACE_RUN = re.compile(r"\s+")
_NON_ALPHANUMERIC_RUN = re.compile(r"[^a-z0-9]+")


def extract_session_id(session_file_path: Path) -> str | None:
    """Return the session id embedded in a `rollout-<timestamp>-<id>.jsonl` file name."""
    if session_file_path.suffix != ".jsonl":
        return None
    match = ROLLOUT_FILE_PATTERN.match(session_file_path.stem)
    return match.group(1) if match else None


def resolve_session_id(source: SessionSource) -> str:
    """Return the id a source is listed and looked up under: the rollout id, else the file stem."""
    return source.session_id or source.path.stem


def slugify_project_path(value: str) -> str:
    """Normalize a working directory into a URL-safe project id."""
    return _NON_ALPHANUMERIC_RUN.sub("-", value.lower()).strip("-")


def compose_preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    """Collapse whitespace and truncate with an ellipsis marker."""
    cleaned = _WHITESPACE_RUN.sub(" ", text).strip()
    if not cleaned:
        return EMPTY_PREVIEW
    if len(cleaned) > limit:
        return f"{cleaned[: limit - len(PREVIEW_ELLIPSIS)]}{PREVIEW_ELLIPSIS}"
    return cleaned


def build_session_summary(envelopes: Iterable[Envelope], source: SessionSource) -> SessionSummary | None:
    """Fold one session's envelopes into its summary.

    Returns None when the log has no `session_meta` record; such logs are
    incomplete rather than broken.
    """
    meta: SessionMeta | None = None
    meta_envelope_timestamp: str | None = None
    preview_text = ""
    earliest: tuple[datetime, str] | None = None
    latest: tuple[datetime, str] | None = None
    usage: TokenUsageSnapshot | None = None
    context_window: int | None = None
    tool_call_ids: set[str] = set()

    for envelope in envelopes:
        parsed = parse_timestamp(envelope.timestamp)
        if parsed is not None:
            if earliest is None or parsed < earliest[0]:
                earliest = (parsed, envelope.timestamp)
            if latest is None or parsed > latest[0]:
                latest = (parsed, envelope.timestamp)

        item = envelope.item
        if isinstance(item, SessionMeta):
            if meta is None:
                meta = item
                meta_envelope_timestamp = envelope.timestamp
        elif isinstance(item, MessageItem):
            if not preview_text and item.role == "user":
                preview_text = item.text
        elif isinstance(item, (ToolCallStart, ToolCallResult)):
            tool_call_ids.add(item.call_id)
        elif isinstance(item, TokenCount) and item.total_usage is not None:
            usage = item.total_usage
            context_window = item.context_window_size

    if meta is None:
        return None

    started_at = _first_parseable(meta.timestamp, meta_envelope_timestamp) or (earliest[1] if earliest else None)
    last_activity_at = latest[1] if latest else started_at
    project_path = meta.cwd or UNKNOWN_PROJECT
    return SessionSummary(
        id=resolve_session_id(source),
        project_id=slugify_project_path(project_path),
        project_name=PurePosixPath(project_path).name or project_path,
        project_path=project_path,
        relative_path=source.relative_path,
        started_at=started_at,
        last_activity_at=last_activity_at,
        preview=compose_preview(preview_text),
        total_tokens=usage.total_tokens if usage else 0,
        cached_tokens=usage.cached_input_tokens if usage else 0,
        user_tokens=usage.user_tokens if usage else 0,
        output_tokens=usage.output_tokens if usage else 0,
        reasoning_tokens=usage.reasoning_output_tokens if usage else 0,
        context_window=context_window,
        tool_call_count=len(tool_call_ids),
    )


def source_mtime_ns(source: SessionSource) -> int:
    """Return the modification time of a session log in nanoseconds."""
    try:
        return source.path.stat().st_mtime_ns
    except OSError as exc:
        raise SourceAccessError(f"Failed to stat session log {source.path}: {exc}") from exc


def load_session_summary(
    source: SessionSource,
    cache: SummaryCache,
    envelopes: list[Envelope] | None = None,
    mtime_ns: int | None = None,
) -> SessionSummary | None:
    """Return the summary for a source, recomputing only when its mtime changed.

    `envelopes` lets a caller that already decoded the log avoid a second read
    on a cache miss. Such a caller must pass the `mtime_ns` it observed before
    reading, so content is never stored under a newer mtime than it reflects.
    """
    if envelopes is not None and mtime_ns is None:
        raise ValueError("mtime_ns is required when envelopes are supplied.")
    if mtime_ns is None:
        mtime_ns = source_mtime_ns(source)

    def compute() -> SessionSummary | None:
        LOGGER.debug("Computing summary for %s.", source.path)
        decoded = envelopes if envelopes is not None else read_envelopes(source.path)
        return build_session_summary(decoded, source)

    return cache.get_or_compute(str(source.path), mtime_ns, compute)


def _first_parseable(*candidates: str | None) -> str | None:
    for candidate in candidates:
        if parse_timestamp(candidate) is not None:
            return candidate
    return None
