"""Typed schemas used by the reconstruction pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

TOKEN_FIELDS: tuple[str, ...] = (
    "input_tokens",
    "cached_input_tokens",
    "output_tokens",
    "reasoning_output_tokens",
    "total_tokens",
)

ToolKind = Literal["function", "custom"]
MessageRole = Literal["user", "assistant", "system", "status"]
MessageKind = Literal["text", "reasoning", "status"]


@dataclass(frozen=True)
class TokenUsageSnapshot:
    """Cumulative token usage counters as of one point in time."""

    input_tokens: int
    cached_input_tokens: int
    output_tokens: int
    reasoning_output_tokens: int
    total_tokens: int

    def field_value(self, field_name: str) -> int:
        """Return a field value by field name."""
        return getattr(self, field_name)

    @property
    def user_tokens(self) -> int:
        """Return input tokens not served from cache."""
        return max(0, self.input_tokens - self.cached_input_tokens)


@dataclass(frozen=True)
class SessionMeta:
    """Decoded `session_meta` payload."""

    session_id: str | None
    timestamp: str | None
    cwd: str | None


@dataclass(frozen=True)
class MessageItem:
    """Decoded conversational turn; `segments` are the text-bearing content chunks."""

    role: str | None
    segments: tuple[str, ...]

    @property
    def text(self) -> str:
        return "\n".join(segment for segment in self.segments if segment).strip()


@dataclass(frozen=True)
class ReasoningItem:
    """Decoded reasoning turn with its summary chunks."""

    segments: tuple[str, ...]

    @property
    def text(self) -> str:
        return "\n".join(segment for segment in self.segments if segment).strip()


@dataclass(frozen=True)
class ToolCallStart:
    """Decoded `function_call` / `custom_tool_call` item."""

    call_id: str
    tool_kind: ToolKind
    name: str | None
    input: str | None


@dataclass(frozen=True)
class ToolCallResult:
    """Decoded `function_call_output` / `custom_tool_call_output` item.

    `output` is kept as it appears in the log; custom tool results carry a
    JSON-encoded document that the reconciler decodes.
    """

    call_id: str
    tool_kind: ToolKind
    output: Any


@dataclass(frozen=True)
class TokenCount:
    """Decoded `token_count` event message."""

    total_usage: TokenUsageSnapshot | None
    context_window_size: int | None


@dataclass(frozen=True)
class AgentReasoning:
    """Decoded `agent_reasoning` status notice."""

    text: str


EnvelopeItem = (
    SessionMeta | MessageItem | ReasoningItem | ToolCallStart | ToolCallResult | TokenCount | AgentReasoning
)


@dataclass(frozen=True)
class Envelope:
    """One decoded log record in file order."""

    timestamp: str | None
    kind: str
    payload: dict[str, Any] | None
    item: EnvelopeItem | None


@dataclass(frozen=True)
class TokenTimelinePoint:
    """Cumulative usage at one timestamp of the session timeline."""

    timestamp: str
    timestamp_ms: int
    usage: TokenUsageSnapshot
    derived_user_tokens: int
    context_window_size: int | None


@dataclass(frozen=True)
class TokenTimelineDelta:
    """Per-step change between two adjacent timeline points; negative on counter resets."""

    timestamp: str
    timestamp_ms: int
    input_tokens: int
    cached_input_tokens: int
    output_tokens: int
    reasoning_output_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class ToolCallRecord:
    """One reconciled tool call ledger entry."""

    id: str
    name: str
    tool_kind: ToolKind
    status: str
    input: str | None = None
    output: str | None = None
    metadata: dict[str, Any] | None = None
    started_at: str | None = None
    completed_at: str | None = None
    duration_ms: int | None = None


@dataclass(frozen=True)
class ToolCallInsight:
    """Where a tool call lands on the token timeline and the context growth there."""

    call_id: str
    event_timestamp_ms: int | None
    anchor_timestamp_ms: int | None
    delta_tokens: int | None


@dataclass(frozen=True)
class ChatMessage:
    """One transcript entry."""

    id: str
    timestamp: str
    role: MessageRole
    kind: MessageKind
    text: str


@dataclass(frozen=True)
class SessionSource:
    """One candidate log source handed over by the file enumeration step."""

    path: Path
    session_id: str | None
    relative_path: str


@dataclass(frozen=True)
class SessionSummary:
    """Aggregate statistics for one session log."""

    id: str
    project_id: str
    project_name: str
    project_path: str
    relative_path: str
    started_at: str | None
    last_activity_at: str | None
    preview: str
    total_tokens: int
    cached_tokens: int
    user_tokens: int
    output_tokens: int
    reasoning_tokens: int
    context_window: int | None
    tool_call_count: int


@dataclass(frozen=True)
class ProjectSummary:
    """Aggregate over all sessions sharing a project id."""

    id: str
    name: str
    path: str
    session_count: int
    latest_activity_at: str | None
    total_tokens: int


@dataclass(frozen=True)
class SessionDetail:
    """Every derived view of one session."""

    summary: SessionSummary | None
    messages: list[ChatMessage]
    token_timeline: list[TokenTimelinePoint]
    tool_calls: list[ToolCallRecord]
