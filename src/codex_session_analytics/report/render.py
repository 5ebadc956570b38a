"""Rich rendering helpers for session analytics views."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..reconstruction.schemas import (
    ChatMessage,
    ProjectSummary,
    SessionDetail,
    SessionSummary,
    TokenTimelinePoint,
    ToolCallInsight,
    ToolCallRecord,
)
from ..reconstruction.timeline import build_tool_call_insights, compute_timeline_deltas
from .formatters import format_datetime, format_duration_ms, format_relative, format_signed, short_id

TABLE_ROW_STYLES = ["white", "yellow"]
MESSAGE_STYLES: dict[str, str] = {
    "user": "cyan",
    "assistant": "white",
    "system": "magenta",
    "status": "dim",
}
TEXT_EXCERPT_LIMIT = 120


def render_project_summaries(
    projects: list[ProjectSummary],
    console: Console,
    now: datetime,
    timezone: ZoneInfo | None = None,
) -> None:
    """Render the projects overview table."""
    if not projects:
        console.print("No Codex sessions found.")
        return

    table = Table(title="Projects", show_footer=True, footer_style="bold", title_justify="left")
    table.add_column("Project", footer="Total", justify="left")
    table.add_column("Id", justify="left")
    table.add_column("Path", justify="left")
    table.add_column("Sessions", justify="right")
    table.add_column("Last Activity", justify="left")
    table.add_column("Total Tokens", justify="right")

    for index, project in enumerate(projects):
        table.add_row(
            escape(project.name),
            project.id,
            escape(project.path),
            str(project.session_count),
            _activity_label(project.latest_activity_at, now, timezone),
            f"{project.total_tokens:,}",
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )

    table.columns[3].footer = str(sum(project.session_count for project in projects))
    table.columns[5].footer = f"{sum(project.total_tokens for project in projects):,}"
    console.print(table)


def render_session_summaries(
    sessions: list[SessionSummary],
    console: Console,
    now: datetime,
    timezone: ZoneInfo | None = None,
    title: str = "Sessions",
) -> None:
    """Render one row per session with its token totals."""
    if not sessions:
        console.print("No sessions found for this project.")
        return

    table = Table(title=title, show_footer=True, footer_style="bold", title_justify="left")
    table.add_column("Session", footer="Total", justify="left")
    table.add_column("Started", justify="left")
    table.add_column("Last Activity", justify="left")
    table.add_column("Preview", justify="left", max_width=60)
    table.add_column("Tools", justify="right")
    table.add_column("Cached Tokens", justify="right")
    table.add_column("User Tokens", justify="right")
    table.add_column("Output Tokens", justify="right")
    table.add_column("Reasoning Tokens", justify="right")
    table.add_column("Total Tokens", justify="right")

    for index, session in enumerate(sessions):
        table.add_row(
            escape(short_id(session.id)),
            format_datetime(session.started_at, timezone),
            _activity_label(session.last_activity_at, now, timezone),
            escape(session.preview),
            str(session.tool_call_count),
            f"{session.cached_tokens:,}",
            f"{session.user_tokens:,}",
            f"{session.output_tokens:,}",
            f"{session.reasoning_tokens:,}",
            f"{session.total_tokens:,}",
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )

    table.columns[4].footer = str(sum(session.tool_call_count for session in sessions))
    table.columns[5].footer = f"{sum(session.cached_tokens for session in sessions):,}"
    table.columns[6].footer = f"{sum(session.user_tokens for session in sessions):,}"
    table.columns[7].footer = f"{sum(session.output_tokens for session in sessions):,}"
    table.columns[8].footer = f"{sum(session.reasoning_tokens for session in sessions):,}"
    table.columns[9].footer = f"{sum(session.total_tokens for session in sessions):,}"
    console.print(table)


def render_session_detail(
    detail: SessionDetail,
    console: Console,
    timezone: ZoneInfo | None = None,
    show_messages: bool = True,
) -> None:
    """Render summary header, token timeline, tool calls, and transcript of one session."""
    summary = detail.summary
    if summary is None:
        console.print("[bold]Session has no session_meta record; summary unavailable.[/bold]")
    else:
        console.print(f"[dim]{escape(summary.project_name)}[/dim]")
        console.print(f"[bold]{escape(summary.preview)}[/bold]")
        console.print(
            f"Session {escape(summary.id)} | started {format_datetime(summary.started_at, timezone)}"
            f" | last activity {format_datetime(summary.last_activity_at, timezone)}"
        )
        context_window = f"{summary.context_window:,}" if summary.context_window is not None else "-"
        console.print(
            f"Total tokens {summary.total_tokens:,} | cached {summary.cached_tokens:,}"
            f" | user {summary.user_tokens:,} | output {summary.output_tokens:,}"
            f" | reasoning {summary.reasoning_tokens:,} | context window {context_window}"
        )
    console.print("\n")

    _print_timeline_table(detail.token_timeline, console, timezone)
    console.print("\n")

    insights = build_tool_call_insights(detail.token_timeline, detail.tool_calls)
    _print_tool_call_table(detail.tool_calls, insights, console, timezone)

    if show_messages:
        console.print("\n")
        _print_transcript(detail.messages, console, timezone)


def _print_timeline_table(timeline: list[TokenTimelinePoint], console: Console, timezone: ZoneInfo | None) -> None:
    if not timeline:
        console.print("No token usage reported in this session.")
        return

    table = Table(title="Token Timeline", title_justify="left")
    table.add_column("Time", justify="left")
    table.add_column("Cached", justify="right")
    table.add_column("User", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Reasoning", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Step", justify="right")
    table.add_column("Context Window", justify="right")

    # deltas[i - 1] describes the step into timeline[i].
    deltas = compute_timeline_deltas(timeline)
    for index, point in enumerate(timeline):
        step = deltas[index - 1].total_tokens if index > 0 else None
        table.add_row(
            format_datetime(point.timestamp, timezone, "%H:%M:%S"),
            f"{point.usage.cached_input_tokens:,}",
            f"{point.derived_user_tokens:,}",
            f"{point.usage.output_tokens:,}",
            f"{point.usage.reasoning_output_tokens:,}",
            f"{point.usage.total_tokens:,}",
            format_signed(step),
            f"{point.context_window_size:,}" if point.context_window_size is not None else "-",
            style="red" if step is not None and step < 0 else None,
        )
    console.print(table)


def _print_tool_call_table(
    tool_calls: list[ToolCallRecord],
    insights: dict[str, ToolCallInsight],
    console: Console,
    timezone: ZoneInfo | None,
) -> None:
    if not tool_calls:
        console.print("No tool calls in this session.")
        return

    table = Table(title="Tool Calls", title_justify="left")
    table.add_column("Call", justify="left")
    table.add_column("Name", justify="left")
    table.add_column("Kind", justify="left")
    table.add_column("Status", justify="left")
    table.add_column("Started", justify="left")
    table.add_column("Duration", justify="right")
    table.add_column("Context", justify="right")
    table.add_column("Output", justify="left", max_width=60)

    for index, call in enumerate(tool_calls):
        insight = insights.get(call.id)
        table.add_row(
            escape(short_id(call.id)),
            escape(call.name),
            call.tool_kind,
            call.status,
            format_datetime(call.started_at, timezone, "%H:%M:%S"),
            format_duration_ms(call.duration_ms),
            format_signed(insight.delta_tokens if insight is not None else None),
            escape(_excerpt(call.output or "")),
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )
    console.print(table)


def _print_transcript(messages: list[ChatMessage], console: Console, timezone: ZoneInfo | None) -> None:
    if not messages:
        console.print("No messages in this session.")
        return

    console.print("[bold]Transcript[/bold]")
    for message in messages:
        style = MESSAGE_STYLES["status"] if message.kind == "status" else MESSAGE_STYLES.get(message.role, "white")
        label = message.role if message.kind == "text" else f"{message.role}/{message.kind}"
        console.print(
            f"[{format_datetime(message.timestamp, timezone, '%H:%M:%S')}] {label}: {_excerpt(message.text)}",
            style=style,
            markup=False,
        )


def _activity_label(value: str | None, now: datetime, timezone: ZoneInfo | None) -> str:
    absolute = format_datetime(value, timezone)
    if absolute == "-":
        return absolute
    return f"{absolute} ({format_relative(value, now)})"


def _excerpt(text: str, limit: int = TEXT_EXCERPT_LIMIT) -> str:
    collapsed = " ".join(text.split())
    if len(collapsed) > limit:
        return f"{collapsed[: limit - 3]}..."
    return collapsed
