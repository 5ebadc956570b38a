#!/usr/bin/env python3
"""Smoke-check session reconstruction against a local Codex home.

Prints the number of projects found, then the session count of the first few
projects, and optionally walks every session detail to surface unreadable logs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from codex_session_analytics.paths import get_codex_root
from codex_session_analytics.reconstruction import InMemorySummaryCache, SessionAnalyticsService, SourceAccessError

APP = typer.Typer(add_completion=False, help=__doc__)


@APP.command()
def inspect(
    codex_root: Annotated[
        Path | None,
        typer.Option("--codex-root", help="Codex home directory. Defaults to $CODEX_ROOT or ~/.codex."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", min=1, help="How many projects to expand with their session counts."),
    ] = 3,
    walk_details: Annotated[
        bool,
        typer.Option("--walk-details", help="Also build every session detail and count failures."),
    ] = False,
) -> None:
    """Prints project and session counts discovered under a Codex home."""
    codex_root = (codex_root or get_codex_root()).expanduser()
    service = SessionAnalyticsService(codex_root=codex_root, cache=InMemorySummaryCache())

    projects = service.list_project_summaries()
    typer.echo(f"codex_root: {codex_root}")
    typer.echo(f"projects: {len(projects)}")
    for project in projects[:limit]:
        sessions = service.list_sessions_for_project(project.id)
        typer.echo(f"  {project.id} {project.name} sessions={len(sessions)} total_tokens={project.total_tokens}")

    if not walk_details:
        return

    sessions = service.list_session_summaries()
    failures = 0
    timeline_points = 0
    tool_calls = 0
    for session in sessions:
        try:
            detail = service.get_session_detail(session.id)
        except SourceAccessError as exc:
            failures += 1
            typer.echo(f"  failed: {exc}")
            continue
        if detail is None:
            failures += 1
            typer.echo(f"  missing: {session.id}")
            continue
        timeline_points += len(detail.token_timeline)
        tool_calls += len(detail.tool_calls)

    typer.echo(f"sessions: {len(sessions)}")
    typer.echo(f"timeline_points: {timeline_points}")
    typer.echo(f"tool_calls: {tool_calls}")
    typer.echo(f"failures: {failures}")
    if failures:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    APP()
