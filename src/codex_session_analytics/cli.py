"""CLI entrypoints for Codex session analytics."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import orjson
import typer
from rich.console import Console

from .paths import get_codex_root, get_default_cache_path
from .reconstruction.cache import DuckDBSummaryCache, InMemorySummaryCache, SummaryCache
from .reconstruction.errors import SourceAccessError, SummaryCacheError
from .reconstruction.service import SessionAnalyticsService
from .report.render import render_project_summaries, render_session_detail, render_session_summaries

LOGGER = logging.getLogger(__name__)

TYPER_APP = typer.Typer(help="Codex session analytics tooling.")

CODEX_ROOT_OPTION = typer.Option(
    None,
    "--codex-root",
    "-r",
    help="Codex home directory containing `sessions/`. Defaults to $CODEX_ROOT or ~/.codex.",
)
CACHE_PATH_OPTION = typer.Option(
    None,
    "--cache-path",
    "-c",
    help="DuckDB file used to persist session summaries between runs.",
)
NO_CACHE_FILE_OPTION = typer.Option(
    False,
    "--no-cache-file",
    help="Keep session summaries in memory only.",
)
JSON_OPTION = typer.Option(False, "--json", help="Print machine-readable JSON instead of tables.")
TIMEZONE_OPTION = typer.Option(
    None,
    "--timezone",
    "-tz",
    help="Timezone to display timestamps in (e.g., 'UTC', 'America/New_York'). Defaults to local system time.",
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable info-level logging.")


@TYPER_APP.callback()
def main() -> None:
    """Root CLI callback."""


@TYPER_APP.command("projects")
def projects_command(
    codex_root: Path | None = CODEX_ROOT_OPTION,
    cache_path: Path | None = CACHE_PATH_OPTION,
    no_cache_file: bool = NO_CACHE_FILE_OPTION,
    as_json: bool = JSON_OPTION,
    timezone: str | None = TIMEZONE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List projects with session counts and token totals."""
    _configure_logging(verbose)
    resolved_timezone = _parse_timezone(timezone)
    cache = _open_cache(cache_path, no_cache_file)
    try:
        service = SessionAnalyticsService(codex_root=codex_root or get_codex_root(), cache=cache)
        projects = service.list_project_summaries()
    finally:
        cache.close()

    if as_json:
        _emit_json({"projects": projects})
        return
    render_project_summaries(projects, Console(), now=datetime.now(UTC), timezone=resolved_timezone)


@TYPER_APP.command("sessions")
def sessions_command(
    project_id: str | None = typer.Argument(None, help="Project id to filter by; all sessions when omitted."),
    codex_root: Path | None = CODEX_ROOT_OPTION,
    cache_path: Path | None = CACHE_PATH_OPTION,
    no_cache_file: bool = NO_CACHE_FILE_OPTION,
    as_json: bool = JSON_OPTION,
    timezone: str | None = TIMEZONE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List session summaries, optionally for one project."""
    _configure_logging(verbose)
    resolved_timezone = _parse_timezone(timezone)
    cache = _open_cache(cache_path, no_cache_file)
    try:
        service = SessionAnalyticsService(codex_root=codex_root or get_codex_root(), cache=cache)
        if project_id is None:
            sessions = service.list_session_summaries()
        else:
            sessions = service.list_sessions_for_project(project_id)
    finally:
        cache.close()

    if as_json:
        _emit_json({"sessions": sessions})
        return
    title = f"Sessions for {project_id}" if project_id else "Sessions"
    render_session_summaries(sessions, Console(), now=datetime.now(UTC), timezone=resolved_timezone, title=title)


@TYPER_APP.command("session")
def session_command(
    session_id: str = typer.Argument(..., help="Session id from the rollout file name."),
    codex_root: Path | None = CODEX_ROOT_OPTION,
    cache_path: Path | None = CACHE_PATH_OPTION,
    no_cache_file: bool = NO_CACHE_FILE_OPTION,
    as_json: bool = JSON_OPTION,
    timezone: str | None = TIMEZONE_OPTION,
    messages: bool = typer.Option(True, "--messages/--no-messages", help="Include the message transcript."),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show the token timeline, tool calls, and transcript of one session."""
    _configure_logging(verbose)
    resolved_timezone = _parse_timezone(timezone)
    cache = _open_cache(cache_path, no_cache_file)
    try:
        service = SessionAnalyticsService(codex_root=codex_root or get_codex_root(), cache=cache)
        detail = service.get_session_detail(session_id)
    except SourceAccessError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        cache.close()

    if detail is None:
        typer.echo(f"Session not found: {session_id}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        _emit_json({"session": detail})
        return
    render_session_detail(detail, Console(), timezone=resolved_timezone, show_messages=messages)


def _configure_logging(verbose: bool) -> None:
    """Initialize default logging for CLI usage."""
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    )


def _open_cache(cache_path: Path | None, no_cache_file: bool) -> SummaryCache:
    """Open the persistent summary cache unless disabled."""
    if no_cache_file:
        return InMemorySummaryCache()

    database_path = cache_path or get_default_cache_path()
    database_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        return DuckDBSummaryCache(database_path)
    except SummaryCacheError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _emit_json(document: dict[str, Any]) -> None:
    """Print a document of derived views as indented JSON."""
    typer.echo(orjson.dumps(document, option=orjson.OPT_INDENT_2).decode("utf-8"))


def _parse_timezone(timezone: str | None) -> ZoneInfo | None:
    """Parse timezone option into a ZoneInfo instance."""
    if timezone is None:
        return None
    try:
        return ZoneInfo(timezone)
    except Exception as exc:
        raise typer.BadParameter(f"Invalid timezone: {timezone}.") from exc


def module_cli_entry_point():
    TYPER_APP()
