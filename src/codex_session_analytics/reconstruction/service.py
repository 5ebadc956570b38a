"""Service orchestration for session analytics views."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from .aggregate import aggregate_projects, sort_sessions_by_activity
from .cache import InMemorySummaryCache, SummaryCache
from .errors import SourceAccessError
from .reader import read_envelopes
from .schemas import ProjectSummary, SessionDetail, SessionSource, SessionSummary
from .summary import extract_session_id, load_session_summary, resolve_session_id, source_mtime_ns
from .timeline import build_token_timeline
from .tool_calls import reconcile_tool_calls
from .transcript import build_transcript
from ..paths import get_sessions_root

LOGGER = logging.getLogger(__name__)

SourceDiscovery = Callable[[Path], list[SessionSource]]


class SessionAnalyticsService:
    """Coordinates source enumeration, the summary cache, and the view builders."""

    def __init__(
        self,
        codex_root: Path,
        cache: SummaryCache | None = None,
        discover: SourceDiscovery | None = None,
    ) -> None:
        self._codex_root = codex_root
        self._cache = cache if cache is not None else InMemorySummaryCache()
        self._discover = discover or discover_session_sources

    def list_session_summaries(self) -> list[SessionSummary]:
        """Summarize every valid session, most recently active first.

        Sources that cannot be read are logged and skipped.
        """
        summaries: list[SessionSummary] = []
        for source in self._discover(self._codex_root):
            try:
                summary = load_session_summary(source, self._cache)
            except SourceAccessError as exc:
                LOGGER.warning("Skipping unreadable session log: %s", exc)
                continue
            if summary is None:
                LOGGER.info("Skipping %s: no session_meta record.", source.path)
                continue
            summaries.append(summary)
        return sort_sessions_by_activity(summaries)

    def list_project_summaries(self) -> list[ProjectSummary]:
        """Roll sessions up by project."""
        return aggregate_projects(self.list_session_summaries())

    def list_sessions_for_project(self, project_id: str) -> list[SessionSummary]:
        """Return the sessions of one project, most recently active first."""
        return [summary for summary in self.list_session_summaries() if summary.project_id == project_id]

    def find_session_source(self, session_id: str) -> SessionSource | None:
        """Locate the log source for a session id."""
        for source in self._discover(self._codex_root):
            if resolve_session_id(source) == session_id:
                return source
        return None

    def get_session_detail(self, session_id: str) -> SessionDetail | None:
        """Build every view of one session; None when no source matches the id.

        Raises:
            SourceAccessError: If the matching log cannot be read.
        """
        source = self.find_session_source(session_id)
        if source is None:
            return None

        # The cached mtime must never be newer than the content it summarizes.
        mtime_ns = source_mtime_ns(source)
        envelopes = read_envelopes(source.path)
        return SessionDetail(
            summary=load_session_summary(source, self._cache, envelopes=envelopes, mtime_ns=mtime_ns),
            messages=build_transcript(envelopes),
            token_timeline=build_token_timeline(envelopes),
            tool_calls=reconcile_tool_calls(envelopes),
        )


def discover_session_sources(codex_root: Path) -> list[SessionSource]:
    """Discover rollout JSONL files under the Codex sessions directory in sorted path order."""
    sessions_root = get_sessions_root(codex_root)
    if not sessions_root.exists():
        return []
    return [
        SessionSource(
            path=path,
            session_id=extract_session_id(path),
            relative_path=path.relative_to(codex_root).as_posix(),
        )
        for path in sorted(sessions_root.rglob("*.jsonl"))
        if path.is_file()
    ]
