"""Project-level rollups over session summaries."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from functools import cmp_to_key

from .schemas import ProjectSummary, SessionSummary
from .timestamps import parse_timestamp


@dataclass
class _ProjectTotals:
    """Mutable per-project accumulator."""

    name: str
    path: str
    session_count: int = 0
    total_tokens: int = 0
    latest_activity: datetime | None = None
    latest_activity_at: str | None = None


def aggregate_projects(summaries: Iterable[SessionSummary]) -> list[ProjectSummary]:
    """Group sessions by project id, most recently active project first.

    Projects whose latest activity cannot be resolved keep their relative order.
    """
    totals: dict[str, _ProjectTotals] = {}
    for summary in summaries:
        project = totals.get(summary.project_id)
        if project is None:
            project = _ProjectTotals(name=summary.project_name, path=summary.project_path)
            totals[summary.project_id] = project

        project.session_count += 1
        project.total_tokens += summary.total_tokens
        activity = parse_timestamp(summary.last_activity_at)
        if activity is not None and (project.latest_activity is None or activity > project.latest_activity):
            project.latest_activity = activity
            project.latest_activity_at = summary.last_activity_at

    projects = [
        ProjectSummary(
            id=project_id,
            name=project.name,
            path=project.path,
            session_count=project.session_count,
            latest_activity_at=project.latest_activity_at,
            total_tokens=project.total_tokens,
        )
        for project_id, project in totals.items()
    ]
    return sorted(projects, key=cmp_to_key(_compare_latest_activity))


def sort_sessions_by_activity(summaries: Iterable[SessionSummary]) -> list[SessionSummary]:
    """Return sessions most recently active first; unresolved activity sorts last."""

    def key(summary: SessionSummary) -> tuple[int, float]:
        activity = parse_timestamp(summary.last_activity_at)
        if activity is None:
            return (1, 0.0)
        return (0, -activity.timestamp())

    return sorted(summaries, key=key)


def _compare_latest_activity(left: ProjectSummary, right: ProjectSummary) -> int:
    left_activity = parse_timestamp(left.latest_activity_at)
    right_activity = parse_timestamp(right.latest_activity_at)
    if left_activity is None or right_activity is None:
        return 0
    if left_activity > right_activity:
        return -1
    if left_activity < right_activity:
        return 1
    return 0
