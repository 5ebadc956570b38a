"""Integration tests for the session analytics service."""

from __future__ import annotations

import os
from pathlib import Path

import orjson
import pytest

from codex_session_analytics.reconstruction.cache import DuckDBSummaryCache, InMemorySummaryCache
from codex_session_analytics.reconstruction.errors import SourceAccessError
from codex_session_analytics.reconstruction.reader import read_envelopes
from codex_session_analytics.reconstruction.schemas import SessionSource
from codex_session_analytics.reconstruction.service import SessionAnalyticsService, discover_session_sources

SESSION_ID = "0199a1b2-c3d4-7e5f-8a9b-0c1d2e3f4a5b"


def test_end_to_end_session_views(tmp_path: Path) -> None:
    """Meta, one prompt, one tool call pair, and two usage reports produce consistent views."""
    codex_root = tmp_path / "codex"
    _write_session(codex_root, SESSION_ID, _scenario_events())

    service = SessionAnalyticsService(codex_root=codex_root)
    detail = service.get_session_detail(SESSION_ID)

    assert detail is not None
    summary = detail.summary
    assert summary is not None
    assert summary.id == SESSION_ID
    assert summary.project_id == "home-u-proj"
    assert summary.preview == "fix bug"
    assert summary.tool_call_count == 1
    assert summary.total_tokens == 150
    assert summary.relative_path == f"sessions/2026/02/15/rollout-2026-02-15T00-00-00-{SESSION_ID}.jsonl"

    assert len(detail.tool_calls) == 1
    tool_call = detail.tool_calls[0]
    assert tool_call.id == "c1"
    assert tool_call.status == "completed"
    assert tool_call.duration_ms == 1500

    assert [point.usage.total_tokens for point in detail.token_timeline] == [100, 150]
    assert detail.token_timeline[0].timestamp_ms < detail.token_timeline[1].timestamp_ms

    assert [message.text for message in detail.messages] == ["fix bug"]


def test_session_detail_is_idempotent(tmp_path: Path) -> None:
    """Re-deriving an unchanged log yields byte-identical output."""
    codex_root = tmp_path / "codex"
    _write_session(codex_root, SESSION_ID, _scenario_events())
    service = SessionAnalyticsService(codex_root=codex_root)

    first = orjson.dumps(service.get_session_detail(SESSION_ID))
    second = orjson.dumps(service.get_session_detail(SESSION_ID))
    fresh = orjson.dumps(SessionAnalyticsService(codex_root=codex_root).get_session_detail(SESSION_ID))

    assert first == second == fresh


def test_project_listing_skips_sessions_without_meta(tmp_path: Path) -> None:
    codex_root = tmp_path / "codex"
    _write_session(codex_root, SESSION_ID, _scenario_events())
    _write_session(codex_root, "aaaa", [_session_meta("2026-02-16T00:00:00Z", "/home/u/other"), _token("2026-02-16T00:01:00Z", 5)])
    _write_session(codex_root, "bbbb", [_token("2026-02-16T00:01:00Z", 5)])
    _write_session(codex_root, "cccc", [_session_meta("2026-02-14T00:00:00Z", "/home/u/proj"), _token("2026-02-14T00:01:00Z", 7)])

    service = SessionAnalyticsService(codex_root=codex_root)

    sessions = service.list_session_summaries()
    assert [session.id for session in sessions] == ["aaaa", SESSION_ID, "cccc"]

    projects = service.list_project_summaries()
    assert [(project.id, project.session_count, project.total_tokens) for project in projects] == [
        ("home-u-other", 1, 5),
        ("home-u-proj", 2, 157),
    ]

    assert [session.id for session in service.list_sessions_for_project("home-u-proj")] == [SESSION_ID, "cccc"]
    assert service.list_sessions_for_project("missing") == []


def test_session_without_meta_has_detail_but_no_summary(tmp_path: Path) -> None:
    codex_root = tmp_path / "codex"
    _write_session(codex_root, "bbbb", [_token("2026-02-16T00:01:00Z", 5)])

    detail = SessionAnalyticsService(codex_root=codex_root).get_session_detail("bbbb")

    assert detail is not None
    assert detail.summary is None
    assert len(detail.token_timeline) == 1


def test_unknown_session_id_returns_none(tmp_path: Path) -> None:
    assert SessionAnalyticsService(codex_root=tmp_path).get_session_detail("nope") is None


def test_listing_uses_cache_and_sees_appended_records(tmp_path: Path) -> None:
    """Growing logs are re-summarized once their mtime moves."""
    codex_root = tmp_path / "codex"
    session_file = _write_session(codex_root, SESSION_ID, _scenario_events())
    cache = DuckDBSummaryCache(tmp_path / "summaries.duckdb")
    try:
        service = SessionAnalyticsService(codex_root=codex_root, cache=cache)
        assert service.list_session_summaries()[0].total_tokens == 150

        with session_file.open("ab") as handle:
            handle.write(orjson.dumps(_token("2026-02-15T00:00:09Z", 400)) + b"\n")
        stat_result = session_file.stat()
        os.utime(session_file, ns=(stat_result.st_atime_ns, stat_result.st_mtime_ns + 1_000_000_000))

        assert service.list_session_summaries()[0].total_tokens == 400
    finally:
        cache.close()


def test_append_during_detail_read_is_seen_by_next_listing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A summary built from a read is cached under the mtime observed before that read."""
    codex_root = tmp_path / "codex"
    _write_session(codex_root, SESSION_ID, _scenario_events())

    def read_then_append(session_file_path: Path):
        envelopes = read_envelopes(session_file_path)
        with session_file_path.open("ab") as handle:
            handle.write(orjson.dumps(_token("2026-02-15T00:00:09Z", 500)) + b"\n")
        stat_result = session_file_path.stat()
        os.utime(session_file_path, ns=(stat_result.st_atime_ns, stat_result.st_mtime_ns + 1_000_000_000))
        return envelopes

    monkeypatch.setattr("codex_session_analytics.reconstruction.service.read_envelopes", read_then_append)
    service = SessionAnalyticsService(codex_root=codex_root)

    detail = service.get_session_detail(SESSION_ID)
    assert detail is not None and detail.summary is not None
    assert detail.summary.total_tokens == 150

    assert service.list_session_summaries()[0].total_tokens == 500


def test_listed_ids_open_their_detail_for_non_rollout_file_names(tmp_path: Path) -> None:
    """Logs outside the rollout naming are listed and looked up by file stem."""
    sessions_root = tmp_path / "sessions"
    sessions_root.mkdir()
    with (sessions_root / "custom-name.jsonl").open("wb") as handle:
        for event in [_session_meta("2026-02-15T00:00:00Z", "/home/u/proj"), _token("2026-02-15T00:00:01Z", 5)]:
            handle.write(orjson.dumps(event))
            handle.write(b"\n")

    service = SessionAnalyticsService(codex_root=tmp_path)
    listed_ids = [session.id for session in service.list_session_summaries()]

    assert listed_ids == ["custom-name"]
    detail = service.get_session_detail(listed_ids[0])
    assert detail is not None and detail.summary is not None
    assert detail.summary.id == "custom-name"
    assert service.get_session_detail("meta") is None


def test_listing_skips_unreadable_sources_and_detail_raises(tmp_path: Path) -> None:
    """An injected enumeration step may hand over sources that vanished."""
    missing = SessionSource(path=tmp_path / "gone.jsonl", session_id="gone", relative_path="gone.jsonl")
    service = SessionAnalyticsService(
        codex_root=tmp_path,
        cache=InMemorySummaryCache(),
        discover=lambda _root: [missing],
    )

    assert service.list_session_summaries() == []
    with pytest.raises(SourceAccessError):
        service.get_session_detail("gone")


def test_discover_session_sources_returns_sorted_rollouts(tmp_path: Path) -> None:
    codex_root = tmp_path / "codex"
    _write_session(codex_root, "bbbb", [])
    _write_session(codex_root, "aaaa", [], day="14")
    (codex_root / "sessions" / "notes.txt").write_text("ignored", encoding="utf-8")

    sources = discover_session_sources(codex_root)

    assert [source.session_id for source in sources] == ["aaaa", "bbbb"]
    assert sources[0].relative_path == "sessions/2026/02/14/rollout-2026-02-15T00-00-00-aaaa.jsonl"
    assert discover_session_sources(tmp_path / "absent") == []


def _scenario_events() -> list[dict[str, object]]:
    return [
        _session_meta("2026-02-15T00:00:00Z", "/home/u/proj"),
        {
            "timestamp": "2026-02-15T00:00:01Z",
            "type": "response_item",
            "payload": {"type": "message", "role": "user", "content": [{"type": "input_text", "text": "fix bug"}]},
        },
        {
            "timestamp": "2026-02-15T00:00:02Z",
            "type": "response_item",
            "payload": {"type": "function_call", "call_id": "c1", "name": "shell", "arguments": '{"command": ["ls"]}'},
        },
        {
            "timestamp": "2026-02-15T00:00:03.500Z",
            "type": "response_item",
            "payload": {"type": "function_call_output", "call_id": "c1", "output": "parser.py"},
        },
        _token("2026-02-15T00:00:04Z", 100),
        _token("2026-02-15T00:00:05Z", 150),
    ]


def _session_meta(timestamp: str, cwd: str) -> dict[str, object]:
    return {"timestamp": timestamp, "type": "session_meta", "payload": {"id": "meta", "timestamp": timestamp, "cwd": cwd}}


def _token(timestamp: str, total: int) -> dict[str, object]:
    return {
        "timestamp": timestamp,
        "type": "event_msg",
        "payload": {
            "type": "token_count",
            "info": {
                "total_token_usage": {
                    "input_tokens": total,
                    "cached_input_tokens": 0,
                    "output_tokens": 0,
                    "reasoning_output_tokens": 0,
                    "total_tokens": total,
                },
                "model_context_window": 272000,
            },
        },
    }


def _write_session(codex_root: Path, session_id: str, events: list[dict[str, object]], day: str = "15") -> Path:
    """Write a rollout file under the dated sessions tree."""
    directory = codex_root / "sessions" / "2026" / "02" / day
    directory.mkdir(parents=True, exist_ok=True)
    session_file = directory / f"rollout-2026-02-15T00-00-00-{session_id}.jsonl"
    with session_file.open("wb") as handle:
        for event in events:
            handle.write(orjson.dumps(event))
            handle.write(b"\n")
    return session_file
