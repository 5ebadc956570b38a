"""Summary caches keyed by source path and source modification time."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import duckdb
import orjson

from .errors import SummaryCacheError
from .schemas import SessionSummary

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Summary computed for one source at one modification time; None marks an invalid session."""

    mtime_ns: int
    summary: SessionSummary | None


class SummaryCache:
    """Base cache with a single-writer-per-key `get_or_compute` contract.

    Subclasses provide entry storage through `_load`, `_store`, and `_delete`.
    Concurrent callers for the same key wait for the one recomputation instead
    of repeating it; different keys never block each other.
    """

    def __init__(self) -> None:
        self._locks_guard = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    def get_or_compute(
        self,
        source_path: str,
        mtime_ns: int,
        compute: Callable[[], SessionSummary | None],
    ) -> SessionSummary | None:
        """Return the cached summary when the stored mtime matches, else compute and store it."""
        with self._lock_for(source_path):
            entry = self._load(source_path)
            if entry is not None and entry.mtime_ns == mtime_ns:
                return entry.summary

            summary = compute()
            self._store(source_path, CacheEntry(mtime_ns=mtime_ns, summary=summary))
            return summary

    def invalidate(self, source_path: str) -> None:
        """Drop the entry for one source."""
        with self._lock_for(source_path):
            self._delete(source_path)

    def close(self) -> None:
        """Release resources held by the cache."""

    def _lock_for(self, source_path: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._key_locks.get(source_path)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[source_path] = lock
            return lock

    def _load(self, source_path: str) -> CacheEntry | None:
        raise NotImplementedError

    def _store(self, source_path: str, entry: CacheEntry) -> None:
        raise NotImplementedError

    def _delete(self, source_path: str) -> None:
        raise NotImplementedError


class InMemorySummaryCache(SummaryCache):
    """Process-local summary cache."""

    def __init__(self) -> None:
        super().__init__()
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _load(self, source_path: str) -> CacheEntry | None:
        return self._entries.get(source_path)

    def _store(self, source_path: str, entry: CacheEntry) -> None:
        self._entries[source_path] = entry

    def _delete(self, source_path: str) -> None:
        self._entries.pop(source_path, None)


class DuckDBSummaryCache(SummaryCache):
    """DuckDB-backed summary cache that survives across process runs."""

    def __init__(self, database_path: Path) -> None:
        super().__init__()
        self._database_path = database_path
        self._connection_lock = threading.Lock()
        try:
            self._connection = duckdb.connect(str(database_path))
        except duckdb.Error as exc:
            raise SummaryCacheError(f"Failed to open summary cache {database_path}: {exc}") from exc
        self.ensure_schema()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._connection_lock:
            self._connection.close()

    def ensure_schema(self) -> None:
        """Create the summary table when missing."""
        with self._connection_lock:
            _ = self._connection.execute(
                """
CREATE TABLE IF NOT EXISTS codex_session_summaries (
    source_path VARCHAR PRIMARY KEY,
    file_mtime_ns BIGINT NOT NULL,
    summary_json VARCHAR NOT NULL,
    cached_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
                """
            )

    def _load(self, source_path: str) -> CacheEntry | None:
        with self._connection_lock:
            row = self._connection.execute(
                """
SELECT file_mtime_ns, summary_json
FROM codex_session_summaries
WHERE source_path = ?
                """,
                [source_path],
            ).fetchone()
        if row is None:
            return None

        try:
            summary = _decode_summary(row[1])
        except (orjson.JSONDecodeError, TypeError) as exc:
            LOGGER.warning("Discarding unreadable cache entry for %s: %s", source_path, exc)
            return None
        return CacheEntry(mtime_ns=int(row[0]), summary=summary)

    def _store(self, source_path: str, entry: CacheEntry) -> None:
        with self._connection_lock:
            _ = self._connection.execute(
                """
INSERT INTO codex_session_summaries (
    source_path,
    file_mtime_ns,
    summary_json
)
VALUES (?, ?, ?)
ON CONFLICT (source_path)
DO UPDATE SET
    file_mtime_ns = EXCLUDED.file_mtime_ns,
    summary_json = EXCLUDED.summary_json,
    cached_at = NOW()
                """,
                [source_path, entry.mtime_ns, orjson.dumps(entry.summary).decode("utf-8")],
            )

    def _delete(self, source_path: str) -> None:
        with self._connection_lock:
            _ = self._connection.execute(
                "DELETE FROM codex_session_summaries WHERE source_path = ?",
                [source_path],
            )


def _decode_summary(summary_json: str) -> SessionSummary | None:
    """Rebuild a summary from its stored JSON document; `null` marks an invalid session."""
    data = orjson.loads(summary_json)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise TypeError(f"Expected summary object, got {type(data).__name__}.")
    return SessionSummary(**data)
