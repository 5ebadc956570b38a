"""Shared path utilities for codex-session-analytics."""

from __future__ import annotations

import os
from pathlib import Path


def get_codex_root() -> Path:
    """Return the Codex home directory, honouring `CODEX_ROOT`."""
    codex_root = os.environ.get("CODEX_ROOT")
    if codex_root:
        return Path(codex_root).expanduser()
    return Path("~/.codex").expanduser()


def get_sessions_root(codex_root: Path) -> Path:
    """Return the directory holding rollout JSONL files under a Codex home."""
    return codex_root / "sessions"


def get_default_cache_path() -> Path:
    """Return the default summary cache path following XDG conventions."""
    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        base_cache_dir = Path(xdg_cache_home).expanduser()
    else:
        base_cache_dir = Path("~/.cache").expanduser()
    return base_cache_dir / "codex-session-analytics" / "summaries.duckdb"
