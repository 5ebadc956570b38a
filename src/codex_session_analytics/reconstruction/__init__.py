"""Reconstruction of derived session views from Codex rollout logs."""

from .cache import DuckDBSummaryCache, InMemorySummaryCache, SummaryCache
from .errors import ReconstructionError, SourceAccessError, SummaryCacheError
from .service import SessionAnalyticsService, discover_session_sources

__all__ = [
    "DuckDBSummaryCache",
    "InMemorySummaryCache",
    "ReconstructionError",
    "SessionAnalyticsService",
    "SourceAccessError",
    "SummaryCache",
    "SummaryCacheError",
    "discover_session_sources",
]
