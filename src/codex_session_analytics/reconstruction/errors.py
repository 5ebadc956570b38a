"""Custom exceptions for session log reconstruction failures."""


class ReconstructionError(Exception):
    """Base exception for reconstruction errors."""


class SourceAccessError(ReconstructionError):
    """Raised when a session log cannot be opened, stat-ed, or read."""


class SummaryCacheError(ReconstructionError):
    """Raised when the persistent summary cache cannot be used."""
