"""
Harvest Exceptions

Fatal errors abort a compile run; everything else is counted and logged by
the pipeline. Exceptions carry optional context values that end up in logs.
"""

from typing import Any, Dict


class HarvestError(Exception):
    """Base error for Harvest. Keyword arguments are kept as log context."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        values = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({values})"


class ConfigError(HarvestError):
    """Invalid or missing configuration."""
    pass


class CompileError(HarvestError):
    """Workspace metadata could not be loaded; the whole run is aborted."""
    pass


class FetchError(HarvestError):
    """A provider failed to return data."""
    pass


class ExtractionError(HarvestError):
    """The extraction oracle failed or returned an unusable response."""
    pass


class RepositoryError(HarvestError):
    """The persistence layer rejected a read or write."""
    pass
