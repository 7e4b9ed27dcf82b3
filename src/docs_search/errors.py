"""Exception hierarchy for the search subsystem.

Every failure here degrades search instead of crashing the host: the engine
catches these at its boundaries, logs them, and serves fewer (or zero)
results.
"""

from __future__ import annotations


class SearchError(Exception):
    """Base class for all search subsystem errors."""


class ArtifactLoadError(SearchError):
    """The index artifact could not be loaded; retryable on the next query."""


class ArtifactNotFoundError(ArtifactLoadError):
    """No candidate location responded successfully."""

    def __init__(self, candidates: list[str], reasons: list[str] | None = None) -> None:
        self.candidates = list(candidates)
        self.reasons = list(reasons or [])
        detail = "; ".join(self.reasons) if self.reasons else "no candidates configured"
        super().__init__(f"Search data file not found at any expected location ({detail})")


class ArtifactMalformedError(ArtifactLoadError):
    """The artifact payload parsed but is not a document array."""


class WorkerFailure(SearchError):
    """The background worker could not answer a request."""


class WorkerTimeoutError(WorkerFailure):
    """The worker did not reply within the configured timeout."""


class WorkerError(WorkerFailure):
    """The worker replied with an error message or died."""


class InvalidDocumentError(SearchError):
    """A single document failed shape validation."""

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"Invalid document at index {index}: {reason}")


class IndexNotLoadedError(SearchError):
    """A query was issued before any artifact snapshot was installed."""
