"""Exception hierarchy for matching and synchronization."""

from __future__ import annotations

from typing import Literal

TransientKind = Literal["timeout", "rate_limit", "server_error", "network"]
PermanentKind = Literal["validation", "not_found", "auth", "duplicate"]


class MangaSyncError(Exception):
    """Base class for all application errors."""


class CatalogLookupError(MangaSyncError):
    """Candidate lookup against the target catalog failed.

    Callers treat this as an empty candidate set for the entry.
    """


class CatalogTimeoutError(CatalogLookupError):
    """Candidate lookup failed because the catalog did not answer in time."""


class ScoringError(MangaSyncError):
    """Scoring input was malformed (missing title, invalid identifiers)."""


class SyncError(MangaSyncError):
    """Base class for errors raised while pushing an entry to the target."""

    kind: str = "unknown"

    def __init__(self, message: str, kind: str | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class SyncTransientError(SyncError):
    """Retryable sync failure (timeout, rate limit, 5xx, network)."""

    kind: TransientKind = "network"

    def __init__(
        self,
        message: str,
        kind: TransientKind = "network",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, kind)
        self.retry_after = retry_after


class SyncPermanentError(SyncError):
    """Non-retryable sync failure (validation, not found, auth, duplicate)."""

    kind: PermanentKind = "validation"

    def __init__(self, message: str, kind: PermanentKind = "validation") -> None:
        super().__init__(message, kind)


class MatchingCancelledError(MangaSyncError):
    """A matching run was cancelled before this lookup started."""
