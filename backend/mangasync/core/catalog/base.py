"""Base abstract class for target catalog clients."""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from mangasync.core.matching.models import CatalogCandidate, CatalogListEntry


class CatalogClient(ABC):
    """Abstract base class for target catalog clients.

    Implementations raise CatalogLookupError (CatalogTimeoutError when the
    catalog did not answer in time) from ``search`` and SyncTransientError /
    SyncPermanentError from ``update_entry``.

    ``timeout`` bounds each request exchange with the catalog. Time spent
    waiting for a rate limit slot does not count against it.
    """

    def __init__(self, name: str) -> None:
        """Initialize catalog client.

        Args:
            name: Name of the catalog (for logging)
        """
        self.name = name
        self.logger = structlog.get_logger(f"mangasync.catalog.{name.lower()}")

    @abstractmethod
    async def search(
        self,
        title: str,
        limit: int = 10,
        timeout: float | None = None,
    ) -> list[CatalogCandidate]:
        """Search the catalog by title.

        Args:
            title: Title to search for
            limit: Maximum number of candidates to return
            timeout: Seconds allowed per request (None uses the client default)

        Returns:
            Candidates in the catalog's relevance order
        """

    @abstractmethod
    async def update_entry(
        self,
        target_id: int,
        status: str,
        progress: int,
        score: float | None = None,
        private: bool = False,
        timeout: float | None = None,
    ) -> CatalogListEntry:
        """Create or update the user's list entry for a catalog item (upsert).

        Args:
            target_id: Catalog item ID
            status: Target list status (CURRENT, COMPLETED, ...)
            progress: Chapters read
            score: Optional score
            private: Whether the entry is private
            timeout: Seconds allowed for the request (None uses the client default)

        Returns:
            The saved list entry
        """

    async def close(self) -> None:
        """Release resources held by the client."""
