"""Candidate fetcher - queries the catalog for plausible matches of a source entry."""

from __future__ import annotations

import asyncio

import structlog

from mangasync.core.errors import (
    CatalogLookupError,
    CatalogTimeoutError,
    MatchingCancelledError,
)
from mangasync.core.matching.config import MatchingConfig, get_matching_config
from mangasync.core.matching.models import CatalogCandidate, SourceEntry
from mangasync.core.matching.normalizer import normalize
from mangasync.core.metrics import catalog_lookup_failures_total

from .base import CatalogClient

logger = structlog.get_logger("mangasync.catalog.fetcher")


class CandidateFetcher:
    """Fetches catalog candidates for source entries.

    One fetcher lives for one matching run: lookups are memoized per query
    string for its lifetime (when ``config.memoize_lookups`` is on) and it
    stops starting lookups once ``cancel_event`` is set.
    """

    def __init__(
        self,
        client: CatalogClient,
        config: MatchingConfig | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.client = client
        self.config = config or get_matching_config()
        self.cancel_event = cancel_event
        self._memo: dict[str, list[CatalogCandidate]] = {}

    def build_queries(self, source: SourceEntry) -> list[str]:
        """Lookup queries in order: exact title, normalized title, alternative titles."""
        queries: list[str] = []

        def add(query: str | None) -> None:
            if query and query.strip() and query.strip() not in queries:
                queries.append(query.strip())

        add(source.title)
        add(str(normalize(source.title)))
        if self.config.search_alternative_titles:
            for alternative in source.alternative_titles:
                add(alternative)
        return queries

    async def _lookup(self, query: str) -> list[CatalogCandidate]:
        if self.config.memoize_lookups and query in self._memo:
            return self._memo[query]

        results = await self.client.search(
            query,
            limit=self.config.max_candidates,
            timeout=self.config.lookup_timeout,
        )
        if self.config.memoize_lookups:
            self._memo[query] = results
        return results

    async def fetch_candidates(self, source: SourceEntry) -> list[CatalogCandidate]:
        """Fetch up to ``max_candidates`` candidates, deduplicated by target ID.

        Candidates keep the order they were first seen in. A failed or timed
        out lookup is skipped as long as another lookup succeeds. The lookup
        timeout applies per catalog request, not to rate limit waits.

        Raises:
            CatalogLookupError: If every lookup failed
            MatchingCancelledError: If the run was cancelled before a lookup started
        """
        merged: dict[int, CatalogCandidate] = {}
        succeeded = 0
        errors: list[str] = []

        for query in self.build_queries(source):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise MatchingCancelledError(f"Matching cancelled before lookup of {query!r}")

            try:
                results = await self._lookup(query)
            except CatalogTimeoutError:
                catalog_lookup_failures_total.labels(reason="timeout").inc()
                logger.warning(
                    "Catalog lookup timed out",
                    source_id=source.id,
                    query=query,
                    timeout=self.config.lookup_timeout,
                )
                errors.append(f"{query!r}: timed out after {self.config.lookup_timeout}s")
                continue
            except CatalogLookupError as e:
                catalog_lookup_failures_total.labels(reason="error").inc()
                logger.warning(
                    "Catalog lookup failed",
                    source_id=source.id,
                    query=query,
                    error=str(e),
                )
                errors.append(f"{query!r}: {e}")
                continue

            succeeded += 1
            for candidate in results:
                merged.setdefault(candidate.id, candidate)

        if succeeded == 0 and errors:
            raise CatalogLookupError("; ".join(errors))

        return list(merged.values())[: self.config.max_candidates]
