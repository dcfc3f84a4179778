"""Matching service - fetches and resolves candidates for a whole library."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from pydantic import BaseModel, Field

from mangasync.core.catalog.base import CatalogClient
from mangasync.core.catalog.fetcher import CandidateFetcher
from mangasync.core.errors import CatalogLookupError, MatchingCancelledError
from mangasync.core.metrics import match_results_total
from mangasync.core.tracing import get_trace_id, trace_context

from .config import MatchingConfig, get_matching_config
from .models import MangaMatchResult, SourceEntry
from .resolver import resolve

logger = structlog.get_logger("mangasync.matching.service")


class MatchingReport(BaseModel):
    """Outcome of one matching run.

    ``results`` follows input order; when the run was cancelled it holds only
    the entries that finished before cancellation.
    """

    results: list[MangaMatchResult] = Field(default_factory=list)
    cancelled: bool = False
    lookup_failures: int = 0
    total: int = 0


class MatchingService:
    """Drives candidate fetching and resolution with bounded concurrency."""

    def __init__(self, client: CatalogClient, config: MatchingConfig | None = None) -> None:
        self.client = client
        self.config = config or get_matching_config()

    async def match_entry(
        self,
        entry: SourceEntry,
        fetcher: CandidateFetcher,
    ) -> tuple[MangaMatchResult, bool]:
        """Fetch and resolve one entry.

        Returns:
            Tuple of (result, lookup_failed). A failed lookup is an unmatched
            result with ``error`` set.

        Raises:
            MatchingCancelledError: If the run was cancelled before a lookup started
        """
        try:
            candidates = await fetcher.fetch_candidates(entry)
        except CatalogLookupError as e:
            logger.warning(
                "No candidates, catalog lookup failed",
                source_id=entry.id,
                title=entry.title,
                error=str(e),
            )
            return MangaMatchResult(source=entry, status="unmatched", error=str(e)), True

        return resolve(entry, candidates, self.config), False

    async def run(
        self,
        entries: Sequence[SourceEntry],
        cancel_event: asyncio.Event | None = None,
    ) -> MatchingReport:
        """Match every entry, keeping input order.

        Args:
            entries: Source entries
            cancel_event: Once set, no new lookup starts; finished results are kept

        Returns:
            MatchingReport
        """
        with trace_context(get_trace_id()) as trace_id:
            fetcher = CandidateFetcher(self.client, self.config, cancel_event)
            semaphore = asyncio.Semaphore(self.config.max_concurrent_lookups)

            logger.info(
                "Starting matching run",
                total=len(entries),
                max_concurrent=self.config.max_concurrent_lookups,
                trace_id=trace_id,
            )

            async def process_entry(entry: SourceEntry) -> tuple[MangaMatchResult, bool] | None:
                async with semaphore:
                    if cancel_event is not None and cancel_event.is_set():
                        return None
                    try:
                        return await self.match_entry(entry, fetcher)
                    except MatchingCancelledError:
                        return None

            outcomes = await asyncio.gather(*(process_entry(entry) for entry in entries))

            results: list[MangaMatchResult] = []
            lookup_failures = 0
            for outcome in outcomes:
                if outcome is None:
                    continue
                result, lookup_failed = outcome
                results.append(result)
                lookup_failures += int(lookup_failed)
                match_results_total.labels(status=result.status).inc()

            cancelled = len(results) < len(entries)
            counts: dict[str, int] = {}
            for result in results:
                counts[result.status] = counts.get(result.status, 0) + 1

            logger.info(
                "Matching run finished",
                total=len(entries),
                resolved=len(results),
                lookup_failures=lookup_failures,
                cancelled=cancelled,
                **counts,
            )

            return MatchingReport(
                results=results,
                cancelled=cancelled,
                lookup_failures=lookup_failures,
                total=len(entries),
            )
