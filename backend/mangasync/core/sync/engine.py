"""Synchronization engine - pushes accepted matches to the target service.

Entries are sent in batches with bounded concurrency. Each request has its
own timeout, enforced by the client once the request holds a rate limit
slot; transient failures are retried with exponential backoff up
to ``max_attempts`` and permanent failures are recorded immediately. A
failed entry never aborts its batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime

import structlog

from mangasync.core.catalog.base import CatalogClient
from mangasync.core.errors import SyncPermanentError, SyncTransientError
from mangasync.core.matching.models import MangaMatchResult
from mangasync.core.metrics import sync_entries_total, sync_retries_total
from mangasync.core.tracing import get_trace_id, trace_context

from .config import SyncConfig, get_sync_config
from .models import SyncEntry, SyncEntryOutcome, SyncOutcome
from .preparation import incremental_steps, prepare_sync_entries
from .stats_store import SyncStatsStore

logger = structlog.get_logger("mangasync.sync.engine")

TRANSIENT_KINDS = frozenset({"timeout", "rate_limit", "server_error", "network"})


class SyncEngine:
    """Sends prepared list updates and keeps cumulative SyncStats."""

    def __init__(
        self,
        client: CatalogClient,
        store: SyncStatsStore,
        config: SyncConfig | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.config = config or get_sync_config()

    async def _wait_or_cancel(self, delay: float, cancel_event: asyncio.Event | None) -> bool:
        """Sleep for ``delay`` seconds. Returns True if cancelled meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

    def _outcome(self, entry: SyncEntry, status: str, **kwargs) -> SyncEntryOutcome:
        return SyncEntryOutcome(
            source_id=entry.source_id,
            title=entry.title,
            target_id=entry.target_id,
            status=status,
            **kwargs,
        )

    async def submit_entry(
        self,
        entry: SyncEntry,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncEntryOutcome:
        """Send one entry, retrying transient failures.

        With ``config.incremental`` an update that raises progress is sent as
        the steps of ``incremental_steps``, stopping at the first step that
        does not succeed. ``attempts`` counts requests across all steps.

        Returns:
            Outcome with status succeeded, failed or cancelled (cancelled only
            while waiting to retry)
        """
        steps = incremental_steps(entry) if self.config.incremental else [entry]
        attempts = 0
        for number, step in enumerate(steps, start=1):
            outcome = await self._send(step, cancel_event)
            attempts += outcome.attempts
            if outcome.status != "succeeded":
                break
            if len(steps) > 1:
                logger.debug(
                    "Incremental sync step sent",
                    source_id=entry.source_id,
                    target_id=entry.target_id,
                    step=number,
                    steps=len(steps),
                    progress=step.progress,
                )
        return outcome.model_copy(update={"attempts": attempts})

    async def _send(
        self,
        entry: SyncEntry,
        cancel_event: asyncio.Event | None,
    ) -> SyncEntryOutcome:
        """Send one update, retrying transient failures."""
        attempt = 0
        while True:
            attempt += 1
            try:
                saved = await self.client.update_entry(
                    entry.target_id,
                    status=entry.status,
                    progress=entry.progress,
                    score=entry.score,
                    private=entry.private,
                    timeout=self.config.request_timeout,
                )
                return self._outcome(entry, "succeeded", attempts=attempt, saved=saved)
            except SyncTransientError as e:
                error = e
            except SyncPermanentError as e:
                logger.warning(
                    "Sync entry rejected",
                    source_id=entry.source_id,
                    target_id=entry.target_id,
                    kind=e.kind,
                    error=str(e),
                )
                return self._outcome(
                    entry, "failed", attempts=attempt, error=str(e), error_kind=e.kind
                )
            except Exception as e:
                logger.error(
                    "Unexpected error syncing entry",
                    source_id=entry.source_id,
                    target_id=entry.target_id,
                    error=str(e),
                    exc_info=True,
                )
                return self._outcome(
                    entry, "failed", attempts=attempt, error=str(e), error_kind="unexpected"
                )

            if attempt >= self.config.max_attempts:
                logger.warning(
                    "Sync entry failed after retries",
                    source_id=entry.source_id,
                    target_id=entry.target_id,
                    attempts=attempt,
                    kind=error.kind,
                    error=str(error),
                )
                return self._outcome(
                    entry, "failed", attempts=attempt, error=str(error), error_kind=error.kind
                )

            delay = self.config.backoff_delay(attempt, error.retry_after)
            sync_retries_total.labels(kind=error.kind).inc()
            logger.info(
                "Transient sync error, retrying",
                source_id=entry.source_id,
                target_id=entry.target_id,
                attempt=attempt,
                kind=error.kind,
                wait_seconds=delay,
            )
            if await self._wait_or_cancel(delay, cancel_event):
                return self._outcome(
                    entry, "cancelled", attempts=attempt, error=str(error), error_kind=error.kind
                )

    @staticmethod
    def _connectivity_warning(batch_number: int, outcomes: list[SyncEntryOutcome]) -> str | None:
        """Warning text when every attempted entry failed with the same transient cause."""
        attempted = [o for o in outcomes if o.status in ("succeeded", "failed")]
        if not attempted or any(o.status != "failed" for o in attempted):
            return None
        kinds = {o.error_kind for o in attempted}
        if len(kinds) != 1:
            return None
        kind = kinds.pop()
        if kind not in TRANSIENT_KINDS:
            return None
        return f"Batch {batch_number}: all {len(attempted)} entries failed ({kind})"

    async def sync(
        self,
        results: Sequence[MangaMatchResult],
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
    ) -> SyncOutcome:
        """Synchronize reviewed match results.

        Args:
            results: Match results (only matched and manual ones are sent)
            cancel_event: Once set, no new batch or entry starts
            now: Reference time for auto-pause (defaults to the current time)

        Returns:
            SyncOutcome with per-entry outcomes in input order and updated stats
        """
        with trace_context(get_trace_id()) as trace_id:
            await self.store.ensure_loaded()

            prepared = prepare_sync_entries(results, self.config, now)
            outcomes: list[SyncEntryOutcome | None] = [
                item if isinstance(item, SyncEntryOutcome) else None for item in prepared
            ]
            pending = [
                (index, item) for index, item in enumerate(prepared) if isinstance(item, SyncEntry)
            ]
            size = self.config.batch_size
            batches = [pending[i : i + size] for i in range(0, len(pending), size)]

            logger.info(
                "Starting sync",
                total=len(results),
                to_send=len(pending),
                batches=len(batches),
                trace_id=trace_id,
            )

            semaphore = asyncio.Semaphore(self.config.max_concurrent_batches)
            warnings: list[str] = []

            def is_cancelled() -> bool:
                return cancel_event is not None and cancel_event.is_set()

            async def run_batch(batch_number: int, batch: list[tuple[int, SyncEntry]]) -> None:
                async with semaphore:
                    batch_outcomes: list[SyncEntryOutcome] = []
                    for index, entry in batch:
                        if is_cancelled():
                            outcome = self._outcome(entry, "cancelled")
                        else:
                            outcome = await self.submit_entry(entry, cancel_event)
                        outcomes[index] = outcome
                        batch_outcomes.append(outcome)

                    succeeded = sum(1 for o in batch_outcomes if o.status == "succeeded")
                    failed = sum(1 for o in batch_outcomes if o.status == "failed")
                    if succeeded or failed:
                        await self.store.record_batch(succeeded, failed)

                    if warning := self._connectivity_warning(batch_number, batch_outcomes):
                        logger.warning(
                            "Sync batch lost connectivity",
                            batch=batch_number,
                            warning=warning,
                        )
                        warnings.append(warning)

                    logger.debug(
                        "Sync batch finished",
                        batch=batch_number,
                        succeeded=succeeded,
                        failed=failed,
                    )

            await asyncio.gather(*(run_batch(n, b) for n, b in enumerate(batches, start=1)))

            final = [o for o in outcomes if o is not None]
            for outcome in final:
                sync_entries_total.labels(status=outcome.status).inc()

            counts = {
                status: sum(1 for o in final if o.status == status)
                for status in ("succeeded", "failed", "skipped", "unchanged", "cancelled")
            }
            stats = await self.store.finish_run(
                completed_at=datetime.now(UTC),
                any_succeeded=counts["succeeded"] > 0,
            )

            logger.info(
                "Sync finished",
                cancelled=is_cancelled(),
                warnings=len(warnings),
                **counts,
            )

            return SyncOutcome(
                outcomes=final,
                succeeded=counts["succeeded"],
                failed=counts["failed"],
                skipped=counts["skipped"],
                unchanged=counts["unchanged"],
                cancelled_entries=counts["cancelled"],
                cancelled=counts["cancelled"] > 0,
                warnings=warnings,
                stats=stats,
            )
