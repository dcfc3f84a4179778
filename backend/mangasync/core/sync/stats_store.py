"""Persistent store for cumulative sync statistics."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from mangasync.core.config import get_settings

from .models import SyncStats

logger = structlog.get_logger("mangasync.sync.stats_store")


class SyncStatsStore:
    """Owns the process-wide SyncStats and its JSON file.

    All mutations go through the store's lock (single writer) and are saved
    to disk before the lock is released.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or get_settings().sync_stats_file
        self._stats = SyncStats()
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def stats(self) -> SyncStats:
        """Snapshot of the current statistics."""
        return self._stats.model_copy()

    def _read(self) -> SyncStats:
        if not self.path.exists():
            return SyncStats()
        try:
            with self.path.open("r") as f:
                return SyncStats.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                "Failed to load sync stats, starting fresh",
                path=str(self.path),
                error=str(e),
            )
            return SyncStats()

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w") as f:
            json.dump(self._stats.model_dump(mode="json"), f, indent=2)

    async def load(self) -> SyncStats:
        """Load statistics from disk (missing or invalid file -> zeroed stats)."""
        async with self._lock:
            self._stats = self._read()
            self._loaded = True
            return self.stats

    async def ensure_loaded(self) -> SyncStats:
        if not self._loaded:
            return await self.load()
        return self.stats

    async def save(self) -> None:
        async with self._lock:
            self._write()

    async def record_batch(self, succeeded: int, failed: int) -> SyncStats:
        """Add one batch's results to the counters and save."""
        async with self._lock:
            self._stats = self._stats.model_copy(
                update={
                    "entries_synced": self._stats.entries_synced + succeeded,
                    "failed_syncs": self._stats.failed_syncs + failed,
                }
            )
            self._write()
            return self.stats

    async def finish_run(self, completed_at: datetime, any_succeeded: bool) -> SyncStats:
        """Count a finished run; the sync time only moves when something was synced."""
        async with self._lock:
            update: dict[str, object] = {"total_syncs": self._stats.total_syncs + 1}
            if any_succeeded:
                update["last_sync_time"] = completed_at
            self._stats = self._stats.model_copy(update=update)
            self._write()
            return self.stats
