"""Pydantic models for sync entries, outcomes and cumulative statistics."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from mangasync.core.matching.models import CatalogListEntry

EntryStatus = Literal["succeeded", "failed", "skipped", "unchanged", "cancelled"]


class SyncStats(BaseModel):
    """Cumulative synchronization statistics, persisted across runs.

    Counters never decrease.
    """

    last_sync_time: datetime | None = None
    entries_synced: int = Field(default=0, ge=0)
    failed_syncs: int = Field(default=0, ge=0)
    total_syncs: int = Field(default=0, ge=0)


class SyncEntry(BaseModel):
    """The list update prepared for one accepted match."""

    model_config = ConfigDict(frozen=True)

    source_id: int | str
    title: str
    target_id: int
    status: str
    progress: int = Field(default=0, ge=0)
    score: float | None = None
    private: bool = False
    previous: CatalogListEntry | None = None


class SyncEntryOutcome(BaseModel):
    """What happened to one entry during a sync run."""

    source_id: int | str
    title: str
    target_id: int | None = None
    status: EntryStatus
    attempts: int = 0
    error: str | None = None
    error_kind: str | None = None
    saved: CatalogListEntry | None = None


class SyncOutcome(BaseModel):
    """Result of one sync run. ``outcomes`` follows input order."""

    outcomes: list[SyncEntryOutcome] = Field(default_factory=list)
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    unchanged: int = 0
    cancelled_entries: int = 0
    cancelled: bool = False
    warnings: list[str] = Field(default_factory=list)
    stats: SyncStats = Field(default_factory=SyncStats)
