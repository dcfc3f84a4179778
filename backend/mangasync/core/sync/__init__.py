"""Synchronization of accepted matches to the target service."""

from .config import (
    DEFAULT_STATUS_MAPPING,
    DEFAULT_SYNC_CONFIG,
    SyncConfig,
    get_sync_config,
    reload_sync_config,
)
from .engine import SyncEngine
from .models import SyncEntry, SyncEntryOutcome, SyncOutcome, SyncStats
from .preparation import build_sync_entry, prepare_sync_entries
from .stats_store import SyncStatsStore

__all__ = [
    "SyncConfig",
    "DEFAULT_SYNC_CONFIG",
    "DEFAULT_STATUS_MAPPING",
    "get_sync_config",
    "reload_sync_config",
    "SyncEngine",
    "SyncEntry",
    "SyncEntryOutcome",
    "SyncOutcome",
    "SyncStats",
    "SyncStatsStore",
    "build_sync_entry",
    "prepare_sync_entries",
]
