"""FastAPI dependencies for catalog access, configuration and sync state."""

from __future__ import annotations

import structlog
from fastapi import HTTPException, status

from mangasync.core.catalog.base import CatalogClient
from mangasync.core.catalog.client import get_anilist_client
from mangasync.core.config import get_settings
from mangasync.core.matching.config import MatchingConfig, get_matching_config
from mangasync.core.sync.config import SyncConfig, get_sync_config
from mangasync.core.sync.stats_store import SyncStatsStore

logger = structlog.get_logger("mangasync.dependencies")

# Process-wide stats store (created on first use)
_stats_store: SyncStatsStore | None = None


def get_catalog_client() -> CatalogClient:
    """Catalog client used for candidate lookups."""
    return get_anilist_client()


def get_sync_client() -> CatalogClient:
    """Catalog client used for list updates.

    Raises:
        HTTPException: 503 if no AniList token is configured
    """
    settings = get_settings()
    if not settings.anilist_token:
        logger.warning("Sync requested without an AniList token")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AniList token is not configured (set MANGASYNC_ANILIST_TOKEN)",
        )
    return get_anilist_client(settings)


def get_stats_store() -> SyncStatsStore:
    global _stats_store
    settings = get_settings()
    if _stats_store is None or _stats_store.path != settings.sync_stats_file:
        _stats_store = SyncStatsStore(settings.sync_stats_file)
    return _stats_store


def get_matching_settings() -> MatchingConfig:
    return get_matching_config()


def get_sync_settings() -> SyncConfig:
    return get_sync_config()
