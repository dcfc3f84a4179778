"""Sync routes: preview, run and statistics."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mangasync.core.catalog.base import CatalogClient
from mangasync.core.dependencies import get_stats_store, get_sync_client, get_sync_settings
from mangasync.core.matching.models import MangaMatchResult
from mangasync.core.sync.config import SyncConfig
from mangasync.core.sync.engine import SyncEngine
from mangasync.core.sync.models import SyncEntry
from mangasync.core.sync.preparation import prepare_sync_entries
from mangasync.core.sync.stats_store import SyncStatsStore
from mangasync.core.tracing import get_trace_id

logger = structlog.get_logger("mangasync.routes.sync")


class SyncRequest(BaseModel):
    results: list[MangaMatchResult]


def create_sync_router() -> APIRouter:
    """Create sync router."""
    router = APIRouter(prefix="/api/sync")

    @router.post("/preview")
    async def preview_sync(
        payload: SyncRequest,
        config: SyncConfig = Depends(get_sync_settings),
    ) -> JSONResponse:
        """Show the updates a sync would send, without sending them."""
        prepared = prepare_sync_entries(payload.results, config)
        entries = [item for item in prepared if isinstance(item, SyncEntry)]
        others = [item for item in prepared if not isinstance(item, SyncEntry)]
        return JSONResponse(
            {
                "entries": [e.model_dump(mode="json") for e in entries],
                "not_sent": [o.model_dump(mode="json") for o in others],
                "trace_id": get_trace_id(),
            }
        )

    @router.post("")
    async def run_sync(
        payload: SyncRequest,
        client: CatalogClient = Depends(get_sync_client),
        store: SyncStatsStore = Depends(get_stats_store),
        config: SyncConfig = Depends(get_sync_settings),
    ) -> JSONResponse:
        """Push accepted matches to AniList."""
        engine = SyncEngine(client, store, config)
        outcome = await engine.sync(payload.results)

        logger.info(
            "Sync request completed",
            succeeded=outcome.succeeded,
            failed=outcome.failed,
            skipped=outcome.skipped,
        )
        return JSONResponse({**outcome.model_dump(mode="json"), "trace_id": get_trace_id()})

    @router.get("/stats")
    async def sync_stats(store: SyncStatsStore = Depends(get_stats_store)) -> JSONResponse:
        """Cumulative sync statistics."""
        stats = await store.ensure_loaded()
        return JSONResponse({**stats.model_dump(mode="json"), "trace_id": get_trace_id()})

    return router
