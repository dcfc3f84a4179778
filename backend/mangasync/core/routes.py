"""Application routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter

from mangasync.routes import general
from mangasync.routes.matching import create_matching_router
from mangasync.routes.sync import create_sync_router

logger = structlog.get_logger("mangasync.routes")


def create_app_router() -> APIRouter:
    """Create and configure main application router.

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()

    router.include_router(general.router, tags=["general"])

    router.include_router(create_matching_router(), tags=["matching"])
    logger.debug("Included matching router in app_router")

    router.include_router(create_sync_router(), tags=["sync"])
    logger.debug("Included sync router in app_router")

    return router
