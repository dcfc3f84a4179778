"""General API routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from mangasync.core.config import APP_VERSION
from mangasync.core.tracing import get_trace_id

router = APIRouter(prefix="/api")
logger = structlog.get_logger("mangasync.routes.general")


@router.get("/")
async def root() -> JSONResponse:
    """Root endpoint - service banner.

    All logs in this function will automatically include the trace_id from context.
    """
    trace_id = get_trace_id()
    logger.info("Root endpoint accessed")
    return JSONResponse(
        {
            "message": "Hello, MangaSync!",
            "version": APP_VERSION,
            "status": "ok",
            "trace_id": trace_id,
        }
    )


@router.get("/health")
async def health() -> JSONResponse:
    """Health check endpoint."""
    trace_id = get_trace_id()
    logger.debug("Health check")
    return JSONResponse(
        {
            "status": "healthy",
            "trace_id": trace_id,
        }
    )
