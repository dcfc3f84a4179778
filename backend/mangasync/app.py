"""Application entry point for MangaSync."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from mangasync.core.config import APP_VERSION, get_settings
from mangasync.core.dependencies import get_stats_store
from mangasync.core.logging import setup_logging
from mangasync.core.metrics import setup_metrics
from mangasync.core.middleware import TracingMiddleware
from mangasync.core.routes import create_app_router

logger = structlog.get_logger("mangasync.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "Starting MangaSync application",
        version=APP_VERSION,
        env=settings.env,
        anilist_api_url=settings.anilist_api_url,
        anilist_token_configured=bool(settings.anilist_token),
    )

    stats = await get_stats_store().load()
    logger.info(
        "Sync statistics loaded",
        total_syncs=stats.total_syncs,
        entries_synced=stats.entries_synced,
    )

    yield

    logger.info("Shutting down MangaSync application")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    setup_logging(
        debug=settings.is_debug or settings.log_level == "DEBUG",
        logs_dir=settings.logs_dir if settings.file_logging else None,
    )

    app = FastAPI(
        title="MangaSync",
        description="Match a Kenmei manga library to AniList and sync reading progress",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # Add tracing middleware (before other middleware to capture all requests)
    app.add_middleware(TracingMiddleware)

    # Setup metrics (before routes to instrument all routes)
    setup_metrics(app, APP_VERSION)

    app.include_router(create_app_router())

    return app


def main() -> None:
    """Main entry point."""
    import uvicorn

    from mangasync.core.config import reload_settings

    settings = reload_settings()
    app = create_app()

    logger.info("Starting uvicorn server", host=settings.host, port=settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,  # We use structlog
        reload=False,
    )


if __name__ == "__main__":
    main()
