"""Prometheus metrics configuration."""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

logger = structlog.get_logger("mangasync.metrics")

# Application info
app_info = Gauge(
    "app_info",
    "Application information",
    ["version"],
)

# Matching metrics
match_results_total = Counter(
    "match_results_total",
    "Total number of resolved match results",
    ["status"],  # status: matched, ambiguous, unmatched
)
catalog_lookup_failures_total = Counter(
    "catalog_lookup_failures_total",
    "Total number of failed catalog lookups",
    ["reason"],  # reason: timeout, error
)

# Synchronization metrics
sync_entries_total = Counter(
    "sync_entries_total",
    "Total number of sync entry outcomes",
    ["status"],  # status: succeeded, failed, skipped, unchanged, cancelled
)
sync_retries_total = Counter(
    "sync_retries_total",
    "Total number of sync submission retries",
    ["kind"],  # kind: timeout, rate_limit, server_error, network
)


def setup_metrics(app: FastAPI, app_version: str) -> None:
    """Setup Prometheus metrics using prometheus-fastapi-instrumentator.

    Args:
        app: FastAPI application instance
        app_version: Application version
    """
    if getattr(app.state, "_metrics_initialized", False):
        logger.debug("Metrics already initialized for this app instance, skipping")
        return

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=[
            "/metrics",
            "/docs",
            "/openapi.json",
            "/redoc",
        ],
    )

    instrumentator.instrument(app).expose(app, endpoint="/metrics")

    app.state._metrics_initialized = True

    app_info.labels(version=app_version).set(1)

    logger.info("Metrics initialized", version=app_version)
