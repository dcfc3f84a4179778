"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from prometheus_client import REGISTRY

from mangasync.core.config import get_settings, reload_settings
from mangasync.core.matching import config as matching_config
from mangasync.core.sync import config as sync_config


@pytest.fixture(autouse=True)
def reset_prometheus_registry() -> None:
    """Reset Prometheus registry before each test to avoid duplicate metric errors.

    prometheus-fastapi-instrumentator registers metrics in the global registry,
    and creating the app multiple times would cause duplicate registration errors.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)


@pytest.fixture(autouse=True)
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point MANGASYNC_DATA_DIR at a temporary directory and drop cached config."""
    monkeypatch.setenv("MANGASYNC_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("MANGASYNC_ANILIST_TOKEN", raising=False)
    monkeypatch.delenv("MANGASYNC_ENV", raising=False)
    reload_settings()
    matching_config._cached_config = None
    sync_config._cached_config = None

    yield tmp_path

    structlog.contextvars.clear_contextvars()
    matching_config._cached_config = None
    sync_config._cached_config = None
    get_settings.cache_clear()
