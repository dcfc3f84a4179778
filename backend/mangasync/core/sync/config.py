"""Sync configuration - batching, retries and entry preparation rules."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal

import structlog

from mangasync.core.config import load_settings_section

logger = structlog.get_logger("mangasync.sync.config")

DuplicatePolicy = Literal["reject_duplicate", "last_write_wins"]

# Source reading status -> target list status
DEFAULT_STATUS_MAPPING: dict[str, str] = {
    "reading": "CURRENT",
    "completed": "COMPLETED",
    "on_hold": "PAUSED",
    "dropped": "DROPPED",
    "plan_to_read": "PLANNING",
}

TARGET_STATUSES = frozenset({"CURRENT", "COMPLETED", "PAUSED", "DROPPED", "PLANNING", "REPEATING"})


@dataclass(frozen=True)
class SyncConfig:
    """Configuration for pushing accepted matches to the target service."""

    # Batching
    batch_size: int = 10
    max_concurrent_batches: int = 1

    # Submission and retries
    request_timeout: float = 30.0
    max_attempts: int = 3  # total attempts per entry, including the first
    backoff_base: float = 1.0  # seconds; doubles per retry
    backoff_max: float = 30.0

    # Two results selecting the same target ID
    duplicate_policy: DuplicatePolicy = "reject_duplicate"

    # Entry preparation
    status_mapping: dict[str, str] = field(default_factory=dict)  # overrides DEFAULT_STATUS_MAPPING
    preserve_completed_status: bool = True
    prioritize_target_status: bool = False
    prioritize_target_progress: bool = True
    prioritize_target_score: bool = True
    set_private: bool = False
    auto_pause_inactive: bool = False
    auto_pause_threshold_days: int = 60

    # Send progress increases as +1, then final progress, then status and score
    incremental: bool = False

    def __post_init__(self) -> None:
        if self.batch_size < 1 or self.max_concurrent_batches < 1:
            raise ValueError("batch_size and max_concurrent_batches must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.backoff_base < 0 or self.backoff_max < 0:
            raise ValueError("backoff delays must not be negative")
        if self.duplicate_policy not in ("reject_duplicate", "last_write_wins"):
            raise ValueError(f"Unknown duplicate_policy: {self.duplicate_policy}")
        invalid = set(self.status_mapping.values()) - TARGET_STATUSES
        if invalid:
            raise ValueError(f"Unknown target statuses in status_mapping: {sorted(invalid)}")
        if self.auto_pause_threshold_days < 1:
            raise ValueError("auto_pause_threshold_days must be at least 1")

    def map_status(self, source_status: str) -> str:
        """Target list status for a source reading status."""
        mapping = {**DEFAULT_STATUS_MAPPING, **self.status_mapping}
        return mapping.get(source_status, "CURRENT")

    def backoff_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay before the retry following ``attempt`` (1-based).

        ``backoff_base * 2**(attempt - 1)`` capped at ``backoff_max``; a larger
        server-provided ``retry_after`` wins.
        """
        delay = min(self.backoff_base * 2 ** (attempt - 1), self.backoff_max)
        if retry_after is not None and retry_after > delay:
            return retry_after
        return delay

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Build a config from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


DEFAULT_SYNC_CONFIG = SyncConfig()

_cached_config: SyncConfig | None = None


def get_sync_config() -> SyncConfig:
    """Get the current sync configuration.

    Loads the "sync" section of settings.json if available, otherwise
    returns defaults. An invalid section is logged and ignored.
    """
    global _cached_config

    if _cached_config is not None:
        return _cached_config

    try:
        section = load_settings_section("sync")
        _cached_config = SyncConfig.from_dict(section) if section else DEFAULT_SYNC_CONFIG
    except (OSError, TypeError, ValueError) as e:
        logger.warning("Invalid sync settings, using defaults", error=str(e))
        _cached_config = DEFAULT_SYNC_CONFIG

    return _cached_config


def reload_sync_config() -> SyncConfig:
    """Reload sync configuration from settings file."""
    global _cached_config
    _cached_config = None
    return get_sync_config()
