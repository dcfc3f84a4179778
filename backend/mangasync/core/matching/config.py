"""Matching configuration - scoring weights, thresholds and lookup limits."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import asdict, dataclass, fields
from typing import Any

import structlog

from mangasync.core.config import load_settings_section

logger = structlog.get_logger("mangasync.matching.config")


@dataclass(frozen=True)
class CustomRule:
    """A regular expression matched against every source and candidate title."""

    pattern: str
    description: str = ""
    enabled: bool = True
    case_sensitive: bool = False

    def __post_init__(self) -> None:
        try:
            re.compile(self.pattern)
        except re.error as e:
            raise ValueError(f"Invalid rule pattern {self.pattern!r}: {e}") from e

    @property
    def label(self) -> str:
        return self.description or self.pattern

    def matches(self, titles: Iterable[str]) -> bool:
        flags = 0 if self.case_sensitive else re.IGNORECASE
        regex = re.compile(self.pattern, flags)
        return any(regex.search(title) for title in titles)

    @classmethod
    def from_value(cls, value: CustomRule | dict[str, Any]) -> CustomRule:
        if isinstance(value, CustomRule):
            return value
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in value.items() if k in known})


@dataclass(frozen=True)
class MatchingConfig:
    """Configuration for matching source entries to catalog candidates.

    Weights are in confidence points and must add up to 100, so a candidate
    that satisfies every criterion scores exactly 100.
    """

    # Scoring weights
    title_weight: float = 60.0
    format_weight: float = 10.0
    progress_weight: float = 10.0
    metadata_weight: float = 20.0  # split evenly between genre overlap and year proximity

    # Title similarity blend (token-set ratio vs. normalized Levenshtein)
    token_set_weight: float = 0.5
    levenshtein_weight: float = 0.5
    article_only_similarity: float = 0.97

    # Metadata
    year_tolerance: int = 5  # years until year proximity decays to zero
    unknown_credit: float = 0.5  # share of a criterion awarded when data is missing
    compatible_format_credit: float = 0.5  # MANGA vs ONE_SHOT
    default_source_format: str = "MANGA"

    # Thresholds
    floor_threshold: float = 40.0
    auto_accept_threshold: float = 80.0
    closeness_margin: float = 5.0

    # Candidate lookups
    max_candidates: int = 10
    search_alternative_titles: bool = True
    lookup_timeout: float = 15.0
    memoize_lookups: bool = True
    max_concurrent_lookups: int = 4

    # Candidate content filters (novels are always excluded)
    ignore_one_shots: bool = False
    ignore_adult_content: bool = False

    # Custom rules: skip rules drop candidates before scoring, accept rules
    # raise the confidence of a candidate to a floor
    skip_rules: tuple[CustomRule, ...] = ()
    accept_rules: tuple[CustomRule, ...] = ()
    accept_rule_floor_exact: float = 85.0  # title similarity 1.0
    accept_rule_floor: float = 75.0

    def __post_init__(self) -> None:
        total = self.title_weight + self.format_weight + self.progress_weight + self.metadata_weight
        if abs(total - 100.0) > 1e-6:
            raise ValueError(f"Scoring weights must sum to 100, got {total:g}")
        if abs(self.token_set_weight + self.levenshtein_weight - 1.0) > 1e-6:
            raise ValueError("Title similarity blend weights must sum to 1")
        if not 0 <= self.floor_threshold <= self.auto_accept_threshold <= 100:
            raise ValueError("Thresholds must satisfy 0 <= floor <= auto_accept <= 100")
        if self.closeness_margin < 0:
            raise ValueError("closeness_margin must not be negative")
        if self.max_candidates < 1 or self.max_concurrent_lookups < 1:
            raise ValueError("max_candidates and max_concurrent_lookups must be positive")
        if self.year_tolerance < 1:
            raise ValueError("year_tolerance must be at least 1")
        if not 0 <= self.accept_rule_floor <= self.accept_rule_floor_exact <= 100:
            raise ValueError("Accept rule floors must satisfy 0 <= floor <= floor_exact <= 100")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MatchingConfig:
        """Build a config from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for name in ("skip_rules", "accept_rules"):
            if name in values:
                values[name] = tuple(CustomRule.from_value(rule) for rule in values[name])
        return cls(**values)


# Default config instance
DEFAULT_CONFIG = MatchingConfig()

# Cached config instance (loaded from settings file)
_cached_config: MatchingConfig | None = None


def get_matching_config() -> MatchingConfig:
    """Get the current matching configuration.

    Loads the "matching" section of settings.json if available, otherwise
    returns defaults. An invalid section is logged and ignored.

    Returns:
        MatchingConfig instance with current settings
    """
    global _cached_config

    if _cached_config is not None:
        return _cached_config

    try:
        section = load_settings_section("matching")
        _cached_config = MatchingConfig.from_dict(section) if section else DEFAULT_CONFIG
    except (OSError, TypeError, ValueError) as e:
        logger.warning("Invalid matching settings, using defaults", error=str(e))
        _cached_config = DEFAULT_CONFIG

    return _cached_config


def reload_matching_config() -> MatchingConfig:
    """Reload matching configuration from settings file.

    Call this after updating settings to ensure new values are used.
    """
    global _cached_config
    _cached_config = None
    return get_matching_config()
