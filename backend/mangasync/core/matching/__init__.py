"""Matching and confidence scoring.

Normalizes titles, scores (source entry, catalog candidate) pairs from
configurable weighted criteria, and resolves each source entry into a ranked
and classified MangaMatchResult.
"""

from .config import (
    DEFAULT_CONFIG,
    CustomRule,
    MatchingConfig,
    get_matching_config,
    reload_matching_config,
)
from .filters import HIGH_CONFIDENCE, NEEDS_REVIEW, apply_filters, filter_by_status
from .models import (
    AdvancedMatchFilters,
    CatalogCandidate,
    CatalogListEntry,
    CatalogTitle,
    MangaMatchResult,
    MatchScore,
    ScoreBreakdown,
    ScoredCandidate,
    SourceEntry,
)
from .normalizer import NormalizedTitle, is_difference_only_articles, normalize
from .resolver import (
    accept_match,
    add_manual_candidate,
    classify,
    find_duplicate_targets,
    reset_match,
    resolve,
    select_candidate,
    skip_match,
)
from .rules import filter_candidates, skip_reason
from .scorer import score

__all__ = [
    "MatchingConfig",
    "CustomRule",
    "DEFAULT_CONFIG",
    "get_matching_config",
    "reload_matching_config",
    "SourceEntry",
    "CatalogCandidate",
    "CatalogTitle",
    "CatalogListEntry",
    "ScoreBreakdown",
    "MatchScore",
    "ScoredCandidate",
    "MangaMatchResult",
    "AdvancedMatchFilters",
    "NormalizedTitle",
    "normalize",
    "is_difference_only_articles",
    "score",
    "filter_candidates",
    "skip_reason",
    "classify",
    "resolve",
    "accept_match",
    "select_candidate",
    "add_manual_candidate",
    "skip_match",
    "reset_match",
    "find_duplicate_targets",
    "apply_filters",
    "filter_by_status",
    "HIGH_CONFIDENCE",
    "NEEDS_REVIEW",
]
