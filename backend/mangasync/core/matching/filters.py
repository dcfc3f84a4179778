"""Post-hoc filters over match results.

Filtering never re-scores or reorders: the output is always an
order-preserving subset of the input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .models import AdvancedMatchFilters, MangaMatchResult, MatchStatus

DEFAULT_FILTERS = AdvancedMatchFilters()

# Preset filters
HIGH_CONFIDENCE = AdvancedMatchFilters(confidence_min=80.0, confidence_max=100.0)
NEEDS_REVIEW = AdvancedMatchFilters(confidence_min=0.0, confidence_max=50.0)

PRESETS: dict[str, AdvancedMatchFilters] = {
    "high_confidence": HIGH_CONFIDENCE,
    "needs_review": NEEDS_REVIEW,
}


def _upper(values: Iterable[str]) -> set[str]:
    return {v.upper() for v in values}


def _casefold(values: Iterable[str]) -> set[str]:
    return {v.casefold() for v in values}


def matches_filters(result: MangaMatchResult, filters: AdvancedMatchFilters) -> bool:
    """Check one result against the filters.

    Results without a selected candidate pass only an all-default filter.
    """
    if filters.is_default:
        return True

    selected = result.selected
    if selected is None:
        return False

    if not filters.confidence_min <= selected.confidence <= filters.confidence_max:
        return False

    candidate = selected.candidate
    if filters.formats and (candidate.format or "").upper() not in _upper(filters.formats):
        return False
    if filters.genres and not _casefold(candidate.genres) & _casefold(filters.genres):
        return False
    if filters.publication_statuses and (candidate.status or "").upper() not in _upper(
        filters.publication_statuses
    ):
        return False

    return True


def apply_filters(
    results: Sequence[MangaMatchResult],
    filters: AdvancedMatchFilters = DEFAULT_FILTERS,
) -> list[MangaMatchResult]:
    """Return the results that pass ``filters``, in input order."""
    return [r for r in results if matches_filters(r, filters)]


def filter_by_status(
    results: Sequence[MangaMatchResult],
    statuses: Iterable[MatchStatus],
) -> list[MangaMatchResult]:
    """Return the results whose status is in ``statuses``, in input order."""
    wanted = set(statuses)
    return [r for r in results if r.status in wanted]
