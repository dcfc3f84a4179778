"""Confidence scorer - combines all criteria into a 0-100 MatchScore.

Scoring is a pure function of (source entry, candidate, config): no clock,
randomness or I/O, so the same inputs always yield the same MatchScore.
"""

from __future__ import annotations

from mangasync.core.errors import ScoringError

from .config import MatchingConfig, get_matching_config
from .criteria import match_format, match_genres, match_progress, match_title, match_year
from .models import CatalogCandidate, MatchScore, ScoreBreakdown, SourceEntry
from .rules import matching_accept_rule
from .similarity import best_title_match


def source_titles(source: SourceEntry) -> list[str]:
    """The source title followed by its alternative titles."""
    return [t for t in (source.title, *source.alternative_titles) if t and t.strip()]


def score(
    source: SourceEntry,
    candidate: CatalogCandidate,
    config: MatchingConfig | None = None,
) -> MatchScore:
    """Score how likely ``candidate`` is the catalog item for ``source``.

    Args:
        source: Source entry being matched
        candidate: Catalog candidate
        config: Matching configuration (if None, loads from settings file)

    Returns:
        MatchScore with confidence in [0, 100] rounded to 2 decimals

    Raises:
        ScoringError: If either side has no usable title or the candidate ID is invalid
    """
    if config is None:
        config = get_matching_config()

    titles = source_titles(source)
    if not titles:
        raise ScoringError(f"Source entry {source.id!r} has no title")
    if candidate.id <= 0:
        raise ScoringError(f"Candidate has invalid ID {candidate.id}")
    candidate_titles = candidate.all_titles()
    if not candidate_titles:
        raise ScoringError(f"Candidate {candidate.id} has no title")

    similarity, matched_title = best_title_match(titles, candidate_titles, config)

    title_points, title_reason = match_title(similarity, matched_title, config)
    format_points, format_reason = match_format(source.format, candidate.format, config)
    progress_points, progress_reason = match_progress(source, candidate, config)
    genre_points, genre_reason = match_genres(source.genres, candidate.genres, config)
    year_points, year_reason = match_year(source.release_year, candidate.start_year, config)
    metadata_points = genre_points + year_points

    total = title_points + format_points + progress_points + metadata_points
    confidence = round(max(0.0, min(100.0, total)), 2)
    details = [title_reason, format_reason, progress_reason, genre_reason, year_reason]

    rule = matching_accept_rule(source, candidate, config)
    if rule is not None:
        floor = (
            config.accept_rule_floor_exact if similarity >= 1.0 else config.accept_rule_floor
        )
        confidence = max(confidence, floor)
        details.append(f"Accept rule {rule.label!r}: confidence at least {floor:g}")

    breakdown = ScoreBreakdown(
        title=round(title_points, 2),
        format=round(format_points, 2),
        progress=round(progress_points, 2),
        metadata=round(metadata_points, 2),
        title_similarity=round(similarity, 4),
        matched_title=matched_title,
    )
    return MatchScore(
        confidence=confidence,
        breakdown=breakdown,
        details=details,
    )
