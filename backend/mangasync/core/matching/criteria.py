"""Individual match criteria evaluators.

Each function scores a single signal of a (source entry, candidate) pair and
returns a tuple of (points, reason). Points are already scaled by the
criterion's weight from MatchingConfig.
"""

from __future__ import annotations

from .config import MatchingConfig
from .models import CatalogCandidate, SourceEntry

# Format pairs that are plausible for the same work
COMPATIBLE_FORMATS: frozenset[frozenset[str]] = frozenset({frozenset({"MANGA", "ONE_SHOT"})})


def normalize_format(value: str | None) -> str | None:
    """Upper-case a format name and join words with underscores ("One Shot" -> "ONE_SHOT")."""
    if not value or not value.strip():
        return None
    return "_".join(value.replace("-", " ").split()).upper()


def match_title(
    similarity: float,
    matched_title: str | None,
    config: MatchingConfig,
) -> tuple[float, str]:
    """Score the best title similarity.

    Args:
        similarity: Best title similarity in [0, 1]
        matched_title: Candidate title that produced it
        config: Matching configuration
    """
    points = similarity * config.title_weight
    if matched_title is None:
        return 0.0, "No similar title (+0)"
    if similarity >= 1.0:
        return points, f"Exact title match: '{matched_title}' (+{points:.2f})"
    return points, f"Title similarity {similarity:.2f} with '{matched_title}' (+{points:.2f})"


def match_format(
    source_format: str | None,
    candidate_format: str | None,
    config: MatchingConfig,
) -> tuple[float, str]:
    """Score format agreement. The source format defaults to MANGA."""
    source = normalize_format(source_format) or normalize_format(config.default_source_format)
    candidate = normalize_format(candidate_format)

    if candidate is None:
        points = config.format_weight * config.unknown_credit
        return points, f"Unknown candidate format (+{points:.2f})"

    if source == candidate:
        return config.format_weight, f"Format match: {candidate} (+{config.format_weight:.2f})"

    if frozenset({source, candidate}) in COMPATIBLE_FORMATS:
        points = config.format_weight * config.compatible_format_credit
        return points, f"Compatible format: {source} vs {candidate} (+{points:.2f})"

    return 0.0, f"Format mismatch: {source} vs {candidate} (+0)"


def match_progress(
    source: SourceEntry,
    candidate: CatalogCandidate,
    config: MatchingConfig,
) -> tuple[float, str]:
    """Score progress plausibility.

    Reading past the last chapter (or volume) of a work is a strong sign of a
    wrong match; unknown totals are always plausible.
    """
    if candidate.chapters and source.chapters_read > candidate.chapters:
        return 0.0, (
            f"Progress exceeds chapter count: {source.chapters_read} > {candidate.chapters} (+0)"
        )
    if candidate.volumes and source.volumes_read and source.volumes_read > candidate.volumes:
        return 0.0, (
            f"Progress exceeds volume count: {source.volumes_read} > {candidate.volumes} (+0)"
        )
    return config.progress_weight, f"Progress plausible (+{config.progress_weight:.2f})"


def match_genres(
    source_genres: list[str],
    candidate_genres: list[str],
    config: MatchingConfig,
) -> tuple[float, str]:
    """Score genre overlap (Jaccard, case-insensitive) on half the metadata weight."""
    weight = config.metadata_weight / 2
    source = {g.strip().casefold() for g in source_genres if g and g.strip()}
    candidate = {g.strip().casefold() for g in candidate_genres if g and g.strip()}

    if not source or not candidate:
        points = weight * config.unknown_credit
        return points, f"Genres unknown (+{points:.2f})"

    overlap = len(source & candidate) / len(source | candidate)
    points = weight * overlap
    return points, f"Genre overlap {overlap:.2f} (+{points:.2f})"


def match_year(
    source_year: int | None,
    candidate_year: int | None,
    config: MatchingConfig,
) -> tuple[float, str]:
    """Score release year proximity on half the metadata weight.

    Full credit for the same year, decaying linearly to zero at
    ``config.year_tolerance`` years apart.
    """
    weight = config.metadata_weight / 2

    if source_year is None or candidate_year is None:
        points = weight * config.unknown_credit
        return points, f"Year unknown (+{points:.2f})"

    difference = abs(source_year - candidate_year)
    credit = max(0.0, 1.0 - difference / config.year_tolerance)
    points = weight * credit
    if difference == 0:
        return points, f"Year match: {candidate_year} (+{points:.2f})"
    return points, f"Year {source_year} vs {candidate_year} (+{points:.2f})"
