"""Match resolver - ranks scored candidates and classifies each source entry.

Review actions (accept, select another candidate, add a manually searched
candidate, skip, reset) are explicit transitions that return a new
MangaMatchResult; results are never mutated in place.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any

import structlog

from mangasync.core.errors import ScoringError

from .config import MatchingConfig, get_matching_config
from .models import (
    CatalogCandidate,
    MangaMatchResult,
    MatchScore,
    MatchStatus,
    ScoredCandidate,
    SourceEntry,
)
from .rules import filter_candidates
from .scorer import score

logger = structlog.get_logger("mangasync.matching.resolver")

Scorer = Callable[[SourceEntry, CatalogCandidate, MatchingConfig], MatchScore]


def classify(confidences: Sequence[float], config: MatchingConfig) -> MatchStatus:
    """Classify a result from its candidates' confidences (any order).

    - unmatched: no candidates, or the best is below the floor
    - ambiguous: the runner-up clears the floor and is within the closeness margin
    - matched: otherwise (low confidence below auto-accept is a flag, not a status)
    """
    if not confidences:
        return "unmatched"

    ranked = sorted(confidences, reverse=True)
    best = ranked[0]
    if best < config.floor_threshold:
        return "unmatched"

    if len(ranked) > 1:
        second = ranked[1]
        if second >= config.floor_threshold and best - second < config.closeness_margin:
            return "ambiguous"

    return "matched"


def _rank(scored: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    return sorted(scored, key=lambda c: (-c.confidence, c.id))


def _build(
    source: SourceEntry,
    candidates: list[ScoredCandidate],
    config: MatchingConfig,
    error: str | None = None,
) -> MangaMatchResult:
    status = classify([c.confidence for c in candidates], config)
    selected_id = candidates[0].id if status != "unmatched" else None
    return MangaMatchResult(
        source=source,
        candidates=candidates,
        selected_id=selected_id,
        status=status,
        error=error,
    )


def _transition(result: MangaMatchResult, **changes: Any) -> MangaMatchResult:
    """Copy ``result`` with ``changes``, re-running model validation."""
    data = {name: getattr(result, name) for name in MangaMatchResult.model_fields}
    data.update(changes)
    return MangaMatchResult(**data)


def resolve(
    source: SourceEntry,
    candidates: Sequence[CatalogCandidate],
    config: MatchingConfig | None = None,
    scorer: Scorer = score,
) -> MangaMatchResult:
    """Score, rank and classify the candidates for one source entry.

    Candidates are ordered by confidence descending, ties broken by candidate
    ID ascending. Candidates excluded by the content filters or skip rules
    are dropped before scoring. Duplicate candidate IDs keep their first
    occurrence. A ScoringError for any candidate yields an unmatched result
    with ``error`` set instead of propagating.

    Args:
        source: Source entry
        candidates: Candidates from the fetcher
        config: Matching configuration (if None, loads from settings file)
        scorer: Scoring function

    Returns:
        MangaMatchResult
    """
    if config is None:
        config = get_matching_config()

    unique: dict[int, CatalogCandidate] = {}
    for candidate in filter_candidates(source, candidates, config):
        unique.setdefault(candidate.id, candidate)

    try:
        scored = [
            ScoredCandidate(candidate=c, score=scorer(source, c, config)) for c in unique.values()
        ]
    except ScoringError as e:
        logger.warning(
            "Scoring failed, leaving entry unmatched",
            source_id=source.id,
            title=source.title,
            error=str(e),
        )
        return MangaMatchResult(source=source, status="unmatched", error=str(e))

    result = _build(source, _rank(scored), config)
    logger.debug(
        "Resolved match",
        source_id=source.id,
        title=source.title,
        status=result.status,
        candidates=len(result.candidates),
        confidence=result.confidence,
    )
    return result


def accept_match(result: MangaMatchResult) -> MangaMatchResult:
    """Confirm the current selection (ambiguous or matched -> matched)."""
    if result.status not in ("matched", "ambiguous"):
        raise ValueError(f"Cannot accept a {result.status} result")
    return _transition(result, status="matched")


def select_candidate(result: MangaMatchResult, candidate_id: int) -> MangaMatchResult:
    """Override the selection with another listed candidate (-> manual)."""
    if candidate_id not in {c.id for c in result.candidates}:
        raise ValueError(f"Candidate {candidate_id} is not in the candidate list")
    return _transition(result, selected_id=candidate_id, status="manual")


def add_manual_candidate(
    result: MangaMatchResult,
    candidate: CatalogCandidate,
    config: MatchingConfig | None = None,
    scorer: Scorer = score,
) -> MangaMatchResult:
    """Score a manually searched candidate, insert it in rank order and select it.

    Raises:
        ScoringError: If the candidate cannot be scored
    """
    if config is None:
        config = get_matching_config()

    if candidate.id in {c.id for c in result.candidates}:
        return select_candidate(result, candidate.id)

    scored = ScoredCandidate(candidate=candidate, score=scorer(result.source, candidate, config))
    candidates = _rank([*result.candidates, scored])
    return _transition(result, candidates=candidates, selected_id=candidate.id, status="manual")


def skip_match(result: MangaMatchResult) -> MangaMatchResult:
    """Exclude the entry from sync (-> skipped, selection cleared)."""
    return _transition(result, selected_id=None, status="skipped")


def reset_match(result: MangaMatchResult, config: MatchingConfig | None = None) -> MangaMatchResult:
    """Discard review decisions and re-classify from the candidate list."""
    if config is None:
        config = get_matching_config()
    return _build(result.source, _rank(result.candidates), config, error=result.error)


def find_duplicate_targets(
    results: Iterable[MangaMatchResult],
) -> dict[int, list[int | str]]:
    """Target IDs selected by more than one sync-eligible result.

    Returns:
        Mapping of target ID to the source entry IDs that selected it, in input order
    """
    by_target: dict[int, list[int | str]] = {}
    for result in results:
        if result.is_sync_eligible and result.selected_id is not None:
            by_target.setdefault(result.selected_id, []).append(result.source.id)
    return {target: sources for target, sources in by_target.items() if len(sources) > 1}
