"""Candidate content filters and custom title rules.

Content filters drop candidates before they are scored: novels always, and
one-shots and adult works when configured. Skip rules drop candidates whose
titles (or the source entry's titles) match a pattern. Accept rules are
applied by the scorer as a confidence floor.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from .config import CustomRule, MatchingConfig
from .criteria import normalize_format
from .models import CatalogCandidate, SourceEntry

logger = structlog.get_logger("mangasync.matching.rules")

NOVEL_FORMATS = frozenset({"NOVEL", "LIGHT_NOVEL"})


def rule_titles(source: SourceEntry, candidate: CatalogCandidate) -> list[str]:
    """Every title a custom rule is tested against: candidate titles, then source titles."""
    source_titles = [t for t in (source.title, *source.alternative_titles) if t and t.strip()]
    return [*candidate.all_titles(), *source_titles]


def is_one_shot(candidate: CatalogCandidate) -> bool:
    """One-shot format, a single chapter, or a single volume with no chapter count."""
    return (
        normalize_format(candidate.format) == "ONE_SHOT"
        or candidate.chapters == 1
        or (candidate.chapters is None and candidate.volumes == 1)
    )


def _first_match(rules: Sequence[CustomRule], titles: list[str]) -> CustomRule | None:
    return next((rule for rule in rules if rule.enabled and rule.matches(titles)), None)


def skip_reason(
    source: SourceEntry,
    candidate: CatalogCandidate,
    config: MatchingConfig,
) -> str | None:
    """Why ``candidate`` must not be considered for ``source``, or None."""
    if normalize_format(candidate.format) in NOVEL_FORMATS:
        return "novel"
    if config.ignore_one_shots and is_one_shot(candidate):
        return "one-shot"
    if config.ignore_adult_content and candidate.is_adult:
        return "adult content"
    rule = _first_match(config.skip_rules, rule_titles(source, candidate))
    if rule is not None:
        return f"skip rule {rule.label!r}"
    return None


def filter_candidates(
    source: SourceEntry,
    candidates: Sequence[CatalogCandidate],
    config: MatchingConfig,
) -> list[CatalogCandidate]:
    """Drop candidates excluded by the content filters and skip rules, keeping order."""
    kept: list[CatalogCandidate] = []
    for candidate in candidates:
        reason = skip_reason(source, candidate, config)
        if reason is None:
            kept.append(candidate)
        else:
            logger.debug(
                "Candidate filtered out",
                source_id=source.id,
                candidate_id=candidate.id,
                reason=reason,
            )
    return kept


def matching_accept_rule(
    source: SourceEntry,
    candidate: CatalogCandidate,
    config: MatchingConfig,
) -> CustomRule | None:
    """The first enabled accept rule matching the pair's titles, if any."""
    if not config.accept_rules:
        return None
    return _first_match(config.accept_rules, rule_titles(source, candidate))
