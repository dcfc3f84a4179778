"""Confidence debugging: fixture export/replay and reproducible test commands.

A fixture captures everything the scorer depends on (source entry,
candidate, full matching config) plus the MatchScore it produced, so a
surprising confidence can be replayed exactly outside the running service.
"""

from __future__ import annotations

import json
import shlex
from typing import Any

from pydantic import BaseModel

from .config import DEFAULT_CONFIG, MatchingConfig, get_matching_config
from .models import CatalogCandidate, MangaMatchResult, MatchScore, ScoredCandidate, SourceEntry
from .scorer import score

FIXTURE_VERSION = 1

CONFIDENCE_MODULE = "mangasync.confidence"


class ConfidenceTestCommand(BaseModel):
    """Shell command reproducing a match confidence, with its main inputs."""

    command: str
    description: str
    search_title: str
    candidate_title: str
    candidate_romaji: str | None = None
    candidate_native: str | None = None
    synonyms: list[str] = []
    expected_confidence: float | None = None


def _pick_candidate(result: MangaMatchResult, candidate_id: int | None) -> ScoredCandidate:
    if candidate_id is not None:
        for scored in result.candidates:
            if scored.id == candidate_id:
                return scored
        raise ValueError(f"Candidate {candidate_id} is not in the candidate list")

    picked = result.selected or (result.candidates[0] if result.candidates else None)
    if picked is None:
        raise ValueError("No candidate match found")
    return picked


def export_confidence_fixture(
    result: MangaMatchResult,
    candidate_id: int | None = None,
    config: MatchingConfig | None = None,
) -> dict[str, Any]:
    """Serialize the scoring inputs of one candidate into a JSON-compatible fixture.

    Args:
        result: Match result
        candidate_id: Candidate to export (defaults to the selected, then the best one)
        config: Config the result was scored with (if None, loads from settings file)

    Returns:
        Fixture dict with "source", "candidate", "config" and "expected"

    Raises:
        ValueError: If the result has no such candidate
    """
    if config is None:
        config = get_matching_config()

    scored = _pick_candidate(result, candidate_id)
    return {
        "version": FIXTURE_VERSION,
        "source": result.source.model_dump(mode="json"),
        "candidate": scored.candidate.model_dump(mode="json"),
        "config": config.to_dict(),
        "expected": scored.score.model_dump(mode="json"),
    }


def replay_confidence_fixture(fixture: dict[str, Any]) -> MatchScore:
    """Recompute the MatchScore of an exported fixture.

    Raises:
        ValueError: If the fixture is malformed
    """
    version = fixture.get("version", FIXTURE_VERSION)
    if version != FIXTURE_VERSION:
        raise ValueError(f"Unsupported fixture version: {version}")

    try:
        source = SourceEntry.model_validate(fixture["source"])
        candidate = CatalogCandidate.model_validate(fixture["candidate"])
        config = MatchingConfig.from_dict(fixture.get("config") or {})
    except KeyError as e:
        raise ValueError(f"Fixture is missing {e.args[0]!r}") from e

    return score(source, candidate, config)


def fixture_matches_expected(fixture: dict[str, Any]) -> bool:
    """True when replaying the fixture reproduces its recorded MatchScore."""
    expected = MatchScore.model_validate(fixture["expected"])
    return replay_confidence_fixture(fixture) == expected


def config_overrides(config: MatchingConfig) -> dict[str, Any]:
    """Fields of ``config`` that differ from the defaults, JSON-compatible."""
    defaults = DEFAULT_CONFIG.to_dict()
    overrides = {}
    for name, value in config.to_dict().items():
        if value != defaults[name]:
            overrides[name] = list(value) if isinstance(value, tuple) else value
    return overrides


def _source_flags(source: SourceEntry) -> list[str]:
    flags = [f"--alt-title={title}" for title in source.alternative_titles if title]
    if source.format:
        flags.append(f"--source-format={source.format}")
    flags.extend(f"--source-genre={genre}" for genre in source.genres)
    if source.release_year is not None:
        flags.append(f"--source-year={source.release_year}")
    if source.chapters_read:
        flags.append(f"--chapters-read={source.chapters_read}")
    if source.volumes_read is not None:
        flags.append(f"--volumes-read={source.volumes_read}")
    return flags


def _candidate_flags(candidate: CatalogCandidate) -> list[str]:
    flags = [f"--synonym={synonym}" for synonym in candidate.synonyms if synonym]
    if candidate.format:
        flags.append(f"--format={candidate.format}")
    flags.extend(f"--genre={genre}" for genre in candidate.genres)
    if candidate.start_year is not None:
        flags.append(f"--year={candidate.start_year}")
    if candidate.chapters is not None:
        flags.append(f"--chapters={candidate.chapters}")
    if candidate.volumes is not None:
        flags.append(f"--volumes={candidate.volumes}")
    return flags


def generate_confidence_test_command(
    result: MangaMatchResult,
    candidate_id: int | None = None,
    config: MatchingConfig | None = None,
) -> ConfidenceTestCommand:
    """Build a ``python -m mangasync.confidence`` command for one candidate.

    Positional arguments are the source title and the candidate's english
    (or romaji) title, followed by romaji and native titles when they
    differ. An empty romaji placeholder keeps the native title in position
    when only the native title differs. Every other scoring input is passed
    as a ``--flag=value`` option: candidate synonyms, formats, genres, years,
    chapter and volume counts, reading progress, and the matching config
    fields that differ from the defaults as ``--config-json``.

    Raises:
        ValueError: If the result has no candidate
    """
    if config is None:
        config = get_matching_config()

    scored = _pick_candidate(result, candidate_id)
    candidate = scored.candidate
    search_title = result.source.title

    candidate_title = candidate.title.english or candidate.title.romaji or ""
    romaji = candidate.title.romaji or None
    native = candidate.title.native or None
    synonyms = [s for s in candidate.synonyms if s]

    args = ["python", "-m", CONFIDENCE_MODULE, search_title, candidate_title]
    if romaji and romaji != candidate_title:
        args.append(romaji)
        if native and native != candidate_title:
            args.append(native)
    elif native and native != candidate_title:
        args.extend(["", native])

    args.extend(_candidate_flags(candidate))
    args.extend(_source_flags(result.source))
    if overrides := config_overrides(config):
        args.append(f"--config-json={json.dumps(overrides, separators=(',', ':'))}")

    description = (
        "Test command to replicate this match's confidence calculation. "
        f'Search term: "{search_title}" vs Candidate: "{candidate_title}" '
        f"(confidence: {round(scored.confidence)}%)"
    )
    return ConfidenceTestCommand(
        command=shlex.join(args),
        description=description,
        search_title=search_title,
        candidate_title=candidate_title,
        candidate_romaji=romaji,
        candidate_native=native,
        synonyms=synonyms,
        expected_confidence=scored.confidence,
    )
