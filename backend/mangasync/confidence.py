"""Confidence test command.

Recomputes a match confidence outside the service, either from titles and
metadata::

    python -m mangasync.confidence "Search Title" "Candidate Title" ["Romaji"] ["Native"] \
        --synonym="Alt 1" --format=MANGA --genre=Action --year=1989 --chapters=364 \
        --source-genre=Action --source-year=1989 --chapters-read=120

or from an exported fixture::

    python -m mangasync.confidence --fixture fixture.json

and prints the MatchScore as JSON. The match export route generates the
first form with every scoring input of the exported candidate filled in.
"""

from __future__ import annotations

import json
import sys
from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any

from mangasync.core.errors import ScoringError
from mangasync.core.matching.config import DEFAULT_CONFIG, MatchingConfig, get_matching_config
from mangasync.core.matching.debug_export import (
    fixture_matches_expected,
    replay_confidence_fixture,
)
from mangasync.core.matching.models import CatalogCandidate, CatalogTitle, SourceEntry
from mangasync.core.matching.scorer import score

# Placeholder IDs for entries built from command-line titles
CLI_SOURCE_ID = "cli"
CLI_CANDIDATE_ID = 1


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="python -m mangasync.confidence",
        description="Compute the match confidence between a source title and a catalog candidate",
    )
    parser.add_argument("search", nargs="?", help="Source (search) title")
    parser.add_argument("candidate", nargs="?", help="Candidate english (or romaji) title")
    parser.add_argument("romaji", nargs="?", default="", help="Candidate romaji title")
    parser.add_argument("native", nargs="?", default="", help="Candidate native title")

    candidate = parser.add_argument_group("candidate metadata")
    candidate.add_argument(
        "--synonyms",
        default="",
        help="Comma-separated candidate synonyms",
    )
    candidate.add_argument(
        "--synonym", action="append", default=[], help="Candidate synonym (repeatable)"
    )
    candidate.add_argument("--format", help="Candidate format (MANGA, ONE_SHOT, ...)")
    candidate.add_argument(
        "--genre", action="append", default=[], help="Candidate genre (repeatable)"
    )
    candidate.add_argument("--year", type=int, help="Candidate start year")
    candidate.add_argument("--chapters", type=int, help="Candidate chapter count")
    candidate.add_argument("--volumes", type=int, help="Candidate volume count")

    source = parser.add_argument_group("source entry")
    source.add_argument(
        "--alt-title", action="append", default=[], help="Source alternative title (repeatable)"
    )
    source.add_argument("--source-format", help="Source format")
    source.add_argument(
        "--source-genre", action="append", default=[], help="Source genre (repeatable)"
    )
    source.add_argument("--source-year", type=int, help="Source release year")
    source.add_argument("--chapters-read", type=int, default=0, help="Last chapter read")
    source.add_argument("--volumes-read", type=int, help="Last volume read")

    parser.add_argument(
        "--fixture",
        type=Path,
        help="Replay an exported confidence fixture instead of titles",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON file with matching config overrides (title mode only)",
    )
    parser.add_argument(
        "--config-json",
        help="Matching config overrides as a JSON object, applied over --config or the defaults",
    )
    return parser


def _load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def load_config(args: Namespace) -> MatchingConfig:
    """Config for title mode.

    ``--config-json`` overrides apply over the ``--config`` file, or over the
    defaults when no file is given. Without either option the settings file
    config is used.
    """
    if args.config_json is None:
        if args.config:
            return MatchingConfig.from_dict(_load_json(args.config))
        return get_matching_config()

    overrides = json.loads(args.config_json)
    if not isinstance(overrides, dict):
        raise ValueError("--config-json must be a JSON object")
    base = _load_json(args.config) if args.config else {}
    return MatchingConfig.from_dict({**DEFAULT_CONFIG.to_dict(), **base, **overrides})


def score_titles(args: Namespace, config: MatchingConfig) -> dict[str, Any]:
    """Score a candidate built from command-line titles and metadata."""
    source = SourceEntry(
        id=CLI_SOURCE_ID,
        title=args.search,
        alternative_titles=args.alt_title,
        format=args.source_format,
        genres=args.source_genre,
        release_year=args.source_year,
        chapters_read=args.chapters_read,
        volumes_read=args.volumes_read,
    )
    synonyms = [s.strip() for s in args.synonyms.split(",") if s.strip()]
    synonyms.extend(s for s in args.synonym if s.strip())
    candidate = CatalogCandidate(
        id=CLI_CANDIDATE_ID,
        title=CatalogTitle(
            english=args.candidate or None,
            romaji=args.romaji or None,
            native=args.native or None,
        ),
        synonyms=synonyms,
        format=args.format,
        genres=args.genre,
        start_year=args.year,
        chapters=args.chapters,
        volumes=args.volumes,
    )
    return score(source, candidate, config).model_dump(mode="json")


def replay_fixture(path: Path) -> dict[str, Any]:
    """Replay a fixture and report whether it still reproduces its recorded score."""
    fixture = _load_json(path)
    replayed = replay_confidence_fixture(fixture)
    output = replayed.model_dump(mode="json")
    if "expected" in fixture:
        output["matches_expected"] = fixture_matches_expected(fixture)
    return output


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.fixture is None and (not args.search or not args.candidate):
        parser.error("search and candidate titles are required unless --fixture is given")

    try:
        if args.fixture is not None:
            output = replay_fixture(args.fixture)
        else:
            output = score_titles(args, load_config(args))
    except (OSError, TypeError, ValueError, ScoringError) as e:
        sys.stderr.write(f"error: {e}\n")
        return 1

    sys.stdout.write(json.dumps(output, indent=2, ensure_ascii=False) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
