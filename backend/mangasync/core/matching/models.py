"""Pydantic models for source entries, catalog candidates and match results."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

SourceStatus = Literal["reading", "completed", "on_hold", "dropped", "plan_to_read"]
MatchStatus = Literal["matched", "ambiguous", "unmatched", "manual", "skipped"]

# Statuses that carry exactly one selected candidate
SELECTED_STATUSES: frozenset[str] = frozenset({"matched", "ambiguous", "manual"})
SYNC_ELIGIBLE_STATUSES: frozenset[str] = frozenset({"matched", "manual"})


class SourceEntry(BaseModel):
    """One record from the library being migrated away from (Kenmei export)."""

    model_config = ConfigDict(frozen=True)

    id: int | str = Field(..., description="Identifier in the source service")
    title: str = Field(..., description="Title as exported, unnormalized")
    status: SourceStatus = Field(default="reading", description="Reading status")
    chapters_read: int = Field(default=0, ge=0, description="Last chapter read")
    volumes_read: int | None = Field(default=None, ge=0, description="Last volume read")
    score: float = Field(default=0.0, ge=0.0, le=10.0, description="User rating (0-10)")
    updated_at: datetime | None = Field(default=None, description="Last update in the source")
    last_read_at: datetime | None = Field(default=None, description="Last read timestamp")

    # Optional corroborating metadata
    alternative_titles: list[str] = Field(default_factory=list)
    total_chapters: int | None = Field(default=None, ge=0)
    genres: list[str] = Field(default_factory=list)
    release_year: int | None = Field(default=None)
    format: str | None = Field(default=None, description="MANGA, ONE_SHOT, NOVEL, ...")
    author: str | None = Field(default=None)
    url: str | None = Field(default=None)


class CatalogTitle(BaseModel):
    """Title variants of a catalog item."""

    model_config = ConfigDict(frozen=True)

    english: str | None = None
    romaji: str | None = None
    native: str | None = None


class CatalogListEntry(BaseModel):
    """The user's existing list entry for a catalog item on the target service."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    status: str | None = None
    progress: int = 0
    progress_volumes: int | None = None
    score: float | None = None
    private: bool = False


class CatalogCandidate(BaseModel):
    """A possible match in the destination catalog."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Target catalog ID")
    title: CatalogTitle = Field(default_factory=CatalogTitle)
    synonyms: list[str] = Field(default_factory=list)
    format: str | None = Field(default=None, description="MANGA, ONE_SHOT, NOVEL, ...")
    status: str | None = Field(
        default=None,
        description="FINISHED, RELEASING, NOT_YET_RELEASED, CANCELLED, HIATUS",
    )
    genres: list[str] = Field(default_factory=list)
    chapters: int | None = None
    volumes: int | None = None
    start_year: int | None = None
    is_adult: bool = False
    cover_image: str | None = None
    list_entry: CatalogListEntry | None = None

    def all_titles(self) -> list[str]:
        """Non-empty titles in priority order: english, romaji, native, synonyms."""
        titles = [self.title.english, self.title.romaji, self.title.native, *self.synonyms]
        seen: set[str] = set()
        ordered: list[str] = []
        for title in titles:
            if title and title.strip() and title not in seen:
                seen.add(title)
                ordered.append(title)
        return ordered

    @property
    def display_title(self) -> str:
        titles = self.all_titles()
        return titles[0] if titles else f"#{self.id}"


class ScoreBreakdown(BaseModel):
    """Points contributed by each scoring signal."""

    model_config = ConfigDict(frozen=True)

    title: float = 0.0
    format: float = 0.0
    progress: float = 0.0
    metadata: float = 0.0
    title_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_title: str | None = None


class MatchScore(BaseModel):
    """Confidence (0-100) that a candidate is the right match, with its breakdown."""

    model_config = ConfigDict(frozen=True)

    confidence: float = Field(..., ge=0.0, le=100.0)
    breakdown: ScoreBreakdown
    details: list[str] = Field(default_factory=list)


class ScoredCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate: CatalogCandidate
    score: MatchScore

    @property
    def id(self) -> int:
        return self.candidate.id

    @property
    def confidence(self) -> float:
        return self.score.confidence


class MangaMatchResult(BaseModel):
    """Resolved match for one source entry.

    Candidates are ordered best first (ties by candidate ID ascending). When
    the status is matched, ambiguous or manual exactly one candidate is
    selected; unmatched and skipped results have no selection.
    """

    model_config = ConfigDict(frozen=True)

    source: SourceEntry
    candidates: list[ScoredCandidate] = Field(default_factory=list)
    selected_id: int | None = None
    status: MatchStatus = "unmatched"
    error: str | None = None

    @model_validator(mode="after")
    def _check_selection(self) -> MangaMatchResult:
        if self.status in SELECTED_STATUSES and self.selected_id is None:
            raise ValueError(f"A {self.status} result must have a selected candidate")
        if self.status not in SELECTED_STATUSES and self.selected_id is not None:
            raise ValueError(f"A {self.status} result cannot have a selected candidate")
        if self.selected_id is not None and self.selected_id not in {
            c.id for c in self.candidates
        }:
            raise ValueError(f"Selected candidate {self.selected_id} is not in the candidate list")
        return self

    @property
    def selected(self) -> ScoredCandidate | None:
        if self.selected_id is None:
            return None
        return next(c for c in self.candidates if c.id == self.selected_id)

    @property
    def confidence(self) -> float | None:
        selected = self.selected
        return selected.confidence if selected else None

    @property
    def is_sync_eligible(self) -> bool:
        return self.status in SYNC_ELIGIBLE_STATUSES

    def is_low_confidence(self, auto_accept_threshold: float) -> bool:
        """True for matched results below the auto-accept threshold."""
        return (
            self.status == "matched"
            and self.confidence is not None
            and self.confidence < auto_accept_threshold
        )


class AdvancedMatchFilters(BaseModel):
    """Post-hoc filters over match results. Empty collections mean "all"."""

    model_config = ConfigDict(frozen=True)

    confidence_min: float = Field(default=0.0, ge=0.0, le=100.0)
    confidence_max: float = Field(default=100.0, ge=0.0, le=100.0)
    formats: tuple[str, ...] = ()
    genres: tuple[str, ...] = ()
    publication_statuses: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_range(self) -> AdvancedMatchFilters:
        if self.confidence_min > self.confidence_max:
            raise ValueError("confidence_min must not exceed confidence_max")
        return self

    @property
    def is_default(self) -> bool:
        return (
            self.confidence_min <= 0.0
            and self.confidence_max >= 100.0
            and not self.formats
            and not self.genres
            and not self.publication_statuses
        )
