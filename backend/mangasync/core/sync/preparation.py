"""Sync entry preparation.

Turns reviewed match results into the list updates to send: maps reading
statuses, applies the target-priority rules against the user's existing
list entry, drops no-op updates and enforces the duplicate target policy.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

import structlog

from mangasync.core.matching.models import CatalogListEntry, MangaMatchResult, SourceEntry

from .config import SyncConfig
from .models import SyncEntry, SyncEntryOutcome

logger = structlog.get_logger("mangasync.sync.preparation")

# Scores closer than this are treated as equal
SCORE_EPSILON = 0.5

PreparedItem = SyncEntry | SyncEntryOutcome


def effective_status(source: SourceEntry, config: SyncConfig, now: datetime) -> str:
    """Target status for a source entry, applying auto-pause for inactive entries."""
    if config.auto_pause_inactive and source.status not in ("completed", "dropped"):
        last_activity = source.last_read_at or source.updated_at
        if last_activity is not None:
            if last_activity.tzinfo is None:
                last_activity = last_activity.replace(tzinfo=UTC)
            days_inactive = (now - last_activity).days
            if days_inactive >= config.auto_pause_threshold_days:
                return "PAUSED"
    return config.map_status(source.status)


def _choose_score(
    source: SourceEntry,
    previous: CatalogListEntry | None,
    config: SyncConfig,
) -> float | None:
    previous_score = previous.score if previous and previous.score else None
    if previous_score and config.prioritize_target_score:
        return previous_score
    if source.score > 0:
        return source.score
    return previous_score


def build_sync_entry(
    result: MangaMatchResult,
    config: SyncConfig,
    now: datetime | None = None,
) -> SyncEntry | None:
    """Build the update for a sync-eligible result.

    Returns:
        SyncEntry, or None when the update would not change the existing entry
    """
    selected = result.selected
    if selected is None:
        raise ValueError(f"Result for {result.source.id!r} has no selected candidate")

    now = now or datetime.now(UTC)
    source = result.source
    previous = selected.candidate.list_entry

    if previous is not None and previous.status == "COMPLETED" and config.preserve_completed_status:
        return None

    status = effective_status(source, config, now)
    progress = source.chapters_read
    score = _choose_score(source, previous, config)
    private = config.set_private

    if previous is not None:
        if config.prioritize_target_status and previous.status:
            status = previous.status
        if config.prioritize_target_progress:
            progress = max(progress, previous.progress)
        private = private or previous.private

        unchanged = (
            status == previous.status
            and progress == previous.progress
            and private == previous.private
            and abs((score or 0.0) - (previous.score or 0.0)) < SCORE_EPSILON
        )
        if unchanged:
            return None

    return SyncEntry(
        source_id=source.id,
        title=source.title,
        target_id=selected.id,
        status=status,
        progress=progress,
        score=score,
        private=private,
        previous=previous,
    )


def _outcome(result: MangaMatchResult, status: str, error: str | None = None) -> SyncEntryOutcome:
    return SyncEntryOutcome(
        source_id=result.source.id,
        title=result.source.title,
        target_id=result.selected_id,
        status=status,
        error=error,
    )


def prepare_sync_entries(
    results: Sequence[MangaMatchResult],
    config: SyncConfig,
    now: datetime | None = None,
) -> list[PreparedItem]:
    """Prepare updates for reviewed results, in input order.

    Each item is either a SyncEntry to send or a final SyncEntryOutcome:
    ``skipped`` for results that are not sync-eligible or lose the duplicate
    target policy, ``unchanged`` for no-op updates.
    """
    now = now or datetime.now(UTC)

    # Index of the result allowed to write each target ID
    winners: dict[int, int] = {}
    for index, result in enumerate(results):
        if not result.is_sync_eligible or result.selected_id is None:
            continue
        if config.duplicate_policy == "last_write_wins" or result.selected_id not in winners:
            winners[result.selected_id] = index

    prepared: list[PreparedItem] = []
    for index, result in enumerate(results):
        if not result.is_sync_eligible or result.selected_id is None:
            reason = (
                "Ambiguous match must be accepted before sync"
                if result.status == "ambiguous"
                else f"Not eligible for sync ({result.status})"
            )
            logger.warning(
                "Skipping entry not eligible for sync",
                source_id=result.source.id,
                status=result.status,
                reason=reason,
            )
            prepared.append(_outcome(result, "skipped", reason))
            continue

        winner = winners[result.selected_id]
        if winner != index:
            logger.warning(
                "Duplicate target, skipping entry",
                source_id=result.source.id,
                target_id=result.selected_id,
                policy=config.duplicate_policy,
                kept_source_id=results[winner].source.id,
            )
            prepared.append(
                _outcome(
                    result,
                    "skipped",
                    f"Duplicate target {result.selected_id} "
                    f"(kept {results[winner].source.id}, policy {config.duplicate_policy})",
                )
            )
            continue

        entry = build_sync_entry(result, config, now)
        prepared.append(entry if entry is not None else _outcome(result, "unchanged"))

    return prepared


def incremental_steps(entry: SyncEntry) -> list[SyncEntry]:
    """Split an update of an existing list entry into progress-first steps.

    Progress is raised by one chapter, then set to its final value, then the
    full update (status, score, privacy) is sent if any of those changed.
    Progress steps keep the existing status, score and privacy. New entries
    and updates that do not raise progress are a single step.
    """
    previous = entry.previous
    if previous is None or entry.progress <= previous.progress:
        return [entry]

    existing = {
        "status": previous.status or entry.status,
        "score": previous.score,
        "private": previous.private,
    }
    steps = [entry.model_copy(update={**existing, "progress": previous.progress + 1})]
    if entry.progress > previous.progress + 1:
        steps.append(entry.model_copy(update={**existing, "progress": entry.progress}))

    metadata_changed = (
        entry.status != existing["status"]
        or entry.private != previous.private
        or abs((entry.score or 0.0) - (previous.score or 0.0)) >= SCORE_EPSILON
    )
    if metadata_changed:
        steps.append(entry)
    return steps
