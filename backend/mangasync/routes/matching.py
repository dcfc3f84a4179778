"""Matching routes: run matching, review, filter, duplicates and debug export."""

from __future__ import annotations

from typing import Any, Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mangasync.core.catalog.base import CatalogClient
from mangasync.core.dependencies import get_catalog_client, get_matching_settings
from mangasync.core.errors import ScoringError
from mangasync.core.matching.config import MatchingConfig
from mangasync.core.matching.debug_export import (
    export_confidence_fixture,
    generate_confidence_test_command,
)
from mangasync.core.matching.filters import PRESETS, apply_filters, filter_by_status
from mangasync.core.matching.models import (
    AdvancedMatchFilters,
    CatalogCandidate,
    MangaMatchResult,
    MatchStatus,
    SourceEntry,
)
from mangasync.core.matching.resolver import (
    accept_match,
    add_manual_candidate,
    find_duplicate_targets,
    reset_match,
    select_candidate,
    skip_match,
)
from mangasync.core.matching.service import MatchingService
from mangasync.core.tracing import get_trace_id

logger = structlog.get_logger("mangasync.routes.matching")


class RunMatchingRequest(BaseModel):
    entries: list[SourceEntry] = Field(..., description="Source entries to match")


class FilterRequest(BaseModel):
    results: list[MangaMatchResult]
    filters: AdvancedMatchFilters | None = None
    preset: Literal["high_confidence", "needs_review"] | None = None
    statuses: list[MatchStatus] | None = None


class DuplicatesRequest(BaseModel):
    results: list[MangaMatchResult]


class ReviewRequest(BaseModel):
    result: MangaMatchResult
    action: Literal["accept", "select", "manual", "skip", "reset"]
    candidate_id: int | None = None
    candidate: CatalogCandidate | None = None


class ExportRequest(BaseModel):
    result: MangaMatchResult
    candidate_id: int | None = None


def serialize_result(result: MangaMatchResult, config: MatchingConfig) -> dict[str, Any]:
    """JSON form of a result plus its derived fields."""
    data = result.model_dump(mode="json")
    data["confidence"] = result.confidence
    data["is_low_confidence"] = result.is_low_confidence(config.auto_accept_threshold)
    data["is_sync_eligible"] = result.is_sync_eligible
    return data


def create_matching_router() -> APIRouter:
    """Create matching router."""
    router = APIRouter(prefix="/api/matching")

    @router.post("/run")
    async def run_matching(
        payload: RunMatchingRequest,
        client: CatalogClient = Depends(get_catalog_client),
        config: MatchingConfig = Depends(get_matching_settings),
    ) -> JSONResponse:
        """Fetch, score and classify candidates for every entry."""
        service = MatchingService(client, config)
        report = await service.run(payload.entries)
        duplicates = find_duplicate_targets(report.results)

        logger.info(
            "Matching run completed",
            total=report.total,
            lookup_failures=report.lookup_failures,
            duplicates=len(duplicates),
        )
        return JSONResponse(
            {
                "results": [serialize_result(r, config) for r in report.results],
                "total": report.total,
                "lookup_failures": report.lookup_failures,
                "cancelled": report.cancelled,
                "duplicates": {str(k): v for k, v in duplicates.items()},
                "trace_id": get_trace_id(),
            }
        )

    @router.post("/review")
    async def review_match(
        payload: ReviewRequest,
        config: MatchingConfig = Depends(get_matching_settings),
    ) -> JSONResponse:
        """Apply one review transition to a result."""
        try:
            if payload.action == "accept":
                result = accept_match(payload.result)
            elif payload.action == "select":
                if payload.candidate_id is None:
                    raise ValueError("candidate_id is required to select a candidate")
                result = select_candidate(payload.result, payload.candidate_id)
            elif payload.action == "manual":
                if payload.candidate is None:
                    raise ValueError("candidate is required to add a manual candidate")
                result = add_manual_candidate(payload.result, payload.candidate, config)
            elif payload.action == "skip":
                result = skip_match(payload.result)
            else:
                result = reset_match(payload.result, config)
        except (ValueError, ScoringError) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        logger.info(
            "Match reviewed",
            source_id=result.source.id,
            action=payload.action,
            status=result.status,
            selected_id=result.selected_id,
        )
        return JSONResponse(
            {
                "result": serialize_result(result, config),
                "trace_id": get_trace_id(),
            }
        )

    @router.post("/filter")
    async def filter_matches(
        payload: FilterRequest,
        config: MatchingConfig = Depends(get_matching_settings),
    ) -> JSONResponse:
        """Filter results by status, then by preset or advanced filters."""
        results = payload.results
        if payload.statuses:
            results = filter_by_status(results, payload.statuses)

        filters = PRESETS[payload.preset] if payload.preset else payload.filters
        if filters is not None:
            results = apply_filters(results, filters)

        return JSONResponse(
            {
                "results": [serialize_result(r, config) for r in results],
                "total": len(results),
                "trace_id": get_trace_id(),
            }
        )

    @router.post("/duplicates")
    async def duplicate_targets(payload: DuplicatesRequest) -> JSONResponse:
        """Target IDs selected by more than one sync-eligible result."""
        duplicates = find_duplicate_targets(payload.results)
        return JSONResponse(
            {
                "duplicates": {str(k): v for k, v in duplicates.items()},
                "trace_id": get_trace_id(),
            }
        )

    @router.post("/export")
    async def export_match(
        payload: ExportRequest,
        config: MatchingConfig = Depends(get_matching_settings),
    ) -> JSONResponse:
        """Confidence fixture and reproducible test command for one candidate."""
        try:
            fixture = export_confidence_fixture(payload.result, payload.candidate_id, config)
            command = generate_confidence_test_command(
                payload.result, payload.candidate_id, config
            )
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        return JSONResponse(
            {
                "fixture": fixture,
                "command": command.model_dump(mode="json"),
                "trace_id": get_trace_id(),
            }
        )

    return router
