"""Tests for the matching service."""

from __future__ import annotations

import asyncio

import httpx

from mangasync.core.catalog.base import CatalogClient
from mangasync.core.catalog.client import AniListClient
from mangasync.core.errors import CatalogLookupError
from mangasync.core.matching.config import MatchingConfig
from mangasync.core.matching.models import (
    CatalogCandidate,
    CatalogListEntry,
    CatalogTitle,
    SourceEntry,
)
from mangasync.core.matching.service import MatchingService
from mangasync.core.metrics import match_results_total
from mangasync.core.tracing import get_trace_id, trace_context

CATALOG = {
    "berserk": [
        CatalogCandidate(id=30002, title=CatalogTitle(english="Berserk"), format="MANGA"),
        CatalogCandidate(id=99999, title=CatalogTitle(english="Vagabond"), format="MANGA"),
    ],
    "one piece": [
        CatalogCandidate(id=30013, title=CatalogTitle(english="One Piece"), format="MANGA"),
        CatalogCandidate(id=30014, title=CatalogTitle(english="ONE PIECE!"), format="MANGA"),
    ],
}


class FakeCatalogClient(CatalogClient):
    """Catalog client matching searches on the normalized query."""

    def __init__(self, fail: set[str] | None = None, on_search=None) -> None:
        super().__init__("fake")
        self.fail = fail or set()
        self.on_search = on_search
        self.calls: list[str] = []
        self.trace_ids: list[str | None] = []

    async def search(
        self, title: str, limit: int = 10, timeout: float | None = None
    ) -> list[CatalogCandidate]:
        self.calls.append(title)
        self.trace_ids.append(get_trace_id())
        if self.on_search is not None:
            self.on_search(title)
        await asyncio.sleep(0)
        if title.lower() in self.fail:
            raise CatalogLookupError(f"Search for {title!r} failed")
        return CATALOG.get(title.lower(), [])[:limit]

    async def update_entry(
        self, target_id, status, progress, score=None, private=False, timeout=None
    ):
        return CatalogListEntry(status=status, progress=progress)


def entries() -> list[SourceEntry]:
    return [
        SourceEntry(id=1, title="Berserk", chapters_read=300),
        SourceEntry(id=2, title="One Piece", chapters_read=1100),
        SourceEntry(id=3, title="Unknown Manga"),
    ]


async def test_run_keeps_input_order() -> None:
    service = MatchingService(FakeCatalogClient(), MatchingConfig())

    report = await service.run(entries())

    assert report.total == 3
    assert report.cancelled is False
    assert report.lookup_failures == 0
    assert [r.source.id for r in report.results] == [1, 2, 3]
    assert [r.status for r in report.results] == ["matched", "ambiguous", "unmatched"]
    assert report.results[0].selected_id == 30002
    assert report.results[1].selected_id == 30013


async def test_lookup_failure_is_unmatched_with_error() -> None:
    service = MatchingService(FakeCatalogClient(fail={"berserk"}), MatchingConfig())

    report = await service.run(entries())

    first = report.results[0]
    assert first.status == "unmatched"
    assert first.error is not None
    assert "failed" in first.error
    assert report.lookup_failures == 1
    assert report.results[1].status == "ambiguous"


async def test_cancelled_run_keeps_finished_results() -> None:
    cancel_event = asyncio.Event()

    def cancel_after_first_entry(title: str) -> None:
        if title == "berserk":
            cancel_event.set()

    client = FakeCatalogClient(on_search=cancel_after_first_entry)
    config = MatchingConfig(max_concurrent_lookups=1)

    report = await MatchingService(client, config).run(entries(), cancel_event)

    assert report.cancelled is True
    assert report.total == 3
    assert [r.source.id for r in report.results] == [1]
    assert "One Piece" not in client.calls


async def test_run_binds_trace_id() -> None:
    client = FakeCatalogClient()

    with trace_context("matching-trace"):
        await MatchingService(client, MatchingConfig()).run(entries()[:1])

    assert set(client.trace_ids) == {"matching-trace"}


async def test_results_are_counted() -> None:
    before = match_results_total.labels(status="unmatched")._value.get()

    await MatchingService(FakeCatalogClient(), MatchingConfig()).run(entries())

    assert match_results_total.labels(status="unmatched")._value.get() == before + 1


async def test_rate_limit_wait_is_not_a_lookup_timeout() -> None:
    """Lookups queued behind the rate limiter still get their full timeout."""

    def handler(request: httpx.Request) -> httpx.Response:
        media = {"id": 30002, "title": {"english": "Berserk"}, "format": "MANGA"}
        return httpx.Response(200, json={"data": {"Page": {"media": [media]}}})

    client = AniListClient(
        api_url="https://anilist.test/graphql",
        rate_limit=2,
        rate_limit_period=0.4,
        max_retries=0,
        transport=httpx.MockTransport(handler),
    )
    config = MatchingConfig(lookup_timeout=0.3, search_alternative_titles=False)
    library = [SourceEntry(id=i, title=f"Berserk {i}") for i in range(6)]

    report = await MatchingService(client, config).run(library)

    assert report.lookup_failures == 0
    assert all(result.error is None for result in report.results)
    assert all(result.candidates for result in report.results)
