"""Tests for the candidate fetcher."""

from __future__ import annotations

import asyncio

import pytest

from mangasync.core.catalog.base import CatalogClient
from mangasync.core.catalog.fetcher import CandidateFetcher
from mangasync.core.errors import (
    CatalogLookupError,
    CatalogTimeoutError,
    MatchingCancelledError,
)
from mangasync.core.matching.config import MatchingConfig
from mangasync.core.matching.models import (
    CatalogCandidate,
    CatalogListEntry,
    CatalogTitle,
    SourceEntry,
)


class FakeCatalogClient(CatalogClient):
    """Catalog client answering searches from a dict of query -> candidates or error."""

    def __init__(
        self,
        responses: dict[str, list[CatalogCandidate] | Exception] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        super().__init__("fake")
        self.responses = responses or {}
        self.delays = delays or {}
        self.calls: list[tuple[str, int]] = []

    async def search(
        self, title: str, limit: int = 10, timeout: float | None = None
    ) -> list[CatalogCandidate]:
        self.calls.append((title, limit))
        if title in self.delays:
            delay = self.delays[title]
            if timeout is not None and delay > timeout:
                await asyncio.sleep(timeout)
                raise CatalogTimeoutError(f"{title} timed out")
            await asyncio.sleep(delay)
        response = self.responses.get(title, [])
        if isinstance(response, Exception):
            raise response
        return list(response)

    async def update_entry(
        self, target_id, status, progress, score=None, private=False, timeout=None
    ):
        return CatalogListEntry(status=status, progress=progress)


def candidates(*ids: int) -> list[CatalogCandidate]:
    return [CatalogCandidate(id=i, title=CatalogTitle(english=f"Title {i}")) for i in ids]


def queried(client: FakeCatalogClient) -> list[str]:
    return [title for title, _ in client.calls]


class TestBuildQueries:
    """Test build_queries."""

    def test_title_normalized_and_alternatives(self) -> None:
        source = SourceEntry(
            id=1, title="One Piece!", alternative_titles=["Wan Pīsu", " One Piece! ", ""]
        )
        fetcher = CandidateFetcher(FakeCatalogClient(), MatchingConfig())

        assert fetcher.build_queries(source) == ["One Piece!", "one piece", "Wan Pīsu"]

    def test_normalized_title_equal_to_title(self) -> None:
        source = SourceEntry(id=1, title="berserk")
        fetcher = CandidateFetcher(FakeCatalogClient(), MatchingConfig())

        assert fetcher.build_queries(source) == ["berserk"]

    def test_alternatives_disabled(self) -> None:
        source = SourceEntry(id=1, title="Berserk", alternative_titles=["ベルセルク"])
        config = MatchingConfig(search_alternative_titles=False)
        fetcher = CandidateFetcher(FakeCatalogClient(), config)

        assert fetcher.build_queries(source) == ["Berserk", "berserk"]


class TestFetchCandidates:
    """Test fetch_candidates."""

    async def test_merges_and_deduplicates(self) -> None:
        client = FakeCatalogClient({"Berserk": candidates(1, 2), "berserk": candidates(2, 3)})
        fetcher = CandidateFetcher(client, MatchingConfig())

        result = await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))

        assert [c.id for c in result] == [1, 2, 3]

    async def test_limit(self) -> None:
        client = FakeCatalogClient({"Berserk": candidates(1, 2), "berserk": candidates(3, 4)})
        fetcher = CandidateFetcher(client, MatchingConfig(max_candidates=3))

        result = await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))

        assert [c.id for c in result] == [1, 2, 3]
        assert all(limit == 3 for _, limit in client.calls)

    async def test_no_results(self) -> None:
        fetcher = CandidateFetcher(FakeCatalogClient(), MatchingConfig())

        assert await fetcher.fetch_candidates(SourceEntry(id=1, title="Nothing")) == []

    async def test_partial_failure(self) -> None:
        client = FakeCatalogClient(
            {"Berserk": CatalogLookupError("HTTP 500"), "berserk": candidates(7)}
        )
        fetcher = CandidateFetcher(client, MatchingConfig())

        result = await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))

        assert [c.id for c in result] == [7]

    async def test_all_lookups_fail(self) -> None:
        client = FakeCatalogClient(
            {
                "Berserk": CatalogLookupError("HTTP 500"),
                "berserk": CatalogLookupError("HTTP 503"),
            }
        )
        fetcher = CandidateFetcher(client, MatchingConfig())

        with pytest.raises(CatalogLookupError, match="HTTP 503"):
            await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))

    async def test_timeout_is_a_failed_lookup(self) -> None:
        client = FakeCatalogClient(
            {"Berserk": candidates(1), "berserk": candidates(2)},
            delays={"Berserk": 1.0},
        )
        fetcher = CandidateFetcher(client, MatchingConfig(lookup_timeout=0.05))

        result = await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))

        assert [c.id for c in result] == [2]

    async def test_all_lookups_time_out(self) -> None:
        client = FakeCatalogClient(delays={"berserk": 1.0})
        fetcher = CandidateFetcher(client, MatchingConfig(lookup_timeout=0.05))

        with pytest.raises(CatalogLookupError, match="timed out"):
            await fetcher.fetch_candidates(SourceEntry(id=1, title="berserk"))

    async def test_memoizes_queries(self) -> None:
        client = FakeCatalogClient({"Berserk": candidates(1)})
        fetcher = CandidateFetcher(client, MatchingConfig())

        await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))
        await fetcher.fetch_candidates(SourceEntry(id=2, title="Berserk"))

        assert queried(client) == ["Berserk", "berserk"]

    async def test_memoization_disabled(self) -> None:
        client = FakeCatalogClient({"Berserk": candidates(1)})
        fetcher = CandidateFetcher(client, MatchingConfig(memoize_lookups=False))

        await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))
        await fetcher.fetch_candidates(SourceEntry(id=2, title="Berserk"))

        assert queried(client) == ["Berserk", "berserk", "Berserk", "berserk"]

    async def test_failed_lookup_is_not_memoized(self) -> None:
        client = FakeCatalogClient({"berserk": CatalogLookupError("HTTP 500")})
        fetcher = CandidateFetcher(client, MatchingConfig())

        for source_id in (1, 2):
            with pytest.raises(CatalogLookupError):
                await fetcher.fetch_candidates(SourceEntry(id=source_id, title="berserk"))

        assert queried(client) == ["berserk", "berserk"]

    async def test_cancelled(self) -> None:
        client = FakeCatalogClient({"Berserk": candidates(1)})
        cancel_event = asyncio.Event()
        cancel_event.set()
        fetcher = CandidateFetcher(client, MatchingConfig(), cancel_event)

        with pytest.raises(MatchingCancelledError):
            await fetcher.fetch_candidates(SourceEntry(id=1, title="Berserk"))

        assert client.calls == []
