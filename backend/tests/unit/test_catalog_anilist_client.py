"""Tests for the AniList GraphQL client."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from mangasync.core.catalog.client import (
    AniListClient,
    classify_response,
    get_anilist_client,
    parse_media,
    parse_retry_after,
)
from mangasync.core.config import Settings
from mangasync.core.errors import (
    CatalogLookupError,
    CatalogTimeoutError,
    SyncPermanentError,
    SyncTransientError,
)

API_URL = "https://anilist.test/graphql"

BERSERK = {
    "id": 30002,
    "title": {"romaji": "Berserk", "english": "Berserk", "native": "ベルセルク"},
    "synonyms": ["Berserk: The Black Swordsman", None],
    "format": "MANGA",
    "status": "RELEASING",
    "genres": ["Action", "Drama"],
    "chapters": None,
    "volumes": None,
    "startDate": {"year": 1989},
    "coverImage": {"large": "https://img.anilist.test/30002.jpg"},
    "mediaListEntry": {
        "id": 9,
        "status": "CURRENT",
        "progress": 350,
        "progressVolumes": None,
        "score": 9.5,
        "private": False,
    },
    "isAdult": False,
}


def page(*media: dict) -> dict:
    return {"data": {"Page": {"media": list(media)}}}


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record asyncio.sleep calls instead of sleeping."""
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded


def make_client(handler, token: str | None = None, **kwargs) -> AniListClient:
    return AniListClient(
        api_url=API_URL,
        token=token,
        rate_limit=1000,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestClassifyResponse:
    """Test classify_response."""

    def test_success(self) -> None:
        assert classify_response(httpx.Response(200, json={"data": {}})) is None

    def test_rate_limit(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": "7"}, json={"errors": []})

        with pytest.raises(SyncTransientError) as exc_info:
            classify_response(response)

        assert exc_info.value.kind == "rate_limit"
        assert exc_info.value.retry_after == 7.0

    def test_server_error(self) -> None:
        with pytest.raises(SyncTransientError) as exc_info:
            classify_response(httpx.Response(502, text="Bad Gateway"))

        assert exc_info.value.kind == "server_error"

    @pytest.mark.parametrize(
        ("status_code", "kind"),
        [
            (401, "auth"),
            (403, "auth"),
            (404, "not_found"),
            (400, "validation"),
            (422, "validation"),
        ],
    )
    def test_permanent_errors(self, status_code: int, kind: str) -> None:
        response = httpx.Response(status_code, json={"errors": [{"message": "Nope"}]})

        with pytest.raises(SyncPermanentError) as exc_info:
            classify_response(response)

        assert exc_info.value.kind == kind
        assert "Nope" in str(exc_info.value)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, None), ("", None), ("abc", None), ("-1", None), ("2.5", 2.5), ("30", 30.0)],
)
def test_parse_retry_after(value: str | None, expected: float | None) -> None:
    assert parse_retry_after(value) == expected


def test_parse_media() -> None:
    candidate = parse_media(BERSERK)

    assert candidate.id == 30002
    assert candidate.title.native == "ベルセルク"
    assert candidate.synonyms == ["Berserk: The Black Swordsman"]
    assert candidate.start_year == 1989
    assert candidate.cover_image == "https://img.anilist.test/30002.jpg"
    assert candidate.list_entry is not None
    assert candidate.list_entry.progress == 350
    assert candidate.list_entry.score == 9.5


class TestSearch:
    """Test AniListClient.search."""

    async def test_search(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=page(BERSERK))

        client = make_client(handler)
        result = await client.search("Berserk", limit=5)

        assert [c.id for c in result] == [30002]
        body = json.loads(requests[0].content)
        assert body["variables"] == {"search": "Berserk", "page": 1, "perPage": 5}
        assert "Authorization" not in requests[0].headers

    async def test_search_skips_malformed_media(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=page({"title": {"romaji": "No ID"}}, BERSERK))

        result = await make_client(handler).search("Berserk")

        assert [c.id for c in result] == [30002]

    async def test_search_retries_server_errors(self, sleeps: list[float]) -> None:
        responses = [httpx.Response(500), httpx.Response(200, json=page(BERSERK))]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        result = await make_client(handler).search("Berserk")

        assert [c.id for c in result] == [30002]
        assert len(sleeps) == 1

    async def test_search_honors_retry_after(self, sleeps: list[float]) -> None:
        responses = [
            httpx.Response(429, headers={"Retry-After": "12"}),
            httpx.Response(200, json=page()),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        assert await make_client(handler).search("Berserk") == []
        assert sleeps == [12.0]

    async def test_search_gives_up_after_retries(self, sleeps: list[float]) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        with pytest.raises(CatalogLookupError):
            await make_client(handler, max_retries=2).search("Berserk")

        assert calls == 3
        assert len(sleeps) == 2

    async def test_search_permanent_error_is_not_retried(self, sleeps: list[float]) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400, json={"errors": [{"message": "Invalid query"}]})

        with pytest.raises(CatalogLookupError, match="Invalid query"):
            await make_client(handler).search("Berserk")

        assert calls == 1
        assert sleeps == []


class TestExecute:
    """Test AniListClient.execute error classification."""

    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(SyncTransientError) as exc_info:
            await make_client(handler).execute("query {}", {})

        assert exc_info.value.kind == "timeout"

    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SyncTransientError) as exc_info:
            await make_client(handler).execute("query {}", {})

        assert exc_info.value.kind == "network"

    async def test_invalid_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        with pytest.raises(SyncTransientError) as exc_info:
            await make_client(handler).execute("query {}", {})

        assert exc_info.value.kind == "server_error"

    async def test_graphql_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": None, "errors": [{"message": "Not Found."}]})

        with pytest.raises(SyncPermanentError) as exc_info:
            await make_client(handler).execute("query {}", {})

        assert exc_info.value.kind == "not_found"


class TestUpdateEntry:
    """Test AniListClient.update_entry."""

    async def test_requires_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("No request expected")

        with pytest.raises(SyncPermanentError) as exc_info:
            await make_client(handler).update_entry(30002, status="CURRENT", progress=10)

        assert exc_info.value.kind == "auth"

    async def test_update(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            saved = {
                "id": 9,
                "status": "CURRENT",
                "progress": 120,
                "progressVolumes": None,
                "score": None,
                "private": True,
            }
            return httpx.Response(200, json={"data": {"SaveMediaListEntry": saved}})

        client = make_client(handler, token="secret")
        saved = await client.update_entry(
            30002, status="CURRENT", progress=120, score=0.0, private=True
        )

        assert saved.id == 9
        assert saved.progress == 120
        assert saved.private is True
        assert requests[0].headers["Authorization"] == "Bearer secret"
        variables = json.loads(requests[0].content)["variables"]
        assert variables == {
            "mediaId": 30002,
            "status": "CURRENT",
            "progress": 120,
            "private": True,
        }

    async def test_update_sends_score(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            saved = {"id": 9, "status": "COMPLETED", "progress": 10, "score": 8.0}
            return httpx.Response(200, json={"data": {"SaveMediaListEntry": saved}})

        await make_client(handler, token="secret").update_entry(
            30002, status="COMPLETED", progress=10, score=8.0
        )

        assert json.loads(requests[0].content)["variables"]["score"] == 8.0

    async def test_update_rate_limited(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "3"})

        with pytest.raises(SyncTransientError) as exc_info:
            await make_client(handler, token="secret").update_entry(
                30002, status="CURRENT", progress=1
            )

        assert exc_info.value.retry_after == 3.0

    async def test_update_not_saved(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"SaveMediaListEntry": None}})

        with pytest.raises(SyncPermanentError):
            await make_client(handler, token="secret").update_entry(
                30002, status="CURRENT", progress=1
            )


async def test_rate_limit_waits_when_window_is_full(sleeps: list[float]) -> None:
    client = AniListClient(api_url=API_URL, rate_limit=2, rate_limit_period=60)

    for _ in range(3):
        await client._wait_for_rate_limit()

    assert len(sleeps) == 1
    assert 0 < sleeps[0] <= 60


def test_get_anilist_client_follows_settings(data_dir: Path) -> None:
    first = get_anilist_client(Settings(data_dir=data_dir))
    same = get_anilist_client(Settings(data_dir=data_dir))
    with_token = get_anilist_client(Settings(data_dir=data_dir, anilist_token="secret"))

    assert same is first
    assert with_token is not first
    assert with_token.token == "secret"


class TestRequestTimeout:
    """Test that request timeouts cover the HTTP exchange only."""

    async def test_slow_response_times_out(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200, json=page())

        with pytest.raises(SyncTransientError) as exc_info:
            await make_client(handler).execute("query {}", {}, timeout=0.05)

        assert exc_info.value.kind == "timeout"

    async def test_search_timeout_raises_catalog_timeout(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200, json=page(BERSERK))

        with pytest.raises(CatalogTimeoutError, match="timed out"):
            await make_client(handler, max_retries=0).search("Berserk", timeout=0.05)

    async def test_rate_limit_wait_does_not_count(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=page(BERSERK))

        client = AniListClient(
            api_url=API_URL,
            rate_limit=1,
            rate_limit_period=0.3,
            max_retries=0,
            transport=httpx.MockTransport(handler),
        )

        # The second search waits about 0.3s for a slot, longer than its timeout
        results = [await client.search("Berserk", timeout=0.2) for _ in range(2)]

        assert [[c.id for c in r] for r in results] == [[30002], [30002]]
