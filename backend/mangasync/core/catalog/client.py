"""AniList GraphQL client with rate limiting, retry logic and error classification."""

from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from typing import Any

import httpx
import structlog

from mangasync.core.config import Settings, get_settings
from mangasync.core.errors import (
    CatalogLookupError,
    CatalogTimeoutError,
    SyncPermanentError,
    SyncTransientError,
)
from mangasync.core.matching.models import (
    CatalogCandidate,
    CatalogListEntry,
    CatalogTitle,
)

from .base import CatalogClient

logger = structlog.get_logger("mangasync.catalog.anilist")

SEARCH_MANGA = """
query ($search: String, $page: Int, $perPage: Int) {
  Page(page: $page, perPage: $perPage) {
    media(type: MANGA, search: $search, format_not_in: [NOVEL]) {
      id
      title {
        romaji
        english
        native
      }
      synonyms
      format
      status
      genres
      chapters
      volumes
      startDate {
        year
      }
      coverImage {
        large
      }
      mediaListEntry {
        id
        status
        progress
        progressVolumes
        score
        private
      }
      isAdult
    }
  }
}
"""

SAVE_MEDIA_LIST_ENTRY = """
mutation (
  $mediaId: Int!
  $status: MediaListStatus
  $progress: Int
  $score: Float
  $private: Boolean
) {
  SaveMediaListEntry(
    mediaId: $mediaId
    status: $status
    progress: $progress
    score: $score
    private: $private
  ) {
    id
    status
    progress
    progressVolumes
    score
    private
  }
}
"""


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _graphql_error_message(payload: Any) -> str | None:
    if isinstance(payload, dict) and payload.get("errors"):
        messages = [
            str(err.get("message", err)) if isinstance(err, dict) else str(err)
            for err in payload["errors"]
        ]
        return "; ".join(messages)
    return None


def classify_response(response: httpx.Response) -> None:
    """Raise the sync error matching an unsuccessful AniList response.

    Raises:
        SyncTransientError: 429 (rate_limit, with Retry-After) and 5xx (server_error)
        SyncPermanentError: 401/403 (auth), 404 (not_found), other 4xx (validation)
    """
    status_code = response.status_code
    if status_code < 400:
        return

    try:
        message = _graphql_error_message(response.json())
    except ValueError:
        message = None
    message = message or f"HTTP {status_code}"

    if status_code == 429:
        raise SyncTransientError(
            f"Rate limited: {message}",
            kind="rate_limit",
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status_code >= 500:
        raise SyncTransientError(f"Server error: {message}", kind="server_error")
    if status_code in (401, 403):
        raise SyncPermanentError(f"Not authorized: {message}", kind="auth")
    if status_code == 404:
        raise SyncPermanentError(f"Not found: {message}", kind="not_found")
    raise SyncPermanentError(f"Rejected: {message}", kind="validation")


def parse_media(media: dict[str, Any]) -> CatalogCandidate:
    """Convert an AniList Media object into a CatalogCandidate."""
    title = media.get("title") or {}
    start_date = media.get("startDate") or {}
    cover = media.get("coverImage") or {}
    list_entry = media.get("mediaListEntry")

    return CatalogCandidate(
        id=media["id"],
        title=CatalogTitle(
            english=title.get("english"),
            romaji=title.get("romaji"),
            native=title.get("native"),
        ),
        synonyms=[s for s in media.get("synonyms") or [] if s],
        format=media.get("format"),
        status=media.get("status"),
        genres=media.get("genres") or [],
        chapters=media.get("chapters"),
        volumes=media.get("volumes"),
        start_year=start_date.get("year"),
        is_adult=bool(media.get("isAdult")),
        cover_image=cover.get("large"),
        list_entry=parse_list_entry(list_entry) if list_entry else None,
    )


def parse_list_entry(entry: dict[str, Any]) -> CatalogListEntry:
    return CatalogListEntry(
        id=entry.get("id"),
        status=entry.get("status"),
        progress=entry.get("progress") or 0,
        progress_volumes=entry.get("progressVolumes"),
        score=entry.get("score"),
        private=bool(entry.get("private")),
    )


class AniListClient(CatalogClient):
    """AniList GraphQL client.

    Features:
    - Sliding-window rate limiting (requests per period)
    - Exponential backoff retry on rate limit and server errors for searches
    - Error classification into transient and permanent sync errors
    """

    def __init__(
        self,
        api_url: str = "https://graphql.anilist.co",
        token: str | None = None,
        rate_limit: int = 28,  # requests per period
        rate_limit_period: int = 60,  # seconds
        max_retries: int = 3,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize AniList client.

        Args:
            api_url: AniList GraphQL endpoint
            token: OAuth access token (required for list updates)
            rate_limit: Maximum requests per rate_limit_period
            rate_limit_period: Time window in seconds for rate limiting
            max_retries: Maximum number of search retries on transient errors
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        super().__init__("anilist")
        self.api_url = api_url
        self.token = token
        self.rate_limit = rate_limit
        self.rate_limit_period = rate_limit_period
        self.max_retries = max_retries
        self.timeout = timeout
        self._transport = transport

        self._request_times: deque[float] = deque()
        self._rate_limit_lock = asyncio.Lock()

    async def _wait_for_rate_limit(self) -> None:
        """Wait until a request fits in the rate limit window, then record it.

        The lock serializes concurrent callers so the window never holds
        more than ``rate_limit`` requests.
        """
        async with self._rate_limit_lock:
            now = time.monotonic()

            while self._request_times and self._request_times[0] <= now - self.rate_limit_period:
                self._request_times.popleft()

            if len(self._request_times) >= self.rate_limit:
                wait_time = self._request_times[0] + self.rate_limit_period - now
                if wait_time > 0:
                    logger.debug(
                        "Rate limit reached, waiting",
                        wait_seconds=round(wait_time, 2),
                        current_count=len(self._request_times),
                    )
                    await asyncio.sleep(wait_time)
                    now = time.monotonic()
                    while (
                        self._request_times
                        and self._request_times[0] <= now - self.rate_limit_period
                    ):
                        self._request_times.popleft()

            self._request_times.append(now)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "MangaSync/0.1",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def execute(
        self,
        query: str,
        variables: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send one GraphQL request (single attempt) and return its ``data``.

        The timeout starts once the request has a rate limit slot.

        Raises:
            SyncTransientError: timeout, network error, 429 or 5xx
            SyncPermanentError: other 4xx or a GraphQL error payload
        """
        await self._wait_for_rate_limit()

        request_timeout = timeout if timeout is not None else self.timeout
        try:
            async with httpx.AsyncClient(
                timeout=request_timeout, transport=self._transport
            ) as client:
                response = await asyncio.wait_for(
                    client.post(
                        self.api_url,
                        json={"query": query, "variables": variables},
                        headers=self._headers(),
                    ),
                    timeout=request_timeout,
                )
        except TimeoutError as e:
            raise SyncTransientError(
                f"Request timed out after {request_timeout}s", kind="timeout"
            ) from e
        except httpx.TimeoutException as e:
            raise SyncTransientError(f"Request timed out: {e}", kind="timeout") from e
        except httpx.RequestError as e:
            raise SyncTransientError(f"Network error: {e}", kind="network") from e

        classify_response(response)

        try:
            payload = response.json()
        except ValueError as e:
            raise SyncTransientError("Invalid JSON response", kind="server_error") from e

        if message := _graphql_error_message(payload):
            kind = "not_found" if "not found" in message.lower() else "validation"
            raise SyncPermanentError(message, kind=kind)

        return payload.get("data") or {}

    async def search(
        self,
        title: str,
        limit: int = 10,
        timeout: float | None = None,
    ) -> list[CatalogCandidate]:
        """Search manga by title, retrying timeouts, rate limit and server errors.

        Raises:
            CatalogTimeoutError: If the last attempt timed out
            CatalogLookupError: If the search fails after retries
        """
        variables = {"search": title, "page": 1, "perPage": limit}
        for attempt in range(self.max_retries + 1):
            try:
                data = await self.execute(SEARCH_MANGA, variables, timeout=timeout)
                break
            except SyncTransientError as e:
                if attempt >= self.max_retries:
                    if e.kind == "timeout":
                        raise CatalogTimeoutError(f"Search for {title!r} timed out: {e}") from e
                    raise CatalogLookupError(f"Search for {title!r} failed: {e}") from e
                # Exponential backoff with jitter unless the server says how long to wait
                base_wait = 2**attempt
                wait_time = e.retry_after or base_wait + random.uniform(0, base_wait * 0.5)
                logger.warning(
                    "AniList search failed, retrying",
                    title=title,
                    kind=e.kind,
                    attempt=attempt + 1,
                    wait_seconds=round(wait_time, 2),
                )
                await asyncio.sleep(wait_time)
            except SyncPermanentError as e:
                raise CatalogLookupError(f"Search for {title!r} rejected: {e}") from e

        media = (data.get("Page") or {}).get("media") or []
        candidates: list[CatalogCandidate] = []
        for item in media[:limit]:
            try:
                candidates.append(parse_media(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed media", title=title, error=str(e))
        return candidates

    async def update_entry(
        self,
        target_id: int,
        status: str,
        progress: int,
        score: float | None = None,
        private: bool = False,
        timeout: float | None = None,
    ) -> CatalogListEntry:
        """Save a list entry (single attempt; the sync engine owns retries)."""
        if not self.token:
            raise SyncPermanentError("AniList token is not configured", kind="auth")

        variables: dict[str, Any] = {
            "mediaId": target_id,
            "status": status,
            "progress": progress,
            "private": private,
        }
        if score is not None and score > 0:
            variables["score"] = score

        data = await self.execute(SAVE_MEDIA_LIST_ENTRY, variables, timeout=timeout)
        saved = data.get("SaveMediaListEntry")
        if not saved:
            raise SyncPermanentError(
                f"AniList did not save entry for media {target_id}", kind="validation"
            )
        return parse_list_entry(saved)


# Global client instance (created on first use)
_client: AniListClient | None = None


def get_anilist_client(settings: Settings | None = None) -> AniListClient:
    """Get or create the global AniList client.

    The client is recreated when the relevant settings change.
    """
    global _client

    if settings is None:
        settings = get_settings()

    if _client is None or (
        _client.api_url != settings.anilist_api_url
        or _client.token != settings.anilist_token
        or _client.rate_limit != settings.anilist_rate_limit
        or _client.rate_limit_period != settings.anilist_rate_limit_period
    ):
        _client = AniListClient(
            api_url=settings.anilist_api_url,
            token=settings.anilist_token,
            rate_limit=settings.anilist_rate_limit,
            rate_limit_period=settings.anilist_rate_limit_period,
        )

    return _client
