"""Target catalog access: client interface, AniList client and candidate fetcher."""

from .base import CatalogClient
from .client import AniListClient, get_anilist_client
from .fetcher import CandidateFetcher

__all__ = [
    "CatalogClient",
    "AniListClient",
    "get_anilist_client",
    "CandidateFetcher",
]
