"""Title similarity on normalized titles."""

from __future__ import annotations

from collections.abc import Iterable

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from .config import MatchingConfig
from .normalizer import is_difference_only_articles, normalize


def title_similarity(title1: str, title2: str, config: MatchingConfig) -> float:
    """Similarity of two titles in [0, 1].

    1.0 for equal normalized titles, ``config.article_only_similarity`` when
    they differ only by articles, otherwise a weighted blend of token-set
    ratio and normalized Levenshtein similarity.
    """
    norm1 = normalize(title1)
    norm2 = normalize(title2)
    if not norm1 or not norm2:
        return 0.0
    if norm1 == norm2:
        return 1.0
    if is_difference_only_articles(title1, title2):
        return config.article_only_similarity

    token_set = fuzz.token_set_ratio(norm1, norm2) / 100.0
    levenshtein = Levenshtein.normalized_similarity(norm1, norm2)
    blended = config.token_set_weight * token_set + config.levenshtein_weight * levenshtein
    return max(0.0, min(1.0, blended))


def best_title_match(
    source_titles: Iterable[str],
    candidate_titles: Iterable[str],
    config: MatchingConfig,
) -> tuple[float, str | None]:
    """Best similarity over every (source title, candidate title) pair.

    Ties keep the earliest pair, so candidate title priority order
    (english, romaji, native, synonyms) decides which title is reported.

    Returns:
        Tuple of (similarity, candidate title that produced it)
    """
    candidates = [t for t in candidate_titles if t]
    best = 0.0
    best_title: str | None = None
    for source_title in source_titles:
        if not source_title:
            continue
        for candidate_title in candidates:
            similarity = title_similarity(source_title, candidate_title, config)
            if similarity > best:
                best = similarity
                best_title = candidate_title
            if best >= 1.0:
                return best, best_title
    return best, best_title
