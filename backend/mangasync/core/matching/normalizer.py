"""Title normalization for matching.

Titles from the source export and the target catalog differ in case,
punctuation, full-width forms, bracketed annotations ("[Official]",
"(Digital)") and volume/chapter markers. ``normalize`` folds all of those
away so titles can be compared directly.
"""

from __future__ import annotations

import re
import unicodedata

# Cyrillic letters that look like (or transliterate to) Latin ones.
# Applied after casefolding, so only lowercase forms are needed.
HOMOGLYPHS: dict[int, str] = str.maketrans(
    {
        "о": "o",
        "а": "a",
        "е": "e",
        "с": "c",
        "р": "p",
        "к": "k",
        "м": "m",
        "н": "n",
        "т": "t",
        "х": "x",
        "в": "v",
        "у": "u",
        "і": "i",
        "ј": "j",
        "ё": "yo",
        "ю": "yu",
        "я": "ya",
        "ж": "zh",
        "ч": "ch",
        "ш": "sh",
        "щ": "shch",
        "ц": "ts",
        "ы": "y",
        "э": "e",
        "ь": "",
        "ъ": "",
    }
)

ARTICLES = frozenset({"a", "an", "the"})

# Full-width brackets are folded to ASCII by NFKC; lenticular ones are not
_BRACKETED_RE = re.compile(r"\[[^\[\]]*\]|\([^()]*\)|\{[^{}]*\}|【[^【】]*】")
_MARKER_RE = re.compile(
    r"\b(?:vol(?:ume)?|ch(?:apter)?|ep(?:isode)?)\.?\s*\d+(?:\.\d+)?\b|\braw\b"
)
_APOSTROPHE_RE = re.compile(r"['‘’`]")
_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


class NormalizedTitle(str):
    """A normalized title string that remembers its raw form."""

    raw: str

    def __new__(cls, value: str, raw: str) -> NormalizedTitle:
        obj = super().__new__(cls, value)
        obj.raw = raw
        return obj

    @property
    def tokens(self) -> list[str]:
        return self.split()


def _fold(title: str) -> str:
    folded = unicodedata.normalize("NFKC", title).casefold()
    return folded.translate(HOMOGLYPHS)


def normalize(title: str) -> NormalizedTitle:
    """Canonicalize a free-text title for comparison.

    Never fails: when stripping leaves nothing (a title made only of
    punctuation or markers), the trimmed lowercase input is returned.

    Args:
        title: Raw title

    Returns:
        NormalizedTitle (a str) with ``raw`` set to the input
    """
    raw = title or ""
    value = _fold(raw)
    value = _BRACKETED_RE.sub(" ", value)
    value = _MARKER_RE.sub(" ", value)
    value = _APOSTROPHE_RE.sub("", value)
    value = _PUNCTUATION_RE.sub(" ", value)
    value = _WHITESPACE_RE.sub(" ", value).strip()

    if not value:
        value = _WHITESPACE_RE.sub(" ", raw.casefold()).strip()

    return NormalizedTitle(value, raw)


def title_tokens(title: str) -> list[str]:
    """Tokens of the normalized form of ``title``."""
    return normalize(title).tokens


def is_difference_only_articles(title1: str, title2: str) -> bool:
    """Check whether two titles differ only by the articles a/an/the.

    "The Promised Neverland" and "Promised Neverland" qualify; identical
    titles and titles that consist only of articles do not.
    """
    tokens1 = title_tokens(title1)
    tokens2 = title_tokens(title2)
    if len(tokens1) == len(tokens2):
        return False

    stripped1 = [t for t in tokens1 if t not in ARTICLES]
    stripped2 = [t for t in tokens2 if t not in ARTICLES]
    return bool(stripped1) and stripped1 == stripped2
