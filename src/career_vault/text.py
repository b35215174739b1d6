"""Shared text-processing utilities.

Pure functions with no domain dependencies.  Safe to import from any
layer (CLI, pipeline, export, RAG).
"""

from __future__ import annotations

import re

MAX_SLUG_LEN = 80

# Words shorter than this never count as keyword hits
MIN_KEYWORD_LEN = 4

_STOPWORDS = frozenset(
    {
        "about",
        "across",
        "ability",
        "able",
        "also",
        "from",
        "have",
        "into",
        "must",
        "other",
        "over",
        "should",
        "such",
        "than",
        "that",
        "their",
        "them",
        "then",
        "there",
        "these",
        "they",
        "this",
        "through",
        "using",
        "when",
        "where",
        "which",
        "will",
        "with",
        "within",
        "work",
        "years",
    }
)


def normalize_content(text: str) -> str:
    """Lower-case *text* and collapse internal whitespace.

    Two items whose normalised content is equal are treated as duplicates.

    >>> normalize_content("  Led   the  Platform team ")
    'led the platform team'
    """
    return " ".join(text.lower().split())


def keywords(text: str, *, min_len: int = MIN_KEYWORD_LEN) -> list[str]:
    """Return the distinct significant words of *text* in first-seen order.

    Words are lower-cased alphanumeric runs (``+`` and ``#`` kept, so
    ``c++`` and ``c#`` survive) of at least *min_len* characters that are
    not common filler words.
    """
    seen: dict[str, None] = {}
    for word in re.findall(r"[a-z0-9+#]+", text.lower()):
        if len(word) >= min_len and word not in _STOPWORDS:
            seen.setdefault(word, None)
    return list(seen)


def slugify(text: str, *, max_len: int = MAX_SLUG_LEN) -> str:
    """Convert *text* to a filesystem-safe slug for export file names.

    >>> slugify("Jane Doe's Vault (2026)")
    'jane-does-vault-2026'
    """
    slug = text.lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = slug.strip("-")
    return slug[:max_len]
