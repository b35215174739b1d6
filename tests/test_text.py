"""Shared text utility tests."""

from __future__ import annotations

from career_vault.text import keywords, normalize_content, slugify


class TestNormalizeContent:
    """REQUIREMENT: Duplicate detection compares case- and whitespace-insensitive text.

    WHO: The recommender's duplicate count and consolidate_duplicates
    WHAT: Lower-cases and collapses runs of whitespace
    WHY: "Led  the team" and "led the team" are the same fact
    """

    def test_collapses_case_and_whitespace(self) -> None:
        assert normalize_content("  Led   the\tPlatform  team ") == "led the platform team"


class TestKeywords:
    """REQUIREMENT: Keyword extraction yields distinct significant words in order.

    WHO: The requirement matcher's keyword fallback and match reasons
    WHAT: Words of four or more characters, minus filler words, lower-cased,
          first occurrence kept; symbols in c++ and c# survive
    WHY: Short and filler words would inflate every overlap score
    """

    def test_drops_short_and_filler_words(self) -> None:
        """Words under four characters and stopwords are dropped."""
        assert keywords("Led the team with Kubernetes and Terraform") == [
            "team",
            "kubernetes",
            "terraform",
        ]

    def test_deduplicates_preserving_order(self) -> None:
        assert keywords("Python python PYTHON golang") == ["python", "golang"]

    def test_keeps_symbol_languages_with_lower_min_len(self) -> None:
        """c++ survives as one token when the minimum length allows it."""
        assert "c++" in keywords("Expert in C++ and Rust", min_len=3)


class TestSlugify:
    """REQUIREMENT: Export file names are filesystem-safe slugs.

    WHO: The CLI export and match --export commands
    WHAT: Lower-cased, punctuation stripped, spaces to hyphens, bounded length
    WHY: User ids and requirement text may contain anything
    """

    def test_slug_is_safe(self) -> None:
        assert slugify("Jane Doe's Vault (2026)") == "jane-does-vault-2026"

    def test_slug_is_bounded(self) -> None:
        assert len(slugify("x" * 200, max_len=40)) == 40
