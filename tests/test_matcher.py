"""Requirement matcher tests — semantic scoring and keyword fallback."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
from conftest import EMBED_FAKE

from career_vault.errors import ActionableError, ErrorType
from career_vault.rag.matcher import (
    KEYWORD_FALLBACK_REASON,
    RequirementMatcher,
    cosine_similarity,
    keyword_score,
    similarity_to_score,
)
from career_vault.vault.models import QualityTier

if TYPE_CHECKING:
    from career_vault.rag.embedder import Embedder
    from career_vault.rag.store import VaultStore

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)

REQUIREMENT = "Experience leading Kubernetes migrations and Terraform automation"


class TestSimilarityMath:
    """REQUIREMENT: Cosine similarity maps onto a bounded integer match score.

    WHO: The semantic matching path
    WHAT: Identical vectors → 1.0; orthogonal → 0.0; mismatched or zero
          vectors → 0.0; negative similarity clamps to a score of 0
    WHY: A match score outside 0–100 would break buckets and strength
    """

    def test_identical_vectors(self) -> None:
        assert cosine_similarity(EMBED_FAKE, EMBED_FAKE) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    @pytest.mark.parametrize(
        ("a", "b"),
        [([], []), ([1.0], [1.0, 2.0]), ([0.0, 0.0], [1.0, 1.0])],
    )
    def test_degenerate_vectors_score_zero(self, a: list[float], b: list[float]) -> None:
        assert cosine_similarity(a, b) == 0.0

    @pytest.mark.parametrize(
        ("similarity", "expected"),
        [(-0.4, 0), (0.0, 0), (0.734, 73), (1.0, 100), (1.2, 100)],
    )
    def test_similarity_to_score(self, similarity: float, expected: int) -> None:
        assert similarity_to_score(similarity) == expected


class TestKeywordScore:
    """REQUIREMENT: Keyword overlap scores the share of requirement words present.

    WHO: The degraded matching path
    WHAT: 100 × found / requirement keywords, rounded; the hits are returned
    WHY: The fallback must still rank an obviously relevant item first
    """

    def test_share_of_keywords(self) -> None:
        score, found = keyword_score(["kubernetes", "terraform", "golang", "kafka"], "Ran Kubernetes and Terraform")
        assert score == 50
        assert found == ["kubernetes", "terraform"]

    def test_no_requirement_keywords(self) -> None:
        assert keyword_score([], "anything") == (0, [])


class TestSemanticMatching:
    """REQUIREMENT: Matches carry a score, the item's tier and freshness, and reasons.

    WHO: The service's match_requirement()
    WHAT: The requirement and unstored candidates are embedded; stored
          embeddings are reused; input order is preserved; freshness is
          derived as of the call; empty requirements
          raise VALIDATION; empty candidate lists return []
    WHY: Ranking reads tier and freshness from the match, so they must be
         the item's own values
    """

    async def test_scores_candidates_in_input_order(self, make_item, mock_embedder: Embedder) -> None:
        """Identical fake vectors score 100 and reasons name the shared keywords."""
        items = [make_item("Led Kubernetes migration", tier=QualityTier.GOLD), make_item("Baked bread")]
        matches = await RequirementMatcher(mock_embedder).match(REQUIREMENT, items, now=NOW)

        assert [m.vault_item_id for m in matches] == [i.id for i in items]
        assert matches[0].match_score == 100
        assert matches[0].quality_tier == QualityTier.GOLD
        assert matches[0].freshness_score == 100
        assert matches[0].match_reasons[0] == "Semantic similarity 1.00"
        assert "kubernetes" in matches[0].match_reasons[1]
        assert len(matches[1].match_reasons) == 1, "No shared keywords means no keyword reason"

    async def test_freshness_derived_as_of_now(self, make_item, mock_embedder: Embedder) -> None:
        """The match carries freshness as of ``now``, not a score stamped at insert."""
        item = make_item("Led Kubernetes migration", freshness_score=100, age_days=800)
        matches = await RequirementMatcher(mock_embedder).match(REQUIREMENT, [item], now=NOW)
        assert matches[0].freshness_score == 50

    async def test_reuses_stored_embeddings(
        self, make_item, mock_embedder: Embedder, vault_store: VaultStore
    ) -> None:
        """A candidate with a stored vector is not re-embedded."""
        item = make_item("Led Kubernetes migration")
        vault_store.insert_item(item, EMBED_FAKE)

        await RequirementMatcher(mock_embedder, vault_store).match(REQUIREMENT, [item], now=NOW)

        mock_embedder.embed.assert_awaited_once_with(REQUIREMENT)  # type: ignore[attr-defined]

    async def test_empty_requirement_raises_validation(self, make_item, mock_embedder: Embedder) -> None:
        with pytest.raises(ActionableError) as exc_info:
            await RequirementMatcher(mock_embedder).match("   ", [make_item()])
        assert exc_info.value.context == {"field": "requirement"}

    async def test_no_candidates(self, mock_embedder: Embedder) -> None:
        assert await RequirementMatcher(mock_embedder).match(REQUIREMENT, []) == []
        mock_embedder.embed.assert_not_called()  # type: ignore[attr-defined]


class TestKeywordFallback:
    """REQUIREMENT: Provider failure degrades matching to keyword overlap.

    WHO: Users matching while Ollama is down
    WHAT: Dependency failures switch the whole call to keyword scoring and
          every reason list starts with the fallback marker; every candidate
          is kept; non-dependency errors still raise
    WHY: Match is a read path; it must return the best locally derivable result
    """

    async def test_generation_failure_uses_keywords(self, make_item, mock_embedder: Embedder) -> None:
        """Keyword scores replace semantic ones and say so."""
        mock_embedder.embed.side_effect = ActionableError.generation("nomic-embed-text", "down")  # type: ignore[attr-defined]
        items = [make_item("Kubernetes migrations with Terraform"), make_item("Baked bread")]

        matches = await RequirementMatcher(mock_embedder).match(REQUIREMENT, items, now=NOW)

        assert len(matches) == 2, "Zero-overlap candidates are kept"
        for match in matches:
            assert match.match_reasons[0] == KEYWORD_FALLBACK_REASON
        # experience, leading, kubernetes, migrations, terraform, automation
        assert matches[0].match_score == 50
        assert matches[0].match_reasons[1] == "Matches 3 keywords"
        assert matches[1].match_score == 0

    async def test_connection_failure_uses_keywords(self, make_item, mock_embedder: Embedder) -> None:
        mock_embedder.embed.side_effect = ActionableError.connection("Ollama", "http://x", "refused")  # type: ignore[attr-defined]
        matches = await RequirementMatcher(mock_embedder).match(REQUIREMENT, [make_item()], now=NOW)
        assert matches[0].match_reasons[0] == KEYWORD_FALLBACK_REASON

    async def test_validation_error_is_not_swallowed(self, make_item, mock_embedder: Embedder) -> None:
        """A caller error from the embedder is re-raised, not degraded."""
        mock_embedder.embed.side_effect = ActionableError.validation("text", "empty")  # type: ignore[attr-defined]
        with pytest.raises(ActionableError) as exc_info:
            await RequirementMatcher(mock_embedder).match(REQUIREMENT, [make_item()], now=NOW)
        assert exc_info.value.error_type == ErrorType.VALIDATION
