"""Vault strength aggregation tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from career_vault.vault.models import (
    EvidenceSignals,
    QualityTier,
    RequirementMatch,
    VaultCategory,
)
from career_vault.vault.strength import (
    contribution,
    match_strength,
    strength,
    tally,
    vault_health,
)

NOW = datetime(2026, 6, 15, tzinfo=UTC)


class TestStrengthFormula:
    """REQUIREMENT: Strength is the rounded mean of tier × freshness × match contributions.

    WHO: Vault health display, match reports, and audit before/after scores
    WHAT: Each item contributes weight(tier) × fresh/100 × match/100;
          the aggregate is round(100 × mean), bounded to 0–100;
          an empty collection scores 0
    WHY: Users track this number over time; it must be reproducible from
         the items alone
    """

    def test_empty_collection_scores_zero(self) -> None:
        """No items means zero strength, not a division error."""
        assert strength([]) == 0

    def test_perfect_gold_scores_hundred(self) -> None:
        """Gold, fully fresh, fully matched is the maximum."""
        assert strength([(QualityTier.GOLD, 100, 100)]) == 100

    def test_tier_weights(self) -> None:
        """Weights are 1.0, 0.8, 0.6 and 0.4 from gold to assumed."""
        assert contribution(QualityTier.GOLD, 100) == 1.0
        assert contribution(QualityTier.SILVER, 100) == pytest.approx(0.8)
        assert contribution(QualityTier.BRONZE, 100) == pytest.approx(0.6)
        assert contribution(QualityTier.ASSUMED, 100) == pytest.approx(0.4)

    def test_mean_of_contributions(self) -> None:
        """(1.0 + 0.4) / 2 = 0.7 → 70."""
        assert strength([(QualityTier.GOLD, 100, 100), (QualityTier.ASSUMED, 100, 100)]) == 70

    def test_freshness_and_match_scale_contribution(self) -> None:
        """Silver at freshness 50 and match 50 contributes 0.8 × 0.5 × 0.5 = 0.2."""
        assert strength([(QualityTier.SILVER, 50, 50)]) == 20

    @pytest.mark.parametrize("tier", list(QualityTier))
    @pytest.mark.parametrize("fresh", [40, 50, 100])
    @pytest.mark.parametrize("match", [0, 37, 100])
    def test_result_is_always_bounded(self, tier: QualityTier, fresh: int, match: int) -> None:
        """Every single-item strength lies in 0–100."""
        assert 0 <= strength([(tier, fresh, match)]) <= 100


class TestVaultHealth:
    """REQUIREMENT: Vault health derives freshness as of now, with match = 100.

    WHO: The service when it rewrites the stored strength; the audit's
         "before" score
    WHAT: Items are classified (stored tier wins); freshness is always
          computed from timestamps as of ``now``, ignoring any stored score
    WHY: Health must agree with what the ranker sees for the same items
    """

    def test_ignores_stale_stored_freshness(self, make_item) -> None:
        """A score stamped at insert does not outlive the item's age."""
        item = make_item(tier=QualityTier.GOLD, freshness_score=100, age_days=800)
        assert vault_health([item], NOW) == 50

    def test_computes_missing_freshness(self, make_item) -> None:
        """Without a stored score, freshness comes from timestamps."""
        item = make_item(tier=QualityTier.GOLD, age_days=400)
        assert vault_health([item], NOW) == 60

    def test_classifies_untiered_items(self, make_item) -> None:
        """Items with no stored tier are classified from evidence."""
        item = make_item(evidence=EvidenceSignals(ai_confidence=0.9), freshness_score=100)
        assert vault_health([item], NOW) == 80


class TestMatchStrength:
    """REQUIREMENT: Match strength folds the match score into the contribution.

    WHO: MatchReport
    WHAT: match_strength() uses each match's tier, freshness and match score
    WHY: A vault full of gold items still scores low against an
         unrelated requirement
    """

    def test_match_score_scales_strength(self) -> None:
        """Gold, fresh, 50% match → 50."""
        match = RequirementMatch(
            vault_item_id="i",
            requirement="r",
            match_score=50,
            quality_tier=QualityTier.GOLD,
            freshness_score=100,
            verification_details=EvidenceSignals(),
        )
        assert match_strength([match]) == 50


class TestTally:
    """REQUIREMENT: Category and tier tallies are built by enumerating items.

    WHO: Markdown export, audit prompts, the CLI ``show`` command
    WHAT: Every category and tier appears, zero-filled; totals equal the
          number of items handed in
    WHY: Stored counts can drift; tallies must not
    """

    def test_tally_counts_by_category_and_tier(self, make_item) -> None:
        """Counts reflect exactly the items handed in."""
        items = [
            make_item(tier=QualityTier.GOLD),
            make_item(tier=QualityTier.GOLD, category=VaultCategory.SOFT_SKILL),
            make_item(),
        ]
        result = tally(items)
        assert result.total == 3
        assert result.by_category[VaultCategory.POWER_PHRASE] == 2
        assert result.by_category[VaultCategory.SOFT_SKILL] == 1
        assert result.by_category[VaultCategory.WORK_STYLE] == 0
        assert result.by_tier[QualityTier.GOLD] == 2
        assert result.by_tier[QualityTier.ASSUMED] == 1
