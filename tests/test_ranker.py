"""Ranking and match report tests."""

from __future__ import annotations

import pytest

from career_vault.pipeline.ranker import MatchReport, Ranker, rank
from career_vault.vault.models import EvidenceSignals, QualityTier, RequirementMatch


def _match(tier: QualityTier, fresh: int, score: int, label: str = "") -> RequirementMatch:
    return RequirementMatch(
        vault_item_id=label or f"{tier.value}-{fresh}-{score}",
        requirement="Lead a platform team",
        match_score=score,
        quality_tier=tier,
        freshness_score=fresh,
        verification_details=EvidenceSignals(),
        content=label,
    )


class TestRankOrder:
    """REQUIREMENT: Matches are ordered by tier, then freshness, then match score.

    WHO: Downstream document generation, which reads a prefix of the list
    WHAT: Tier priority descending dominates entirely; freshness descending
          breaks tier ties; match score descending breaks both; exact ties
          keep input order; the input list is not mutated
    WHY: A prefix consumer includes exactly the first N items, so any
         instability changes the generated document
    """

    def test_tier_dominates_freshness_and_match(self) -> None:
        """(bronze,50,90), (gold,10,10), (gold,90,10) → gold-90, gold-10, bronze."""
        matches = [
            _match(QualityTier.BRONZE, 50, 90),
            _match(QualityTier.GOLD, 10, 10),
            _match(QualityTier.GOLD, 90, 10),
        ]
        ranked = rank(matches)
        assert [(m.quality_tier, m.freshness_score, m.match_score) for m in ranked] == [
            (QualityTier.GOLD, 90, 10),
            (QualityTier.GOLD, 10, 10),
            (QualityTier.BRONZE, 50, 90),
        ]

    def test_match_score_breaks_freshness_ties(self) -> None:
        """Same tier and freshness → higher match first."""
        ranked = rank([_match(QualityTier.SILVER, 80, 40), _match(QualityTier.SILVER, 80, 95)])
        assert [m.match_score for m in ranked] == [95, 40]

    def test_full_ties_keep_input_order(self) -> None:
        """Identical keys preserve their relative order."""
        matches = [_match(QualityTier.SILVER, 80, 60, label=name) for name in ("a", "b", "c")]
        assert [m.content for m in rank(matches)] == ["a", "b", "c"]

    def test_input_is_not_mutated(self) -> None:
        """rank() returns a new list and leaves the caller's list alone."""
        matches = [_match(QualityTier.ASSUMED, 100, 100), _match(QualityTier.GOLD, 40, 0)]
        original = list(matches)
        rank(matches)
        assert matches == original

    def test_every_tier_outranks_the_next(self) -> None:
        """Each tier beats the tier below it whatever the other scores."""
        matches = [
            _match(QualityTier.ASSUMED, 100, 100),
            _match(QualityTier.BRONZE, 40, 100),
            _match(QualityTier.SILVER, 40, 0),
            _match(QualityTier.GOLD, 40, 0),
        ]
        assert [m.quality_tier for m in rank(matches)] == [
            QualityTier.GOLD,
            QualityTier.SILVER,
            QualityTier.BRONZE,
            QualityTier.ASSUMED,
        ]


class TestMatchReport:
    """REQUIREMENT: The report truncates to top N and buckets by match score.

    WHO: The CLI ``match`` command and match exports
    WHAT: ≥ 90 must include, 70–89 strongly recommended, 50–69 consider,
          below 50 in no bucket; truncation happens after ranking; strength
          is computed over the truncated list
    WHY: Buckets tell the user which items to lead with
    """

    def test_buckets_by_match_score(self) -> None:
        """Boundary scores land in the higher bucket."""
        matches = [
            _match(QualityTier.GOLD, 100, 90),
            _match(QualityTier.GOLD, 100, 89),
            _match(QualityTier.GOLD, 100, 70),
            _match(QualityTier.GOLD, 100, 50),
            _match(QualityTier.GOLD, 100, 49),
        ]
        report = Ranker().report("Lead a platform team", matches)
        assert [m.match_score for m in report.must_include] == [90]
        assert [m.match_score for m in report.strongly_recommended] == [89, 70]
        assert [m.match_score for m in report.consider] == [50]
        assert report.coverage == 3
        assert len(report.matches) == 5, "Unbucketed matches are still listed"

    def test_top_n_truncates_after_ranking(self) -> None:
        """top_n keeps the best N, not the first N handed in."""
        matches = [
            _match(QualityTier.ASSUMED, 100, 100),
            _match(QualityTier.GOLD, 100, 20),
            _match(QualityTier.SILVER, 100, 20),
        ]
        report = Ranker(top_n=2).report("r", matches)
        assert [m.quality_tier for m in report.matches] == [QualityTier.GOLD, QualityTier.SILVER]

    def test_strength_covers_truncated_list(self) -> None:
        """Strength reflects only the matches kept."""
        matches = [_match(QualityTier.GOLD, 100, 100), _match(QualityTier.ASSUMED, 100, 0)]
        assert Ranker(top_n=1).report("r", matches).strength == 100
        assert Ranker().report("r", matches).strength == 50

    def test_empty_matches_give_empty_report(self) -> None:
        """No candidates → zero strength and empty buckets."""
        report = Ranker().report("r", [])
        assert report == MatchReport(requirement="r")

    @pytest.mark.parametrize("top_n", [1, 3, 10])
    def test_report_never_exceeds_top_n(self, top_n: int) -> None:
        matches = [_match(QualityTier.BRONZE, 80, s) for s in range(0, 100, 20)]
        assert len(Ranker(top_n=top_n).report("r", matches).matches) == min(top_n, len(matches))
