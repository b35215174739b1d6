"""Ranking of requirement matches.

Downstream document generation only ever reads a prefix of the ranked
list, so the ordering is strict and deterministic:

1. **Tier priority**, descending: gold > silver > bronze > assumed
2. **Freshness score**, descending
3. **Match score**, descending

No other field influences order, and ties keep their input order
(Python's sort is stable).  A tier difference dominates any freshness or
match difference entirely.

The Ranker also sorts matches into coverage buckets by match score for
reporting: *must include* (≥ 90), *strongly recommended* (70–89) and
*consider* (50–69).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from career_vault.logging import get_logger
from career_vault.vault.strength import match_strength

if TYPE_CHECKING:
    from collections.abc import Iterable

    from career_vault.vault.models import RequirementMatch

logger = get_logger(__name__)

MUST_INCLUDE_MIN = 90
STRONGLY_RECOMMENDED_MIN = 70
CONSIDER_MIN = 50


def rank_key(match: RequirementMatch) -> tuple[int, int, int]:
    """Sort key placing the best match first under an ascending sort."""
    return (-match.quality_tier.priority, -match.freshness_score, -match.match_score)


def rank(matches: Iterable[RequirementMatch]) -> list[RequirementMatch]:
    """Return *matches* in ranked order without mutating the input."""
    return sorted(matches, key=rank_key)


@dataclass
class MatchReport:
    """Ranked matches for one requirement plus coverage buckets."""

    requirement: str
    matches: list[RequirementMatch] = field(default_factory=list)
    strength: int = 0
    must_include: list[RequirementMatch] = field(default_factory=list)
    strongly_recommended: list[RequirementMatch] = field(default_factory=list)
    consider: list[RequirementMatch] = field(default_factory=list)

    @property
    def coverage(self) -> int:
        """Matches scoring at least the *strongly recommended* threshold."""
        return len(self.must_include) + len(self.strongly_recommended)


class Ranker:
    """Orders requirement matches and summarises them into a report."""

    def __init__(self, top_n: int | None = None) -> None:
        self.top_n = top_n

    def report(self, requirement: str, matches: list[RequirementMatch]) -> MatchReport:
        """Rank *matches*, truncate to ``top_n``, and bucket by match score.

        Strength is computed over the truncated list, i.e. over what a
        caller will actually use.
        """
        ranked = rank(matches)
        if self.top_n is not None:
            ranked = ranked[: self.top_n]

        report = MatchReport(requirement=requirement, matches=ranked, strength=match_strength(ranked))
        for match in ranked:
            if match.match_score >= MUST_INCLUDE_MIN:
                report.must_include.append(match)
            elif match.match_score >= STRONGLY_RECOMMENDED_MIN:
                report.strongly_recommended.append(match)
            elif match.match_score >= CONSIDER_MIN:
                report.consider.append(match)

        logger.info(
            "Ranked %d match(es) for requirement: %d must-include, %d strongly recommended, "
            "%d to consider, strength %d",
            len(ranked),
            len(report.must_include),
            len(report.strongly_recommended),
            len(report.consider),
            report.strength,
        )
        return report
