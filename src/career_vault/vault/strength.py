"""Vault strength aggregation.

Each item contributes ``tier weight × freshness/100 × match/100`` and the
strength of a collection is the rounded mean of those contributions,
scaled to 0–100.  Vault health scoring uses the same formula with every
match score fixed at 100.

Tallies by category and tier are always built by enumerating the items
handed in; nothing here reads or trusts a stored aggregate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from career_vault.vault.classifier import classify
from career_vault.vault.freshness import freshness
from career_vault.vault.models import QualityTier, VaultCategory

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from career_vault.vault.models import RequirementMatch, VaultItem

FULL_MATCH = 100


def contribution(tier: QualityTier, freshness_score: int, match_score: int = FULL_MATCH) -> float:
    """One item's 0.0–1.0 contribution to a strength score."""
    return tier.weight * (freshness_score / 100) * (match_score / 100)


def strength(entries: Iterable[tuple[QualityTier, int, int]]) -> int:
    """Aggregate ``(tier, freshness, match)`` triples into a 0–100 score.

    An empty collection scores 0.
    """
    contributions = [contribution(tier, fresh, match) for tier, fresh, match in entries]
    if not contributions:
        return 0
    score = round(100 * sum(contributions) / len(contributions))
    return max(0, min(100, score))


def vault_health(items: Iterable[VaultItem], now: datetime | None = None) -> int:
    """Health-only strength of a vault: every match score treated as 100."""
    return strength(
        (
            classify(item),
            freshness(item, now),
            FULL_MATCH,
        )
        for item in items
    )


def match_strength(matches: Iterable[RequirementMatch]) -> int:
    """Match-weighted strength of a set of requirement matches."""
    return strength((m.quality_tier, m.freshness_score, m.match_score) for m in matches)


@dataclass
class Tally:
    """Per-category and per-tier item counts, built by enumeration."""

    by_category: dict[VaultCategory, int] = field(
        default_factory=lambda: {category: 0 for category in VaultCategory}
    )
    by_tier: dict[QualityTier, int] = field(
        default_factory=lambda: {tier: 0 for tier in QualityTier}
    )

    @property
    def total(self) -> int:
        return sum(self.by_category.values())


def tally(items: Iterable[VaultItem]) -> Tally:
    result = Tally()
    for item in items:
        result.by_category[item.category] += 1
        result.by_tier[classify(item)] += 1
    return result
