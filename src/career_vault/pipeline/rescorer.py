"""Rescore pipeline: re-derive tiers and freshness for a whole vault.

Stored tiers and freshness scores drift: freshness decays with time, and
evidence can change without the stored tier following it.  The Rescorer
walks every item of a vault, re-derives both from the current evidence
and clock, and writes back only the rows that changed.  Human-authored
items keep their gold tier.

This is an explicit batch operation (``python -m career_vault refresh``),
never a background task.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from career_vault.logging import get_logger
from career_vault.vault.classifier import derive_tier
from career_vault.vault.freshness import freshness
from career_vault.vault.models import QualityTier
from career_vault.vault.strength import vault_health

if TYPE_CHECKING:
    from career_vault.rag.store import VaultStore
    from career_vault.vault.models import VaultItem

logger = get_logger(__name__)


@dataclass
class RescoreResult:
    """Results from a rescore run."""

    items: list[VaultItem] = field(default_factory=lambda: [])
    changed: list[VaultItem] = field(default_factory=lambda: [])
    total_items: int = 0
    tiers_changed: int = 0
    freshness_changed: int = 0
    strength: int = 0


def rescore_item(item: VaultItem, now: datetime) -> tuple[QualityTier, int]:
    """Return the tier and freshness *item* should carry as of *now*."""
    tier = QualityTier.GOLD if item.user_authored else derive_tier(item)
    return tier, freshness(item, now)


class Rescorer:
    """Re-derives tier and freshness for every item in a vault.

    Usage::

        rescorer = Rescorer(store=store)
        result = rescorer.rescore(vault.id)
    """

    def __init__(self, *, store: VaultStore) -> None:
        self._store = store

    def rescore(self, vault_id: str, now: datetime | None = None) -> RescoreResult:
        """Re-derive, persist changed rows, and compute the new vault strength."""
        current = now or datetime.now(UTC)
        items = self._store.list_items(vault_id)
        result = RescoreResult(items=items, total_items=len(items))

        for item in items:
            tier, fresh = rescore_item(item, current)
            dirty = False
            if item.quality_tier != tier:
                logger.debug("Item %s tier %s → %s", item.id, item.quality_tier, tier)
                item.quality_tier = tier
                result.tiers_changed += 1
                dirty = True
            if item.freshness_score != fresh:
                item.freshness_score = fresh
                result.freshness_changed += 1
                dirty = True
            if dirty:
                self._store.update_item(item)
                result.changed.append(item)

        result.strength = vault_health(items, current)
        logger.info(
            "Rescored %d items in vault %s: %d tier change(s), %d freshness change(s), strength %d",
            result.total_items,
            vault_id,
            result.tiers_changed,
            result.freshness_changed,
            result.strength,
        )
        return result
