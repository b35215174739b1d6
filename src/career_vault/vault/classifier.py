"""Quality tier classification.

A tier is a pure function of an item's evidence signals.  The ladder is
evaluated top-down and the first matching rung wins:

1. a valid tier already recorded on the item is returned unchanged
   (this is how the human-entered gold override survives re-reads)
2. quiz-verified or verification status ``verified`` → **gold**
3. confidence ≥ 0.70 or three or more pieces of evidence → **silver**
4. confidence ≥ 0.55, any evidence, or AI-inferred → **bronze**
5. otherwise → **assumed**

Absent numeric signals (``None``) never satisfy a threshold.  Neither
function raises for a well-typed item.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from career_vault.vault.models import QualityTier, VerificationStatus

if TYPE_CHECKING:
    from career_vault.vault.models import EvidenceSignals, VaultItem

SILVER_CONFIDENCE = 0.70
SILVER_EVIDENCE = 3
BRONZE_CONFIDENCE = 0.55
BRONZE_EVIDENCE = 1


def classify(item: VaultItem) -> QualityTier:
    """Return the item's recorded tier if valid, else derive one."""
    if isinstance(item.quality_tier, QualityTier):
        return item.quality_tier
    return tier_for(item.evidence)


def derive_tier(item: VaultItem) -> QualityTier:
    """Derive a tier from evidence alone, ignoring any recorded tier."""
    return tier_for(item.evidence)


def tier_for(evidence: EvidenceSignals) -> QualityTier:
    """Apply rungs 2–5 of the ladder to a set of evidence signals."""
    if evidence.quiz_verified or evidence.verification_status == VerificationStatus.VERIFIED:
        return QualityTier.GOLD

    confidence = evidence.ai_confidence
    count = evidence.evidence_count

    if (confidence is not None and confidence >= SILVER_CONFIDENCE) or (
        count is not None and count >= SILVER_EVIDENCE
    ):
        return QualityTier.SILVER

    if (
        (confidence is not None and confidence >= BRONZE_CONFIDENCE)
        or (count is not None and count >= BRONZE_EVIDENCE)
        or evidence.ai_inferred
    ):
        return QualityTier.BRONZE

    return QualityTier.ASSUMED
