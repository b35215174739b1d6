"""Coaching recommendations from a scan of the whole vault.

Four independent defect classes are detected; each one that crosses its
threshold yields one recommendation:

======================  ==========  ======  ================
defect                  threshold   impact  score boost
======================  ==========  ======  ================
unverified items        > 0         high    min(2 × N, 25)
metric-poor phrases     > 5         high    min(N, 15)
stale items             > 10        medium  min(N, 12)
duplicate content       > 3         low     N
======================  ==========  ======  ================

Results are ordered by impact (high, medium, low) and then by score
boost, both descending.  Detection, thresholds, caps and ordering are
pure (:func:`scan_vault`, :func:`build_recommendations`).  The only
provider call is optional and rewrites the ``action`` copy; if it fails,
times out or returns something unusable, the default copy stands.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from career_vault.errors import ActionableError
from career_vault.logging import get_logger
from career_vault.text import normalize_content
from career_vault.vault.freshness import is_stale
from career_vault.vault.models import Impact, QualityTier, Recommendation, VaultCategory

if TYPE_CHECKING:
    from career_vault.rag.embedder import Embedder
    from career_vault.vault.models import VaultItem

logger = get_logger(__name__)

METRICS_THRESHOLD = 5
STALE_THRESHOLD = 10
DUPLICATE_THRESHOLD = 3

VERIFY_BOOST_CAP = 25
METRICS_BOOST_CAP = 15
STALE_BOOST_CAP = 12


@dataclass(frozen=True)
class VaultScan:
    """Defect counts found in one pass over a vault's items."""

    unverified: int = 0
    metric_poor: int = 0
    stale: int = 0
    duplicates: int = 0


def scan_vault(
    items: list[VaultItem],
    now: datetime | None = None,
    *,
    stale_after_months: int = 6,
) -> VaultScan:
    """Count the four defect classes over *items*.

    - unverified: recorded tier is missing or ``assumed``
    - metric_poor: power phrases with no impact metrics
    - stale: no update timestamp, or older than *stale_after_months*
    - duplicates: items whose normalised content repeats an earlier item
    """
    current = now or datetime.now(UTC)
    unverified = sum(
        1 for item in items if item.quality_tier in (None, QualityTier.ASSUMED)
    )
    metric_poor = sum(
        1
        for item in items
        if item.category == VaultCategory.POWER_PHRASE and not item.has_metrics
    )
    stale = sum(1 for item in items if is_stale(item, current, months=stale_after_months))
    contents = [normalize_content(item.content) for item in items if item.content.strip()]
    duplicates = len(contents) - len(set(contents))
    return VaultScan(
        unverified=unverified,
        metric_poor=metric_poor,
        stale=stale,
        duplicates=duplicates,
    )


def build_recommendations(scan: VaultScan, *, stale_after_months: int = 6) -> list[Recommendation]:
    """Turn defect counts into ordered recommendations with default copy."""
    recommendations: list[Recommendation] = []

    if scan.unverified > 0:
        recommendations.append(
            Recommendation(
                id="verify-assumed",
                title=f"Verify {scan.unverified} AI-Assumed Items",
                description='Quick quiz to upgrade quality from "Assumed" to "Gold"',
                action="Start Verification Quiz",
                impact=Impact.HIGH,
                time_estimate="5 minutes",
                score_boost=min(2 * scan.unverified, VERIFY_BOOST_CAP),
                category="verification",
            )
        )

    if scan.metric_poor > METRICS_THRESHOLD:
        recommendations.append(
            Recommendation(
                id="add-metrics",
                title=f"Add Metrics to {scan.metric_poor} Achievements",
                description="Quantify your impact with numbers and percentages",
                action="Add Metrics",
                impact=Impact.HIGH,
                time_estimate="10 minutes",
                score_boost=min(scan.metric_poor, METRICS_BOOST_CAP),
                category="metrics",
            )
        )

    if scan.stale > STALE_THRESHOLD:
        recommendations.append(
            Recommendation(
                id="refresh-stale",
                title=f"Update {scan.stale} Stale Items",
                description=f"Review and modernize items older than {stale_after_months} months",
                action="Refresh Items",
                impact=Impact.MEDIUM,
                time_estimate="15 minutes",
                score_boost=min(scan.stale, STALE_BOOST_CAP),
                category="freshness",
            )
        )

    if scan.duplicates > DUPLICATE_THRESHOLD:
        recommendations.append(
            Recommendation(
                id="consolidate-duplicates",
                title=f"Merge {scan.duplicates} Duplicate Items",
                description="Consolidate similar entries to maintain quality",
                action="Review Duplicates",
                impact=Impact.LOW,
                time_estimate="5 minutes",
                score_boost=scan.duplicates,
                category="consolidation",
            )
        )

    recommendations.sort(key=lambda r: (-r.impact.rank, -r.score_boost))
    return recommendations


class Recommender:
    """Scans a vault and produces recommendations, optionally with provider copy.

    Parameters
    ----------
    embedder:
        Provider used to personalise the ``action`` text.  ``None`` keeps
        the default copy and makes no provider call.
    stale_after_months:
        Age beyond which an item counts as stale.
    copy_timeout:
        Upper bound in seconds on the copy-writing call.
    """

    def __init__(
        self,
        embedder: Embedder | None = None,
        *,
        stale_after_months: int = 6,
        copy_timeout: float = 10.0,
    ) -> None:
        self._embedder = embedder
        self.stale_after_months = stale_after_months
        self.copy_timeout = copy_timeout

    async def recommend(self, items: list[VaultItem], now: datetime | None = None) -> list[Recommendation]:
        scan = scan_vault(items, now, stale_after_months=self.stale_after_months)
        recommendations = build_recommendations(scan, stale_after_months=self.stale_after_months)
        logger.debug("Vault scan %s produced %d recommendation(s)", scan, len(recommendations))
        if not recommendations or self._embedder is None:
            return recommendations
        return await self._personalise(self._embedder, recommendations)

    async def _personalise(
        self, embedder: Embedder, recommendations: list[Recommendation]
    ) -> list[Recommendation]:
        prompt = _copy_prompt(recommendations)
        try:
            raw = await asyncio.wait_for(embedder.generate(prompt), timeout=self.copy_timeout)
        except ActionableError as exc:
            logger.warning("Recommendation copy unavailable, using defaults: %s", exc.error)
            return recommendations
        except TimeoutError:
            logger.warning(
                "Recommendation copy timed out after %.1fs, using defaults", self.copy_timeout
            )
            return recommendations

        actions = _parse_copy_response(raw)
        return [
            replace(rec, action=actions[rec.id]) if actions.get(rec.id) else rec
            for rec in recommendations
        ]


def _copy_prompt(recommendations: list[Recommendation]) -> str:
    lines = "\n".join(f"- {rec.id}: {rec.title}. {rec.description}" for rec in recommendations)
    return (
        "Write a short call-to-action button label (at most six words) for each "
        "career vault improvement below.\n\n"
        f"{lines}\n\n"
        'Respond with a JSON object mapping each id to its label, e.g. {"add-metrics": "Quantify 6 wins"}.'
    )


def _parse_copy_response(raw: str) -> dict[str, str]:
    """Parse ``{"<id>": "<label>"}``; anything malformed yields ``{}``."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Malformed recommendation copy response (using defaults): %s", raw)
        return {}
    if not isinstance(data, dict):
        logger.warning("Recommendation copy response is not an object (using defaults): %s", raw)
        return {}
    return {
        str(key): value.strip()
        for key, value in data.items()
        if isinstance(value, str) and value.strip()
    }
