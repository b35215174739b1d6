"""Strategic vault audit and its cache.

A full audit is the expensive, provider-backed view of a vault: the LLM
reads a summary of the vault and proposes smart questions (answers
become new items via ``submit_answer``), strategic gaps, and an
executive summary.  Locally computed parts, such as the before/after
strength and the recommendations, never depend on the provider.

When the provider fails, times out or returns unusable JSON the audit
still returns, with ``success=False``, the error text, and every
locally derivable field filled in.  Degraded results are not cached.

:class:`AuditCache` is an injected, size-bounded TTL map keyed by vault
id.  It holds no locks and makes no provider calls; single-flight
recomputation is the service's job.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections import OrderedDict
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from career_vault.errors import ActionableError
from career_vault.logging import get_logger
from career_vault.vault.models import (
    CATEGORY_SPECS,
    AuditResult,
    Impact,
    SmartQuestion,
    StrategicGap,
    parse_category,
)
from career_vault.vault.strength import tally, vault_health

if TYPE_CHECKING:
    from collections.abc import Callable

    from career_vault.pipeline.recommender import Recommender
    from career_vault.rag.embedder import Embedder
    from career_vault.vault.models import Vault, VaultItem

logger = get_logger(__name__)

# Items per category quoted to the LLM
_SAMPLE_PER_CATEGORY = 5


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class AuditCache:
    """TTL cache of audit results with least-recently-used eviction.

    ``clock`` returns seconds on a monotonic scale and is injectable so
    tests can move time forward.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 256,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[AuditResult, float]] = OrderedDict()

    def get(self, vault_id: str) -> AuditResult | None:
        """Return the cached result if it has not expired, else ``None``."""
        entry = self._entries.get(vault_id)
        if entry is None:
            return None
        result, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[vault_id]
            return None
        self._entries.move_to_end(vault_id)
        return result

    def put(self, vault_id: str, result: AuditResult) -> None:
        self._entries[vault_id] = (result, self._clock() + self.ttl_seconds)
        self._entries.move_to_end(vault_id)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cached audit for vault %s", evicted)

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Auditor
# ---------------------------------------------------------------------------


class StrategicAuditor:
    """Runs the provider-backed audit for one vault.

    Parameters
    ----------
    embedder:
        Provider whose ``generate`` performs the analysis.
    recommender:
        Produces the deterministic recommendations included in every result.
    timeout:
        Upper bound in seconds on the analysis call.
    """

    def __init__(
        self,
        embedder: Embedder,
        recommender: Recommender,
        *,
        timeout: float = 60.0,
    ) -> None:
        self._embedder = embedder
        self._recommender = recommender
        self.timeout = timeout

    async def audit(
        self,
        vault: Vault,
        items: list[VaultItem],
        now: datetime | None = None,
    ) -> AuditResult:
        current = now or datetime.now(UTC)
        before = vault_health(items, current)
        recommendations = await self._recommender.recommend(items, current)
        after = min(100, before + sum(rec.score_boost for rec in recommendations))

        result = AuditResult(
            vault_id=vault.id,
            success=False,
            vault_strength_before=before,
            vault_strength_after=after,
            recommendations=recommendations,
            generated_at=current,
        )

        prompt = _audit_prompt(vault, items, before)
        try:
            raw = await asyncio.wait_for(self._embedder.generate(prompt), timeout=self.timeout)
        except ActionableError as exc:
            logger.warning("Audit analysis unavailable for vault %s: %s", vault.id, exc.error)
            result.error = exc.error
            return result
        except TimeoutError:
            logger.warning("Audit analysis timed out after %.1fs for vault %s", self.timeout, vault.id)
            result.error = f"Audit analysis timed out after {self.timeout:.0f}s"
            return result

        parsed = _parse_audit_response(raw)
        if parsed is None:
            result.error = "Audit analysis returned malformed JSON"
            return result

        result.smart_questions, result.strategic_gaps, result.executive_summary = parsed
        result.success = True
        logger.info(
            "Audited vault %s: strength %d → %d, %d question(s), %d gap(s)",
            vault.id,
            before,
            after,
            len(result.smart_questions),
            len(result.strategic_gaps),
        )
        return result


def _audit_prompt(vault: Vault, items: list[VaultItem], strength: int) -> str:
    counts = tally(items)
    lines = [
        f"Career vault strength: {strength}/100 across {counts.total} items.",
        "Quality tiers: " + ", ".join(f"{tier.value}={n}" for tier, n in counts.by_tier.items()),
        "",
    ]
    for category in CATEGORY_SPECS:
        in_category = [item for item in items if item.category == category]
        lines.append(f"## {category.value} ({len(in_category)})")
        lines.extend(f"- {item.content}" for item in in_category[:_SAMPLE_PER_CATEGORY])
    summary = "\n".join(lines)

    categories = ", ".join(c.value for c in CATEGORY_SPECS)
    return (
        "Audit this professional's career vault for strategic gaps.\n\n"
        f"{summary}\n\n"
        "Respond with JSON only, in this shape:\n"
        '{"smart_questions": [{"question": "...", "category": "...", "reasoning": "...", '
        '"impact": "high|medium|low", "target_category": "<vault category>"}], '
        '"strategic_gaps": [{"gap_type": "...", "description": "...", "impact": "...", '
        '"suggested_enhancement": "..."}], '
        '"executive_summary": "..."}\n'
        f"target_category must be one of: {categories}."
    )


def _parse_audit_response(
    raw: str,
) -> tuple[list[SmartQuestion], list[StrategicGap], str] | None:
    """Parse the LLM audit JSON.  Returns ``None`` when it is unusable.

    Individual malformed questions or gaps are skipped rather than
    failing the whole audit.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Malformed audit response: %s", raw)
        return None
    if not isinstance(data, dict):
        logger.warning("Audit response is not a JSON object: %s", raw)
        return None

    questions = [
        q for q in (_question(entry) for entry in _list(data.get("smart_questions"))) if q
    ]
    gaps = [g for g in (_gap(entry) for entry in _list(data.get("strategic_gaps"))) if g]
    summary = data.get("executive_summary")
    return questions, gaps, summary if isinstance(summary, str) else ""


def _list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []


def _question(entry: object) -> SmartQuestion | None:
    if not isinstance(entry, dict) or not str(entry.get("question", "")).strip():
        return None
    target_raw = str(entry.get("target_category", ""))
    target = parse_category(target_raw) if target_raw else None
    try:
        impact = Impact(str(entry.get("impact", "medium")).lower())
    except ValueError:
        impact = Impact.MEDIUM
    return SmartQuestion(
        question=str(entry["question"]).strip(),
        category=str(entry.get("category", "")),
        reasoning=str(entry.get("reasoning", "")),
        impact=impact,
        target_category=target.value if target else target_raw,
    )


def _gap(entry: object) -> StrategicGap | None:
    if not isinstance(entry, dict) or not str(entry.get("description", "")).strip():
        return None
    enhancement = entry.get("suggested_enhancement")
    return StrategicGap(
        gap_type=str(entry.get("gap_type", "general")),
        description=str(entry["description"]).strip(),
        impact=str(entry.get("impact", "")),
        suggested_enhancement=str(enhancement) if enhancement else None,
    )
