"""Requirement matching: score vault items against one requirement.

The primary path is semantic: the requirement and each candidate are
embedded (stored item embeddings are reused when available) and the
cosine similarity, clamped to [0, 1] and scaled to 0–100, becomes the
item's match score.

When the provider is unavailable the matcher degrades to deterministic
keyword overlap: the share of the requirement's significant words that
appear in the item's content.  Every match produced this way says so in
its ``match_reasons``.

Matching only attaches scores.  Ordering is the ranker's job
(:mod:`career_vault.pipeline.ranker`).
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from career_vault.errors import ActionableError
from career_vault.logging import get_logger
from career_vault.text import keywords
from career_vault.vault.classifier import classify
from career_vault.vault.freshness import freshness
from career_vault.vault.models import RequirementMatch, VaultCategory

if TYPE_CHECKING:
    from career_vault.rag.embedder import Embedder
    from career_vault.rag.store import VaultStore
    from career_vault.vault.models import VaultItem

logger = get_logger(__name__)

KEYWORD_FALLBACK_REASON = "Keyword overlap (semantic scoring unavailable)"

# Keywords listed in a reason before it is cut short
_MAX_REASON_KEYWORDS = 5


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Compute cosine similarity between two vectors.

    Returns a value in [-1.0, 1.0], or 0.0 for empty, mismatched, or
    zero-magnitude vectors.
    """
    if len(a) != len(b) or not a:
        return 0.0

    dot: float = sum(x * y for x, y in zip(a, b, strict=True))
    mag_a: float = sum(x * x for x in a) ** 0.5
    mag_b: float = sum(x * x for x in b) ** 0.5

    if mag_a == 0.0 or mag_b == 0.0:
        return 0.0

    result: float = dot / (mag_a * mag_b)
    return result


def similarity_to_score(similarity: float) -> int:
    """Clamp a cosine similarity to [0, 1] and scale to an int 0–100."""
    return round(max(0.0, min(1.0, similarity)) * 100)


def keyword_score(requirement_words: list[str], content: str) -> tuple[int, list[str]]:
    """Share of *requirement_words* present in *content*, as 0–100, plus the hits."""
    if not requirement_words:
        return 0, []
    present = set(keywords(content))
    found = [word for word in requirement_words if word in present]
    return round(100 * len(found) / len(requirement_words)), found


class RequirementMatcher:
    """Attaches match scores to vault items for a single requirement.

    Parameters
    ----------
    embedder:
        Provider used to embed the requirement and any candidate whose
        embedding is not already stored.
    store:
        Optional :class:`~career_vault.rag.store.VaultStore`; when given,
        stored item embeddings are reused instead of re-embedding content.
    """

    def __init__(self, embedder: Embedder, store: VaultStore | None = None) -> None:
        self._embedder = embedder
        self._store = store

    async def match(
        self,
        requirement: str,
        candidates: list[VaultItem],
        *,
        now: datetime | None = None,
    ) -> list[RequirementMatch]:
        """Score every candidate against *requirement*, preserving input order.

        Raises VALIDATION for an empty requirement.  Provider failures
        never raise; they switch the whole call to keyword scoring.
        """
        cleaned = requirement.strip()
        if not cleaned:
            raise ActionableError.validation(
                field_name="requirement",
                reason="requirement text is empty",
                suggestion="Pass the requirement line to match against",
            )
        if not candidates:
            return []

        current = now or datetime.now(UTC)
        try:
            scored = await self._semantic_scores(cleaned, candidates)
        except ActionableError as exc:
            if not exc.error_type.is_dependency_failure:
                raise
            logger.warning("Semantic matching unavailable, using keyword overlap: %s", exc.error)
            scored = self._keyword_scores(cleaned, candidates)

        return [
            RequirementMatch(
                vault_item_id=item.id,
                requirement=cleaned,
                match_score=score,
                quality_tier=classify(item),
                freshness_score=freshness(item, current),
                verification_details=item.evidence,
                match_reasons=reasons,
                category=item.category,
                content=item.content,
            )
            for item, (score, reasons) in zip(candidates, scored, strict=True)
        ]

    # -- Scoring paths -------------------------------------------------------

    async def _semantic_scores(
        self, requirement: str, candidates: list[VaultItem]
    ) -> list[tuple[int, list[str]]]:
        requirement_embedding = await self._embedder.embed(requirement)
        stored = self._stored_embeddings(candidates)
        requirement_words = keywords(requirement)

        results: list[tuple[int, list[str]]] = []
        for item in candidates:
            embedding = stored.get(item.id)
            if embedding is None:
                embedding = await self._embedder.embed(item.content)
            similarity = cosine_similarity(requirement_embedding, embedding)
            reasons = [f"Semantic similarity {max(0.0, similarity):.2f}"]
            _, found = keyword_score(requirement_words, item.content)
            if found:
                reasons.append("Shares keywords: " + ", ".join(found[:_MAX_REASON_KEYWORDS]))
            results.append((similarity_to_score(similarity), reasons))
        return results

    @staticmethod
    def _keyword_scores(requirement: str, candidates: list[VaultItem]) -> list[tuple[int, list[str]]]:
        requirement_words = keywords(requirement)
        results: list[tuple[int, list[str]]] = []
        for item in candidates:
            score, found = keyword_score(requirement_words, item.content)
            reasons = [KEYWORD_FALLBACK_REASON, f"Matches {len(found)} keywords"]
            results.append((score, reasons))
        return results

    def _stored_embeddings(self, candidates: list[VaultItem]) -> dict[str, list[float]]:
        if self._store is None:
            return {}
        ids_by_category: dict[VaultCategory, list[str]] = defaultdict(list)
        for item in candidates:
            ids_by_category[item.category].append(item.id)
        stored: dict[str, list[float]] = {}
        for category, ids in ids_by_category.items():
            stored.update(self._store.get_embeddings(category, ids))
        return stored
