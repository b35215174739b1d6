"""Vault service: the operations the surrounding product calls.

Every public method takes the acting user as a keyword ``principal``.
Checks run in a fixed order:

1. **Authorization**: no principal → AUTHORIZATION, before anything else
2. **Validation**: bad category, empty content or requirement → VALIDATION
   naming the field, before any store access
3. **Ownership**: the vault must exist (NOT_FOUND) and belong to the
   principal (AUTHORIZATION)

Write paths (add, answer, ingest, enhance, delete, consolidate, refresh)
let store and provider failures propagate; the provider is called before
anything is written, so a failed embedding persists nothing.  Read paths
(match, recommend, audit) degrade to locally derivable results.

Per-category counts on the vault record are never incremented.  Every
write runs *mutate → enumerate live rows → write counts* under a
per-vault :class:`asyncio.Lock`, so concurrent inserts for one vault
always leave the stored counts equal to the live row counts.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from career_vault.config import Settings
from career_vault.errors import ActionableError
from career_vault.logging import get_logger
from career_vault.pipeline.audit import AuditCache, StrategicAuditor
from career_vault.pipeline.ranker import Ranker
from career_vault.pipeline.recommender import Recommender
from career_vault.pipeline.rescorer import Rescorer
from career_vault.rag.matcher import RequirementMatcher
from career_vault.text import normalize_content
from career_vault.vault.classifier import classify, derive_tier
from career_vault.vault.freshness import freshness
from career_vault.vault.models import (
    CATEGORY_SPECS,
    ItemSource,
    QualityTier,
    VaultCategory,
    VaultItem,
    VerificationStatus,
    parse_category,
)
from career_vault.vault.normalize import normalize_row
from career_vault.vault.strength import vault_health

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from career_vault.pipeline.ranker import MatchReport
    from career_vault.pipeline.rescorer import RescoreResult
    from career_vault.rag.embedder import Embedder
    from career_vault.rag.store import VaultStore
    from career_vault.vault.models import AuditResult, Recommendation, Vault

logger = get_logger(__name__)


@dataclass
class VaultData:
    """A user's vault and its items grouped by category.

    ``vault`` is ``None`` when the user has no vault yet.
    """

    vault: Vault | None
    items_by_category: dict[VaultCategory, list[VaultItem]] = field(default_factory=dict)


@dataclass
class ReconcileReport:
    """Stored vs live counts for one vault."""

    vault_id: str
    mismatches: dict[VaultCategory, tuple[int, int]] = field(default_factory=dict)
    repaired: bool = False

    @property
    def consistent(self) -> bool:
        return not self.mismatches


def _utcnow() -> datetime:
    return datetime.now(UTC)


class VaultService:
    """Classification, ranking and coaching operations over stored vaults.

    Usage::

        service = VaultService(store=store, embedder=embedder, settings=settings)
        vault = await service.get_or_create_vault("user-1", principal="user-1")
        item = await service.add_vault_item(
            vault.id, "power-phrase", {"content": "Cut cloud spend 30%"},
            principal="user-1",
        )
    """

    def __init__(
        self,
        *,
        store: VaultStore,
        embedder: Embedder,
        settings: Settings | None = None,
        cache: AuditCache | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or Settings()
        self._store = store
        self._embedder = embedder
        self._now = now

        vault_cfg = self.settings.vault
        ollama_cfg = self.settings.ollama
        if cache is None:
            cache = AuditCache(
                ttl_seconds=self.settings.audit.cache_ttl_seconds,
                max_entries=self.settings.audit.cache_max_entries,
            )
        self._cache = cache
        self._recommender = Recommender(
            embedder,
            stale_after_months=vault_cfg.stale_after_months,
            copy_timeout=ollama_cfg.timeout_seconds,
        )
        self._auditor = StrategicAuditor(
            embedder,
            Recommender(stale_after_months=vault_cfg.stale_after_months),
            timeout=ollama_cfg.timeout_seconds * (ollama_cfg.max_retries + 1),
        )
        self._matcher = RequirementMatcher(embedder, store)
        self._rescorer = Rescorer(store=store)

        self._write_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._audit_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._create_lock = asyncio.Lock()

    # -- Vault lookup --------------------------------------------------------

    async def get_vault_data(self, user_id: str, *, principal: str | None) -> VaultData:
        """Return the user's vault and items; an absent vault is not an error."""
        _require_principal(principal, "read vault")
        _require_self(principal, user_id, "read vault")
        vault = self._store.get_vault_by_user(user_id)
        if vault is None:
            return VaultData(vault=None)
        grouped: dict[VaultCategory, list[VaultItem]] = {category: [] for category in VaultCategory}
        for item in self._store.list_items(vault.id):
            grouped[item.category].append(item)
        return VaultData(vault=vault, items_by_category=grouped)

    async def get_or_create_vault(self, user_id: str, *, principal: str | None) -> Vault:
        _require_principal(principal, "create vault")
        _require_self(principal, user_id, "create vault")
        return await self._ensure_vault(user_id)

    # -- Writes --------------------------------------------------------------

    async def add_vault_item(
        self,
        vault_id: str,
        category: VaultCategory | str,
        item_data: dict[str, Any],
        *,
        principal: str | None,
        user_authored: bool = True,
    ) -> VaultItem:
        """Validate, classify, embed and insert one item, then recount.

        Items a human adds directly enter as gold with confidence 1.0.
        Anything else keeps the classifier's tier.
        """
        _require_principal(principal, "add vault item")
        resolved = _validate_category(category)
        item = normalize_row(item_data, vault_id=vault_id, category=resolved)
        vault = self._owned_vault(vault_id, principal, "add vault item")

        if user_authored:
            item.source = ItemSource.USER
            _mark_human_authored(item)
        else:
            item.quality_tier = classify(item)

        inserted = await self._insert(vault, [item])
        logger.info("Added %s item %s to vault %s (%s)", resolved.value, item.id, vault_id, item.quality_tier)
        return inserted[0]

    async def submit_answer(
        self,
        vault_id: str,
        target_category: str,
        answer_text: str,
        *,
        principal: str | None,
    ) -> VaultItem:
        """File a free-text answer as a new gold item.

        *target_category* may be a category value or its table name.
        Anything unrecognised is filed under the configured fallback
        category with the generic shape rather than rejected.
        """
        _require_principal(principal, "submit answer")
        answer = answer_text.strip()
        if not answer:
            raise ActionableError.validation(
                field_name="answer",
                reason="answer text is empty",
                suggestion="Provide an answer before submitting",
            )
        vault = self._owned_vault(vault_id, principal, "submit answer")

        resolved = parse_category(target_category) if target_category else None
        if resolved is None:
            category = self.settings.vault.answer_fallback_category
            details: dict[str, Any] = {"requested_category": target_category}
            logger.info(
                "Unknown answer target %r, filing under %s", target_category, category.value
            )
        else:
            category = resolved
            details = dict(CATEGORY_SPECS[category].answer_defaults)

        item = VaultItem(
            vault_id=vault.id,
            category=category,
            content=answer,
            source=ItemSource.ANSWER,
            details=details,
        )
        _mark_human_authored(item)
        inserted = await self._insert(vault, [item])
        return inserted[0]

    async def ingest_items(
        self,
        user_id: str,
        rows: Iterable[dict[str, Any]],
        *,
        principal: str | None,
    ) -> list[VaultItem]:
        """Bulk-insert extracted rows, creating the vault on first arrival.

        Every row is validated and embedded before anything is written;
        one bad row rejects the whole batch.
        """
        _require_principal(principal, "ingest items")
        _require_self(principal, user_id, "ingest items")

        items = [normalize_row(row, vault_id="") for row in rows]
        if not items:
            return []
        for item in items:
            if item.user_authored:
                _mark_human_authored(item)
            else:
                item.quality_tier = classify(item)

        vault = await self._ensure_vault(user_id)
        for item in items:
            item.vault_id = vault.id
        inserted = await self._insert(vault, items)
        logger.info("Ingested %d item(s) into vault %s", len(inserted), vault.id)
        return inserted

    async def enhance_item(
        self,
        vault_id: str,
        item_id: str,
        *,
        principal: str | None,
        content: str | None = None,
        quiz_verified: bool | None = None,
        verification_status: VerificationStatus | None = None,
        ai_confidence: float | None = None,
        evidence_count: int | None = None,
        impact_metrics: dict[str, Any] | None = None,
    ) -> VaultItem:
        """Rewrite content and/or strengthen evidence, then re-derive the tier."""
        _require_principal(principal, "enhance item")
        if content is not None and not content.strip():
            raise ActionableError.validation(
                field_name="content",
                reason="content cannot be empty",
                suggestion="Provide the rewritten text, or omit content to keep it",
            )
        if ai_confidence is not None and not 0.0 <= ai_confidence <= 1.0:
            raise ActionableError.validation(
                field_name="ai_confidence",
                reason=f"is {ai_confidence} — must be between 0.0 and 1.0",
            )
        if evidence_count is not None and evidence_count < 0:
            raise ActionableError.validation(
                field_name="evidence_count",
                reason=f"is {evidence_count} — must be >= 0",
            )
        vault = self._owned_vault(vault_id, principal, "enhance item")
        if self._store.get_item(vault.id, item_id) is None:
            raise ActionableError.not_found("vault item", item_id)

        new_content = content.strip() if content is not None else None
        embedding = await self._embedder.embed(new_content) if new_content is not None else None

        changes: dict[str, Any] = {}
        if quiz_verified is not None:
            changes["quiz_verified"] = quiz_verified
        if verification_status is not None:
            changes["verification_status"] = verification_status
        if ai_confidence is not None:
            changes["ai_confidence"] = ai_confidence
        if evidence_count is not None:
            changes["evidence_count"] = evidence_count

        # Read, merge and write as one step so concurrent enhancements compose
        async with self._write_locks[vault.id]:
            item = self._store.get_item(vault.id, item_id)
            if item is None:
                raise ActionableError.not_found("vault item", item_id)
            item.evidence = replace(item.evidence, **changes)
            if impact_metrics is not None:
                item.impact_metrics = dict(impact_metrics)
            if new_content is not None and new_content != item.content:
                item.content = new_content
            else:
                embedding = None

            now = self._now()
            item.last_updated_at = now
            item.quality_tier = QualityTier.GOLD if item.user_authored else derive_tier(item)
            item.freshness_score = freshness(item, now)

            self._store.update_item(item, embedding)
            self._sync_vault(vault.id)
        logger.info("Enhanced item %s in vault %s (%s)", item.id, vault.id, item.quality_tier)
        return item

    async def delete_items(
        self,
        vault_id: str,
        category: VaultCategory | str,
        ids: list[str],
        *,
        principal: str | None,
    ) -> int:
        """Hard-delete items of one category; ids outside the vault are ignored."""
        _require_principal(principal, "delete items")
        resolved = _validate_category(category)
        vault = self._owned_vault(vault_id, principal, "delete items")

        async with self._write_locks[vault.id]:
            owned = {item.id for item in self._store.list_items(vault.id, [resolved])}
            doomed = [item_id for item_id in ids if item_id in owned]
            self._store.delete_items(resolved, doomed)
            self._sync_vault(vault.id)
        return len(doomed)

    async def consolidate_duplicates(self, vault_id: str, *, principal: str | None) -> list[str]:
        """Merge exact-duplicate content within each category.

        The survivor of each group is the best-ranked item: highest tier,
        then freshest, then oldest.  Returns the ids that were removed.
        """
        _require_principal(principal, "consolidate duplicates")
        vault = self._owned_vault(vault_id, principal, "consolidate duplicates")
        now = self._now()

        async with self._write_locks[vault.id]:
            groups: defaultdict[tuple[VaultCategory, str], list[VaultItem]] = defaultdict(list)
            for item in self._store.list_items(vault.id):
                groups[(item.category, normalize_content(item.content))].append(item)

            removed: dict[VaultCategory, list[str]] = defaultdict(list)
            for (category, _), group in groups.items():
                if len(group) < 2:
                    continue
                group.sort(key=lambda i: _survivor_key(i, now))
                removed[category].extend(item.id for item in group[1:])

            for category, ids in removed.items():
                self._store.delete_items(category, ids)
            self._sync_vault(vault.id)

        removed_ids = [item_id for ids in removed.values() for item_id in ids]
        logger.info("Consolidated %d duplicate item(s) in vault %s", len(removed_ids), vault.id)
        return removed_ids

    async def refresh_scores(self, vault_id: str, *, principal: str | None) -> RescoreResult:
        """Batch re-derivation of tier and freshness for every item."""
        _require_principal(principal, "refresh scores")
        vault = self._owned_vault(vault_id, principal, "refresh scores")
        async with self._write_locks[vault.id]:
            result = self._rescorer.rescore(vault.id, self._now())
            self._sync_vault(vault.id)
        return result

    async def reconcile_counts(
        self,
        vault_id: str,
        *,
        principal: str | None,
        repair: bool = False,
        strict: bool = False,
    ) -> ReconcileReport:
        """Compare stored counts to a live enumeration.

        With ``repair`` the stored counts are rewritten from the live
        enumeration.  With ``strict`` (and no repair) any mismatch raises
        CONSISTENCY.
        """
        _require_principal(principal, "reconcile counts")
        vault = self._owned_vault(vault_id, principal, "reconcile counts")

        async with self._write_locks[vault.id]:
            live = self._store.count_items(vault.id)
            report = ReconcileReport(
                vault_id=vault.id,
                mismatches={
                    category: (vault.counts.get(category, 0), live[category])
                    for category in VaultCategory
                    if vault.counts.get(category, 0) != live[category]
                },
            )
            if report.consistent:
                return report

            logger.warning(
                "Vault %s counts diverge from live rows: %s",
                vault.id,
                {c.value: pair for c, pair in report.mismatches.items()},
            )
            if repair:
                self._sync_vault(vault.id)
                report.repaired = True
            elif strict:
                raise ActionableError.consistency(
                    vault.id,
                    {CATEGORY_SPECS[c].count_field: pair for c, pair in report.mismatches.items()},
                )
        return report

    # -- Reads ---------------------------------------------------------------

    async def match_requirement(
        self,
        vault_id: str,
        requirement: str,
        *,
        principal: str | None,
        categories: Iterable[VaultCategory | str] | None = None,
        top_n: int | None = None,
    ) -> MatchReport:
        """Score and rank the vault's items against one requirement."""
        _require_principal(principal, "match requirement")
        if not requirement.strip():
            raise ActionableError.validation(
                field_name="requirement",
                reason="requirement text is empty",
                suggestion="Pass the requirement line to match against",
            )
        resolved = [_validate_category(c) for c in categories] if categories is not None else None
        if top_n is not None and top_n < 1:
            raise ActionableError.validation(field_name="top_n", reason=f"is {top_n} — must be >= 1")
        vault = self._owned_vault(vault_id, principal, "match requirement")

        items = self._store.list_items(vault.id, resolved)
        matches = await self._matcher.match(requirement, items, now=self._now())
        return Ranker(top_n=top_n).report(requirement.strip(), matches)

    async def recommend(self, vault_id: str, *, principal: str | None) -> list[Recommendation]:
        _require_principal(principal, "recommend")
        vault = self._owned_vault(vault_id, principal, "recommend")
        items = self._store.list_items(vault.id)
        return await self._recommender.recommend(items, self._now())

    async def get_audit(
        self,
        vault_id: str,
        *,
        principal: str | None,
        force_refresh: bool = False,
    ) -> AuditResult:
        """Return a cached audit if still valid, else recompute.

        Valid cache hits never wait on a lock or the provider.  Concurrent
        misses for one vault share a single recomputation.  Degraded
        (``success=False``) results are returned but not cached.
        """
        _require_principal(principal, "audit vault")
        vault = self._owned_vault(vault_id, principal, "audit vault")

        if not force_refresh:
            cached = self._cache.get(vault.id)
            if cached is not None:
                logger.debug("Audit cache hit for vault %s", vault.id)
                return cached

        async with self._audit_locks[vault.id]:
            if not force_refresh:
                cached = self._cache.get(vault.id)
                if cached is not None:
                    return cached
            items = self._store.list_items(vault.id)
            result = await self._auditor.audit(vault, items, self._now())
            if result.success:
                self._cache.put(vault.id, result)
        return result

    def export_items(
        self,
        vault_id: str,
        *,
        principal: str | None,
        categories: Iterable[VaultCategory | str] | None = None,
        tiers: Iterable[QualityTier | str] | None = None,
    ) -> tuple[Vault, list[VaultItem]]:
        """Return the vault and its items filtered by category and tier."""
        _require_principal(principal, "export vault")
        resolved = [_validate_category(c) for c in categories] if categories is not None else None
        wanted_tiers = {_validate_tier(t) for t in tiers} if tiers is not None else None
        vault = self._owned_vault(vault_id, principal, "export vault")
        items = self._store.list_items(vault.id, resolved)
        if wanted_tiers is not None:
            items = [item for item in items if classify(item) in wanted_tiers]
        return vault, items

    def export_vault(
        self,
        vault_id: str,
        path: str | Path,
        *,
        principal: str | None,
        fmt: str = "csv",
        categories: Iterable[VaultCategory | str] | None = None,
        tiers: Iterable[QualityTier | str] | None = None,
    ) -> Path:
        """Write the filtered vault to *path* as ``csv`` or ``markdown``."""
        from career_vault.export import CSVExporter, MarkdownExporter

        _require_principal(principal, "export vault")
        if fmt not in ("csv", "markdown"):
            raise ActionableError.validation(
                field_name="format",
                reason=f"'{fmt}' is not supported",
                suggestion="Use 'csv' or 'markdown'",
            )
        vault, items = self.export_items(vault_id, principal=principal, categories=categories, tiers=tiers)
        if fmt == "csv":
            return CSVExporter().export(items, path)
        return MarkdownExporter().export(vault, items, path)

    # -- Internals -----------------------------------------------------------

    async def _ensure_vault(self, user_id: str) -> Vault:
        async with self._create_lock:
            vault = self._store.get_vault_by_user(user_id)
            if vault is None:
                vault = self._store.create_vault(user_id)
        return vault

    def _owned_vault(self, vault_id: str, principal: str | None, operation: str) -> Vault:
        vault = self._store.get_vault(vault_id)
        if vault is None:
            raise ActionableError.not_found("vault", vault_id)
        if vault.user_id != principal:
            raise ActionableError.authorization(
                operation,
                reason="the principal does not own this vault",
            )
        return vault

    async def _insert(self, vault: Vault, items: list[VaultItem]) -> list[VaultItem]:
        """Stamp, embed, insert and recount.  Nothing is written if embedding fails."""
        now = self._now()
        for item in items:
            item.created_at = item.created_at or now
            item.last_updated_at = item.last_updated_at or now
            item.freshness_score = freshness(item, now)

        embeddings = [await self._embedder.embed(item.content) for item in items]

        async with self._write_locks[vault.id]:
            for item, embedding in zip(items, embeddings, strict=True):
                self._store.insert_item(item, embedding)
            self._sync_vault(vault.id)
        return items

    def _sync_vault(self, vault_id: str) -> Vault:
        """Rewrite counts and strength from live rows.  Caller holds the write lock."""
        vault = self._store.get_vault(vault_id)
        if vault is None:
            raise ActionableError.not_found("vault", vault_id)
        vault.counts = self._store.count_items(vault_id)
        vault.overall_strength_score = vault_health(self._store.list_items(vault_id), self._now())
        vault.last_updated_at = self._now()
        self._store.save_vault(vault)
        logger.debug(
            "Vault %s synced: %d items, strength %d",
            vault_id,
            vault.total_items,
            vault.overall_strength_score,
        )
        return vault


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


def _require_principal(principal: str | None, operation: str) -> None:
    if not principal:
        raise ActionableError.authorization(operation)


def _require_self(principal: str | None, user_id: str, operation: str) -> None:
    if principal != user_id:
        raise ActionableError.authorization(
            operation,
            reason="a principal may only act on their own vault",
        )


def _validate_category(value: VaultCategory | str) -> VaultCategory:
    resolved = value if isinstance(value, VaultCategory) else parse_category(str(value))
    if resolved is None:
        raise ActionableError.validation(
            field_name="category",
            reason=f"'{value}' is not one of the ten vault categories",
            suggestion="Use one of: " + ", ".join(c.value for c in VaultCategory),
        )
    return resolved


def _validate_tier(value: QualityTier | str) -> QualityTier:
    try:
        return value if isinstance(value, QualityTier) else QualityTier(str(value).lower())
    except ValueError:
        raise ActionableError.validation(
            field_name="tier",
            reason=f"'{value}' is not a quality tier",
            suggestion="Use one of: " + ", ".join(t.value for t in QualityTier),
        ) from None


def _mark_human_authored(item: VaultItem) -> None:
    item.quality_tier = QualityTier.GOLD
    item.evidence = replace(item.evidence, ai_confidence=1.0)


def _survivor_key(item: VaultItem, now: datetime) -> tuple[int, int, datetime]:
    fresh = freshness(item, now)
    created = item.created_at or datetime.max.replace(tzinfo=UTC)
    return (-classify(item).priority, -fresh, created)
