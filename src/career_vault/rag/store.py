"""Vault persistence over ChromaDB.

Provides the item-store gateway for the engine, adding:
- One cosine collection per vault category (``vault_power_phrases``, ...)
  holding item content, its embedding and the canonical item fields
  as metadata
- A ``career_vaults`` collection holding one record per user with the
  denormalised per-category counts and the strength score
- Consistent error handling via ActionableError (STORE)

ChromaDB is an **embedded** vector database, like SQLite for vectors.
Item embeddings are what the requirement matcher compares against;
vault records carry a constant placeholder vector because they are only
ever fetched by id or user.

ChromaDB metadata values must be scalars, so ``impact_metrics`` and
``details`` are stored as JSON strings and ``None`` fields are omitted.
Updates rewrite the whole row, so an omitted field reads back as cleared.
Counts are never incremented here: :meth:`count_items` enumerates live
rows and callers write that number back.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import chromadb
from chromadb.errors import ChromaError

from career_vault.errors import ActionableError
from career_vault.logging import get_logger
from career_vault.vault.models import (
    CATEGORY_SPECS,
    EvidenceSignals,
    ItemSource,
    Vault,
    VaultCategory,
    VaultItem,
    VerificationStatus,
    parse_tier,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = get_logger(__name__)

VAULTS_COLLECTION = "career_vaults"

# Vault records are looked up by id/user only; they still need a vector
_PLACEHOLDER_EMBEDDING = [1.0]


class VaultStore:
    """Manages ChromaDB collections for vault records and vault items.

    Usage::

        store = VaultStore(persist_dir="./data/chroma_db")
        vault = store.get_vault_by_user("user-1") or store.create_vault("user-1")
        store.insert_item(item, embedding=[...])
        items = store.list_items(vault.id)
    """

    def __init__(self, persist_dir: str) -> None:
        self.persist_dir = persist_dir
        with _store_errors("open"):
            self._client = chromadb.PersistentClient(path=persist_dir)
        logger.debug("ChromaDB client initialized at %s", persist_dir)

    # -- Collection lifecycle ------------------------------------------------

    def get_or_create_collection(self, name: str) -> chromadb.Collection:
        """Return the named collection with cosine distance, creating if necessary."""
        with _store_errors(f"open collection {name}"):
            return self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )

    def _items(self, category: VaultCategory) -> chromadb.Collection:
        return self.get_or_create_collection(CATEGORY_SPECS[category].table)

    # -- Vault records -------------------------------------------------------

    def get_vault(self, vault_id: str) -> Vault | None:
        """Return the vault with *vault_id*, or ``None``."""
        collection = self.get_or_create_collection(VAULTS_COLLECTION)
        with _store_errors("get vault"):
            result = collection.get(ids=[vault_id], include=["metadatas"])
        if not result["ids"]:
            return None
        return _vault_from_metadata(result["ids"][0], result["metadatas"][0])

    def get_vault_by_user(self, user_id: str) -> Vault | None:
        """Return the vault owned by *user_id*, or ``None``."""
        collection = self.get_or_create_collection(VAULTS_COLLECTION)
        with _store_errors("get vault by user"):
            result = collection.get(where={"user_id": user_id}, include=["metadatas"])
        if not result["ids"]:
            return None
        return _vault_from_metadata(result["ids"][0], result["metadatas"][0])

    def create_vault(self, user_id: str) -> Vault:
        """Create and persist an empty vault for *user_id*."""
        vault = Vault(user_id=user_id)
        self.save_vault(vault)
        logger.info("Created vault %s for user %s", vault.id, user_id)
        return vault

    def save_vault(self, vault: Vault) -> None:
        """Write the vault record (counts, strength, timestamps) in place."""
        collection = self.get_or_create_collection(VAULTS_COLLECTION)
        with _store_errors("save vault"):
            collection.upsert(
                ids=[vault.id],
                documents=[vault.user_id],
                embeddings=[_PLACEHOLDER_EMBEDDING],  # type: ignore[arg-type]
                metadatas=[_vault_to_metadata(vault)],  # type: ignore[list-item]
            )

    # -- Item operations -----------------------------------------------------

    def insert_item(self, item: VaultItem, embedding: list[float]) -> None:
        """Insert (or overwrite) *item* with its content embedding."""
        collection = self._items(item.category)
        with _store_errors("insert item"):
            collection.upsert(
                ids=[item.id],
                documents=[item.content],
                embeddings=[embedding],  # type: ignore[arg-type]
                metadatas=[_item_to_metadata(item)],  # type: ignore[list-item]
            )
        logger.debug("Stored %s item %s", item.category.value, item.id)

    def update_item(self, item: VaultItem, embedding: list[float] | None = None) -> None:
        """Rewrite *item*'s full record; keep the stored vector unless given a new one.

        The row is upserted whole so fields cleared on *item* are cleared in
        storage too.  Raises NOT_FOUND if the item has no stored row.
        """
        if embedding is None:
            embedding = self.get_embeddings(item.category, [item.id]).get(item.id)
            if embedding is None:
                raise ActionableError.not_found("vault item", item.id)
        collection = self._items(item.category)
        with _store_errors("update item"):
            collection.upsert(
                ids=[item.id],
                documents=[item.content],
                embeddings=[embedding],  # type: ignore[arg-type]
                metadatas=[_item_to_metadata(item)],  # type: ignore[list-item]
            )

    def get_item(self, vault_id: str, item_id: str) -> VaultItem | None:
        """Find one item of *vault_id* by id, searching every category."""
        for category in VaultCategory:
            collection = self._items(category)
            with _store_errors("get item"):
                result = collection.get(ids=[item_id], include=["documents", "metadatas"])
            if result["ids"]:
                item = _item_from_row(result["ids"][0], result["documents"][0], result["metadatas"][0])
                if item.vault_id == vault_id:
                    return item
        return None

    def list_items(
        self,
        vault_id: str,
        categories: Iterable[VaultCategory] | None = None,
    ) -> list[VaultItem]:
        """Return every live item of *vault_id*, in category then insertion order."""
        items: list[VaultItem] = []
        for category in VaultCategory if categories is None else categories:
            collection = self._items(category)
            with _store_errors("list items"):
                result = collection.get(
                    where={"vault_id": vault_id},
                    include=["documents", "metadatas"],
                )
            rows = [
                _item_from_row(item_id, document, metadata)
                for item_id, document, metadata in zip(
                    result["ids"], result["documents"], result["metadatas"], strict=True
                )
            ]
            rows.sort(key=lambda i: i.created_at or datetime.min.replace(tzinfo=UTC))
            items.extend(rows)
        return items

    def count_items(self, vault_id: str) -> dict[VaultCategory, int]:
        """Enumerate live rows per category for *vault_id*."""
        counts: dict[VaultCategory, int] = {}
        for category in VaultCategory:
            collection = self._items(category)
            with _store_errors("count items"):
                result = collection.get(where={"vault_id": vault_id}, include=["metadatas"])
            counts[category] = len(result["ids"])
        return counts

    def delete_items(self, category: VaultCategory, ids: list[str]) -> None:
        """Hard-delete items by id from one category collection."""
        if not ids:
            return
        collection = self._items(category)
        with _store_errors("delete items"):
            collection.delete(ids=ids)
        logger.info("Deleted %d %s item(s)", len(ids), category.value)

    def get_embeddings(self, category: VaultCategory, ids: list[str]) -> dict[str, list[float]]:
        """Return stored embeddings for *ids* keyed by item id."""
        if not ids:
            return {}
        collection = self._items(category)
        with _store_errors("get embeddings"):
            result = collection.get(ids=ids, include=["embeddings"])
        embeddings = result["embeddings"]
        if embeddings is None:
            return {}
        return {
            item_id: [float(v) for v in vector]
            for item_id, vector in zip(result["ids"], embeddings, strict=True)
        }


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate ChromaDB failures into STORE errors."""
    try:
        yield
    except (ChromaError, ValueError, OSError) as exc:
        raise ActionableError.store(operation, str(exc) or type(exc).__name__) from exc


# ---------------------------------------------------------------------------
# Metadata mapping
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    return datetime.fromisoformat(value)


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def _item_to_metadata(item: VaultItem) -> dict[str, Any]:
    evidence = item.evidence
    return _drop_none(
        {
            "vault_id": item.vault_id,
            "category": item.category.value,
            "source": item.source.value,
            "quality_tier": item.quality_tier.value if item.quality_tier else None,
            "freshness_score": item.freshness_score,
            "created_at": _iso(item.created_at),
            "last_updated_at": _iso(item.last_updated_at),
            "quiz_verified": evidence.quiz_verified,
            "verification_status": evidence.verification_status.value,
            "ai_confidence": evidence.ai_confidence,
            "evidence_count": evidence.evidence_count,
            "ai_inferred": evidence.ai_inferred,
            "impact_metrics": json.dumps(item.impact_metrics) if item.impact_metrics else None,
            "details": json.dumps(item.details) if item.details else None,
        }
    )


def _item_from_row(item_id: str, document: str | None, metadata: dict[str, Any] | None) -> VaultItem:
    meta = metadata or {}
    confidence = meta.get("ai_confidence")
    count = meta.get("evidence_count")
    freshness_score = meta.get("freshness_score")
    return VaultItem(
        id=item_id,
        vault_id=str(meta.get("vault_id", "")),
        category=VaultCategory(str(meta["category"])),
        content=document or "",
        evidence=EvidenceSignals(
            quiz_verified=bool(meta.get("quiz_verified", False)),
            verification_status=VerificationStatus(
                str(meta.get("verification_status", VerificationStatus.UNVERIFIED))
            ),
            ai_confidence=float(confidence) if confidence is not None else None,
            evidence_count=int(count) if count is not None else None,
            ai_inferred=bool(meta.get("ai_inferred", False)),
        ),
        quality_tier=parse_tier(meta.get("quality_tier")),
        freshness_score=int(freshness_score) if freshness_score is not None else None,
        created_at=_parse_iso(meta.get("created_at")),
        last_updated_at=_parse_iso(meta.get("last_updated_at")),
        impact_metrics=json.loads(meta["impact_metrics"]) if meta.get("impact_metrics") else {},
        source=ItemSource(str(meta.get("source", ItemSource.EXTRACTION))),
        details=json.loads(meta["details"]) if meta.get("details") else {},
    )


def _vault_to_metadata(vault: Vault) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "user_id": vault.user_id,
        "overall_strength_score": vault.overall_strength_score,
        "created_at": _iso(vault.created_at),
        "last_updated_at": _iso(vault.last_updated_at),
    }
    for category, spec in CATEGORY_SPECS.items():
        metadata[spec.count_field] = vault.counts.get(category, 0)
    return metadata


def _vault_from_metadata(vault_id: str, metadata: dict[str, Any] | None) -> Vault:
    meta = metadata or {}
    now = datetime.now(UTC)
    return Vault(
        id=vault_id,
        user_id=str(meta.get("user_id", "")),
        counts={
            category: int(meta.get(spec.count_field, 0)) for category, spec in CATEGORY_SPECS.items()
        },
        overall_strength_score=int(meta.get("overall_strength_score", 0)),
        created_at=_parse_iso(meta.get("created_at")) or now,
        last_updated_at=_parse_iso(meta.get("last_updated_at")) or now,
    )
