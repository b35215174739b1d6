"""Vault store tests — real ChromaDB in a temp directory."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from conftest import EMBED_FAKE

from career_vault.errors import ActionableError, ErrorType
from career_vault.rag.store import VaultStore
from career_vault.vault.models import (
    EvidenceSignals,
    ItemSource,
    QualityTier,
    VaultCategory,
    VerificationStatus,
)

if TYPE_CHECKING:
    from pathlib import Path

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)


class TestVaultRecords:
    """REQUIREMENT: One vault record per user persists counts and strength.

    WHO: The service creating and syncing vaults
    WHAT: create_vault() persists an empty vault; lookups by id and by user
          return it; save_vault() rewrites counts and strength in place;
          unknown ids return None
    WHY: The counts and strength shown to the user live on this record
    """

    def test_create_and_fetch_vault(self, vault_store: VaultStore) -> None:
        vault = vault_store.create_vault("user-1")
        by_id = vault_store.get_vault(vault.id)
        by_user = vault_store.get_vault_by_user("user-1")
        assert by_id is not None and by_user is not None
        assert by_id.id == by_user.id == vault.id
        assert by_id.user_id == "user-1"
        assert by_id.total_items == 0

    def test_unknown_vault_is_none(self, vault_store: VaultStore) -> None:
        assert vault_store.get_vault("missing") is None
        assert vault_store.get_vault_by_user("nobody") is None

    def test_save_vault_round_trips_counts(self, vault_store: VaultStore) -> None:
        vault = vault_store.create_vault("user-1")
        vault.counts[VaultCategory.VALUE_MOTIVATION] = 4
        vault.overall_strength_score = 72
        vault_store.save_vault(vault)

        reloaded = vault_store.get_vault(vault.id)
        assert reloaded is not None
        assert reloaded.counts[VaultCategory.VALUE_MOTIVATION] == 4
        assert reloaded.overall_strength_score == 72

    def test_vault_persists_across_clients(self, tmp_path: Path) -> None:
        """A second client on the same directory sees the vault."""
        path = str(tmp_path / "shared")
        vault = VaultStore(persist_dir=path).create_vault("user-1")
        assert VaultStore(persist_dir=path).get_vault(vault.id) is not None


class TestItemPersistence:
    """REQUIREMENT: Items round-trip through ChromaDB with every canonical field.

    WHO: Every read path
    WHAT: insert_item() then get_item()/list_items() return the same tier,
          evidence, timestamps, metrics, source and details; absent numeric
          signals stay None; items are scoped to their vault; update_item()
          rewrites the whole record, keeping the stored vector unless given one
    WHY: A field lost in storage changes tier or freshness on the next read
    """

    def test_item_round_trip(self, vault_store: VaultStore, make_item) -> None:
        item = make_item(
            tier=QualityTier.SILVER,
            evidence=EvidenceSignals(
                quiz_verified=False,
                verification_status=VerificationStatus.VERIFIED,
                ai_confidence=0.8,
                evidence_count=2,
                ai_inferred=True,
            ),
            metrics={"savings_pct": 30},
            source=ItemSource.USER,
            freshness_score=100,
        )
        item.details = {"role": "Staff Engineer"}
        vault_store.insert_item(item, EMBED_FAKE)

        loaded = vault_store.get_item(item.vault_id, item.id)
        assert loaded == item

    def test_absent_signals_stay_none(self, vault_store: VaultStore, make_item) -> None:
        """None confidence and count are not turned into zeros by storage."""
        item = make_item(age_days=None)
        vault_store.insert_item(item, EMBED_FAKE)
        loaded = vault_store.get_item(item.vault_id, item.id)
        assert loaded is not None
        assert loaded.evidence.ai_confidence is None
        assert loaded.evidence.evidence_count is None
        assert loaded.quality_tier is None
        assert loaded.created_at is None

    def test_items_are_scoped_to_vault(self, vault_store: VaultStore, make_item) -> None:
        mine = make_item(vault_id="vault-a")
        theirs = make_item(vault_id="vault-b")
        vault_store.insert_item(mine, EMBED_FAKE)
        vault_store.insert_item(theirs, EMBED_FAKE)

        assert [i.id for i in vault_store.list_items("vault-a")] == [mine.id]
        assert vault_store.get_item("vault-a", theirs.id) is None

    def test_list_items_orders_by_category_then_creation(self, vault_store: VaultStore, make_item) -> None:
        newer = make_item("Newer phrase", age_days=1)
        older = make_item("Older phrase", age_days=100)
        skill = make_item("Listening", category=VaultCategory.SOFT_SKILL)
        for item in (skill, newer, older):
            vault_store.insert_item(item, EMBED_FAKE)

        listed = vault_store.list_items("vault-1")
        assert [i.content for i in listed] == ["Older phrase", "Newer phrase", "Listening"]

    def test_list_items_filters_categories(self, vault_store: VaultStore, make_item) -> None:
        vault_store.insert_item(make_item(), EMBED_FAKE)
        vault_store.insert_item(make_item("Listening", category=VaultCategory.SOFT_SKILL), EMBED_FAKE)
        listed = vault_store.list_items("vault-1", [VaultCategory.SOFT_SKILL])
        assert [i.category for i in listed] == [VaultCategory.SOFT_SKILL]
        assert vault_store.list_items("vault-1", []) == []

    def test_update_item_rewrites_metadata(self, vault_store: VaultStore, make_item) -> None:
        item = make_item()
        vault_store.insert_item(item, EMBED_FAKE)
        item.quality_tier = QualityTier.GOLD
        item.last_updated_at = NOW + timedelta(days=1)
        vault_store.update_item(item)

        loaded = vault_store.get_item(item.vault_id, item.id)
        assert loaded is not None
        assert loaded.quality_tier == QualityTier.GOLD
        assert loaded.last_updated_at == NOW + timedelta(days=1)

    def test_update_keeps_stored_embedding(self, vault_store: VaultStore, make_item) -> None:
        """A metadata-only update re-sends the stored vector rather than re-embedding."""
        item = make_item()
        vault_store.insert_item(item, EMBED_FAKE)
        item.quality_tier = QualityTier.SILVER
        vault_store.update_item(item)

        stored = vault_store.get_embeddings(VaultCategory.POWER_PHRASE, [item.id])
        assert stored[item.id] == pytest.approx(EMBED_FAKE)

    def test_update_clears_removed_fields(self, vault_store: VaultStore, make_item) -> None:
        """Fields emptied on the item are emptied in storage, not merged back."""
        item = make_item(
            tier=QualityTier.SILVER,
            evidence=EvidenceSignals(evidence_count=3),
            metrics={"savings_pct": 30},
        )
        vault_store.insert_item(item, EMBED_FAKE)
        item.impact_metrics = {}
        item.quality_tier = None
        item.evidence = EvidenceSignals()
        vault_store.update_item(item)

        loaded = vault_store.get_item(item.vault_id, item.id)
        assert loaded is not None
        assert loaded.impact_metrics == {}
        assert loaded.quality_tier is None
        assert loaded.evidence.evidence_count is None

    def test_update_missing_item_not_found(self, vault_store: VaultStore, make_item) -> None:
        with pytest.raises(ActionableError) as exc_info:
            vault_store.update_item(make_item())
        assert exc_info.value.error_type == ErrorType.NOT_FOUND


class TestCountsAndDeletes:
    """REQUIREMENT: Counts come from enumerating live rows.

    WHO: The service's vault sync and reconcile
    WHAT: count_items() reports every category, zero-filled; delete_items()
          removes rows so the next count reflects it; deleting nothing is a no-op
    WHY: Incremented counters drift; enumeration cannot
    """

    def test_count_items_enumerates(self, vault_store: VaultStore, make_item) -> None:
        for n in range(3):
            vault_store.insert_item(make_item(f"Phrase {n}"), EMBED_FAKE)
        vault_store.insert_item(make_item("Listening", category=VaultCategory.SOFT_SKILL), EMBED_FAKE)

        counts = vault_store.count_items("vault-1")
        assert counts[VaultCategory.POWER_PHRASE] == 3
        assert counts[VaultCategory.SOFT_SKILL] == 1
        assert counts[VaultCategory.WORK_STYLE] == 0
        assert set(counts) == set(VaultCategory)

    def test_delete_items(self, vault_store: VaultStore, make_item) -> None:
        item = make_item()
        vault_store.insert_item(item, EMBED_FAKE)
        vault_store.delete_items(VaultCategory.POWER_PHRASE, [item.id])
        vault_store.delete_items(VaultCategory.POWER_PHRASE, [])
        assert vault_store.count_items("vault-1")[VaultCategory.POWER_PHRASE] == 0

    def test_get_embeddings(self, vault_store: VaultStore, make_item) -> None:
        item = make_item()
        vault_store.insert_item(item, EMBED_FAKE)
        stored = vault_store.get_embeddings(VaultCategory.POWER_PHRASE, [item.id])
        assert stored[item.id] == pytest.approx(EMBED_FAKE)
        assert vault_store.get_embeddings(VaultCategory.POWER_PHRASE, []) == {}


class TestStoreErrors:
    """REQUIREMENT: ChromaDB failures surface as STORE errors.

    WHO: Write paths, which must fail loudly
    WHAT: A ChromaDB or value error inside a store call is re-raised as an
          ActionableError of type STORE naming the operation
    WHY: A raw ChromaDB traceback tells the operator nothing about recovery
    """

    def test_bad_embedding_raises_store_error(self, vault_store: VaultStore, make_item) -> None:
        """An embedding of the wrong dimension is rejected as STORE."""
        vault_store.insert_item(make_item(), EMBED_FAKE)
        with pytest.raises(ActionableError) as exc_info:
            vault_store.insert_item(make_item("Another"), [0.1, 0.2])
        assert exc_info.value.error_type == ErrorType.STORE
        assert "insert item" in exc_info.value.error
