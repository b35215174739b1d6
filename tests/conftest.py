"""Global test configuration — shared fixtures and factories.

This conftest provides:

1. **Shared I/O-boundary fixtures** — ``mock_embedder`` (Embedder with
   stubbed Ollama methods), ``vault_store`` (real ChromaDB backed by
   ``tmp_path``), and ``service`` (real VaultService wired to both).
   Individual test files may shadow these with local fixtures that use
   different return values.

2. **Domain factories** — ``make_item`` and ``make_settings`` build
   canonical items and isolated settings without repeating boilerplate.

Only Ollama network I/O is mocked; ChromaDB always runs for real.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from career_vault.config import ChromaConfig, OutputConfig, Settings
from career_vault.pipeline.audit import AuditCache
from career_vault.pipeline.service import VaultService
from career_vault.rag.embedder import Embedder
from career_vault.rag.store import VaultStore
from career_vault.vault.models import (
    EvidenceSignals,
    ItemSource,
    QualityTier,
    VaultCategory,
    VaultItem,
)

# Canonical fake embedding used across test files.  Individual tests that
# need a different vector can define their own constant.
EMBED_FAKE: list[float] = [0.1, 0.2, 0.3, 0.4, 0.5]

# Fixed "now" so freshness and staleness are deterministic
NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)

AUDIT_JSON = (
    '{"smart_questions": [{"question": "What budget did you own?", "category": "scope", '
    '"reasoning": "No budget ownership recorded", "impact": "high", '
    '"target_category": "power-phrase"}], '
    '"strategic_gaps": [{"gap_type": "metrics", "description": "Few quantified wins", '
    '"impact": "high", "suggested_enhancement": "Add revenue figures"}], '
    '"executive_summary": "Solid technical leader with thin metrics."}'
)


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Shared I/O-boundary fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedder() -> Embedder:
    """Embedder with stubbed I/O methods — no Ollama connection needed.

    Uses ``Embedder.__new__`` to create a real instance without calling
    ``__init__`` (which would create an ``ollama.AsyncClient``).  All
    async methods are replaced with ``AsyncMock`` stubs that return
    deterministic values.
    """
    embedder = Embedder.__new__(Embedder)
    embedder.base_url = "http://localhost:11434"
    embedder.embed_model = "nomic-embed-text"
    embedder.llm_model = "mistral:7b"
    embedder.timeout_seconds = 5.0
    embedder.max_retries = 3
    embedder.base_delay = 0.0
    embedder.embed = AsyncMock(return_value=EMBED_FAKE)  # type: ignore[method-assign]
    embedder.generate = AsyncMock(return_value=AUDIT_JSON)  # type: ignore[method-assign]
    embedder.health_check = AsyncMock()  # type: ignore[method-assign]
    return embedder


@pytest.fixture
def vault_store(tmp_path: Path) -> VaultStore:
    """Real ChromaDB VaultStore backed by a per-test temp directory."""
    return VaultStore(persist_dir=str(tmp_path / "chroma"))


@pytest.fixture
def make_settings(tmp_path: Path):
    """Factory fixture — Settings with chroma and output rooted under ``tmp_path``."""

    def _factory(**overrides: Any) -> Settings:
        settings = Settings(
            chroma=ChromaConfig(persist_dir=str(tmp_path / "chroma")),
            output=OutputConfig(output_dir=str(tmp_path / "output")),
        )
        for name, value in overrides.items():
            setattr(settings, name, value)
        return settings

    return _factory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(
    vault_store: VaultStore,
    mock_embedder: Embedder,
    make_settings,
    clock: FakeClock,
) -> VaultService:
    """Real VaultService over real ChromaDB with a stubbed provider and fixed clocks."""
    return VaultService(
        store=vault_store,
        embedder=mock_embedder,
        settings=make_settings(),
        cache=AuditCache(ttl_seconds=300, max_entries=16, clock=clock),
        now=lambda: NOW,
    )


# ---------------------------------------------------------------------------
# Domain factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_item():
    """Factory fixture — returns a callable that produces a VaultItem.

    Usage::

        def test_something(make_item):
            item = make_item()
            item = make_item(tier=QualityTier.GOLD, age_days=400)
            item = make_item(category=VaultCategory.SOFT_SKILL, content="Listening")
    """

    def _factory(
        content: str = "Led migration of 40 services to Kubernetes",
        *,
        category: VaultCategory = VaultCategory.POWER_PHRASE,
        tier: QualityTier | None = None,
        age_days: int | None = 10,
        evidence: EvidenceSignals | None = None,
        metrics: dict[str, Any] | None = None,
        source: ItemSource = ItemSource.EXTRACTION,
        vault_id: str = "vault-1",
        freshness_score: int | None = None,
    ) -> VaultItem:
        stamp = NOW - timedelta(days=age_days) if age_days is not None else None
        return VaultItem(
            vault_id=vault_id,
            category=category,
            content=content,
            evidence=evidence or EvidenceSignals(),
            quality_tier=tier,
            freshness_score=freshness_score,
            created_at=stamp,
            last_updated_at=stamp,
            impact_metrics=metrics or {},
            source=source,
        )

    return _factory
