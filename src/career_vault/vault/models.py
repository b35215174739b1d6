"""Canonical vault data model.

Every row that enters the engine is converted once, at ingestion, into a
:class:`VaultItem` (see :mod:`career_vault.vault.normalize`).  Business
logic only ever sees this shape; there are no per-category field
spellings past the ingestion boundary.

The ten categories are a closed :class:`VaultCategory` enum and every
per-category fact (storage collection, accepted content spellings,
aggregate-count key, answer shape) lives in :data:`CATEGORY_SPECS`.
The mapping is checked for exhaustiveness at import time, so adding a
category without describing it fails immediately rather than as a
lookup miss at runtime.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class VaultCategory(StrEnum):
    """The ten semantic categories of career-history facts."""

    POWER_PHRASE = "power-phrase"
    TRANSFERABLE_SKILL = "transferable-skill"
    HIDDEN_COMPETENCY = "hidden-competency"
    SOFT_SKILL = "soft-skill"
    LEADERSHIP_PHILOSOPHY = "leadership-philosophy"
    EXECUTIVE_PRESENCE = "executive-presence"
    PERSONALITY_TRAIT = "personality-trait"
    WORK_STYLE = "work-style"
    VALUE_MOTIVATION = "value-motivation"
    BEHAVIORAL_INDICATOR = "behavioral-indicator"


class QualityTier(StrEnum):
    """Trust classification of a single item, strongest first."""

    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"
    ASSUMED = "assumed"

    @property
    def priority(self) -> int:
        """Ranking priority: gold(4) > silver(3) > bronze(2) > assumed(1)."""
        return _TIER_PRIORITY[self]

    @property
    def weight(self) -> float:
        """Contribution multiplier used by the strength aggregator."""
        return _TIER_WEIGHT[self]


_TIER_PRIORITY: dict[QualityTier, int] = {
    QualityTier.GOLD: 4,
    QualityTier.SILVER: 3,
    QualityTier.BRONZE: 2,
    QualityTier.ASSUMED: 1,
}

_TIER_WEIGHT: dict[QualityTier, float] = {
    QualityTier.GOLD: 1.0,
    QualityTier.SILVER: 0.8,
    QualityTier.BRONZE: 0.6,
    QualityTier.ASSUMED: 0.4,
}


class VerificationStatus(StrEnum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"


class ItemSource(StrEnum):
    """Where an item came from.  ``user`` and ``answer`` are human-authored."""

    USER = "user"
    ANSWER = "answer"
    EXTRACTION = "extraction"


class Impact(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {Impact.HIGH: 3, Impact.MEDIUM: 2, Impact.LOW: 1}[self]


# ---------------------------------------------------------------------------
# Category → storage/shape mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategorySpec:
    """Everything the engine needs to know about one category.

    ``content_fields`` lists the raw spellings accepted for the primary
    text, in priority order.  ``answer_defaults`` are the extra detail
    fields written when a free-text answer is filed under the category.
    """

    table: str
    count_field: str
    content_fields: tuple[str, ...]
    answer_defaults: dict[str, Any] = field(default_factory=dict)


CATEGORY_SPECS: dict[VaultCategory, CategorySpec] = {
    VaultCategory.POWER_PHRASE: CategorySpec(
        table="vault_power_phrases",
        count_field="total_power_phrases",
        content_fields=("power_phrase", "phrase", "phrase_text", "achievement_text"),
    ),
    VaultCategory.TRANSFERABLE_SKILL: CategorySpec(
        table="vault_transferable_skills",
        count_field="total_transferable_skills",
        content_fields=("stated_skill", "skill", "skill_name"),
        answer_defaults={"proficiency_level": "advanced"},
    ),
    VaultCategory.HIDDEN_COMPETENCY: CategorySpec(
        table="vault_hidden_competencies",
        count_field="total_hidden_competencies",
        content_fields=("inferred_capability", "competency", "competency_area"),
    ),
    VaultCategory.SOFT_SKILL: CategorySpec(
        table="vault_soft_skills",
        count_field="total_soft_skills",
        content_fields=("skill_name", "soft_skill"),
    ),
    VaultCategory.LEADERSHIP_PHILOSOPHY: CategorySpec(
        table="vault_leadership_philosophy",
        count_field="total_leadership_philosophy",
        content_fields=("philosophy_statement", "leadership_style"),
    ),
    VaultCategory.EXECUTIVE_PRESENCE: CategorySpec(
        table="vault_executive_presence",
        count_field="total_executive_presence",
        content_fields=("presence_indicator", "situational_example"),
    ),
    VaultCategory.PERSONALITY_TRAIT: CategorySpec(
        table="vault_personality_traits",
        count_field="total_personality_traits",
        content_fields=("trait_name", "trait", "behavioral_evidence"),
    ),
    VaultCategory.WORK_STYLE: CategorySpec(
        table="vault_work_style",
        count_field="total_work_style",
        content_fields=(
            "work_style_characteristic",
            "preference_description",
            "preference_area",
        ),
    ),
    VaultCategory.VALUE_MOTIVATION: CategorySpec(
        table="vault_values_motivations",
        count_field="total_values",
        content_fields=("value_statement", "value_name", "manifestation"),
    ),
    VaultCategory.BEHAVIORAL_INDICATOR: CategorySpec(
        table="vault_behavioral_indicators",
        count_field="total_behavioral_indicators",
        content_fields=("specific_behavior", "behavior", "indicator_type"),
    ),
}

_missing = set(VaultCategory) - set(CATEGORY_SPECS)
if _missing:  # pragma: no cover - import-time guard
    raise RuntimeError(f"CATEGORY_SPECS is missing categories: {sorted(_missing)}")

# Reverse lookup used to accept table names wherever a category is expected
_CATEGORY_BY_TABLE: dict[str, VaultCategory] = {
    spec.table: category for category, spec in CATEGORY_SPECS.items()
}


def parse_category(value: str) -> VaultCategory | None:
    """Resolve a category value, underscore spelling, or table name.

    Returns ``None`` for anything unrecognised; callers decide whether
    that is a validation error or a fallback.
    """
    cleaned = value.strip().lower()
    if cleaned in _CATEGORY_BY_TABLE:
        return _CATEGORY_BY_TABLE[cleaned]
    try:
        return VaultCategory(cleaned.replace("_", "-"))
    except ValueError:
        return None


def parse_tier(value: object) -> QualityTier | None:
    """Return the tier named by *value*, or ``None`` if it is not one of the four."""
    if not isinstance(value, str):
        return None
    try:
        return QualityTier(value.strip().lower())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Items and vaults
# ---------------------------------------------------------------------------


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class EvidenceSignals:
    """The trust signals a tier is derived from.

    Numeric signals are ``None`` when absent.  An absent confidence is
    not the same as a recorded confidence of ``0.0``.
    """

    quiz_verified: bool = False
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    ai_confidence: float | None = None
    evidence_count: int | None = None
    ai_inferred: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "quiz_verified": self.quiz_verified,
            "verification_status": self.verification_status.value,
            "ai_confidence": self.ai_confidence,
            "evidence_count": self.evidence_count,
            "ai_inferred": self.ai_inferred,
        }


@dataclass
class VaultItem:
    """One atomic career fact with its evidence metadata."""

    vault_id: str
    category: VaultCategory
    content: str
    evidence: EvidenceSignals = field(default_factory=EvidenceSignals)
    quality_tier: QualityTier | None = None
    freshness_score: int | None = None
    created_at: datetime | None = None
    last_updated_at: datetime | None = None
    impact_metrics: dict[str, Any] = field(default_factory=dict)
    source: ItemSource = ItemSource.EXTRACTION
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)

    @property
    def user_authored(self) -> bool:
        """True for items a human entered directly (the gold override path)."""
        return self.source in (ItemSource.USER, ItemSource.ANSWER)

    @property
    def has_metrics(self) -> bool:
        return bool(self.impact_metrics)


@dataclass
class Vault:
    """Per-user container with denormalised per-category counts."""

    user_id: str
    counts: dict[VaultCategory, int] = field(
        default_factory=lambda: {category: 0 for category in VaultCategory}
    )
    overall_strength_score: int = 0
    created_at: datetime = field(default_factory=utcnow)
    last_updated_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)

    @property
    def total_items(self) -> int:
        return sum(self.counts.values())


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------


@dataclass
class RequirementMatch:
    """An item scored against one requirement.  Never persisted."""

    vault_item_id: str
    requirement: str
    match_score: int
    quality_tier: QualityTier
    freshness_score: int
    verification_details: EvidenceSignals
    match_reasons: list[str] = field(default_factory=list)
    category: VaultCategory | None = None
    content: str = ""


@dataclass
class Recommendation:
    """A prioritised coaching suggestion produced from a vault scan."""

    id: str
    title: str
    description: str
    action: str
    impact: Impact
    time_estimate: str
    score_boost: int
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "action": self.action,
            "impact": self.impact.value,
            "time_estimate": self.time_estimate,
            "score_boost": self.score_boost,
            "category": self.category,
        }


@dataclass
class SmartQuestion:
    question: str
    category: str
    reasoning: str
    impact: Impact
    target_category: str


@dataclass
class StrategicGap:
    gap_type: str
    description: str
    impact: str
    suggested_enhancement: str | None = None


@dataclass
class AuditResult:
    """Outcome of a full strategic audit of one vault."""

    vault_id: str
    success: bool
    vault_strength_before: int
    vault_strength_after: int
    smart_questions: list[SmartQuestion] = field(default_factory=list)
    strategic_gaps: list[StrategicGap] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    executive_summary: str = ""
    error: str | None = None
    generated_at: datetime = field(default_factory=utcnow)
