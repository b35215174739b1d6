"""Ingestion adapter: raw extracted rows → canonical :class:`VaultItem`.

Extraction output and older records spell the same facts several ways
(``power_phrase`` vs ``phrase``, ``confidence_score`` on a 0–100 scale vs
``ai_confidence`` on 0–1, ``updated_at`` vs ``last_updated_at``).  All of
those spellings are resolved here, once, so the classifier, freshness
evaluator and ranker only ever read canonical fields.

Rows without usable content raise VALIDATION: an item with no primary
text is not a committed vault item.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from career_vault.errors import ActionableError
from career_vault.vault.models import (
    CATEGORY_SPECS,
    EvidenceSignals,
    ItemSource,
    VaultCategory,
    VaultItem,
    VerificationStatus,
    parse_category,
    parse_tier,
)

_CONFIDENCE_FIELDS = ("ai_confidence", "confidence_score", "confidence")
_EVIDENCE_LIST_FIELDS = ("supporting_evidence", "evidence", "evidence_items")
_UPDATED_FIELDS = ("last_updated_at", "updated_at", "lastUpdatedAt", "updatedAt")
_CREATED_FIELDS = ("created_at", "createdAt")
_METRIC_FIELDS = ("impact_metrics", "metrics")

# Fields consumed into canonical attributes; everything else lands in details
_CONSUMED = frozenset(
    {
        "id",
        "vault_id",
        "category",
        "content",
        "quality_tier",
        "quiz_verified",
        "verification_status",
        "ai_inferred",
        "inferred_from",
        "evidence_count",
        "source",
        "freshness_score",
        *_CONFIDENCE_FIELDS,
        *_EVIDENCE_LIST_FIELDS,
        *_UPDATED_FIELDS,
        *_CREATED_FIELDS,
        *_METRIC_FIELDS,
    }
)


def normalize_row(
    row: dict[str, Any],
    *,
    vault_id: str,
    category: VaultCategory | str | None = None,
) -> VaultItem:
    """Convert one raw row into a :class:`VaultItem`.

    *category* overrides ``row["category"]``; one of the two must name a
    valid category (value, underscore spelling, or table name).

    Raises VALIDATION when the category is unknown or no content field
    holds non-empty text.
    """
    resolved = _resolve_category(category if category is not None else row.get("category"))
    spec = CATEGORY_SPECS[resolved]

    content = _first_text(row, ("content", *spec.content_fields))
    if not content:
        raise ActionableError.validation(
            field_name="content",
            reason=f"row has no text in any of {', '.join(('content', *spec.content_fields))}",
            suggestion="Provide the item's primary text",
        )

    evidence = EvidenceSignals(
        quiz_verified=bool(row.get("quiz_verified", False)),
        verification_status=_verification(row.get("verification_status")),
        ai_confidence=_confidence(row),
        evidence_count=_evidence_count(row),
        ai_inferred=bool(row.get("ai_inferred")) or bool(row.get("inferred_from")),
    )

    details = {
        key: value
        for key, value in row.items()
        if key not in _CONSUMED and key not in spec.content_fields and value is not None
    }

    item = VaultItem(
        vault_id=vault_id,
        category=resolved,
        content=content,
        evidence=evidence,
        quality_tier=parse_tier(row.get("quality_tier")),
        freshness_score=_int_or_none(row.get("freshness_score")),
        created_at=_first_timestamp(row, _CREATED_FIELDS),
        last_updated_at=_first_timestamp(row, _UPDATED_FIELDS),
        impact_metrics=_metrics(row),
        source=_source(row.get("source")),
        details=details,
    )
    if row.get("id"):
        item.id = str(row["id"])
    return item


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string, date, or datetime into an aware UTC datetime.

    Returns ``None`` for anything unparseable; a bad timestamp is treated
    the same as a missing one.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _resolve_category(value: object) -> VaultCategory:
    if isinstance(value, VaultCategory):
        return value
    resolved = parse_category(value) if isinstance(value, str) else None
    if resolved is None:
        raise ActionableError.validation(
            field_name="category",
            reason=f"'{value}' is not one of the ten vault categories",
            suggestion="Use one of: " + ", ".join(c.value for c in VaultCategory),
        )
    return resolved


def _first_text(row: dict[str, Any], fields: tuple[str, ...]) -> str:
    for name in fields:
        value = row.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _first_timestamp(row: dict[str, Any], fields: tuple[str, ...]) -> datetime | None:
    for name in fields:
        parsed = parse_timestamp(row.get(name))
        if parsed is not None:
            return parsed
    return None


def _confidence(row: dict[str, Any]) -> float | None:
    """First present confidence, rescaled from percent when above 1."""
    for name in _CONFIDENCE_FIELDS:
        value = row.get(name)
        if value is None or isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if number > 1.0:
            number /= 100.0
        return max(0.0, min(1.0, number))
    return None


def _evidence_count(row: dict[str, Any]) -> int | None:
    explicit = _int_or_none(row.get("evidence_count"))
    if explicit is not None:
        return max(0, explicit)
    for name in _EVIDENCE_LIST_FIELDS:
        value = row.get(name)
        if isinstance(value, list):
            return len(value)
    return None


def _metrics(row: dict[str, Any]) -> dict[str, Any]:
    for name in _METRIC_FIELDS:
        value = row.get(name)
        if isinstance(value, dict) and value:
            return dict(value)
    return {}


def _verification(value: object) -> VerificationStatus:
    if isinstance(value, str) and value.strip().lower() == VerificationStatus.VERIFIED:
        return VerificationStatus.VERIFIED
    return VerificationStatus.UNVERIFIED


def _source(value: object) -> ItemSource:
    try:
        return ItemSource(str(value)) if value is not None else ItemSource.EXTRACTION
    except ValueError:
        return ItemSource.EXTRACTION


def _int_or_none(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None
