"""CSV export."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import TYPE_CHECKING

from career_vault.logging import get_logger

if TYPE_CHECKING:
    from career_vault.pipeline.ranker import MatchReport
    from career_vault.vault.models import VaultItem

logger = get_logger(__name__)

_COLUMNS = [
    "category",
    "content",
    "quality_tier",
    "freshness_score",
    "source",
    "created_at",
    "last_updated_at",
]

_MATCH_COLUMNS = [
    "rank",
    "category",
    "content",
    "quality_tier",
    "freshness_score",
    "match_score",
    "match_reasons",
]


class CSVExporter:
    """Renders vault items or ranked matches as CSV suitable for spreadsheet import."""

    def export(self, items: list[VaultItem], output_path: str | Path) -> Path:
        """Write one row per item, in the order given, with a header row."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(_COLUMNS)
            for item in items:
                writer.writerow([
                    item.category.value,
                    item.content,
                    item.quality_tier.value if item.quality_tier else "",
                    "" if item.freshness_score is None else item.freshness_score,
                    item.source.value,
                    item.created_at.isoformat() if item.created_at else "",
                    item.last_updated_at.isoformat() if item.last_updated_at else "",
                ])

        logger.info("Exported %d item(s) to %s", len(items), path)
        return path

    def export_matches(self, report: MatchReport, output_path: str | Path) -> Path:
        """Write ranked matches for one requirement, best first."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(_MATCH_COLUMNS)
            for rank, match in enumerate(report.matches, start=1):
                writer.writerow([
                    rank,
                    match.category.value if match.category else "",
                    match.content,
                    match.quality_tier.value,
                    match.freshness_score,
                    match.match_score,
                    "; ".join(match.match_reasons),
                ])
        return path
