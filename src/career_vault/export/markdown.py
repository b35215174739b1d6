"""Markdown vault report export."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from career_vault.logging import get_logger
from career_vault.vault.models import VaultCategory
from career_vault.vault.strength import tally

if TYPE_CHECKING:
    from career_vault.pipeline.ranker import MatchReport
    from career_vault.vault.models import Vault, VaultItem

logger = get_logger(__name__)


def _cell(text: str) -> str:
    """Escape a value for a Markdown table cell."""
    return text.replace("|", "\\|").replace("\n", " ")


class MarkdownExporter:
    """Renders a vault, or a match report, as a human-readable Markdown file."""

    def export(self, vault: Vault, items: list[VaultItem], output_path: str | Path) -> Path:
        """Write a summary section and one table per non-empty category.

        Totals and tier counts are tallied from *items*, so a filtered
        export summarises exactly what it lists.
        """
        counts = tally(items)
        lines: list[str] = [
            "# Career Vault\n",
            f"- **Strength:** {vault.overall_strength_score}/100",
            f"- **Items exported:** {counts.total}",
            "- **By tier:** " + ", ".join(f"{tier.value} {n}" for tier, n in counts.by_tier.items()),
            "",
        ]

        if not items:
            lines.append("No items to display.\n")
        for category in VaultCategory:
            in_category = [item for item in items if item.category == category]
            if not in_category:
                continue
            lines.append(f"## {category.value} ({len(in_category)})\n")
            lines.append("| Content | Tier | Freshness | Source | Updated |")
            lines.append("|---------|------|-----------|--------|---------|")
            for item in in_category:
                updated = item.last_updated_at.date().isoformat() if item.last_updated_at else ""
                lines.append(
                    f"| {_cell(item.content)} "
                    f"| {item.quality_tier.value if item.quality_tier else ''} "
                    f"| {'' if item.freshness_score is None else item.freshness_score} "
                    f"| {item.source.value} "
                    f"| {updated} |"
                )
            lines.append("")

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines), encoding="utf-8")
        logger.info("Exported vault %s (%d item(s)) to %s", vault.id, counts.total, path)
        return path

    def export_matches(self, report: MatchReport, output_path: str | Path) -> Path:
        """Write ranked matches with their coverage buckets."""
        lines: list[str] = [
            "# Requirement Match\n",
            f"> {_cell(report.requirement)}\n",
            f"- **Match strength:** {report.strength}/100",
            f"- **Must include:** {len(report.must_include)}",
            f"- **Strongly recommended:** {len(report.strongly_recommended)}",
            f"- **Consider:** {len(report.consider)}",
            "",
        ]
        if report.matches:
            lines.append("| # | Content | Tier | Freshness | Match | Reasons |")
            lines.append("|---|---------|------|-----------|-------|---------|")
            for rank, match in enumerate(report.matches, start=1):
                lines.append(
                    f"| {rank} "
                    f"| {_cell(match.content)} "
                    f"| {match.quality_tier.value} "
                    f"| {match.freshness_score} "
                    f"| {match.match_score} "
                    f"| {_cell('; '.join(match.match_reasons))} |"
                )
        else:
            lines.append("No matching items.")
        lines.append("")

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines), encoding="utf-8")
        return path
