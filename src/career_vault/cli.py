"""CLI command handlers for the career vault engine.

Each public ``handle_*`` function corresponds to a CLI subcommand and
encapsulates the wiring, orchestration, and output for that command.
The ``--user`` argument names the acting principal; every command acts
on that user's own vault.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from career_vault.vault.models import QualityTier, VaultCategory

if TYPE_CHECKING:
    from career_vault.config import Settings
    from career_vault.pipeline.service import VaultService

_CATEGORY_CHOICES = [c.value for c in VaultCategory]
_TIER_CHOICES = [t.value for t in QualityTier]


def _build_service(settings: Settings | None = None) -> VaultService:
    """Wire store, provider and service from ``config/settings.toml``."""
    from career_vault.config import load_settings
    from career_vault.pipeline.service import VaultService
    from career_vault.rag.embedder import Embedder
    from career_vault.rag.store import VaultStore

    settings = settings or load_settings()
    embedder = Embedder(
        base_url=settings.ollama.base_url,
        embed_model=settings.ollama.embed_model,
        llm_model=settings.ollama.llm_model,
        timeout_seconds=settings.ollama.timeout_seconds,
        max_retries=settings.ollama.max_retries,
    )
    store = VaultStore(persist_dir=settings.chroma.persist_dir)
    return VaultService(store=store, embedder=embedder, settings=settings)


async def _require_vault_id(service: VaultService, user: str) -> str:
    data = await service.get_vault_data(user, principal=user)
    if data.vault is None:
        print(f"No vault found for user '{user}'. Add or ingest items first.")
        sys.exit(1)
    return data.vault.id


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_show(args: argparse.Namespace) -> None:
    """Print vault strength, per-category counts and per-tier counts."""
    from career_vault.vault.strength import tally

    service = _build_service()

    async def _run() -> None:
        data = await service.get_vault_data(args.user, principal=args.user)
        if data.vault is None:
            print(f"No vault found for user '{args.user}'.")
            return
        items = [item for group in data.items_by_category.values() for item in group]
        counts = tally(items)
        print(f"\nVault {data.vault.id} — strength {data.vault.overall_strength_score}/100")
        print(f"{'=' * 60}")
        for category in VaultCategory:
            print(f"  {category.value:<24} {counts.by_category[category]:>4}")
        print(f"{'-' * 60}")
        print("  " + "  ".join(f"{tier.value}: {n}" for tier, n in counts.by_tier.items()))
        print(f"  total: {counts.total}")

    asyncio.run(_run())


def handle_add(args: argparse.Namespace) -> None:
    """Add one human-authored item (always gold) to the user's vault."""
    service = _build_service()

    async def _run() -> None:
        vault = await service.get_or_create_vault(args.user, principal=args.user)
        item = await service.add_vault_item(
            vault.id,
            args.category,
            {"content": args.content},
            principal=args.user,
        )
        print(f"Added {item.category.value} item {item.id} ({item.quality_tier})")

    asyncio.run(_run())


def handle_ingest(args: argparse.Namespace) -> None:
    """Bulk-ingest extracted rows from a JSON array file."""
    from career_vault.errors import ActionableError

    path = Path(args.file)
    try:
        rows = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"File not found: {path}")
        sys.exit(1)
    except json.JSONDecodeError as exc:
        raise ActionableError.parse(
            source=str(path),
            location=f"line {exc.lineno}",
            raw_error=exc.msg,
        ) from None
    if not isinstance(rows, list):
        print(f"{path} must contain a JSON array of item objects")
        sys.exit(1)

    service = _build_service()

    async def _run() -> None:
        items = await service.ingest_items(args.user, rows, principal=args.user)
        print(f"Ingested {len(items)} item(s)")

    asyncio.run(_run())


def handle_answer(args: argparse.Namespace) -> None:
    """File an answer to an audit question as a new gold item."""
    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        item = await service.submit_answer(vault_id, args.target, args.text, principal=args.user)
        print(f"Saved answer as {item.category.value} item {item.id}")

    asyncio.run(_run())


def handle_recommend(args: argparse.Namespace) -> None:
    """Print prioritised recommendations."""
    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        recommendations = await service.recommend(vault_id, principal=args.user)
        if not recommendations:
            print("No recommendations — the vault looks healthy.")
            return
        for rank, rec in enumerate(recommendations, start=1):
            print(f"  {rank}. [{rec.impact.value}] {rec.title} (+{rec.score_boost})")
            print(f"     {rec.description} — {rec.action}, ~{rec.time_estimate}")

    asyncio.run(_run())


def handle_audit(args: argparse.Namespace) -> None:
    """Run (or reuse a cached) strategic audit."""
    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        result = await service.get_audit(vault_id, principal=args.user, force_refresh=args.force)
        print(f"\nStrength: {result.vault_strength_before} → {result.vault_strength_after} (potential)")
        if not result.success:
            print(f"Audit analysis unavailable: {result.error}")
        if result.executive_summary:
            print(f"\n{result.executive_summary}")
        if result.strategic_gaps:
            print("\nStrategic gaps:")
            for gap in result.strategic_gaps:
                print(f"  - [{gap.gap_type}] {gap.description}")
        if result.smart_questions:
            print("\nQuestions to answer:")
            for q in result.smart_questions:
                print(f"  - ({q.target_category}) {q.question}")
        if result.recommendations:
            print("\nRecommendations:")
            for rec in result.recommendations:
                print(f"  - [{rec.impact.value}] {rec.title} (+{rec.score_boost})")

    asyncio.run(_run())


def handle_match(args: argparse.Namespace) -> None:
    """Rank vault items against one requirement and optionally export."""
    from career_vault.export import CSVExporter, MarkdownExporter
    from career_vault.text import slugify

    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        report = await service.match_requirement(
            vault_id,
            args.requirement,
            principal=args.user,
            categories=args.category,
            top_n=args.top,
        )
        print(f"\nMatch strength: {report.strength}/100")
        print(
            f"Must include: {len(report.must_include)} | "
            f"Strongly recommended: {len(report.strongly_recommended)} | "
            f"Consider: {len(report.consider)}\n"
        )
        for rank, match in enumerate(report.matches, start=1):
            print(
                f"  {rank:>2}. [{match.quality_tier.value:<7}] "
                f"fresh {match.freshness_score:>3}  match {match.match_score:>3}  {match.content}"
            )

        if args.export:
            out_dir = Path(service.settings.output.output_dir)
            stem = f"match-{slugify(args.requirement, max_len=40)}"
            if args.export == "csv":
                path = CSVExporter().export_matches(report, out_dir / f"{stem}.csv")
            else:
                path = MarkdownExporter().export_matches(report, out_dir / f"{stem}.md")
            print(f"\nExported matches → {path}")

    asyncio.run(_run())


def handle_refresh(args: argparse.Namespace) -> None:
    """Re-derive tiers and freshness for every item."""
    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        result = await service.refresh_scores(vault_id, principal=args.user)
        print(
            f"Refreshed {result.total_items} item(s): {result.tiers_changed} tier change(s), "
            f"{result.freshness_changed} freshness change(s). Strength now {result.strength}/100"
        )

    asyncio.run(_run())


def handle_consolidate(args: argparse.Namespace) -> None:
    """Merge exact-duplicate items."""
    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        removed = await service.consolidate_duplicates(vault_id, principal=args.user)
        print(f"Removed {len(removed)} duplicate item(s)")

    asyncio.run(_run())


def handle_reconcile(args: argparse.Namespace) -> None:
    """Compare stored counts to live rows, optionally repairing them."""
    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        report = await service.reconcile_counts(vault_id, principal=args.user, repair=args.repair)
        if report.consistent:
            print("Counts are consistent.")
            return
        for category, (stored, live) in report.mismatches.items():
            print(f"  {category.value:<24} stored={stored} live={live}")
        if report.repaired:
            print("Counts repaired from live rows.")
        else:
            print("Run with --repair to rewrite the stored counts.")
            sys.exit(1)

    asyncio.run(_run())


def handle_export(args: argparse.Namespace) -> None:
    """Export the vault, filtered by category and tier, to the output directory."""
    from career_vault.text import slugify

    service = _build_service()

    async def _run() -> None:
        vault_id = await _require_vault_id(service, args.user)
        suffix = "csv" if args.format == "csv" else "md"
        out_dir = Path(service.settings.output.output_dir)
        path = service.export_vault(
            vault_id,
            out_dir / f"vault-{slugify(args.user)}.{suffix}",
            principal=args.user,
            fmt=args.format,
            categories=args.category,
            tiers=args.tier,
        )
        print(f"Exported vault → {path}")

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="career-vault",
        description="Classify, score and rank career vault items",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Also write a timestamped log file under DIR",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def _with_user(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
        p.add_argument("--user", type=str, required=True, help="Acting user (vault owner)")
        return p

    # -- show ----------------------------------------------------------------
    _with_user(sub.add_parser("show", help="Show vault strength and item counts"))

    # -- add -----------------------------------------------------------------
    add_p = _with_user(sub.add_parser("add", help="Add an item you wrote yourself (gold tier)"))
    add_p.add_argument("--category", choices=_CATEGORY_CHOICES, required=True)
    add_p.add_argument("--content", type=str, required=True, help="Item text")

    # -- ingest --------------------------------------------------------------
    ingest_p = _with_user(sub.add_parser("ingest", help="Bulk-ingest extracted items from JSON"))
    ingest_p.add_argument("--file", type=str, required=True, help="JSON array of item objects")

    # -- answer --------------------------------------------------------------
    answer_p = _with_user(sub.add_parser("answer", help="Answer an audit question"))
    answer_p.add_argument(
        "--target",
        type=str,
        required=True,
        help="Target category or table name from the audit question",
    )
    answer_p.add_argument("--text", type=str, required=True, help="Your answer")

    # -- recommend -----------------------------------------------------------
    _with_user(sub.add_parser("recommend", help="List prioritised recommendations"))

    # -- audit ---------------------------------------------------------------
    audit_p = _with_user(sub.add_parser("audit", help="Run the strategic audit"))
    audit_p.add_argument("--force", action="store_true", help="Bypass the audit cache")

    # -- match ---------------------------------------------------------------
    match_p = _with_user(sub.add_parser("match", help="Rank items against a requirement"))
    match_p.add_argument("--requirement", type=str, required=True, help="Requirement text")
    match_p.add_argument("--top", type=int, default=None, metavar="N", help="Keep the top N")
    match_p.add_argument(
        "--category",
        choices=_CATEGORY_CHOICES,
        action="append",
        default=None,
        help="Restrict to a category (repeatable)",
    )
    match_p.add_argument(
        "--export",
        choices=["csv", "markdown"],
        default=None,
        help="Also export the ranked matches",
    )

    # -- refresh -------------------------------------------------------------
    _with_user(sub.add_parser("refresh", help="Re-derive tiers and freshness"))

    # -- consolidate ---------------------------------------------------------
    _with_user(sub.add_parser("consolidate", help="Merge duplicate items"))

    # -- reconcile -----------------------------------------------------------
    reconcile_p = _with_user(sub.add_parser("reconcile", help="Check stored counts against live rows"))
    reconcile_p.add_argument("--repair", action="store_true", help="Rewrite mismatched counts")

    # -- export --------------------------------------------------------------
    export_p = _with_user(sub.add_parser("export", help="Export the vault"))
    export_p.add_argument(
        "--format",
        choices=["csv", "markdown"],
        default="csv",
        help="Output format (default: csv)",
    )
    export_p.add_argument(
        "--category",
        choices=_CATEGORY_CHOICES,
        action="append",
        default=None,
        help="Restrict to a category (repeatable)",
    )
    export_p.add_argument(
        "--tier",
        choices=_TIER_CHOICES,
        action="append",
        default=None,
        help="Restrict to a quality tier (repeatable)",
    )

    return parser


HANDLERS = {
    "show": handle_show,
    "add": handle_add,
    "ingest": handle_ingest,
    "answer": handle_answer,
    "recommend": handle_recommend,
    "audit": handle_audit,
    "match": handle_match,
    "refresh": handle_refresh,
    "consolidate": handle_consolidate,
    "reconcile": handle_reconcile,
    "export": handle_export,
}
