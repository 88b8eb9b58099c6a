"""Command-line interface for civicwatch batch operations."""

import argparse
import logging
import sys
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import ConfigManager
from .deduplication import DuplicateDetector, ReconciliationMerger
from .errors import CivicWatchError
from .logging_config import setup_logging
from .models import Config
from .moderation import ModerationPipeline, ReviewApplier
from .repositories import SQLiteStore
from .scoring import ProminenceScorer, PublicationStatusEngine
from .security.audit import AuditLogger

logger = logging.getLogger(__name__)
console = Console()


def _load_config(args) -> Config:
    config = ConfigManager(args.config).load()
    if args.db:
        config.database.path = args.db
    if args.log_level:
        config.logging.level = args.log_level
    if args.log_format:
        config.logging.format = args.log_format
    return config


def _dry_run(args, config: Config) -> bool:
    return bool(getattr(args, "dry_run", False) or config.dry_run)


def _print_errors(errors) -> None:
    if not errors:
        return
    table = Table(title=f"Errors ({len(errors)})", show_lines=False)
    table.add_column("Item", style="cyan")
    table.add_column("Type", style="red")
    table.add_column("Message")
    for error in errors[:50]:
        table.add_row(error.item_id, error.error_type, error.message)
    console.print(table)


def moderate(args, config: Config, store: SQLiteStore, audit: AuditLogger) -> int:
    """Run the full moderation pipeline, or show review statistics."""
    if args.stats:
        detector = DuplicateDetector(store, config.deduplication, audit_logger=audit)
        pending = store.list_pending_reviews()
        table = Table(title="Moderation statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Affairs awaiting classification", str(len(store.list_affairs_awaiting_moderation())))
        table.add_row("Pending reviews", str(len(pending)))
        for recommendation in sorted({r.recommendation.value for r in pending}):
            count = sum(1 for r in pending if r.recommendation.value == recommendation)
            table.add_row(f"  {recommendation}", str(count))
        for key, value in detector.get_reconciliation_stats().items():
            table.add_row(key.replace("_", " ").capitalize(), str(value))
        console.print(table)
        return 0

    dry_run = _dry_run(args, config)
    if dry_run:
        console.print("🔍 [yellow]DRY RUN MODE - nothing will be written[/yellow]")

    pipeline = ModerationPipeline(store, config, audit_logger=audit)
    stats = pipeline.run_moderation_pass(
        dry_run=dry_run,
        limit=args.limit,
        skip_dedup=args.skip_dedup,
        skip_enrichment=args.skip_enrich,
    )

    if stats.disabled:
        console.print("[yellow]Moderation is disabled in configuration[/yellow]")
        return 0

    table = Table(title="Moderation summary")
    table.add_column("Phase", style="cyan")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    if stats.dedup:
        table.add_row("Duplicates", "Candidate pairs", str(stats.dedup.candidates))
        table.add_row("", "Auto-merged", str(stats.dedup.auto_merged))
        table.add_row("", "Flagged for review", str(stats.dedup.flagged_for_review))
        table.add_row("", "Already flagged", str(stats.dedup.already_flagged))
    if dry_run:
        table.add_row("Classification", "Would classify", str(stats.would_classify))
    else:
        table.add_row("Classification", "Classified", str(stats.classified))
        for recommendation, count in stats.recommendations.items():
            table.add_row("", recommendation, str(count))
        table.add_row("", "Sensitive overrides", str(stats.sensitive_overrides))
    if stats.enrichment_skipped:
        table.add_row("Enrichment", f"Skipped ({stats.enrichment_skipped})", str(stats.enrichment_candidates))
    else:
        table.add_row("Enrichment", "Processed", str(stats.enrichment_processed))
        table.add_row("", "Enriched", str(stats.enriched))
        table.add_row("", "Not enriched", str(stats.not_enriched))
    console.print(table)

    _print_errors((stats.dedup.errors if stats.dedup else []) + stats.errors)
    return 1 if stats.total_errors else 0


def dedupe(args, config: Config, store: SQLiteStore, audit: AuditLogger) -> int:
    """Run duplicate detection on its own."""
    dry_run = _dry_run(args, config)
    detector = DuplicateDetector(store, config.deduplication, audit_logger=audit)
    stats = detector.run_duplicate_detection_pass(dry_run=dry_run, limit=args.limit)

    table = Table(title="Duplicate detection" + (" (dry run)" if dry_run else ""))
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Candidate pairs", str(stats.candidates))
    for tier, count in sorted(stats.tier_distribution.items()):
        table.add_row(f"  {tier}", str(count))
    table.add_row("Auto-merged", str(stats.auto_merged))
    table.add_row("Flagged for review", str(stats.flagged_for_review))
    table.add_row("Already flagged", str(stats.already_flagged))
    table.add_row("Skipped", str(stats.skipped))
    console.print(table)

    _print_errors(stats.errors)
    return 1 if stats.errors else 0


def enrich(args, config: Config, store: SQLiteStore, audit: AuditLogger) -> int:
    """Enrich a single affair from web sources."""
    dry_run = _dry_run(args, config)
    pipeline = ModerationPipeline(store, config, audit_logger=audit)
    agent = pipeline.get_enrichment_agent()
    if agent is None:
        console.print("[red]BRAVE_API_KEY is not configured[/red]")
        return 1

    outcome = agent.enrich_affair(args.affair_id, dry_run=dry_run)
    label = "[green]enriched[/green]" if outcome.enriched else "[yellow]not enriched[/yellow]"
    console.print(f"{args.affair_id}: {label} ({outcome.sources_added} sources added)")
    for change in outcome.changes:
        console.print(f"  • {change}")
    if outcome.reasoning:
        console.print(f"[dim]{outcome.reasoning}[/dim]")
    if outcome.error:
        _print_errors([outcome.error])
        return 1
    return 0


def prominence(args, config: Config, store: SQLiteStore, audit: AuditLogger) -> int:
    """Recompute prominence scores."""
    stats = ProminenceScorer().run_prominence_pass(
        store, dry_run=_dry_run(args, config), limit=args.limit
    )
    table = Table(title="Prominence" + (" (dry run)" if stats.dry_run else ""))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Entities", str(stats.total))
    table.add_row("Updated", str(stats.updated))
    table.add_row("Max score", str(stats.max_score))
    table.add_row("Average score", f"{stats.average_score:.1f}")
    console.print(table)
    return 0


def status(args, config: Config, store: SQLiteStore, audit: AuditLogger) -> int:
    """Recompute entity publication statuses."""
    engine = PublicationStatusEngine(store, config.status_rules, audit_logger=audit)
    stats = engine.run(dry_run=_dry_run(args, config), limit=args.limit)

    table = Table(title="Publication status" + (" (dry run)" if stats.dry_run else ""))
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Entities", str(stats.total))
    table.add_row("Unchanged", str(stats.unchanged))
    table.add_row("Overridden", str(stats.skipped_override))
    for target, count in stats.changes.items():
        table.add_row(f"→ {target.value}", str(count))
    console.print(table)

    if stats.samples:
        samples = Table(title="Sample changes")
        samples.add_column("Entity")
        samples.add_column("Before")
        samples.add_column("After", style="green")
        for change in stats.samples:
            samples.add_row(change.full_name, change.before.value, change.after.value)
        console.print(samples)
    return 0


def apply_review(args, config: Config, store: SQLiteStore, audit: AuditLogger) -> int:
    """Apply a pending review."""
    affair = ReviewApplier(store, audit_logger=audit).apply(args.review_id, applied_by=args.by)
    console.print(
        f"✅ Review {args.review_id} applied: \"{affair.title}\" is {affair.publication_status.value}"
    )
    return 0


def dismiss_review(args, config: Config, store: SQLiteStore, audit: AuditLogger) -> int:
    """Dismiss a pending review."""
    ReviewApplier(store, ReconciliationMerger(store, audit), audit).dismiss(
        args.review_id, applied_by=args.by
    )
    console.print(f"🚫 Review {args.review_id} dismissed")
    return 0


def generate_config(args) -> int:
    """Write a configuration template."""
    ConfigManager().save_template(args.output)
    console.print(f"💾 Configuration template saved to: {args.output}")
    return 0


COMMANDS = {
    "moderate": moderate,
    "dedupe": dedupe,
    "enrich": enrich,
    "prominence": prominence,
    "status": status,
    "apply": apply_review,
    "dismiss": dismiss_review,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="civicwatch",
        description="CivicWatch - moderation, deduplication and scoring of public-figure affairs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview the whole moderation pipeline
  civicwatch moderate --dry-run

  # Classify at most 20 affairs, without web enrichment
  civicwatch moderate --limit 20 --skip-enrich

  # Apply a review after checking it
  civicwatch apply 3f2a... --by alice
""",
    )
    parser.add_argument("-c", "--config", help="Path to configuration file")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", choices=["text", "json"])

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    moderate_parser = subparsers.add_parser("moderate", help="Run dedup, classification and enrichment")
    moderate_parser.add_argument("--dry-run", action="store_true", help="Preview without making changes")
    moderate_parser.add_argument("--limit", type=int, help="Maximum affairs to process")
    moderate_parser.add_argument("--skip-dedup", action="store_true", help="Skip duplicate detection")
    moderate_parser.add_argument("--skip-enrich", action="store_true", help="Skip web enrichment")
    moderate_parser.add_argument("--stats", action="store_true", help="Show statistics and exit")

    dedupe_parser = subparsers.add_parser("dedupe", help="Detect and merge duplicate affairs")
    dedupe_parser.add_argument("--dry-run", action="store_true", help="Preview without making changes")
    dedupe_parser.add_argument("--limit", type=int, help="Maximum candidate pairs to handle")

    enrich_parser = subparsers.add_parser("enrich", help="Enrich one affair from web sources")
    enrich_parser.add_argument("affair_id", help="Affair id")
    enrich_parser.add_argument("--dry-run", action="store_true", help="Preview without making changes")

    for name, help_text in (
        ("prominence", "Recompute prominence scores"),
        ("status", "Recompute publication statuses"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--dry-run", action="store_true", help="Preview without making changes")
        sub.add_argument("--limit", type=int, help="Maximum entities to process")

    for name, help_text in (
        ("apply", "Apply a pending review"),
        ("dismiss", "Dismiss a pending review"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("review_id", help="Review id")
        sub.add_argument("--by", default="admin", help="Who is acting")

    config_parser = subparsers.add_parser("generate-config", help="Write a configuration template")
    config_parser.add_argument("-o", "--output", default="civicwatch.json", help="Output path")

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "generate-config":
        return generate_config(args)

    try:
        config = _load_config(args)
        setup_logging(config.logging.format, config.logging.level, config.logging.file)
        audit = AuditLogger()
        store = SQLiteStore(config.database.path)
        try:
            return COMMANDS[args.command](args, config, store, audit)
        finally:
            store.close()
    except KeyboardInterrupt:
        console.print("\n⚠️  Interrupted by user")
        return 1
    except CivicWatchError as e:
        console.print(f"\n❌ [red]{e.__class__.__name__}: {e.message}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
