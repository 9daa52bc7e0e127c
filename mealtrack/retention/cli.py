# -*- coding: utf-8 -*-
"""
CLI for the photo retention jobs.

Usage:
    python -m mealtrack.retention.cli sweep [--dry-run] [--retention-days N] [--force]
    python -m mealtrack.retention.cli usage <user_id>
    python -m mealtrack.retention.cli tiers

``sweep`` is the scheduled job: an external timer runs it once a day at 02:00 UTC.
Its cutoff is relative to the time it runs, so a missed or repeated run is harmless.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from ..config import configure_logging, settings
from ..docstore import SqliteDocumentStore
from ..objects.storage import LocalObjectStore
from .analyzer import StorageUsageAnalyzer
from .policy import MAX_RETENTION_DAYS, resolve_policy, tier_names
from .sweeper import SCHEDULED_RETENTION_DAYS, RetentionSweeper

logger = logging.getLogger(__name__)


def _build_sweeper() -> RetentionSweeper:
    policy = resolve_policy(settings.storage_tier)
    documents = SqliteDocumentStore(settings.app_db_path)
    objects = LocalObjectStore(settings.objects_root, bucket=settings.bucket, base_url=settings.objects_base_url)
    return RetentionSweeper(documents, objects, batch_size=policy.cleanup_batch_size)


def cmd_sweep(args: argparse.Namespace) -> int:
    """Delete photos older than the retention window for every user."""
    policy = resolve_policy(settings.storage_tier)
    if not policy.enable_automatic_cleanup and not args.force:
        logger.info("automatic cleanup is disabled for tier %r; skipping (use --force to run anyway)", settings.storage_tier)
        return 0

    report = asyncio.run(
        _build_sweeper().sweep_all(retention_days=args.retention_days, dry_run=args.dry_run)
    )
    print(
        json.dumps(
            {
                "action": "dry-run" if args.dry_run else "cleanup-completed",
                "cutoffDate": report.cutoff.isoformat(),
                "usersScanned": report.users_scanned,
                "candidates": report.candidates,
                "deletedCount": report.deleted_count,
                "errorCount": report.error_count,
                "estimatedSpaceSaved": report.estimated_space_saved,
                "byStatus": report.by_status,
            }
        )
    )
    return 0


def cmd_usage(args: argparse.Namespace) -> int:
    """Print storage usage statistics for one user."""
    analyzer = StorageUsageAnalyzer(SqliteDocumentStore(settings.app_db_path))
    stats, recommendations = asyncio.run(analyzer.analyze(args.user_id))
    print(
        json.dumps(
            {"usage": stats.model_dump(mode="json", by_alias=True), "recommendations": recommendations},
            indent=2,
        )
    )
    return 0


def cmd_tiers(args: argparse.Namespace) -> int:  # noqa: ARG001
    """Print the available storage tiers."""
    print(json.dumps({name: resolve_policy(name).to_dict() for name in tier_names()}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mealtrack-retention", description="Meal photo retention jobs")
    parser.add_argument("--log-level", default=None, help="Override MEALTRACK_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p_sweep = sub.add_parser("sweep", help="Delete expired photos for all users")
    p_sweep.add_argument("--dry-run", action="store_true", help="Only count eligible photos")
    p_sweep.add_argument(
        "--retention-days",
        type=int,
        default=SCHEDULED_RETENTION_DAYS,
        help=f"Retention window in days (default: {SCHEDULED_RETENTION_DAYS})",
    )
    p_sweep.add_argument("--force", action="store_true", help="Run even if the tier disables automatic cleanup")
    p_sweep.set_defaults(func=cmd_sweep)

    p_usage = sub.add_parser("usage", help="Show storage usage for a user")
    p_usage.add_argument("user_id")
    p_usage.set_defaults(func=cmd_usage)

    p_tiers = sub.add_parser("tiers", help="List storage tiers")
    p_tiers.set_defaults(func=cmd_tiers)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    if not 0 <= getattr(args, "retention_days", 0) <= MAX_RETENTION_DAYS:
        print(f"Error: --retention-days must be between 0 and {MAX_RETENTION_DAYS}")
        return 2
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
