#!/usr/bin/env python3
"""
Scheduled snapshot computation.

Computes the previous completed week or month for every entity with staged
raw metrics, or backfills consecutive periods for one entity. Meant to be
run from cron.

Usage:
    python scripts/compute_snapshots.py --granularity week
    python scripts/compute_snapshots.py --granularity month --force
    python scripts/compute_snapshots.py --period-start 2026-10-05 --period-end 2026-10-11
    python scripts/compute_snapshots.py --backfill store-1 --periods 26
    python scripts/compute_snapshots.py --preset growth_engine
"""

import argparse
import json
import sys
from datetime import date
from pathlib import Path

import structlog

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from storeindex.config import get_settings
from storeindex.engine.defaults import load_index_config
from storeindex.engine.snapshot_service import SnapshotService
from storeindex.errors import ConfigurationError
from storeindex.models.enums import ComputeStatus, Granularity
from storeindex.sources.staged import StagedMetricSource
from storeindex.storage.duckdb_storage import DuckDBStorage
from storeindex.utils.logging import configure_logging

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute store health index snapshots for the previous completed period"
    )
    parser.add_argument(
        "--granularity",
        type=str,
        choices=[g.value for g in Granularity],
        default=Granularity.WEEK.value,
        help="Period unit (default: week)",
    )
    parser.add_argument(
        "--period-start",
        type=date.fromisoformat,
        default=None,
        help="First day of an explicit period (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--period-end",
        type=date.fromisoformat,
        default=None,
        help="Last day of an explicit period (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Recompute and replace existing snapshots",
    )
    parser.add_argument(
        "--backfill",
        type=str,
        metavar="ENTITY_ID",
        default=None,
        help="Backfill consecutive periods for one entity instead of a batch run",
    )
    parser.add_argument(
        "--periods",
        type=int,
        default=12,
        help="Number of periods to backfill (default: 12)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Engine configuration JSON (default: INDEX_CONFIG_PATH or builtin)",
    )
    parser.add_argument(
        "--preset",
        type=str,
        choices=["store_index", "growth_engine"],
        default=None,
        help="Built-in configuration when no --config is given (default: INDEX_PRESET)",
    )
    return parser


def main(argv=None) -> int:
    """Main entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging()
    settings = get_settings()
    granularity = Granularity(args.granularity)

    if (args.period_start is None) != (args.period_end is None):
        logger.error("period_bounds_incomplete")
        return 2
    if granularity == Granularity.CUSTOM and args.period_start is None and not args.backfill:
        logger.error("custom_period_requires_bounds")
        return 2

    try:
        config = load_index_config(
            args.config or settings.index_config_path,
            preset=args.preset or settings.index_preset,
        )
    except ConfigurationError as e:
        logger.error("configuration_invalid", error=str(e))
        return 2

    storage = DuckDBStorage(db_path=settings.db_path)
    service = SnapshotService(
        config=config,
        repository=storage,
        source=StagedMetricSource(storage),
        max_workers=settings.batch_max_workers,
    )

    try:
        if args.backfill:
            statuses = service.backfill(
                args.backfill, granularity, args.periods, force=args.force
            )
        else:
            statuses = service.compute_all(
                granularity,
                force=args.force,
                period_start=args.period_start,
                period_end=args.period_end,
            )
    except ValueError as e:
        logger.error("run_rejected", error=str(e))
        return 2

    print(json.dumps([s.model_dump(mode="json") for s in statuses], indent=2))

    failed = [s for s in statuses if s.status == ComputeStatus.ERROR]
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
