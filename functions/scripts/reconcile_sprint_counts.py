"""
Recompute denormalized project sprint counts from the sprints collection.

Runs once with --once, otherwise loops forever on an interval.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pokerboard.config import get_settings
from pokerboard.reconciler import SYNC_FAILED, reconcile_owners, run_loop

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile project sprint counts")
    parser.add_argument(
        "-o",
        "--owner",
        action="append",
        dest="owners",
        default=None,
        help=(
            "Owner id to reconcile (repeatable, defaults to the"
            " comma-separated RECONCILE_OWNER_IDS)"
        ),
    )
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=None,
        help="Seconds between runs",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=60,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation and exit",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    owners = args.owners or settings.reconcile_owner_ids
    if not owners:
        logger.error(
            "No owners given; pass --owner or set RECONCILE_OWNER_IDS"
            " (e.g. owner-1,owner-2)"
        )
        return 2

    if args.once:
        results = reconcile_owners(owners)
        return 1 if SYNC_FAILED in results.values() else 0

    run_loop(
        owners,
        interval_seconds=args.interval_seconds or settings.reconcile_interval_seconds,
        jitter_seconds=args.jitter_seconds,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
