"""
Out-of-band repair of denormalized project sprint counts.

Runs ``sync_project_sprint_counts`` for a list of owners, either once or on
a fixed interval. Intended to be run under systemd/supervisor or cron.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Dict, Iterable, Optional

from pokerboard.db import ProjectRepository
from pokerboard.dependencies import get_project_repository
from pokerboard.errors import SyncFailure

logger = logging.getLogger(__name__)

# Recorded in place of a correction count for owners whose sync failed.
SYNC_FAILED = -1


def reconcile_owners(
    owner_ids: Iterable[str], repo: Optional[ProjectRepository] = None
) -> Dict[str, int]:
    """
    Reconcile each owner in turn. A failure for one owner is logged and the
    rest still run.

    Returns:
        Dict[str, int]: Corrected project count per owner, SYNC_FAILED on failure.
    """
    repo = repo or get_project_repository()
    results: Dict[str, int] = {}
    for owner_id in owner_ids:
        try:
            results[owner_id] = repo.sync_project_sprint_counts(owner_id)
        except SyncFailure:
            logger.exception("Sprint count sync failed for owner %s", owner_id)
            results[owner_id] = SYNC_FAILED
            continue
        logger.info(
            "Owner %s: corrected %d project sprint counts",
            owner_id,
            results[owner_id],
        )
    return results


def run_loop(
    owner_ids: Iterable[str],
    interval_seconds: float = 1800,
    jitter_seconds: float = 0,
    repo: Optional[ProjectRepository] = None,
) -> None:
    """
    Reconcile forever, sleeping ``interval_seconds`` plus jitter between runs.
    """
    owner_ids = list(owner_ids)
    repo = repo or get_project_repository()
    while True:
        reconcile_owners(owner_ids, repo)
        sleep_for = interval_seconds + random.uniform(0, jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        time.sleep(sleep_for)
