# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for the planning-poker backend - sprint count maintenance.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
from typing import Dict

# Third-party library imports
from firebase_functions import https_fn, logger, options, scheduler_fn

# Local application imports
from pokerboard.config import get_settings
from pokerboard.dependencies import get_project_repository
from pokerboard.errors import SyncFailure
from pokerboard.reconciler import reconcile_owners

SCHEDULED_SYNC_TIMEOUT = 540


def sync_owner_sprint_counts(owner_id: str) -> Dict[str, int]:
    """
    Recomputes the sprint counts of every project owned by ``owner_id``.

    Args:
        owner_id (str): The authenticated user's uid.

    Returns:
        A dictionary with the number of corrected projects.
    """
    corrected = get_project_repository().sync_project_sprint_counts(owner_id)
    logger.info(f"Synced sprint counts for {owner_id}: {corrected} corrected")
    return {"corrected": corrected}


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def sync_project_sprint_counts(req: https_fn.CallableRequest) -> dict:
    """
    Callable wrapper around the reconciliation routine, scoped to the caller.
    """
    if req.auth is None:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "Must be signed in to sync sprint counts.",
        )

    try:
        return sync_owner_sprint_counts(req.auth.uid)
    except SyncFailure as e:
        raise https_fn.HttpsError(https_fn.FunctionsErrorCode.INTERNAL, str(e))


def reconcile_configured_owners() -> Dict[str, int]:
    """
    Reconciles the owners listed in RECONCILE_OWNER_IDS.

    Returns:
        Corrected project count per owner; empty when no owners are configured.
    """
    owner_ids = get_settings().reconcile_owner_ids
    if not owner_ids:
        logger.warn("No owners configured for scheduled sprint count sync")
        return {}
    results = reconcile_owners(owner_ids, get_project_repository())
    logger.info(f"Scheduled sprint count sync finished: {results}")
    return results


@scheduler_fn.on_schedule(
    schedule="every 30 minutes",
    timeout_sec=SCHEDULED_SYNC_TIMEOUT,
    memory=options.MemoryOption.MB_256,
)
def scheduled_sprint_count_sync(event: scheduler_fn.ScheduledEvent) -> None:
    reconcile_configured_owners()
