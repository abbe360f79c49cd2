"""
Epic data access for Firestore and an in-memory test implementation.
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
import threading
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from dacite import Config, from_dict
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Client, Query
from google.cloud.firestore_v1.base_query import FieldFilter

from pokerboard.db import (
    FIRESTORE_ERRORS,
    ErrorCallback,
    Unsubscribe,
    clean_updates,
)
from pokerboard.errors import (
    CreationFailure,
    DeletionFailure,
    FetchFailure,
    UpdateFailure,
)
from shared.firebase_constants import EPICS_COLLECTION
from shared.json_utils import convert_keys
from shared.types import Epic, EpicFields, EpicStatus
from shared.utils import get_unique_id

logger = logging.getLogger(__name__)

EPIC_ID_PREFIX = "epic"

PROTECTED_EPIC_FIELDS = frozenset({"id", "project_id", "owner_id", "created_at"})

EpicsCallback = Callable[[List[Epic]], None]


class EpicRepository(Protocol):
    """Interface for epic access."""

    def create_epic(self, fields: EpicFields) -> str:
        ...

    def get_epics_by_project(self, project_id: str) -> List[Epic]:
        ...

    def get_epic(self, epic_id: str) -> Optional[Epic]:
        ...

    def update_epic(self, epic_id: str, updates: Dict[str, Any]) -> None:
        ...

    def delete_epic(self, epic_id: str) -> None:
        ...

    def update_epic_story_counts(
        self,
        epic_id: str,
        total_stories: int,
        backlog_stories: int,
        in_progress_stories: int,
        completed_stories: int,
    ) -> EpicStatus:
        ...

    def subscribe_to_project_epics(
        self,
        project_id: str,
        callback: EpicsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        ...


def determine_epic_status(
    total_stories: int,
    backlog_stories: int,
    in_progress_stories: int,
    completed_stories: int,
) -> EpicStatus:
    """Derives an epic's status from the statuses of its stories."""
    if total_stories == 0 or backlog_stories == total_stories:
        return EpicStatus.PLANNING
    if in_progress_stories > 0 or completed_stories > 0:
        return EpicStatus.ACTIVE
    return EpicStatus.PLANNING


def story_count_updates(
    total_stories: int,
    backlog_stories: int,
    in_progress_stories: int,
    completed_stories: int,
) -> Dict[str, Any]:
    status = determine_epic_status(
        total_stories, backlog_stories, in_progress_stories, completed_stories
    )
    return {
        "story_count": total_stories,
        "completed_story_count": completed_stories,
        "status": status,
    }


def epic_from_doc(data: Dict[str, Any]) -> Epic:
    """Converts a camelCase epic document into an Epic."""
    fields = convert_keys(data, "camel_to_snake")
    now = datetime.now(timezone.utc)
    for key in ("created_at", "updated_at"):
        if not isinstance(fields.get(key), datetime):
            fields[key] = now
    if not isinstance(fields.get("target_date"), datetime):
        fields["target_date"] = None
    # Older epics were stored before acceptance criteria existed.
    fields["acceptance_criteria"] = fields.get("acceptance_criteria") or []
    return from_dict(data_class=Epic, data=fields, config=Config(check_types=False))


def sort_epics(epics: List[Epic]) -> List[Epic]:
    """Newest first, then by explicit order where both epics have one."""
    ordered = sorted(epics, key=lambda epic: epic.created_at, reverse=True)
    if all(epic.order is not None for epic in ordered):
        ordered.sort(key=lambda epic: epic.order)
    return ordered


def _log_subscription_error(error: Exception) -> None:
    logger.error("Error in epics subscription: %r", error)


class FirestoreEpicRepository:
    def __init__(self, client: Client, epics_collection: str = EPICS_COLLECTION):
        self.client = client
        self.epics_collection = epics_collection

    @property
    def _epics(self):
        return self.client.collection(self.epics_collection)

    def _project_query(self, project_id: str):
        return self._epics.where(
            filter=FieldFilter("projectId", "==", project_id)
        ).order_by("createdAt", direction=Query.DESCENDING)

    def create_epic(self, fields: EpicFields) -> str:
        epic_id = get_unique_id(EPIC_ID_PREFIX)
        doc_data = {
            "id": epic_id,
            **convert_keys(asdict(fields), "snake_to_camel"),
            "storyCount": 0,
            "completedStoryCount": 0,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        try:
            self._epics.document(epic_id).set(doc_data)
        except FIRESTORE_ERRORS as e:
            logger.exception("Error creating epic for project %s", fields.project_id)
            raise CreationFailure("Failed to create epic") from e
        return epic_id

    def get_epics_by_project(self, project_id: str) -> List[Epic]:
        query = self._project_query(project_id)
        try:
            epics = [epic_from_doc({"id": doc.id, **doc.to_dict()}) for doc in query.stream()]
        except FIRESTORE_ERRORS as e:
            logger.exception("Error fetching epics for project %s", project_id)
            raise FetchFailure("Failed to fetch epics") from e
        return sort_epics(epics)

    def get_epic(self, epic_id: str) -> Optional[Epic]:
        try:
            snapshot = self._epics.document(epic_id).get()
        except FIRESTORE_ERRORS as e:
            logger.exception("Error fetching epic %s", epic_id)
            raise FetchFailure("Failed to fetch epic") from e
        if not snapshot.exists:
            return None
        return epic_from_doc({"id": snapshot.id, **snapshot.to_dict()})

    def update_epic(self, epic_id: str, updates: Dict[str, Any]) -> None:
        doc_data = convert_keys(
            clean_updates(updates, PROTECTED_EPIC_FIELDS), "snake_to_camel"
        )
        doc_data["updatedAt"] = SERVER_TIMESTAMP
        try:
            self._epics.document(epic_id).update(doc_data)
        except FIRESTORE_ERRORS as e:
            logger.exception("Error updating epic %s", epic_id)
            raise UpdateFailure("Failed to update epic") from e

    def delete_epic(self, epic_id: str) -> None:
        try:
            self._epics.document(epic_id).delete()
        except FIRESTORE_ERRORS as e:
            logger.exception("Error deleting epic %s", epic_id)
            raise DeletionFailure("Failed to delete epic") from e

    def update_epic_story_counts(
        self,
        epic_id: str,
        total_stories: int,
        backlog_stories: int,
        in_progress_stories: int,
        completed_stories: int,
    ) -> EpicStatus:
        """Stores story totals on the epic and moves its status to match."""
        updates = story_count_updates(
            total_stories, backlog_stories, in_progress_stories, completed_stories
        )
        self.update_epic(epic_id, updates)
        return updates["status"]

    def subscribe_to_project_epics(
        self,
        project_id: str,
        callback: EpicsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """
        Calls ``callback`` with the project's sorted epics on every change.

        A document that cannot be converted is skipped with a warning so one
        bad epic does not hide the rest.
        """
        report_error = on_error or _log_subscription_error

        def on_snapshot(docs, changes, read_time):
            try:
                epics = []
                for doc in docs:
                    try:
                        epics.append(epic_from_doc({"id": doc.id, **doc.to_dict()}))
                    except Exception as e:
                        logger.warning("Skipping unreadable epic %s: %r", doc.id, e)
                callback(sort_epics(epics))
            except Exception as e:
                report_error(e)

        watch = self._project_query(project_id).on_snapshot(on_snapshot)
        lock = threading.Lock()
        active = True

        def unsubscribe() -> None:
            nonlocal active
            with lock:
                if not active:
                    return
                active = False
            watch.unsubscribe()

        return unsubscribe


class InMemoryEpicRepository:
    """Simple in-memory epic store for development and tests."""

    def __init__(self):
        self.epics: Dict[str, Epic] = {}
        self._lock = threading.RLock()
        self._listeners: Dict[int, tuple[str, EpicsCallback, ErrorCallback]] = {}
        self._listener_ids = itertools.count()
        self._last_timestamp: Optional[datetime] = None

    def reset(self) -> None:
        with self._lock:
            self.epics.clear()
            self._listeners.clear()

    def _server_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _notify(self, project_id: str) -> None:
        with self._lock:
            listeners = [
                (callback, on_error)
                for listened_id, callback, on_error in self._listeners.values()
                if listened_id == project_id
            ]
        for callback, on_error in listeners:
            self._deliver(project_id, callback, on_error)

    def _deliver(
        self, project_id: str, callback: EpicsCallback, on_error: ErrorCallback
    ) -> None:
        try:
            callback(self.get_epics_by_project(project_id))
        except Exception as e:
            on_error(e)

    def create_epic(self, fields: EpicFields) -> str:
        epic_id = get_unique_id(EPIC_ID_PREFIX)
        with self._lock:
            now = self._server_timestamp()
            self.epics[epic_id] = Epic(
                id=epic_id, created_at=now, updated_at=now, **asdict(fields)
            )
        self._notify(fields.project_id)
        return epic_id

    def get_epics_by_project(self, project_id: str) -> List[Epic]:
        with self._lock:
            epics = [
                dataclasses.replace(epic)
                for epic in self.epics.values()
                if epic.project_id == project_id
            ]
        return sort_epics(epics)

    def get_epic(self, epic_id: str) -> Optional[Epic]:
        with self._lock:
            epic = self.epics.get(epic_id)
            return dataclasses.replace(epic) if epic else None

    def update_epic(self, epic_id: str, updates: Dict[str, Any]) -> None:
        fields = clean_updates(updates, PROTECTED_EPIC_FIELDS)
        with self._lock:
            epic = self.epics.get(epic_id)
            try:
                if epic is None:
                    raise KeyError(epic_id)
                self.epics[epic_id] = dataclasses.replace(
                    epic, **{**fields, "updated_at": self._server_timestamp()}
                )
            except (KeyError, TypeError) as e:
                logger.error("Error updating epic %s: %r", epic_id, e)
                raise UpdateFailure("Failed to update epic") from e
        self._notify(epic.project_id)

    def delete_epic(self, epic_id: str) -> None:
        with self._lock:
            epic = self.epics.pop(epic_id, None)
        if epic is not None:
            self._notify(epic.project_id)

    def update_epic_story_counts(
        self,
        epic_id: str,
        total_stories: int,
        backlog_stories: int,
        in_progress_stories: int,
        completed_stories: int,
    ) -> EpicStatus:
        updates = story_count_updates(
            total_stories, backlog_stories, in_progress_stories, completed_stories
        )
        self.update_epic(epic_id, updates)
        return updates["status"]

    def subscribe_to_project_epics(
        self,
        project_id: str,
        callback: EpicsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        report_error = on_error or _log_subscription_error
        with self._lock:
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = (project_id, callback, report_error)
        self._deliver(project_id, callback, report_error)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return unsubscribe
