"""
Project data access for Firestore and an in-memory test implementation.

Projects carry a denormalized ``sprintsCount``. It is a best-effort cache of
the number of sprint documents pointing at the project and can drift;
``sync_project_sprint_counts`` recomputes it from the ``sprints`` collection
and writes every correction in one batch.
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
import threading
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from dacite import Config, from_dict
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Client, Query
from google.cloud.firestore_v1.base_query import FieldFilter

from pokerboard.errors import (
    CreationFailure,
    DeletionFailure,
    FetchFailure,
    RepositoryError,
    SyncFailure,
    UpdateFailure,
)
from shared.firebase_constants import (
    MAX_IN_FILTER_VALUES,
    PROJECTS_COLLECTION,
    SPRINTS_COLLECTION,
)
from shared.json_utils import convert_keys
from shared.types import Project, ProjectFields, Sprint, SprintStatus
from shared.utils import get_unique_id

logger = logging.getLogger(__name__)

PROJECT_ID_PREFIX = "proj"

# Set once at creation and never rewritten by updates.
PROTECTED_PROJECT_FIELDS = frozenset({"id", "owner_id", "created_at"})

# Errors the Firestore SDK raises for transport failures and rejected input.
FIRESTORE_ERRORS = (google_exceptions.GoogleAPIError, ValueError, TypeError)

ProjectsCallback = Callable[[List[Project]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class ProjectRepository(Protocol):
    """Interface for project access."""

    def create_project(self, fields: ProjectFields, owner_id: str) -> str:
        ...

    def get_projects_by_owner(self, owner_id: str) -> List[Project]:
        ...

    def get_project(self, project_id: str) -> Optional[Project]:
        ...

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> None:
        ...

    def delete_project(self, project_id: str) -> None:
        ...

    def subscribe_to_user_projects(
        self,
        owner_id: str,
        callback: ProjectsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        ...

    def increment_project_sprint_count(self, project_id: str) -> None:
        ...

    def get_actual_project_sprint_count(self, project_id: str) -> int:
        ...

    def get_active_sprints_count(self, owner_id: str) -> int:
        ...

    def sync_project_sprint_counts(self, owner_id: str) -> int:
        ...


def _as_datetime(value: Any) -> datetime:
    # Firestore returns DatetimeWithNanoseconds, a datetime subclass. A server
    # timestamp that has not resolved yet comes back empty.
    if isinstance(value, datetime):
        return value
    return datetime.now(timezone.utc)


def project_from_doc(data: Dict[str, Any]) -> Project:
    """Converts a camelCase project document into a Project."""
    fields = convert_keys(data, "camel_to_snake")
    fields["created_at"] = _as_datetime(fields.get("created_at"))
    fields["updated_at"] = _as_datetime(fields.get("updated_at"))
    fields["sprints_count"] = fields.get("sprints_count") or 0
    return from_dict(data_class=Project, data=fields, config=Config(check_types=False))


def sort_newest_first(projects: Iterable[Project]) -> List[Project]:
    return sorted(projects, key=lambda project: project.created_at, reverse=True)


def clean_updates(
    updates: Dict[str, Any], protected: frozenset = PROTECTED_PROJECT_FIELDS
) -> Dict[str, Any]:
    """
    Normalizes a partial update to snake_case keys.

    Drops None values and strips protected keys, which callers must never
    send; a protected key is logged rather than rejected.
    """
    cleaned: Dict[str, Any] = {}
    for key, value in convert_keys(updates, "camel_to_snake").items():
        if key in protected:
            logger.warning("Ignoring protected field %r in update", key)
            continue
        if value is None:
            continue
        cleaned[key] = value
    return cleaned


def _log_subscription_error(error: Exception) -> None:
    logger.error("Error in projects subscription: %s", error)


def _chunks(values: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


class FirestoreProjectRepository:
    """
    Firestore-backed implementation using the synchronous Python client.

    Every method blocks on its network call. Nothing here serializes
    concurrent callers, so writes from different clients interleave freely.
    """

    def __init__(
        self,
        client: Client,
        projects_collection: str = PROJECTS_COLLECTION,
        sprints_collection: str = SPRINTS_COLLECTION,
    ):
        self.client = client
        self.projects_collection = projects_collection
        self.sprints_collection = sprints_collection

    @property
    def _projects(self):
        return self.client.collection(self.projects_collection)

    @property
    def _sprints(self):
        return self.client.collection(self.sprints_collection)

    def _owner_query(self, owner_id: str):
        return self._projects.where(
            filter=FieldFilter("ownerId", "==", owner_id)
        ).order_by("createdAt", direction=Query.DESCENDING)

    def create_project(self, fields: ProjectFields, owner_id: str) -> str:
        project_id = get_unique_id(PROJECT_ID_PREFIX)
        doc_data = {
            "id": project_id,
            **convert_keys(asdict(fields), "snake_to_camel"),
            "ownerId": owner_id,
            "sprintsCount": 0,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        try:
            self._projects.document(project_id).set(doc_data)
        except FIRESTORE_ERRORS as e:
            logger.exception("Error creating project for owner %s", owner_id)
            raise CreationFailure("Failed to create project") from e
        logger.info("Created project %s for owner %s", project_id, owner_id)
        return project_id

    def get_projects_by_owner(self, owner_id: str) -> List[Project]:
        try:
            return [
                project_from_doc({"id": doc.id, **doc.to_dict()})
                for doc in self._owner_query(owner_id).stream()
            ]
        except FIRESTORE_ERRORS as e:
            logger.exception("Error fetching projects for owner %s", owner_id)
            raise FetchFailure("Failed to fetch projects") from e

    def get_project(self, project_id: str) -> Optional[Project]:
        try:
            snapshot = self._projects.document(project_id).get()
        except FIRESTORE_ERRORS as e:
            logger.exception("Error fetching project %s", project_id)
            raise FetchFailure("Failed to fetch project") from e
        if not snapshot.exists:
            return None
        return project_from_doc({"id": snapshot.id, **snapshot.to_dict()})

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> None:
        doc_data = convert_keys(clean_updates(updates), "snake_to_camel")
        doc_data["updatedAt"] = SERVER_TIMESTAMP
        try:
            self._projects.document(project_id).update(doc_data)
        except FIRESTORE_ERRORS as e:
            logger.exception("Error updating project %s", project_id)
            raise UpdateFailure("Failed to update project") from e

    def delete_project(self, project_id: str) -> None:
        # Sprints that point at this project are left in place.
        try:
            self._projects.document(project_id).delete()
        except FIRESTORE_ERRORS as e:
            logger.exception("Error deleting project %s", project_id)
            raise DeletionFailure("Failed to delete project") from e

    def subscribe_to_user_projects(
        self,
        owner_id: str,
        callback: ProjectsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """
        Calls ``callback`` with the owner's full project list on every change.

        The listener runs on the SDK's watch thread. Failures while handling a
        snapshot go to ``on_error`` and the listener stays registered until
        the returned function is called.
        """
        report_error = on_error or _log_subscription_error

        def on_snapshot(docs, changes, read_time):
            try:
                projects = sort_newest_first(
                    project_from_doc({"id": doc.id, **doc.to_dict()}) for doc in docs
                )
                callback(projects)
            except Exception as e:
                report_error(e)

        watch = self._owner_query(owner_id).on_snapshot(on_snapshot)
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

    def increment_project_sprint_count(self, project_id: str) -> None:
        """
        Adds one to the stored sprint count.

        This is a plain read followed by a write, not a transaction: two
        increments that both read before either writes lose one update.
        ``sync_project_sprint_counts`` repairs the result.
        """
        doc_ref = self._projects.document(project_id)
        try:
            snapshot = doc_ref.get()
            if not snapshot.exists:
                return
            current = (snapshot.to_dict() or {}).get("sprintsCount") or 0
            doc_ref.update(
                {"sprintsCount": current + 1, "updatedAt": SERVER_TIMESTAMP}
            )
        except FIRESTORE_ERRORS as e:
            logger.exception("Error incrementing sprint count for %s", project_id)
            raise UpdateFailure("Failed to update sprint count") from e

    def _count(self, query) -> int:
        results = query.count().get()
        return int(results[0][0].value)

    def _count_sprints(self, project_id: str) -> int:
        return self._count(
            self._sprints.where(filter=FieldFilter("projectId", "==", project_id))
        )

    def get_actual_project_sprint_count(self, project_id: str) -> int:
        """Returns the number of sprints for the project, or 0 if the query fails."""
        try:
            return self._count_sprints(project_id)
        except FIRESTORE_ERRORS:
            logger.exception("Error getting actual sprint count for %s", project_id)
            return 0

    def get_active_sprints_count(self, owner_id: str) -> int:
        """Returns the number of active sprints across the owner's projects, 0 on failure."""
        try:
            project_ids = [p.id for p in self.get_projects_by_owner(owner_id)]
            if not project_ids:
                return 0
            total = 0
            for chunk in _chunks(project_ids, MAX_IN_FILTER_VALUES):
                query = self._sprints.where(
                    filter=FieldFilter("projectId", "in", chunk)
                ).where(filter=FieldFilter("status", "==", SprintStatus.ACTIVE.value))
                total += self._count(query)
            return total
        except (RepositoryError, *FIRESTORE_ERRORS):
            logger.exception("Error getting active sprints count for %s", owner_id)
            return 0

    def sync_project_sprint_counts(self, owner_id: str) -> int:
        """
        Rewrites drifted sprint counts for all of the owner's projects.

        Counts are read one project at a time; the first failed read aborts
        the run before anything is written. Corrections are committed in a
        single batch, so either all of them land or none do.

        Returns:
            int: The number of projects whose count was corrected.
        """
        try:
            projects = self.get_projects_by_owner(owner_id)
            batch = self.client.batch()
            corrected = 0
            for project in projects:
                actual = self._count_sprints(project.id)
                if project.sprints_count != actual:
                    logger.info(
                        "Project %s sprint count %d -> %d",
                        project.id,
                        project.sprints_count,
                        actual,
                    )
                    batch.update(
                        self._projects.document(project.id),
                        {"sprintsCount": actual, "updatedAt": SERVER_TIMESTAMP},
                    )
                    corrected += 1
            if corrected:
                batch.commit()
        except (RepositoryError, *FIRESTORE_ERRORS) as e:
            logger.exception("Error syncing project sprint counts for %s", owner_id)
            raise SyncFailure("Failed to sync sprint counts") from e
        return corrected


class InMemoryProjectRepository:
    """
    Dictionary-backed repository for development and tests.

    The lock only covers single reads and writes, so a read-modify-write
    still races the same way it does against Firestore.
    """

    def __init__(self):
        self.projects: Dict[str, Project] = {}
        self.sprints: Dict[str, Sprint] = {}
        self.sprint_queries = 0
        self._lock = threading.RLock()
        self._listeners: Dict[int, tuple[str, ProjectsCallback, ErrorCallback]] = {}
        self._listener_ids = itertools.count()
        self._last_timestamp: Optional[datetime] = None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.projects.clear()
            self.sprints.clear()
            self._listeners.clear()
            self.sprint_queries = 0

    def _server_timestamp(self) -> datetime:
        # Strictly increasing, standing in for Firestore's commit time.
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _owner_projects(self, owner_id: str) -> List[Project]:
        return sort_newest_first(
            dataclasses.replace(p) for p in self.projects.values() if p.owner_id == owner_id
        )

    def _notify(self, *owner_ids: str) -> None:
        with self._lock:
            listeners = [
                (owner_id, callback, on_error)
                for owner_id, callback, on_error in self._listeners.values()
                if owner_id in owner_ids
            ]
        for owner_id, callback, on_error in listeners:
            self._deliver(owner_id, callback, on_error)

    def _deliver(
        self, owner_id: str, callback: ProjectsCallback, on_error: ErrorCallback
    ) -> None:
        try:
            with self._lock:
                projects = self._owner_projects(owner_id)
            callback(projects)
        except Exception as e:
            on_error(e)

    def _load_project(self, project_id: str) -> Optional[Project]:
        with self._lock:
            project = self.projects.get(project_id)
            return dataclasses.replace(project) if project else None

    def _write_fields(self, project_id: str, fields: Dict[str, Any]) -> str:
        with self._lock:
            project = self.projects.get(project_id)
            if project is None:
                raise KeyError(project_id)
            self.projects[project_id] = dataclasses.replace(
                project, **{**fields, "updated_at": self._server_timestamp()}
            )
            return project.owner_id

    def add_sprint(self, sprint: Sprint) -> None:
        """Stores a sprint; the project's sprint count is left untouched."""
        with self._lock:
            self.sprints[sprint.id] = sprint

    def create_project(self, fields: ProjectFields, owner_id: str) -> str:
        project_id = get_unique_id(PROJECT_ID_PREFIX)
        with self._lock:
            now = self._server_timestamp()
            self.projects[project_id] = Project(
                id=project_id,
                owner_id=owner_id,
                created_at=now,
                updated_at=now,
                sprints_count=0,
                **asdict(fields),
            )
        self._notify(owner_id)
        return project_id

    def get_projects_by_owner(self, owner_id: str) -> List[Project]:
        with self._lock:
            return self._owner_projects(owner_id)

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._load_project(project_id)

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> None:
        try:
            owner_id = self._write_fields(project_id, clean_updates(updates))
        except (KeyError, TypeError) as e:
            logger.error("Error updating project %s: %r", project_id, e)
            raise UpdateFailure("Failed to update project") from e
        self._notify(owner_id)

    def delete_project(self, project_id: str) -> None:
        with self._lock:
            project = self.projects.pop(project_id, None)
        if project is not None:
            self._notify(project.owner_id)

    def subscribe_to_user_projects(
        self,
        owner_id: str,
        callback: ProjectsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        report_error = on_error or _log_subscription_error
        with self._lock:
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = (owner_id, callback, report_error)
        self._deliver(owner_id, callback, report_error)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return unsubscribe

    def increment_project_sprint_count(self, project_id: str) -> None:
        project = self._load_project(project_id)
        if project is None:
            return
        current = project.sprints_count or 0
        try:
            owner_id = self._write_fields(project_id, {"sprints_count": current + 1})
        except KeyError as e:
            logger.error("Error incrementing sprint count for %s: %r", project_id, e)
            raise UpdateFailure("Failed to update sprint count") from e
        self._notify(owner_id)

    def _count_sprints(self, project_id: str) -> int:
        with self._lock:
            self.sprint_queries += 1
            return sum(1 for s in self.sprints.values() if s.project_id == project_id)

    def get_actual_project_sprint_count(self, project_id: str) -> int:
        return self._count_sprints(project_id)

    def get_active_sprints_count(self, owner_id: str) -> int:
        project_ids = {p.id for p in self.get_projects_by_owner(owner_id)}
        if not project_ids:
            return 0
        with self._lock:
            self.sprint_queries += 1
            return sum(
                1
                for s in self.sprints.values()
                if s.project_id in project_ids and s.status == SprintStatus.ACTIVE
            )

    def sync_project_sprint_counts(self, owner_id: str) -> int:
        try:
            corrections = {}
            for project in self.get_projects_by_owner(owner_id):
                actual = self._count_sprints(project.id)
                if project.sprints_count != actual:
                    corrections[project.id] = actual
            with self._lock:
                missing = [pid for pid in corrections if pid not in self.projects]
                if missing:
                    raise KeyError(missing[0])
                for project_id, actual in corrections.items():
                    self._write_fields(project_id, {"sprints_count": actual})
        except KeyError as e:
            logger.error("Error syncing project sprint counts for %s: %r", owner_id, e)
            raise SyncFailure("Failed to sync sprint counts") from e
        if corrections:
            self._notify(owner_id)
        return len(corrections)
