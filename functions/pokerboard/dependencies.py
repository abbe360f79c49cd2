"""
Dependency wiring for the FastAPI app and maintenance scripts.
"""

from __future__ import annotations

import firebase_admin
from firebase_admin import firestore
from google.cloud.firestore_v1 import Client

from pokerboard.config import Settings, get_settings
from pokerboard.db import (
    FirestoreProjectRepository,
    InMemoryProjectRepository,
    ProjectRepository,
)
from pokerboard.epics import (
    EpicRepository,
    FirestoreEpicRepository,
    InMemoryEpicRepository,
)

_firestore_client: Client | None = None
_project_repository: ProjectRepository | None = None
_epic_repository: EpicRepository | None = None


def _use_in_memory(settings: Settings) -> bool:
    # Opt-in only. Deployed functions get their project from GCLOUD_PROJECT /
    # FIREBASE_CONFIG, which initialize_app reads on its own.
    return settings.use_in_memory_backends


def get_firestore_client() -> Client:
    """
    Initialize the default Firebase app once and return its Firestore client.
    """
    global _firestore_client
    if _firestore_client:
        return _firestore_client

    settings = get_settings()
    try:
        firebase_admin.get_app()
    except ValueError:
        options = (
            {"projectId": settings.firebase_project_id}
            if settings.firebase_project_id
            else None
        )
        firebase_admin.initialize_app(options=options)
    _firestore_client = firestore.client()
    return _firestore_client


def get_project_repository() -> ProjectRepository:
    """
    Return a singleton project repository so in-memory state persists across requests.
    """
    global _project_repository
    if _project_repository:
        return _project_repository

    settings = get_settings()
    if _use_in_memory(settings):
        _project_repository = InMemoryProjectRepository()
    else:
        _project_repository = FirestoreProjectRepository(
            get_firestore_client(),
            projects_collection=settings.projects_collection,
            sprints_collection=settings.sprints_collection,
        )
    return _project_repository


def get_epic_repository() -> EpicRepository:
    global _epic_repository
    if _epic_repository:
        return _epic_repository

    settings = get_settings()
    if _use_in_memory(settings):
        _epic_repository = InMemoryEpicRepository()
    else:
        _epic_repository = FirestoreEpicRepository(
            get_firestore_client(), epics_collection=settings.epics_collection
        )
    return _epic_repository
