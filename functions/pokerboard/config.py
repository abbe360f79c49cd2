"""
Configuration and settings for the planning-poker backend.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from shared.firebase_constants import (
    EPICS_COLLECTION,
    PROJECTS_COLLECTION,
    SPRINTS_COLLECTION,
)


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and scripts."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Firebase / Firestore
    firebase_project_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )
    # Read by the Firestore SDK itself.
    firestore_emulator_host: Optional[str] = Field(
        default=None, validation_alias="FIRESTORE_EMULATOR_HOST"
    )

    projects_collection: str = Field(default=PROJECTS_COLLECTION)
    sprints_collection: str = Field(default=SPRINTS_COLLECTION)
    epics_collection: str = Field(default=EPICS_COLLECTION)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="POKERBOARD_USE_IN_MEMORY_BACKENDS"
    )

    # Sprint count reconciliation
    reconcile_interval_seconds: int = Field(default=1800)
    # RECONCILE_OWNER_IDS: comma-separated ("owner-1,owner-2") or a JSON list.
    reconcile_owner_ids: Annotated[List[str], NoDecode] = Field(default_factory=list)

    log_level: str = Field(default="INFO")

    @field_validator("reconcile_owner_ids", mode="before")
    @classmethod
    def _split_owner_ids(cls, value):
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [owner.strip() for owner in value.split(",") if owner.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
