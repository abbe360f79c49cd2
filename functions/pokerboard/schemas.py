"""
Pydantic schemas for the planning-poker HTTP API.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from shared.types import (
    EpicStatus,
    EstimationMethod,
    ProjectType,
    SprintDuration,
)


class CreateProjectRequest(BaseModel):
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    company_name: str = Field(default="", max_length=200)
    project_type: str = ProjectType.SOFTWARE.value
    estimation_method: str = EstimationMethod.FIBONACCI.value
    sprint_duration: str = SprintDuration.TWO_WEEKS.value


class CreatedResponse(BaseModel):
    id: str


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    company_name: Optional[str] = Field(default=None, max_length=200)
    project_type: Optional[str] = None
    estimation_method: Optional[str] = None
    sprint_duration: Optional[str] = None
    sprints_count: Optional[int] = Field(default=None, ge=0)


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: str
    company_name: str
    project_type: str
    estimation_method: str
    sprint_duration: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    sprints_count: int


class ListProjectsResponse(BaseModel):
    projects: List[ProjectResponse]


class SprintCountResponse(BaseModel):
    project_id: str
    count: int


class ActiveSprintsCountResponse(BaseModel):
    owner_id: str
    count: int


class SyncSprintCountsResponse(BaseModel):
    owner_id: str
    corrected: int


class CreateEpicRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    project_id: str
    owner_id: str
    description: str = Field(default="", max_length=2000)
    acceptance_criteria: List[str] = Field(default_factory=list)
    color: str = Field(default="#3B82F6", pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: Optional[str] = None
    status: EpicStatus = EpicStatus.PLANNING
    target_date: Optional[datetime] = None
    order: Optional[int] = None


class UpdateEpicRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    acceptance_criteria: Optional[List[str]] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: Optional[str] = None
    status: Optional[EpicStatus] = None
    story_count: Optional[int] = Field(default=None, ge=0)
    completed_story_count: Optional[int] = Field(default=None, ge=0)
    target_date: Optional[datetime] = None
    order: Optional[int] = None


class EpicResponse(BaseModel):
    id: str
    name: str
    project_id: str
    owner_id: str
    description: str
    acceptance_criteria: List[str]
    color: str
    icon: Optional[str] = None
    status: str
    story_count: int
    completed_story_count: int
    created_at: datetime
    updated_at: datetime
    target_date: Optional[datetime] = None
    order: Optional[int] = None


class ListEpicsResponse(BaseModel):
    epics: List[EpicResponse]


class EpicStoryCountsRequest(BaseModel):
    total_stories: int = Field(..., ge=0)
    backlog_stories: int = Field(default=0, ge=0)
    in_progress_stories: int = Field(default=0, ge=0)
    completed_stories: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _parts_fit_total(self):
        parts = self.backlog_stories + self.in_progress_stories + self.completed_stories
        if parts > self.total_stories:
            raise ValueError("story counts exceed total_stories")
        return self


class EpicStatusResponse(BaseModel):
    epic_id: str
    status: EpicStatus
