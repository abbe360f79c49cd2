"""
HTTP routes for the planning-poker API.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from pokerboard.db import ProjectRepository
from pokerboard.dependencies import get_epic_repository, get_project_repository
from pokerboard.epics import EpicRepository
from pokerboard.schemas import (
    ActiveSprintsCountResponse,
    CreatedResponse,
    CreateEpicRequest,
    CreateProjectRequest,
    EpicResponse,
    EpicStatusResponse,
    EpicStoryCountsRequest,
    ListEpicsResponse,
    ListProjectsResponse,
    ProjectResponse,
    SprintCountResponse,
    SyncSprintCountsResponse,
    UpdateEpicRequest,
    UpdateProjectRequest,
)
from shared.types import EpicFields, ProjectFields

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/projects", response_model=CreatedResponse, status_code=201)
def create_project(
    payload: CreateProjectRequest,
    repo: ProjectRepository = Depends(get_project_repository),
):
    fields = ProjectFields(**payload.model_dump(exclude={"owner_id"}))
    project_id = repo.create_project(fields, payload.owner_id)
    return CreatedResponse(id=project_id)


@router.get("/projects", response_model=ListProjectsResponse)
def list_projects(
    owner_id: str = Query(..., min_length=1),
    repo: ProjectRepository = Depends(get_project_repository),
):
    projects = repo.get_projects_by_owner(owner_id)
    return ListProjectsResponse(
        projects=[ProjectResponse(**asdict(project)) for project in projects]
    )


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str, repo: ProjectRepository = Depends(get_project_repository)
):
    project = repo.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectResponse(**asdict(project))


@router.patch("/projects/{project_id}", status_code=204)
def update_project(
    project_id: str,
    payload: UpdateProjectRequest,
    repo: ProjectRepository = Depends(get_project_repository),
):
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    repo.update_project(project_id, updates)
    return Response(status_code=204)


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(
    project_id: str, repo: ProjectRepository = Depends(get_project_repository)
):
    repo.delete_project(project_id)
    return Response(status_code=204)


@router.post("/projects/{project_id}/sprints-count/increment", status_code=204)
def increment_sprint_count(
    project_id: str, repo: ProjectRepository = Depends(get_project_repository)
):
    repo.increment_project_sprint_count(project_id)
    return Response(status_code=204)


@router.get(
    "/projects/{project_id}/sprints-count", response_model=SprintCountResponse
)
def get_sprint_count(
    project_id: str, repo: ProjectRepository = Depends(get_project_repository)
):
    return SprintCountResponse(
        project_id=project_id,
        count=repo.get_actual_project_sprint_count(project_id),
    )


@router.get(
    "/owners/{owner_id}/active-sprints-count",
    response_model=ActiveSprintsCountResponse,
)
def get_active_sprints_count(
    owner_id: str, repo: ProjectRepository = Depends(get_project_repository)
):
    return ActiveSprintsCountResponse(
        owner_id=owner_id, count=repo.get_active_sprints_count(owner_id)
    )


@router.post(
    "/owners/{owner_id}/sync-sprint-counts", response_model=SyncSprintCountsResponse
)
def sync_sprint_counts(
    owner_id: str, repo: ProjectRepository = Depends(get_project_repository)
):
    corrected = repo.sync_project_sprint_counts(owner_id)
    logger.info("Synced sprint counts for %s, corrected %d", owner_id, corrected)
    return SyncSprintCountsResponse(owner_id=owner_id, corrected=corrected)


@router.post("/epics", response_model=CreatedResponse, status_code=201)
def create_epic(
    payload: CreateEpicRequest, repo: EpicRepository = Depends(get_epic_repository)
):
    epic_id = repo.create_epic(EpicFields(**payload.model_dump()))
    return CreatedResponse(id=epic_id)


@router.get("/projects/{project_id}/epics", response_model=ListEpicsResponse)
def list_epics(
    project_id: str, repo: EpicRepository = Depends(get_epic_repository)
):
    epics = repo.get_epics_by_project(project_id)
    return ListEpicsResponse(epics=[EpicResponse(**asdict(epic)) for epic in epics])


@router.get("/epics/{epic_id}", response_model=EpicResponse)
def get_epic(epic_id: str, repo: EpicRepository = Depends(get_epic_repository)):
    epic = repo.get_epic(epic_id)
    if epic is None:
        raise HTTPException(status_code=404, detail="Epic not found")
    return EpicResponse(**asdict(epic))


@router.patch("/epics/{epic_id}", status_code=204)
def update_epic(
    epic_id: str,
    payload: UpdateEpicRequest,
    repo: EpicRepository = Depends(get_epic_repository),
):
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    repo.update_epic(epic_id, updates)
    return Response(status_code=204)


@router.delete("/epics/{epic_id}", status_code=204)
def delete_epic(epic_id: str, repo: EpicRepository = Depends(get_epic_repository)):
    repo.delete_epic(epic_id)
    return Response(status_code=204)


@router.post("/epics/{epic_id}/story-counts", response_model=EpicStatusResponse)
def update_epic_story_counts(
    epic_id: str,
    payload: EpicStoryCountsRequest,
    repo: EpicRepository = Depends(get_epic_repository),
):
    status = repo.update_epic_story_counts(
        epic_id,
        payload.total_stories,
        payload.backlog_stories,
        payload.in_progress_stories,
        payload.completed_stories,
    )
    return EpicStatusResponse(epic_id=epic_id, status=status)
