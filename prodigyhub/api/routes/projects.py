"""
prodigyhub.api.routes.projects — Project lifecycle endpoints (JWT-protected)
=============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import Engine

from prodigyhub.api.deps import (
    CurrentUser,
    get_adapter,
    get_engine,
    get_orchestrator,
    get_project_service,
)
from prodigyhub.api.serializers import participant_dict, project_dict
from prodigyhub.services.channel_adapter import ChannelAdapter
from prodigyhub.services.channel_service import provision_project_channel
from prodigyhub.services.completion_service import CompletionOrchestrator
from prodigyhub.services.project_service import ProjectDraft, ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    body: ProjectDraft,
    user_id: CurrentUser,
    projects: ProjectService = Depends(get_project_service),
):
    return project_dict(projects.create(body, user_id))


@router.get("/mine")
def my_projects(
    user_id: CurrentUser,
    scope: str = Query("participating", pattern="^(created|participating|completed)$"),
    projects: ProjectService = Depends(get_project_service),
):
    return [project_dict(p) for p in projects.list_for_user(user_id, scope)]


@router.get("/{project_id}")
def get_project(project_id: int, projects: ProjectService = Depends(get_project_service)):
    return project_dict(projects.get(project_id))


@router.get("/{project_id}/participants")
def get_participants(
    project_id: int, projects: ProjectService = Depends(get_project_service)
):
    return [participant_dict(r) for r in projects.roster(project_id)]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
@router.post("/{project_id}/join")
def join_project(
    project_id: int,
    user_id: CurrentUser,
    projects: ProjectService = Depends(get_project_service),
):
    result = projects.join(project_id, user_id)
    return {
        "project_id": result.project_id,
        "current_participants": result.current_participants,
        "max_participants": result.max_participants,
        "participants": [participant_dict(r) for r in projects.roster(project_id)],
    }


@router.post("/{project_id}/start")
def start_project(
    project_id: int,
    user_id: CurrentUser,
    projects: ProjectService = Depends(get_project_service),
):
    return project_dict(projects.start(project_id, user_id))


@router.post("/{project_id}/cancel")
def cancel_project(
    project_id: int,
    user_id: CurrentUser,
    projects: ProjectService = Depends(get_project_service),
):
    return project_dict(projects.cancel(project_id, user_id))


@router.post("/{project_id}/complete")
def complete_project(
    project_id: int,
    user_id: CurrentUser,
    orchestrator: CompletionOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.complete(project_id, user_id).to_dict()


@router.post("/{project_id}/channel")
def create_project_channel(
    project_id: int,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
    adapter: ChannelAdapter = Depends(get_adapter),
):
    refs = provision_project_channel(engine, adapter, project_id, user_id)
    return {"channel_ref": refs.channel_ref, "role_ref": refs.role_ref}
