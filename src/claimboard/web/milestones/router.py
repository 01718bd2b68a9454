"""Milestone routes. Creating and activating milestones is a manager action."""

from __future__ import annotations

from fastapi import APIRouter

from ..deps import CurrentUser, Db
from ..errors import NotFound
from ..projects.service import get_project, require_project_manager, require_project_member
from . import service
from .models import MilestoneCreate, MilestoneResponse

router = APIRouter(prefix="/api", tags=["milestones"])


@router.get("/projects/{project_id}/milestones", response_model=list[MilestoneResponse])
async def list_milestones(project_id: int, user: CurrentUser, db: Db):
    await require_project_member(db, project_id, user)
    return await service.list_milestones(db, project_id)


@router.post("/projects/{project_id}/milestones", response_model=MilestoneResponse, status_code=201)
async def create_milestone(project_id: int, body: MilestoneCreate, user: CurrentUser, db: Db):
    if await get_project(db, project_id) is None:
        raise NotFound("Project not found")
    await require_project_manager(db, project_id, user)
    return await service.create_milestone(
        db,
        project_id=project_id,
        name=body.name,
        created_by=user,
        description=body.description,
        position=body.position,
    )


@router.post("/milestones/{milestone_id}/activate", response_model=MilestoneResponse)
async def activate_milestone(milestone_id: int, user: CurrentUser, db: Db):
    milestone = await service.get_milestone(db, milestone_id)
    if milestone is None:
        raise NotFound("Milestone not found")
    await require_project_manager(db, milestone["project_id"], user)
    return await service.activate_milestone(db, milestone_id)
