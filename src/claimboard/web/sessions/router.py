"""Work session routes."""

from __future__ import annotations

from fastapi import APIRouter

from ..deps import Config, CurrentUser, Db
from ..errors import NotFound
from ..projects.service import require_project_member
from ..tasks.service import get_task_state
from . import service
from .models import HeartbeatResponse, SessionResponse, WorkTotalResponse

router = APIRouter(prefix="/api", tags=["sessions"])


@router.post("/tasks/{task_id}/sessions", response_model=SessionResponse, status_code=201)
async def start_session(task_id: int, user: CurrentUser, db: Db):
    return await service.start_session(db, user, task_id)


@router.post("/sessions/{session_id}/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(session_id: int, user: CurrentUser, db: Db, config: Config):
    session = await service.heartbeat(db, session_id, user)
    return HeartbeatResponse(
        session=session,
        heartbeat_interval_seconds=config.heartbeat_interval_seconds,
    )


@router.post("/sessions/{session_id}/pause", response_model=SessionResponse)
async def pause(session_id: int, user: CurrentUser, db: Db):
    return await service.pause_session(db, session_id, user)


@router.get("/sessions/me", response_model=list[SessionResponse])
async def my_sessions(user: CurrentUser, db: Db):
    return await service.get_active_sessions(db, user)


@router.get("/tasks/{task_id}/work-total", response_model=WorkTotalResponse)
async def work_total(task_id: int, user: CurrentUser, db: Db):
    task = await get_task_state(db, task_id)
    if task is None:
        raise NotFound("Task not found")
    await require_project_member(db, task["project_id"], user)
    return WorkTotalResponse(
        user_id=user,
        task_id=task_id,
        accumulated_s=await service.get_work_total(db, user, task_id),
    )
