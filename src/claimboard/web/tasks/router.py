"""Task and task-type routes."""

from __future__ import annotations

from fastapi import APIRouter, Response

from ..deps import CurrentUser, Db, Orchestrator
from ..errors import NotFound
from ..messages import (
    ClaimTask,
    CompleteTask,
    CreateTask,
    CreateTaskType,
    DeleteTaskType,
    ListTasks,
    ReleaseTask,
    UpdateTask,
)
from ..patch import from_field
from ..projects.service import list_task_types, require_project_member
from . import service
from .models import (
    DependencyCreate,
    DependencyResponse,
    TaskCreate,
    TaskResponse,
    TaskStatus,
    TaskTypeCreate,
    TaskTypeResponse,
    TaskUpdate,
    TaskVersion,
)
from .workflow import TaskWorkflow

router = APIRouter(prefix="/api", tags=["tasks"])


@router.get("/projects/{project_id}/tasks", response_model=list[TaskResponse])
async def list_tasks(
    project_id: int,
    user: CurrentUser,
    orchestrator: Orchestrator,
    status: TaskStatus | None = None,
    type_id: int | None = None,
    capability_id: int | None = None,
    q: str | None = None,
    blocked: bool | None = None,
):
    result = await orchestrator.handle(
        ListTasks(
            actor_id=user,
            project_id=project_id,
            status=status,
            type_id=type_id,
            capability_id=capability_id,
            q=q,
            blocked=blocked,
        )
    )
    return result.tasks


@router.post("/projects/{project_id}/tasks", response_model=TaskResponse, status_code=201)
async def create_task(project_id: int, body: TaskCreate, user: CurrentUser, orchestrator: Orchestrator):
    result = await orchestrator.handle(
        CreateTask(
            actor_id=user,
            project_id=project_id,
            type_id=body.type_id,
            title=body.title,
            description=body.description,
            priority=body.priority,
            card_id=body.card_id,
            milestone_id=body.milestone_id,
        )
    )
    return result.task


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: int, user: CurrentUser, db: Db):
    task = await service.get_task(db, task_id)
    if task is None:
        raise NotFound("Task not found")
    await require_project_member(db, task["project_id"], user)
    task["dependencies"] = await service.get_dependencies(db, task_id)
    return task


@router.post("/tasks/{task_id}/claim", response_model=TaskResponse)
async def claim_task(task_id: int, body: TaskVersion, user: CurrentUser, orchestrator: Orchestrator):
    result = await orchestrator.handle(ClaimTask(actor_id=user, task_id=task_id, version=body.version))
    return result.task


@router.post("/tasks/{task_id}/release", response_model=TaskResponse)
async def release_task(task_id: int, body: TaskVersion, user: CurrentUser, orchestrator: Orchestrator):
    result = await orchestrator.handle(
        ReleaseTask(actor_id=user, task_id=task_id, version=body.version)
    )
    return result.task


@router.post("/tasks/{task_id}/complete", response_model=TaskResponse)
async def complete_task(task_id: int, body: TaskVersion, user: CurrentUser, orchestrator: Orchestrator):
    result = await orchestrator.handle(
        CompleteTask(actor_id=user, task_id=task_id, version=body.version)
    )
    return result.task


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(task_id: int, body: TaskUpdate, user: CurrentUser, orchestrator: Orchestrator):
    result = await orchestrator.handle(
        UpdateTask(
            actor_id=user,
            task_id=task_id,
            version=body.version,
            title=from_field(body, "title"),
            description=from_field(body, "description"),
            priority=from_field(body, "priority"),
            type_id=from_field(body, "type_id"),
        )
    )
    return result.task


@router.get("/tasks/{task_id}/events")
async def task_events(task_id: int, user: CurrentUser, db: Db):
    task = await service.get_task_state(db, task_id)
    if task is None:
        raise NotFound("Task not found")
    await require_project_member(db, task["project_id"], user)
    return await service.get_task_events(db, task_id)


# --- Dependencies ---


@router.post(
    "/tasks/{task_id}/dependencies", response_model=list[DependencyResponse], status_code=201
)
async def add_dependency(task_id: int, body: DependencyCreate, user: CurrentUser, db: Db):
    return await TaskWorkflow(db).add_dependency(task_id, body.depends_on_task_id, user)


@router.delete("/tasks/{task_id}/dependencies/{depends_on_task_id}", status_code=204)
async def remove_dependency(task_id: int, depends_on_task_id: int, user: CurrentUser, db: Db):
    await TaskWorkflow(db).remove_dependency(task_id, depends_on_task_id, user)
    return Response(status_code=204)


# --- Task types ---


@router.get("/projects/{project_id}/task-types", response_model=list[TaskTypeResponse])
async def get_task_types(project_id: int, user: CurrentUser, db: Db):
    await require_project_member(db, project_id, user)
    return await list_task_types(db, project_id)


@router.post("/projects/{project_id}/task-types", response_model=TaskTypeResponse, status_code=201)
async def create_task_type(
    project_id: int, body: TaskTypeCreate, user: CurrentUser, orchestrator: Orchestrator
):
    result = await orchestrator.handle(
        CreateTaskType(
            actor_id=user,
            project_id=project_id,
            name=body.name,
            icon=body.icon,
            capability_id=body.capability_id,
        )
    )
    return result.task_type


@router.delete("/task-types/{type_id}", status_code=204)
async def delete_task_type(type_id: int, user: CurrentUser, orchestrator: Orchestrator):
    await orchestrator.handle(DeleteTaskType(actor_id=user, type_id=type_id))
    return Response(status_code=204)
