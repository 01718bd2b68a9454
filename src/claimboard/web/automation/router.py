"""Automation configuration routes. Reads need membership, writes need the manager role."""

from __future__ import annotations

import aiosqlite
from fastapi import APIRouter

from ..deps import CurrentUser, Db
from ..errors import NotFound
from ..projects.service import require_project_manager, require_project_member
from . import service
from .models import (
    RuleCreate,
    RuleExecutionResponse,
    RuleResponse,
    TaskTemplateCreate,
    TaskTemplateResponse,
    TemplateAttach,
    WorkflowActivate,
    WorkflowCreate,
    WorkflowResponse,
)
from .rules import list_executions

router = APIRouter(prefix="/api", tags=["automation"])


async def _workflow_project(db: aiosqlite.Connection, workflow_id: int) -> int:
    workflow = await service.get_workflow(db, workflow_id)
    if workflow is None:
        raise NotFound("Workflow not found")
    return workflow["project_id"]


async def _rule_project(db: aiosqlite.Connection, rule_id: int) -> int:
    rule = await service.get_rule(db, rule_id)
    if rule is None:
        raise NotFound("Rule not found")
    return rule["project_id"]


# --- Workflows ---


@router.get("/projects/{project_id}/workflows", response_model=list[WorkflowResponse])
async def list_workflows(project_id: int, user: CurrentUser, db: Db):
    await require_project_member(db, project_id, user)
    return await service.list_workflows(db, project_id)


@router.post("/projects/{project_id}/workflows", response_model=WorkflowResponse, status_code=201)
async def create_workflow(project_id: int, body: WorkflowCreate, user: CurrentUser, db: Db):
    await require_project_manager(db, project_id, user)
    return await service.create_workflow(
        db,
        project_id=project_id,
        name=body.name,
        created_by=user,
        description=body.description,
        active=body.active,
    )


@router.patch("/workflows/{workflow_id}", response_model=WorkflowResponse)
async def set_workflow_active(workflow_id: int, body: WorkflowActivate, user: CurrentUser, db: Db):
    await require_project_manager(db, await _workflow_project(db, workflow_id), user)
    return await service.set_workflow_active(db, workflow_id, body.active)


# --- Rules ---


@router.get("/workflows/{workflow_id}/rules", response_model=list[RuleResponse])
async def list_rules(workflow_id: int, user: CurrentUser, db: Db):
    await require_project_member(db, await _workflow_project(db, workflow_id), user)
    return await service.list_rules(db, workflow_id)


@router.post("/workflows/{workflow_id}/rules", response_model=RuleResponse, status_code=201)
async def create_rule(workflow_id: int, body: RuleCreate, user: CurrentUser, db: Db):
    await require_project_manager(db, await _workflow_project(db, workflow_id), user)
    return await service.create_rule(
        db,
        workflow_id=workflow_id,
        name=body.name,
        resource_type=body.resource_type,
        to_state=body.to_state,
        task_type_id=body.task_type_id,
        goal=body.goal,
        active=body.active,
    )


@router.get("/rules/{rule_id}/executions", response_model=list[RuleExecutionResponse])
async def rule_executions(rule_id: int, user: CurrentUser, db: Db):
    await require_project_member(db, await _rule_project(db, rule_id), user)
    return await list_executions(db, rule_id)


# --- Templates ---


@router.post(
    "/projects/{project_id}/task-templates", response_model=TaskTemplateResponse, status_code=201
)
async def create_task_template(project_id: int, body: TaskTemplateCreate, user: CurrentUser, db: Db):
    await require_project_manager(db, project_id, user)
    return await service.create_task_template(
        db,
        project_id=project_id,
        name=body.name,
        type_id=body.type_id,
        created_by=user,
        description=body.description,
        priority=body.priority,
    )


@router.get("/rules/{rule_id}/templates", response_model=list[TaskTemplateResponse])
async def list_rule_templates(rule_id: int, user: CurrentUser, db: Db):
    await require_project_member(db, await _rule_project(db, rule_id), user)
    return await service.list_rule_templates(db, rule_id)


@router.post("/rules/{rule_id}/templates", response_model=list[TaskTemplateResponse], status_code=201)
async def attach_template(rule_id: int, body: TemplateAttach, user: CurrentUser, db: Db):
    await require_project_manager(db, await _rule_project(db, rule_id), user)
    await service.attach_template(db, rule_id, body.template_id, body.execution_order)
    return await service.list_rule_templates(db, rule_id)
