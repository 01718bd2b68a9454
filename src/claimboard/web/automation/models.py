"""Automation models: outcomes of rule firing and configuration payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel


class Outcome(StrEnum):
    APPLIED = "applied"
    SUPPRESSED = "suppressed"


class SuppressionReason(StrEnum):
    ALREADY_EXECUTED = "already_executed"
    INVALID_TEMPLATE = "invalid_template"


@dataclass
class RuleOutcome:
    """What one rule did for one event."""

    rule_id: int
    outcome: Outcome
    reason: SuppressionReason | None = None
    created_task_ids: list[int] = field(default_factory=list)


class WorkflowCreate(BaseModel):
    name: str
    description: str = ""
    active: bool = False


class WorkflowActivate(BaseModel):
    active: bool


class WorkflowResponse(BaseModel):
    id: int
    org_id: int
    project_id: int
    name: str
    description: str | None
    active: bool
    created_by: int
    created_at: str


class RuleCreate(BaseModel):
    name: str
    resource_type: str
    to_state: str
    task_type_id: int | None = None
    goal: str = ""
    active: bool = True


class RuleResponse(BaseModel):
    id: int
    workflow_id: int
    name: str
    goal: str | None
    resource_type: str
    task_type_id: int | None
    to_state: str
    active: bool
    created_at: str


class TaskTemplateCreate(BaseModel):
    name: str
    type_id: int
    description: str = ""
    priority: int = 3


class TaskTemplateResponse(BaseModel):
    id: int
    org_id: int
    project_id: int
    name: str
    description: str | None
    type_id: int
    priority: int
    created_by: int
    created_at: str


class TemplateAttach(BaseModel):
    template_id: int
    execution_order: int = 0


class RuleExecutionResponse(BaseModel):
    id: int
    rule_id: int
    origin_type: str
    origin_id: int
    outcome: Outcome
    suppression_reason: str | None
    user_id: int | None
    created_at: str
