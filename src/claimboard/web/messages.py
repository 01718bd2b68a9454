"""Requests accepted by the orchestrator and the responses it returns.

Every request names the acting user. Mutations also carry the task version
the caller last saw.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .automation.models import RuleOutcome
from .patch import UNCHANGED, Patch

# --- Requests ---


@dataclass(frozen=True)
class ClaimTask:
    actor_id: int
    task_id: int
    version: int


@dataclass(frozen=True)
class ReleaseTask:
    actor_id: int
    task_id: int
    version: int


@dataclass(frozen=True)
class CompleteTask:
    actor_id: int
    task_id: int
    version: int


@dataclass(frozen=True)
class UpdateTask:
    actor_id: int
    task_id: int
    version: int
    title: Patch[str] = UNCHANGED
    description: Patch[str] = UNCHANGED
    priority: Patch[int] = UNCHANGED
    type_id: Patch[int] = UNCHANGED


@dataclass(frozen=True)
class CreateTask:
    actor_id: int
    project_id: int
    type_id: int
    title: str
    description: str = ""
    priority: int = 3
    card_id: int | None = None
    milestone_id: int | None = None


@dataclass(frozen=True)
class ListTasks:
    actor_id: int
    project_id: int
    status: str | None = None
    type_id: int | None = None
    capability_id: int | None = None
    q: str | None = None
    blocked: bool | None = None


@dataclass(frozen=True)
class CreateTaskType:
    actor_id: int
    project_id: int
    name: str
    icon: str
    capability_id: int | None = None


@dataclass(frozen=True)
class DeleteTaskType:
    actor_id: int
    type_id: int


Message = Union[
    ClaimTask,
    ReleaseTask,
    CompleteTask,
    UpdateTask,
    CreateTask,
    ListTasks,
    CreateTaskType,
    DeleteTaskType,
]

# --- Responses ---


@dataclass
class TaskResult:
    task: dict
    rule_outcomes: list[RuleOutcome] = field(default_factory=list)


@dataclass
class TasksList:
    tasks: list[dict]


@dataclass
class TaskTypeCreated:
    task_type: dict


@dataclass
class TaskTypeDeleted:
    type_id: int


Response = Union[TaskResult, TasksList, TaskTypeCreated, TaskTypeDeleted]
