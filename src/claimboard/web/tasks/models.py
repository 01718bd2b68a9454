"""Task states and Pydantic models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

TITLE_MAX_LENGTH = 56


class TaskStatus(StrEnum):
    AVAILABLE = "available"
    CLAIMED = "claimed"
    COMPLETED = "completed"


class WorkState(StrEnum):
    """Sub-state of a claimed task: taken, or actively worked in a session."""

    TAKEN = "taken"
    ONGOING = "ongoing"


class TaskCreate(BaseModel):
    type_id: int
    title: str
    description: str = ""
    priority: int = 3
    card_id: int | None = None
    milestone_id: int | None = None


class TaskUpdate(BaseModel):
    """Absent field = leave as is, null = clear, value = set."""

    version: int
    title: str | None = None
    description: str | None = None
    priority: int | None = None
    type_id: int | None = None


class TaskVersion(BaseModel):
    version: int


class DependencyCreate(BaseModel):
    depends_on_task_id: int


class DependencyResponse(BaseModel):
    task_id: int
    title: str
    status: str
    claimed_by: str = ""


class TaskResponse(BaseModel):
    id: int
    project_id: int
    type_id: int
    type_name: str
    type_icon: str
    title: str
    description: str
    priority: int
    status: TaskStatus
    work_state: WorkState | None = None
    is_ongoing: bool = False
    ongoing_by_user_id: int | None = None
    created_by: int
    claimed_by: int | None
    claimed_at: str | None
    completed_at: str | None
    created_at: str
    version: int
    card_id: int | None
    card_title: str = ""
    card_color: str = ""
    milestone_id: int | None
    pool_lifetime_s: int = 0
    last_entered_pool_at: str | None = None
    created_from_rule_id: int | None
    blocked_count: int = 0
    dependencies: list[DependencyResponse] = Field(default_factory=list)


class TaskTypeCreate(BaseModel):
    name: str
    icon: str
    capability_id: int | None = None


class TaskTypeResponse(BaseModel):
    id: int
    project_id: int
    name: str
    icon: str
    capability_id: int | None
