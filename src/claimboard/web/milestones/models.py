"""Milestone Pydantic models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class MilestoneState(StrEnum):
    READY = "ready"
    ACTIVE = "active"
    COMPLETED = "completed"


class MilestoneCreate(BaseModel):
    name: str
    description: str = ""
    position: int = 0


class MilestoneResponse(BaseModel):
    id: int
    project_id: int
    name: str
    description: str | None
    state: MilestoneState
    position: int
    created_by: int
    created_at: str
    activated_at: str | None
    completed_at: str | None
