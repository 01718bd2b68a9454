"""Card Pydantic models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class CardState(StrEnum):
    PENDIENTE = "pendiente"
    EN_CURSO = "en_curso"
    CERRADA = "cerrada"


class CardCreate(BaseModel):
    title: str
    description: str = ""
    color: str = ""
    milestone_id: int | None = None


class CardResponse(BaseModel):
    id: int
    project_id: int
    milestone_id: int | None
    title: str
    description: str
    color: str
    created_by: int
    created_at: str
    task_count: int
    completed_count: int
    available_count: int
    state: CardState
