"""Card routes."""

from __future__ import annotations

from fastapi import APIRouter

from ..deps import CurrentUser, Db
from ..errors import NotFound
from ..projects.service import require_project_member
from . import service
from .models import CardCreate, CardResponse

router = APIRouter(prefix="/api", tags=["cards"])


@router.get("/projects/{project_id}/cards", response_model=list[CardResponse])
async def list_cards(project_id: int, user: CurrentUser, db: Db):
    await require_project_member(db, project_id, user)
    return await service.list_cards(db, project_id)


@router.post("/projects/{project_id}/cards", response_model=CardResponse, status_code=201)
async def create_card(project_id: int, body: CardCreate, user: CurrentUser, db: Db):
    await require_project_member(db, project_id, user)
    return await service.create_card(
        db,
        project_id=project_id,
        title=body.title,
        created_by=user,
        description=body.description,
        color=body.color,
        milestone_id=body.milestone_id,
    )


@router.get("/cards/{card_id}", response_model=CardResponse)
async def get_card(card_id: int, user: CurrentUser, db: Db):
    card = await service.get_card(db, card_id)
    if card is None:
        raise NotFound("Card not found")
    await require_project_member(db, card["project_id"], user)
    return card
