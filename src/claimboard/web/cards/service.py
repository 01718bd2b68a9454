"""Card service - storage and derived card state."""

from __future__ import annotations

import aiosqlite

from ..errors import ValidationError
from ..events import Event, EventType, event_manager
from ..milestones.service import milestone_in_project
from .models import CardState

_CARD_SELECT = """
SELECT
    c.*,
    COUNT(t.id) AS task_count,
    COUNT(CASE WHEN t.status = 'completed' THEN 1 END) AS completed_count,
    COUNT(CASE WHEN t.status = 'available' THEN 1 END) AS available_count
FROM cards c
LEFT JOIN tasks t ON t.card_id = c.id
"""


def card_state(completed_count: int, task_count: int) -> CardState:
    """Card state is a pure function of its task completion counts."""
    if task_count > 0 and completed_count >= task_count:
        return CardState.CERRADA
    if completed_count > 0:
        return CardState.EN_CURSO
    return CardState.PENDIENTE


def _row_to_card(row: aiosqlite.Row) -> dict:
    card = dict(row)
    card["description"] = card.get("description") or ""
    card["state"] = card_state(card["completed_count"], card["task_count"])
    return card


async def get_card(db: aiosqlite.Connection, card_id: int) -> dict | None:
    cursor = await db.execute(f"{_CARD_SELECT} WHERE c.id = ? GROUP BY c.id", (card_id,))
    row = await cursor.fetchone()
    return _row_to_card(row) if row else None


async def list_cards(db: aiosqlite.Connection, project_id: int) -> list[dict]:
    cursor = await db.execute(
        f"{_CARD_SELECT} WHERE c.project_id = ? GROUP BY c.id ORDER BY c.created_at DESC, c.id DESC",
        (project_id,),
    )
    return [_row_to_card(r) for r in await cursor.fetchall()]


async def card_in_project(db: aiosqlite.Connection, card_id: int, project_id: int) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM cards WHERE id = ? AND project_id = ?", (card_id, project_id)
    )
    return await cursor.fetchone() is not None


async def create_card(
    db: aiosqlite.Connection,
    project_id: int,
    title: str,
    created_by: int,
    description: str = "",
    color: str = "",
    milestone_id: int | None = None,
) -> dict:
    title = title.strip()
    if not title:
        raise ValidationError("Card title is required")
    if milestone_id is not None and not await milestone_in_project(db, milestone_id, project_id):
        raise ValidationError("Invalid milestone_id")

    cursor = await db.execute(
        """INSERT INTO cards (project_id, milestone_id, title, description, color, created_by)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (project_id, milestone_id, title, description or None, color, created_by),
    )
    await db.commit()

    card = await get_card(db, cursor.lastrowid)
    await event_manager.publish_to_project(
        project_id, Event(event_type=EventType.CARD_CREATED, data=card)
    )
    return card


async def evaluate_card(db: aiosqlite.Connection, card_id: int) -> dict | None:
    """Recompute a card's state from its tasks and broadcast it.

    Nothing is stored: the state is derived on every read, so evaluating
    repeatedly is harmless.
    """
    card = await get_card(db, card_id)
    if card is None:
        return None
    await event_manager.publish_to_project(
        card["project_id"],
        Event(
            event_type=EventType.CARD_STATE,
            data={
                "card_id": card_id,
                "state": card["state"],
                "task_count": card["task_count"],
                "completed_count": card["completed_count"],
            },
        ),
    )
    return card
