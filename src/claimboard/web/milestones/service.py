"""Milestones: ordered delivery stages with derived completion."""

from __future__ import annotations

import logging
import sqlite3

import aiosqlite

from ..errors import InvalidTransition, NotFound, ValidationError

logger = logging.getLogger(__name__)


async def get_milestone(db: aiosqlite.Connection, milestone_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM milestones WHERE id = ?", (milestone_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def milestone_in_project(
    db: aiosqlite.Connection, milestone_id: int, project_id: int
) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM milestones WHERE id = ? AND project_id = ?", (milestone_id, project_id)
    )
    return await cursor.fetchone() is not None


async def list_milestones(db: aiosqlite.Connection, project_id: int) -> list[dict]:
    cursor = await db.execute(
        "SELECT * FROM milestones WHERE project_id = ? ORDER BY position, id", (project_id,)
    )
    return [dict(r) for r in await cursor.fetchall()]


async def create_milestone(
    db: aiosqlite.Connection,
    project_id: int,
    name: str,
    created_by: int,
    description: str = "",
    position: int = 0,
) -> dict:
    name = name.strip()
    if not name:
        raise ValidationError("Milestone name is required")
    cursor = await db.execute(
        """INSERT INTO milestones (project_id, name, description, position, created_by)
           VALUES (?, ?, ?, ?, ?)""",
        (project_id, name, description or None, position, created_by),
    )
    await db.commit()
    return await get_milestone(db, cursor.lastrowid)


async def activate_milestone(db: aiosqlite.Connection, milestone_id: int) -> dict:
    """ready -> active. Only one milestone per project may be active."""
    try:
        cursor = await db.execute(
            """UPDATE milestones SET state = 'active', activated_at = CURRENT_TIMESTAMP
               WHERE id = ? AND state = 'ready'""",
            (milestone_id,),
        )
    except sqlite3.IntegrityError:
        await db.rollback()
        raise InvalidTransition("Another milestone is already active in this project") from None
    updated = cursor.rowcount
    await db.commit()

    milestone = await get_milestone(db, milestone_id)
    if milestone is None:
        raise NotFound("Milestone not found")
    if not updated:
        raise InvalidTransition(f"Cannot activate a milestone that is {milestone['state']}")
    return milestone


async def recompute_completion(db: aiosqlite.Connection, milestone_id: int) -> dict | None:
    """Mark an active milestone completed once all its cards and loose tasks are done.

    A completed milestone whose work reopens (e.g. a new task was added) goes
    back to active. Empty milestones keep their state.
    """
    cursor = await db.execute(
        """SELECT
             (SELECT COUNT(*) FROM cards c WHERE c.milestone_id = m.id) AS cards_total,
             (SELECT COUNT(*) FROM (
                 SELECT c.id,
                        COUNT(t.id) AS task_count,
                        COUNT(CASE WHEN t.status = 'completed' THEN 1 END) AS completed_count
                 FROM cards c LEFT JOIN tasks t ON t.card_id = c.id
                 WHERE c.milestone_id = m.id
                 GROUP BY c.id
             ) x WHERE x.task_count > 0 AND x.task_count = x.completed_count) AS cards_completed,
             (SELECT COUNT(*) FROM tasks t
               WHERE t.milestone_id = m.id AND t.card_id IS NULL) AS tasks_total,
             (SELECT COUNT(*) FROM tasks t
               WHERE t.milestone_id = m.id AND t.card_id IS NULL
                 AND t.status = 'completed') AS tasks_completed,
             m.state
           FROM milestones m WHERE m.id = ?""",
        (milestone_id,),
    )
    stats = await cursor.fetchone()
    if stats is None or stats["state"] not in ("active", "completed"):
        return None

    if stats["cards_total"] == 0 and stats["tasks_total"] == 0:
        return await get_milestone(db, milestone_id)

    done = (
        stats["cards_completed"] == stats["cards_total"]
        and stats["tasks_completed"] == stats["tasks_total"]
    )
    if done and stats["state"] == "active":
        await db.execute(
            """UPDATE milestones SET state = 'completed', completed_at = CURRENT_TIMESTAMP
               WHERE id = ? AND state = 'active'""",
            (milestone_id,),
        )
        logger.info("Milestone %s completed", milestone_id)
    elif not done and stats["state"] == "completed":
        await db.execute(
            """UPDATE milestones SET state = 'active', completed_at = NULL
               WHERE id = ? AND state = 'completed'""",
            (milestone_id,),
        )
        logger.info("Milestone %s reopened", milestone_id)
    await db.commit()
    return await get_milestone(db, milestone_id)


async def milestone_for_task(db: aiosqlite.Connection, task: dict) -> int | None:
    """Effective milestone of a task: its own, or its card's."""
    if task.get("milestone_id"):
        return task["milestone_id"]
    if task.get("card_id"):
        cursor = await db.execute("SELECT milestone_id FROM cards WHERE id = ?", (task["card_id"],))
        row = await cursor.fetchone()
        return row["milestone_id"] if row else None
    return None
