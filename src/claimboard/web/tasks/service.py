"""Task store: rows, conditional state updates, audit events and dependencies.

Every state-changing UPDATE here is a compare-and-swap on ``version`` plus a
status/owner predicate. The functions report whether the row was taken and
never commit; the caller owns the transaction.
"""

from __future__ import annotations

from typing import Any

import aiosqlite

from .models import TaskStatus, WorkState

_TASK_SELECT = """
SELECT
    t.*,
    tt.name AS type_name,
    tt.icon AS type_icon,
    tt.capability_id AS capability_id,
    COALESCE(c.title, '') AS card_title,
    COALESCE(c.color, '') AS card_color,
    c.milestone_id AS card_milestone_id,
    (SELECT ws.user_id FROM work_sessions ws
      WHERE ws.task_id = t.id AND ws.ended_at IS NULL
      ORDER BY ws.started_at DESC LIMIT 1) AS ongoing_by_user_id,
    (SELECT COUNT(*) FROM task_dependencies d
      JOIN tasks dt ON dt.id = d.depends_on_task_id
      WHERE d.task_id = t.id AND dt.status != 'completed') AS blocked_count
FROM tasks t
JOIN task_types tt ON tt.id = t.type_id
LEFT JOIN cards c ON c.id = t.card_id
"""


def _row_to_task(row: aiosqlite.Row) -> dict:
    task = dict(row)
    task["description"] = task.get("description") or ""
    ongoing = task["status"] == TaskStatus.CLAIMED and task.get("ongoing_by_user_id") is not None
    task["is_ongoing"] = ongoing
    if task["status"] == TaskStatus.CLAIMED:
        task["work_state"] = WorkState.ONGOING if ongoing else WorkState.TAKEN
    else:
        task["work_state"] = None
    return task


async def get_task(db: aiosqlite.Connection, task_id: int) -> dict | None:
    """Get a task by ID, decorated with type, card and work-state fields."""
    cursor = await db.execute(f"{_TASK_SELECT} WHERE t.id = ?", (task_id,))
    row = await cursor.fetchone()
    return _row_to_task(row) if row else None


async def get_task_state(db: aiosqlite.Connection, task_id: int) -> dict | None:
    """Minimal read of the columns that decide transition legality."""
    cursor = await db.execute(
        "SELECT id, project_id, status, claimed_by, version FROM tasks WHERE id = ?",
        (task_id,),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def list_tasks(
    db: aiosqlite.Connection,
    project_id: int,
    status: str | None = None,
    type_id: int | None = None,
    capability_id: int | None = None,
    q: str | None = None,
    blocked: bool | None = None,
) -> list[dict]:
    """List the project's visible tasks with optional filters.

    Visible means: in the active milestone (directly or through the card),
    without card and milestone, or under a card that has no milestone.
    """
    conditions = [
        "t.project_id = ?",
        """(
            COALESCE(t.milestone_id, c.milestone_id) = (
                SELECT id FROM milestones
                WHERE project_id = t.project_id AND state = 'active'
                ORDER BY activated_at DESC LIMIT 1
            )
            OR (t.card_id IS NULL AND t.milestone_id IS NULL)
            OR (t.card_id IS NOT NULL AND c.milestone_id IS NULL)
        )""",
    ]
    params: list[Any] = [project_id]

    if status:
        conditions.append("t.status = ?")
        params.append(status)
    if type_id:
        conditions.append("t.type_id = ?")
        params.append(type_id)
    if capability_id:
        conditions.append("tt.capability_id = ?")
        params.append(capability_id)
    if q:
        pattern = "%" + _escape_like(q) + "%"
        conditions.append(
            "(t.title LIKE ? ESCAPE '\\' OR COALESCE(t.description, '') LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern])

    sql = f"WITH listed AS ({_TASK_SELECT} WHERE {' AND '.join(conditions)}) SELECT * FROM listed"
    if blocked is True:
        sql += " WHERE blocked_count > 0"
    elif blocked is False:
        sql += " WHERE blocked_count = 0"
    sql += " ORDER BY created_at DESC, id DESC"

    cursor = await db.execute(sql, params)
    rows = await cursor.fetchall()
    return [_row_to_task(r) for r in rows]


async def insert_task(
    db: aiosqlite.Connection,
    project_id: int,
    type_id: int,
    title: str,
    created_by: int,
    description: str = "",
    priority: int = 3,
    card_id: int | None = None,
    milestone_id: int | None = None,
    created_from_rule_id: int | None = None,
) -> int:
    """Insert an available task at version 1. Returns the new id."""
    cursor = await db.execute(
        """INSERT INTO tasks (project_id, type_id, title, description, priority, created_by,
           card_id, milestone_id, created_from_rule_id, last_entered_pool_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)""",
        (
            project_id,
            type_id,
            title,
            description or None,
            priority,
            created_by,
            card_id,
            milestone_id,
            created_from_rule_id,
        ),
    )
    return cursor.lastrowid


# --- Conditional transitions ---


async def claim_task(db: aiosqlite.Connection, task_id: int, user_id: int, version: int) -> bool:
    """available -> claimed. Accumulates time spent in the pool."""
    cursor = await db.execute(
        """UPDATE tasks SET
               status = 'claimed',
               claimed_by = ?,
               claimed_at = CURRENT_TIMESTAMP,
               pool_lifetime_s = pool_lifetime_s + COALESCE(MAX(0, CAST(ROUND(
                   (julianday('now') - julianday(last_entered_pool_at)) * 86400
               ) AS INTEGER)), 0),
               last_entered_pool_at = NULL,
               version = version + 1
           WHERE id = ? AND status = 'available' AND version = ?""",
        (user_id, task_id, version),
    )
    return cursor.rowcount == 1


async def release_task(db: aiosqlite.Connection, task_id: int, user_id: int, version: int) -> bool:
    """claimed -> available, owner only. Restarts the pool clock."""
    cursor = await db.execute(
        """UPDATE tasks SET
               status = 'available',
               claimed_by = NULL,
               claimed_at = NULL,
               last_entered_pool_at = CURRENT_TIMESTAMP,
               version = version + 1
           WHERE id = ? AND status = 'claimed' AND claimed_by = ? AND version = ?""",
        (task_id, user_id, version),
    )
    return cursor.rowcount == 1


async def complete_task(
    db: aiosqlite.Connection, task_id: int, user_id: int, version: int
) -> bool:
    """claimed -> completed, owner only."""
    cursor = await db.execute(
        """UPDATE tasks SET
               status = 'completed',
               claimed_by = NULL,
               completed_at = CURRENT_TIMESTAMP,
               version = version + 1
           WHERE id = ? AND status = 'claimed' AND claimed_by = ? AND version = ?""",
        (task_id, user_id, version),
    )
    return cursor.rowcount == 1


_TASK_UPDATABLE_FIELDS = {"title", "description", "priority", "type_id"}


async def update_task(
    db: aiosqlite.Connection,
    task_id: int,
    user_id: int,
    version: int,
    changes: dict[str, Any],
) -> bool:
    """Edit fields of a task claimed by ``user_id``. None clears a nullable column."""
    sets = []
    values: list[Any] = []
    for key, val in changes.items():
        if key in _TASK_UPDATABLE_FIELDS:
            sets.append(f"{key} = ?")
            values.append(val)

    sets.append("version = version + 1")
    values.extend([task_id, user_id, version])

    cursor = await db.execute(
        f"""UPDATE tasks SET {', '.join(sets)}
            WHERE id = ? AND status = 'claimed' AND claimed_by = ? AND version = ?""",
        values,
    )
    return cursor.rowcount == 1


async def insert_task_event(
    db: aiosqlite.Connection,
    org_id: int,
    project_id: int,
    task_id: int,
    actor_user_id: int,
    event_type: str,
) -> int:
    cursor = await db.execute(
        """INSERT INTO task_events (org_id, project_id, task_id, actor_user_id, event_type)
           VALUES (?, ?, ?, ?, ?)""",
        (org_id, project_id, task_id, actor_user_id, event_type),
    )
    return cursor.lastrowid


async def get_task_events(db: aiosqlite.Connection, task_id: int) -> list[dict]:
    cursor = await db.execute(
        "SELECT * FROM task_events WHERE task_id = ? ORDER BY id", (task_id,)
    )
    return [dict(r) for r in await cursor.fetchall()]


# --- Dependencies ---


async def get_dependencies(db: aiosqlite.Connection, task_id: int) -> list[dict]:
    cursor = await db.execute(
        """SELECT d.depends_on_task_id AS task_id, dt.title, dt.status,
                  COALESCE(u.email, '') AS claimed_by
           FROM task_dependencies d
           JOIN tasks dt ON dt.id = d.depends_on_task_id
           LEFT JOIN users u ON u.id = dt.claimed_by
           WHERE d.task_id = ?
           ORDER BY dt.created_at DESC""",
        (task_id,),
    )
    return [dict(r) for r in await cursor.fetchall()]


async def add_dependency(
    db: aiosqlite.Connection, task_id: int, depends_on_task_id: int, created_by: int
) -> None:
    await db.execute(
        """INSERT INTO task_dependencies (task_id, depends_on_task_id, created_by)
           VALUES (?, ?, ?)""",
        (task_id, depends_on_task_id, created_by),
    )


async def remove_dependency(
    db: aiosqlite.Connection, task_id: int, depends_on_task_id: int
) -> bool:
    cursor = await db.execute(
        "DELETE FROM task_dependencies WHERE task_id = ? AND depends_on_task_id = ?",
        (task_id, depends_on_task_id),
    )
    return cursor.rowcount == 1
