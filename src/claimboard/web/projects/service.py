"""Project collaborators: membership gating, task types and capabilities."""

from __future__ import annotations

import sqlite3

import aiosqlite

from ..errors import NotAuthorized, NotFound, TaskTypeAlreadyExists, TaskTypeInUse, ValidationError


async def get_project(db: aiosqlite.Connection, project_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_user(db: aiosqlite.Connection, user_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_member_role(db: aiosqlite.Connection, project_id: int, user_id: int) -> str | None:
    cursor = await db.execute(
        "SELECT role FROM project_members WHERE project_id = ? AND user_id = ?",
        (project_id, user_id),
    )
    row = await cursor.fetchone()
    return row["role"] if row else None


async def require_project_member(db: aiosqlite.Connection, project_id: int, user_id: int) -> str:
    """Raise NotAuthorized unless the user belongs to the project. Returns the role."""
    role = await get_member_role(db, project_id, user_id)
    if role is None:
        raise NotAuthorized("Not a member of this project")
    return role


async def require_project_manager(db: aiosqlite.Connection, project_id: int, user_id: int) -> None:
    role = await get_member_role(db, project_id, user_id)
    if role != "manager":
        raise NotAuthorized("Project manager role required")


# --- Task types ---


async def get_task_type(db: aiosqlite.Connection, type_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM task_types WHERE id = ?", (type_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def task_type_in_project(db: aiosqlite.Connection, type_id: int, project_id: int) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM task_types WHERE id = ? AND project_id = ?", (type_id, project_id)
    )
    return await cursor.fetchone() is not None


async def capability_in_project(
    db: aiosqlite.Connection, capability_id: int, project_id: int
) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM capabilities WHERE id = ? AND project_id = ?", (capability_id, project_id)
    )
    return await cursor.fetchone() is not None


async def list_task_types(db: aiosqlite.Connection, project_id: int) -> list[dict]:
    cursor = await db.execute(
        "SELECT * FROM task_types WHERE project_id = ? ORDER BY name", (project_id,)
    )
    return [dict(r) for r in await cursor.fetchall()]


async def create_task_type(
    db: aiosqlite.Connection,
    project_id: int,
    name: str,
    icon: str,
    capability_id: int | None = None,
) -> dict:
    name = name.strip()
    icon = icon.strip()
    if not name:
        raise ValidationError("Task type name is required")
    if not icon:
        raise ValidationError("Task type icon is required")
    if capability_id is not None and not await capability_in_project(db, capability_id, project_id):
        raise ValidationError("Invalid capability_id")

    try:
        cursor = await db.execute(
            "INSERT INTO task_types (project_id, name, icon, capability_id) VALUES (?, ?, ?, ?)",
            (project_id, name, icon, capability_id),
        )
    except sqlite3.IntegrityError:
        await db.rollback()
        raise TaskTypeAlreadyExists(f"Task type '{name}' already exists") from None
    await db.commit()

    return await get_task_type(db, cursor.lastrowid)


async def delete_task_type(db: aiosqlite.Connection, type_id: int) -> None:
    """Delete a task type unless tasks, templates or rules still reference it."""
    try:
        cursor = await db.execute(
            """DELETE FROM task_types
               WHERE id = ?
                 AND NOT EXISTS (SELECT 1 FROM tasks WHERE type_id = ?)
                 AND NOT EXISTS (SELECT 1 FROM task_templates WHERE type_id = ?)
                 AND NOT EXISTS (SELECT 1 FROM rules WHERE task_type_id = ?)""",
            (type_id, type_id, type_id, type_id),
        )
    except sqlite3.IntegrityError:
        await db.rollback()
        raise TaskTypeInUse("Task type is still referenced") from None
    deleted = cursor.rowcount
    await db.commit()
    if deleted:
        return
    if await get_task_type(db, type_id) is None:
        raise NotFound("Task type not found")
    raise TaskTypeInUse("Task type is used by existing tasks, templates or rules")
