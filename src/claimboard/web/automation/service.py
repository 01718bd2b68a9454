"""Workflow, rule and task-template configuration."""

from __future__ import annotations

import logging
import sqlite3

import aiosqlite

from ..cards.models import CardState
from ..errors import NotFound, ValidationError
from ..events import ResourceType
from ..projects.service import get_project, task_type_in_project
from ..tasks.models import TaskStatus

logger = logging.getLogger(__name__)

_VALID_STATES = {
    ResourceType.TASK: {s.value for s in TaskStatus},
    ResourceType.CARD: {s.value for s in CardState},
}


def _row(row: aiosqlite.Row | None) -> dict | None:
    if row is None:
        return None
    data = dict(row)
    if "active" in data:
        data["active"] = bool(data["active"])
    return data


# --- Workflows ---


async def get_workflow(db: aiosqlite.Connection, workflow_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM workflows WHERE id = ?", (workflow_id,))
    return _row(await cursor.fetchone())


async def list_workflows(db: aiosqlite.Connection, project_id: int) -> list[dict]:
    cursor = await db.execute(
        "SELECT * FROM workflows WHERE project_id = ? ORDER BY id", (project_id,)
    )
    return [_row(r) for r in await cursor.fetchall()]


async def create_workflow(
    db: aiosqlite.Connection,
    project_id: int,
    name: str,
    created_by: int,
    description: str = "",
    active: bool = False,
) -> dict:
    name = name.strip()
    if not name:
        raise ValidationError("Workflow name is required")
    project = await get_project(db, project_id)
    if project is None:
        raise NotFound("Project not found")

    try:
        cursor = await db.execute(
            """INSERT INTO workflows (org_id, project_id, name, description, active, created_by)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (project["org_id"], project_id, name, description or None, int(active), created_by),
        )
    except sqlite3.IntegrityError:
        await db.rollback()
        raise ValidationError(f"Workflow '{name}' already exists in this project") from None
    await db.commit()
    logger.info("Workflow %s created in project %s", cursor.lastrowid, project_id)
    return await get_workflow(db, cursor.lastrowid)


async def set_workflow_active(db: aiosqlite.Connection, workflow_id: int, active: bool) -> dict:
    cursor = await db.execute(
        "UPDATE workflows SET active = ? WHERE id = ?", (int(active), workflow_id)
    )
    updated = cursor.rowcount
    await db.commit()
    if not updated:
        raise NotFound("Workflow not found")
    return await get_workflow(db, workflow_id)


# --- Rules ---


async def get_rule(db: aiosqlite.Connection, rule_id: int) -> dict | None:
    cursor = await db.execute(
        """SELECT r.*, w.project_id FROM rules r
           JOIN workflows w ON w.id = r.workflow_id
           WHERE r.id = ?""",
        (rule_id,),
    )
    return _row(await cursor.fetchone())


async def list_rules(db: aiosqlite.Connection, workflow_id: int) -> list[dict]:
    cursor = await db.execute(
        """SELECT r.*, w.project_id FROM rules r
           JOIN workflows w ON w.id = r.workflow_id
           WHERE r.workflow_id = ? ORDER BY r.id""",
        (workflow_id,),
    )
    return [_row(r) for r in await cursor.fetchall()]


async def create_rule(
    db: aiosqlite.Connection,
    workflow_id: int,
    name: str,
    resource_type: str,
    to_state: str,
    task_type_id: int | None = None,
    goal: str = "",
    active: bool = True,
) -> dict:
    workflow = await get_workflow(db, workflow_id)
    if workflow is None:
        raise NotFound("Workflow not found")

    name = name.strip()
    if not name:
        raise ValidationError("Rule name is required")
    try:
        kind = ResourceType(resource_type)
    except ValueError:
        raise ValidationError(f"Unknown resource type '{resource_type}'") from None
    if to_state not in _VALID_STATES[kind]:
        raise ValidationError(f"'{to_state}' is not a {kind} state")
    if task_type_id is not None:
        if kind != ResourceType.TASK:
            raise ValidationError("Only task rules can filter by task type")
        if not await task_type_in_project(db, task_type_id, workflow["project_id"]):
            raise ValidationError("Invalid task_type_id for this project")

    cursor = await db.execute(
        """INSERT INTO rules (workflow_id, name, goal, resource_type, task_type_id, to_state, active)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (workflow_id, name, goal or None, str(kind), task_type_id, to_state, int(active)),
    )
    await db.commit()
    return await get_rule(db, cursor.lastrowid)


# --- Task templates ---


async def get_task_template(db: aiosqlite.Connection, template_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM task_templates WHERE id = ?", (template_id,))
    return _row(await cursor.fetchone())


async def create_task_template(
    db: aiosqlite.Connection,
    project_id: int,
    name: str,
    type_id: int,
    created_by: int,
    description: str = "",
    priority: int = 3,
) -> dict:
    """Template names and descriptions may use {{father}}, {{from_state}},
    {{to_state}}, {{project}} and {{user}}."""
    name = name.strip()
    if not name:
        raise ValidationError("Template name is required")
    if not 1 <= priority <= 5:
        raise ValidationError("Priority must be between 1 and 5")
    project = await get_project(db, project_id)
    if project is None:
        raise NotFound("Project not found")
    if not await task_type_in_project(db, type_id, project_id):
        raise ValidationError("Invalid type_id for this project")

    cursor = await db.execute(
        """INSERT INTO task_templates (org_id, project_id, name, description, type_id, priority, created_by)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (project["org_id"], project_id, name, description or None, type_id, priority, created_by),
    )
    await db.commit()
    return await get_task_template(db, cursor.lastrowid)


async def attach_template(
    db: aiosqlite.Connection, rule_id: int, template_id: int, execution_order: int = 0
) -> None:
    """Link a template to a rule; re-attaching updates the order."""
    rule = await get_rule(db, rule_id)
    if rule is None:
        raise NotFound("Rule not found")
    template = await get_task_template(db, template_id)
    if template is None:
        raise NotFound("Template not found")
    if template["project_id"] != rule["project_id"]:
        raise ValidationError("Template and rule belong to different projects")

    await db.execute(
        """INSERT INTO rule_templates (rule_id, template_id, execution_order)
           VALUES (?, ?, ?)
           ON CONFLICT(rule_id, template_id) DO UPDATE SET execution_order = excluded.execution_order""",
        (rule_id, template_id, execution_order),
    )
    await db.commit()


async def list_rule_templates(db: aiosqlite.Connection, rule_id: int) -> list[dict]:
    cursor = await db.execute(
        """SELECT t.*, rt.execution_order FROM rule_templates rt
           JOIN task_templates t ON t.id = rt.template_id
           WHERE rt.rule_id = ? ORDER BY rt.execution_order, t.id""",
        (rule_id,),
    )
    return [_row(r) for r in await cursor.fetchall()]
