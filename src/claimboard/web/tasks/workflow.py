"""Task lifecycle: available -> claimed -> completed, with release back to the pool.

Each mutation is a single conditional UPDATE, committed together with its
audit row and (for release/complete) the closing of the task's work session.
Validation and membership checks run before anything is written.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

import aiosqlite

from ..cards.service import card_in_project
from ..db.database import transaction
from ..errors import NotFound, ValidationError
from ..events import DomainEvent, EventType, ResourceType
from ..milestones.service import milestone_in_project
from ..patch import UNCHANGED, Clear, Patch, Set
from ..projects.service import get_project, require_project_member, task_type_in_project
from ..sessions.models import EndReason
from ..sessions.service import close_for_task
from . import service as task_store
from .conflicts import Action, resolve_conflict
from .models import TITLE_MAX_LENGTH, TaskStatus

logger = logging.getLogger(__name__)


def _clean_title(title: str) -> str:
    title = title.strip()
    if not title:
        raise ValidationError("Title is required")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters")
    return title


def _check_priority(priority: int) -> int:
    if not 1 <= priority <= 5:
        raise ValidationError("Priority must be between 1 and 5")
    return priority


async def _load(db: aiosqlite.Connection, task_id: int, user_id: int) -> tuple[dict, int]:
    """Read the task, check membership and return (task, org_id)."""
    task = await task_store.get_task_state(db, task_id)
    if task is None:
        raise NotFound("Task not found")
    await require_project_member(db, task["project_id"], user_id)
    project = await get_project(db, task["project_id"])
    return task, project["org_id"]


class TaskWorkflow:
    """State machine for one task at a time. Returns the task and its DomainEvent."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def create(
        self,
        project_id: int,
        user_id: int,
        type_id: int,
        title: str,
        description: str = "",
        priority: int = 3,
        card_id: int | None = None,
        milestone_id: int | None = None,
    ) -> tuple[dict, DomainEvent]:
        db = self.db
        project = await get_project(db, project_id)
        if project is None:
            raise NotFound("Project not found")
        await require_project_member(db, project_id, user_id)

        title = _clean_title(title)
        _check_priority(priority)
        if not await task_type_in_project(db, type_id, project_id):
            raise ValidationError("Invalid type_id for this project")
        if card_id is not None and milestone_id is not None:
            raise ValidationError("A task belongs to a card or a milestone, not both")
        if card_id is not None and not await card_in_project(db, card_id, project_id):
            raise ValidationError("Invalid card_id")
        if milestone_id is not None and not await milestone_in_project(db, milestone_id, project_id):
            raise ValidationError("Invalid milestone_id")

        async with transaction(db):
            task_id = await task_store.insert_task(
                db,
                project_id=project_id,
                type_id=type_id,
                title=title,
                created_by=user_id,
                description=description,
                priority=priority,
                card_id=card_id,
                milestone_id=milestone_id,
            )
            await task_store.insert_task_event(
                db, project["org_id"], project_id, task_id, user_id, EventType.TASK_CREATED
            )

        logger.info("User %s created task %s in project %s", user_id, task_id, project_id)
        event = DomainEvent(
            resource_type=ResourceType.TASK,
            resource_id=task_id,
            project_id=project_id,
            org_id=project["org_id"],
            actor_user_id=user_id,
            from_state=None,
            to_state=TaskStatus.AVAILABLE,
            task_type_id=type_id,
        )
        return await task_store.get_task(db, task_id), event

    async def claim(self, task_id: int, user_id: int, version: int) -> tuple[dict, DomainEvent]:
        task, org_id = await _load(self.db, task_id, user_id)

        async with transaction(self.db):
            if not await task_store.claim_task(self.db, task_id, user_id, version):
                raise await resolve_conflict(self.db, task_id, Action.CLAIM, user_id, version)
            await task_store.insert_task_event(
                self.db, org_id, task["project_id"], task_id, user_id, EventType.TASK_CLAIMED
            )

        return await self._after(task_id, org_id, user_id, TaskStatus.AVAILABLE, TaskStatus.CLAIMED)

    async def release(self, task_id: int, user_id: int, version: int) -> tuple[dict, DomainEvent]:
        task, org_id = await _load(self.db, task_id, user_id)

        async with transaction(self.db):
            if not await task_store.release_task(self.db, task_id, user_id, version):
                raise await resolve_conflict(self.db, task_id, Action.RELEASE, user_id, version)
            await task_store.insert_task_event(
                self.db, org_id, task["project_id"], task_id, user_id, EventType.TASK_RELEASED
            )
            await close_for_task(self.db, task_id, EndReason.TASK_RELEASED)

        return await self._after(task_id, org_id, user_id, TaskStatus.CLAIMED, TaskStatus.AVAILABLE)

    async def complete(self, task_id: int, user_id: int, version: int) -> tuple[dict, DomainEvent]:
        task, org_id = await _load(self.db, task_id, user_id)

        async with transaction(self.db):
            if not await task_store.complete_task(self.db, task_id, user_id, version):
                raise await resolve_conflict(self.db, task_id, Action.COMPLETE, user_id, version)
            await task_store.insert_task_event(
                self.db, org_id, task["project_id"], task_id, user_id, EventType.TASK_COMPLETED
            )
            await close_for_task(self.db, task_id, EndReason.TASK_COMPLETED)

        return await self._after(task_id, org_id, user_id, TaskStatus.CLAIMED, TaskStatus.COMPLETED)

    async def update(
        self,
        task_id: int,
        user_id: int,
        version: int,
        title: Patch[str] = UNCHANGED,
        description: Patch[str] = UNCHANGED,
        priority: Patch[int] = UNCHANGED,
        type_id: Patch[int] = UNCHANGED,
    ) -> tuple[dict, DomainEvent]:
        """Edit a claimed task. Emits an audit event only; status is unchanged."""
        task, org_id = await _load(self.db, task_id, user_id)

        changes: dict[str, Any] = {}
        if isinstance(title, Clear):
            raise ValidationError("Title cannot be cleared")
        if isinstance(title, Set):
            changes["title"] = _clean_title(title.value)

        if isinstance(description, Clear):
            changes["description"] = None
        elif isinstance(description, Set):
            changes["description"] = description.value or None

        if isinstance(priority, Clear):
            raise ValidationError("Priority cannot be cleared")
        if isinstance(priority, Set):
            changes["priority"] = _check_priority(priority.value)

        if isinstance(type_id, Clear):
            raise ValidationError("Task type cannot be cleared")
        if isinstance(type_id, Set):
            if not await task_type_in_project(self.db, type_id.value, task["project_id"]):
                raise ValidationError("Invalid type_id for this project")
            changes["type_id"] = type_id.value

        async with transaction(self.db):
            if not await task_store.update_task(self.db, task_id, user_id, version, changes):
                raise await resolve_conflict(self.db, task_id, Action.UPDATE, user_id, version)
            await task_store.insert_task_event(
                self.db, org_id, task["project_id"], task_id, user_id, EventType.TASK_UPDATED
            )

        return await self._after(task_id, org_id, user_id, TaskStatus.CLAIMED, TaskStatus.CLAIMED)

    async def _after(
        self, task_id: int, org_id: int, user_id: int, from_state: str, to_state: str
    ) -> tuple[dict, DomainEvent]:
        updated = await task_store.get_task(self.db, task_id)
        logger.info(
            "Task %s %s -> %s by user %s (v%s)",
            task_id,
            from_state,
            to_state,
            user_id,
            updated["version"],
        )
        event = DomainEvent(
            resource_type=ResourceType.TASK,
            resource_id=task_id,
            project_id=updated["project_id"],
            org_id=org_id,
            actor_user_id=user_id,
            from_state=from_state,
            to_state=to_state,
            task_type_id=updated["type_id"],
        )
        return updated, event

    # --- Dependencies ---

    async def add_dependency(self, task_id: int, depends_on_task_id: int, user_id: int) -> list[dict]:
        task, _ = await _load(self.db, task_id, user_id)
        if task_id == depends_on_task_id:
            raise ValidationError("A task cannot depend on itself")
        other = await task_store.get_task_state(self.db, depends_on_task_id)
        if other is None or other["project_id"] != task["project_id"]:
            raise ValidationError("Dependency must be a task in the same project")
        try:
            async with transaction(self.db):
                await task_store.add_dependency(self.db, task_id, depends_on_task_id, user_id)
        except sqlite3.IntegrityError:
            raise ValidationError("Dependency already exists") from None
        return await task_store.get_dependencies(self.db, task_id)

    async def remove_dependency(self, task_id: int, depends_on_task_id: int, user_id: int) -> None:
        await _load(self.db, task_id, user_id)
        async with transaction(self.db):
            removed = await task_store.remove_dependency(self.db, task_id, depends_on_task_id)
        if not removed:
            raise NotFound("Dependency not found")
