"""Single entry point for task requests.

A mutation commits first. Rule evaluation, the card cascade and milestone
completion run afterwards as best-effort steps, then the change is broadcast
to the project's event stream.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Awaitable, Callable
from typing import Any

import aiosqlite

from .automation.hooks import best_effort
from .automation.models import RuleOutcome
from .automation.rules import RulesEngine
from .cards.service import evaluate_card
from .errors import DbError, NotFound, WorkflowError
from .events import DomainEvent, Event, EventType, ResourceType, event_manager
from .messages import (
    ClaimTask,
    CompleteTask,
    CreateTask,
    CreateTaskType,
    DeleteTaskType,
    ListTasks,
    Message,
    ReleaseTask,
    Response,
    TaskResult,
    TasksList,
    TaskTypeCreated,
    TaskTypeDeleted,
    UpdateTask,
)
from .milestones.service import milestone_for_task, recompute_completion
from .projects import service as projects
from .tasks import service as task_store
from .tasks.workflow import TaskWorkflow

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Dispatches messages to the task workflow and runs the follow-up automation."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db
        self.workflow = TaskWorkflow(db)
        self.rules = RulesEngine(db)
        self._handlers: dict[type, Callable[[Any], Awaitable[Response]]] = {
            ClaimTask: self._claim,
            ReleaseTask: self._release,
            CompleteTask: self._complete,
            UpdateTask: self._update,
            CreateTask: self._create,
            ListTasks: self._list,
            CreateTaskType: self._create_task_type,
            DeleteTaskType: self._delete_task_type,
        }

    async def handle(self, message: Message) -> Response:
        handler = self._handlers.get(type(message))
        if handler is None:
            raise TypeError(f"Unsupported message: {type(message).__name__}")
        try:
            return await handler(message)
        except WorkflowError:
            raise
        except sqlite3.Error as exc:
            logger.exception("Database error while handling %s", type(message).__name__)
            raise DbError(str(exc)) from exc

    # --- Task mutations ---

    async def _claim(self, msg: ClaimTask) -> TaskResult:
        task, event = await self.workflow.claim(msg.task_id, msg.actor_id, msg.version)
        return await self._after_commit(task, event, EventType.TASK_CLAIMED)

    async def _release(self, msg: ReleaseTask) -> TaskResult:
        task, event = await self.workflow.release(msg.task_id, msg.actor_id, msg.version)
        return await self._after_commit(task, event, EventType.TASK_RELEASED)

    async def _complete(self, msg: CompleteTask) -> TaskResult:
        task, event = await self.workflow.complete(msg.task_id, msg.actor_id, msg.version)
        return await self._after_commit(task, event, EventType.TASK_COMPLETED)

    async def _update(self, msg: UpdateTask) -> TaskResult:
        task, event = await self.workflow.update(
            msg.task_id,
            msg.actor_id,
            msg.version,
            title=msg.title,
            description=msg.description,
            priority=msg.priority,
            type_id=msg.type_id,
        )
        # Edits do not change state, so there is nothing for rules to react to.
        await event_manager.publish_to_project(
            event.project_id, Event(event_type=EventType.TASK_UPDATED, data=task)
        )
        return TaskResult(task=task)

    async def _create(self, msg: CreateTask) -> TaskResult:
        task, event = await self.workflow.create(
            msg.project_id,
            msg.actor_id,
            type_id=msg.type_id,
            title=msg.title,
            description=msg.description,
            priority=msg.priority,
            card_id=msg.card_id,
            milestone_id=msg.milestone_id,
        )
        return await self._after_commit(task, event, EventType.TASK_CREATED)

    async def _after_commit(self, task: dict, event: DomainEvent, sse_type: EventType) -> TaskResult:
        context = {"task_id": task["id"], "project_id": event.project_id, "to_state": event.to_state}

        outcomes: list[RuleOutcome] = (
            await best_effort(self.db, "rules", self.rules.evaluate(event), **context) or []
        )
        if task.get("card_id"):
            card_outcomes = await best_effort(
                self.db, "card_cascade", self._cascade_card(task["card_id"], event), **context
            )
            outcomes.extend(card_outcomes or [])
        await best_effort(self.db, "milestone_recompute", self._recompute_milestone(task), **context)

        await event_manager.publish_to_project(
            event.project_id, Event(event_type=sse_type, data=task)
        )
        return TaskResult(task=task, rule_outcomes=outcomes)

    async def _cascade_card(self, card_id: int, task_event: DomainEvent) -> list[RuleOutcome]:
        """Evaluate card rules against the card's current state.

        The card may not have changed state at all; the ledger keeps a
        repeated evaluation from firing twice.
        """
        card = await evaluate_card(self.db, card_id)
        if card is None:
            return []
        card_event = DomainEvent(
            resource_type=ResourceType.CARD,
            resource_id=card_id,
            project_id=card["project_id"],
            org_id=task_event.org_id,
            actor_user_id=task_event.actor_user_id,
            from_state=None,
            to_state=card["state"],
        )
        return await self.rules.evaluate(card_event)

    async def _recompute_milestone(self, task: dict) -> None:
        milestone_id = await milestone_for_task(self.db, task)
        if milestone_id is not None:
            await recompute_completion(self.db, milestone_id)

    # --- Queries and task types ---

    async def _list(self, msg: ListTasks) -> TasksList:
        if await projects.get_project(self.db, msg.project_id) is None:
            raise NotFound("Project not found")
        await projects.require_project_member(self.db, msg.project_id, msg.actor_id)
        tasks = await task_store.list_tasks(
            self.db,
            msg.project_id,
            status=msg.status,
            type_id=msg.type_id,
            capability_id=msg.capability_id,
            q=msg.q,
            blocked=msg.blocked,
        )
        return TasksList(tasks=tasks)

    async def _create_task_type(self, msg: CreateTaskType) -> TaskTypeCreated:
        if await projects.get_project(self.db, msg.project_id) is None:
            raise NotFound("Project not found")
        await projects.require_project_manager(self.db, msg.project_id, msg.actor_id)
        task_type = await projects.create_task_type(
            self.db, msg.project_id, msg.name, msg.icon, msg.capability_id
        )
        logger.info("Task type %s created in project %s", task_type["id"], msg.project_id)
        return TaskTypeCreated(task_type=task_type)

    async def _delete_task_type(self, msg: DeleteTaskType) -> TaskTypeDeleted:
        task_type = await projects.get_task_type(self.db, msg.type_id)
        if task_type is None:
            raise NotFound("Task type not found")
        await projects.require_project_manager(self.db, task_type["project_id"], msg.actor_id)
        await projects.delete_task_type(self.db, msg.type_id)
        logger.info("Task type %s deleted", msg.type_id)
        return TaskTypeDeleted(type_id=msg.type_id)
