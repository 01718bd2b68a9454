"""Turn a conditional update that matched no row into a precise error.

A zero-row UPDATE alone cannot tell a stale version from a wrong owner or an
illegal transition, so the current row is read back and classified. No lock
is held between the write attempt and this read; the classification reflects
whatever state won the race.
"""

from __future__ import annotations

import logging
from enum import StrEnum

import aiosqlite

from ..errors import (
    AlreadyClaimed,
    ClaimOwnershipConflict,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    VersionConflict,
    WorkflowError,
)
from . import service as task_store
from .models import TaskStatus

logger = logging.getLogger(__name__)


class Action(StrEnum):
    CLAIM = "claim"
    RELEASE = "release"
    COMPLETE = "complete"
    UPDATE = "update"


def classify(
    current: dict | None, action: Action, user_id: int, expected_version: int
) -> WorkflowError:
    """Pure classification of a failed conditional update."""
    if current is None:
        return NotFound("Task not found")

    status = current["status"]
    claimant = current["claimed_by"]

    if action == Action.CLAIM:
        if status == TaskStatus.CLAIMED:
            if claimant == user_id:
                return AlreadyClaimed("Task is already claimed by you")
            return ClaimOwnershipConflict(claimant)
        if status != TaskStatus.AVAILABLE:
            return InvalidTransition(f"Cannot claim a task that is {status}")
    else:
        if status != TaskStatus.CLAIMED:
            return InvalidTransition(f"Cannot {action} a task that is {status}")
        if claimant != user_id:
            return NotAuthorized("Task is claimed by another user")

    if current["version"] != expected_version:
        return VersionConflict(
            f"Expected version {expected_version}, task is at version {current['version']}",
            current_version=current["version"],
        )
    # Predicates all match now: the row moved and came back between write and read.
    return VersionConflict("Task changed concurrently", current_version=current["version"])


async def resolve_conflict(
    db: aiosqlite.Connection,
    task_id: int,
    action: Action,
    user_id: int,
    expected_version: int,
) -> WorkflowError:
    """Read the task and return the error explaining why ``action`` did not apply."""
    current = await task_store.get_task_state(db, task_id)
    error = classify(current, action, user_id, expected_version)
    logger.info(
        "Task %s %s by user %s rejected: %s",
        task_id,
        action,
        user_id,
        error.code,
        extra={"task_id": task_id, "action": str(action), "error_code": error.code},
    )
    return error
