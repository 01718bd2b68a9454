"""Work sessions: time tracking with heartbeat liveness.

At most one active session exists per task (any user). The partial unique
index ``idx_work_sessions_active_task`` enforces it; a losing concurrent start
surfaces as an IntegrityError. Closing a session credits exactly
``ended_at - started_at`` seconds to the user's total for the task.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime, timedelta

import aiosqlite

from ..db.database import transaction
from ..errors import InvalidTransition, NotAuthorized, NotFound, SessionAlreadyActive
from ..events import Event, EventType, event_manager
from ..tasks import service as task_store
from ..tasks.models import TaskStatus
from .models import EndReason

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_ts(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.strftime(_TS_FORMAT)


def parse_ts(value: str) -> datetime:
    return datetime.strptime(value[:19], _TS_FORMAT).replace(tzinfo=UTC)


def _stamp(now: datetime | None) -> str:
    return format_ts(now or datetime.now(UTC))


async def get_session(db: aiosqlite.Connection, session_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM work_sessions WHERE id = ?", (session_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_active_session_for_task(db: aiosqlite.Connection, task_id: int) -> dict | None:
    cursor = await db.execute(
        "SELECT * FROM work_sessions WHERE task_id = ? AND ended_at IS NULL", (task_id,)
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_active_sessions(db: aiosqlite.Connection, user_id: int) -> list[dict]:
    """A user may work several tasks at once."""
    cursor = await db.execute(
        """SELECT * FROM work_sessions WHERE user_id = ? AND ended_at IS NULL
           ORDER BY started_at""",
        (user_id,),
    )
    return [dict(r) for r in await cursor.fetchall()]


async def get_work_total(db: aiosqlite.Connection, user_id: int, task_id: int) -> int:
    cursor = await db.execute(
        "SELECT accumulated_s FROM work_totals WHERE user_id = ? AND task_id = ?",
        (user_id, task_id),
    )
    row = await cursor.fetchone()
    return row["accumulated_s"] if row else 0


async def start_session(
    db: aiosqlite.Connection,
    user_id: int,
    task_id: int,
    now: datetime | None = None,
) -> dict:
    """Start working on a task the user has claimed.

    The claim is read inside the same write transaction as the insert.
    """
    ts = _stamp(now)
    try:
        async with transaction(db):
            task = await task_store.get_task_state(db, task_id)
            if task is None:
                raise NotFound("Task not found")
            if task["status"] != TaskStatus.CLAIMED:
                raise InvalidTransition("Task must be claimed before starting a work session")
            if task["claimed_by"] != user_id:
                raise NotAuthorized("Task is claimed by another user")
            cursor = await db.execute(
                """INSERT INTO work_sessions (user_id, task_id, started_at, last_heartbeat_at)
                   VALUES (?, ?, ?, ?)""",
                (user_id, task_id, ts, ts),
            )
    except sqlite3.IntegrityError:
        active = await get_active_session_for_task(db, task_id)
        holder = active["user_id"] if active else None
        raise SessionAlreadyActive(
            f"Task already has an active work session (user {holder})"
        ) from None

    session = await get_session(db, cursor.lastrowid)
    logger.info("User %s started session %s on task %s", user_id, session["id"], task_id)
    await event_manager.publish_to_project(
        task["project_id"], Event(event_type=EventType.SESSION_STARTED, data=session)
    )
    return session


async def heartbeat(
    db: aiosqlite.Connection,
    session_id: int,
    user_id: int,
    now: datetime | None = None,
) -> dict:
    """Refresh liveness of an active session. Never creates rows."""
    cursor = await db.execute(
        """UPDATE work_sessions SET last_heartbeat_at = ?
           WHERE id = ? AND user_id = ? AND ended_at IS NULL""",
        (_stamp(now), session_id, user_id),
    )
    updated = cursor.rowcount
    await db.commit()
    if not updated:
        raise NotFound("No active session")
    return await get_session(db, session_id)


async def _add_to_total(db: aiosqlite.Connection, user_id: int, task_id: int, seconds: int) -> None:
    await db.execute(
        """INSERT INTO work_totals (user_id, task_id, accumulated_s, updated_at)
           VALUES (?, ?, ?, CURRENT_TIMESTAMP)
           ON CONFLICT(user_id, task_id) DO UPDATE SET
               accumulated_s = accumulated_s + excluded.accumulated_s,
               updated_at = CURRENT_TIMESTAMP""",
        (user_id, task_id, seconds),
    )


async def _close(
    db: aiosqlite.Connection,
    session_id: int,
    reason: EndReason,
    ended_at: str | None,
) -> dict | None:
    """Close an active session inside the caller's transaction.

    ``ended_at`` None ends the session at its last heartbeat. Returns None
    when the session was already closed.
    """
    cursor = await db.execute(
        """UPDATE work_sessions SET ended_at = COALESCE(?, last_heartbeat_at), ended_reason = ?
           WHERE id = ? AND ended_at IS NULL""",
        (ended_at, str(reason), session_id),
    )
    if cursor.rowcount == 0:
        return None

    session = await get_session(db, session_id)
    elapsed = (parse_ts(session["ended_at"]) - parse_ts(session["started_at"])).total_seconds()
    elapsed_s = max(0, int(elapsed))
    await _add_to_total(db, session["user_id"], session["task_id"], elapsed_s)
    session["elapsed_s"] = elapsed_s
    logger.debug(
        "Closed session %s (%s), credited %ss",
        session_id,
        reason,
        elapsed_s,
        extra={"session_id": session_id, "task_id": session["task_id"], "reason": str(reason)},
    )
    return session


async def close_session(
    db: aiosqlite.Connection,
    session_id: int,
    reason: EndReason,
    now: datetime | None = None,
) -> dict | None:
    """Close a session for ``reason``. Closing twice is a no-op (returns None)."""
    async with transaction(db):
        return await _close(db, session_id, reason, _stamp(now))


async def pause_session(
    db: aiosqlite.Connection,
    session_id: int,
    user_id: int,
    now: datetime | None = None,
) -> dict:
    """User pause. A retried pause returns the already-closed session."""
    session = await get_session(db, session_id)
    if session is None:
        raise NotFound("Session not found")
    if session["user_id"] != user_id:
        raise NotAuthorized("Not your session")

    closed = await close_session(db, session_id, EndReason.USER_PAUSE, now)
    if closed is None:
        return await get_session(db, session_id)

    task = await task_store.get_task_state(db, closed["task_id"])
    if task:
        await event_manager.publish_to_project(
            task["project_id"], Event(event_type=EventType.SESSION_CLOSED, data=closed)
        )
    return closed


async def close_for_task(
    db: aiosqlite.Connection,
    task_id: int,
    reason: EndReason,
    now: datetime | None = None,
) -> dict | None:
    """Close the task's active session, if any, inside the caller's transaction."""
    active = await get_active_session_for_task(db, task_id)
    if active is None:
        return None
    return await _close(db, active["id"], reason, _stamp(now))


async def close_stale_sessions(
    db: aiosqlite.Connection,
    threshold_s: int,
    now: datetime | None = None,
) -> int:
    """Close sessions whose last heartbeat is older than ``threshold_s``.

    Stale sessions end at their last heartbeat, so silence is not credited.
    Returns the number of sessions closed.
    """
    cutoff = format_ts((now or datetime.now(UTC)) - timedelta(seconds=threshold_s))
    cursor = await db.execute(
        """SELECT id FROM work_sessions
           WHERE ended_at IS NULL AND last_heartbeat_at < ?""",
        (cutoff,),
    )
    stale_ids = [r["id"] for r in await cursor.fetchall()]

    closed = 0
    for session_id in stale_ids:
        async with transaction(db):
            if await _close(db, session_id, EndReason.STALE_TIMEOUT, None) is not None:
                closed += 1

    if closed:
        logger.info("Closed %d stale work session(s)", closed)
    return closed
