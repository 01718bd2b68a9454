"""Tests for work sessions: start, heartbeat, pause, stale sweep and totals."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from claimboard.web.errors import InvalidTransition, NotAuthorized, NotFound, SessionAlreadyActive
from claimboard.web.sessions.models import EndReason
from claimboard.web.sessions.service import (
    close_session,
    close_stale_sessions,
    get_active_sessions,
    get_session,
    get_work_total,
    heartbeat,
    pause_session,
    start_session,
)
from claimboard.web.tasks import service as task_store
from claimboard.web.tasks.service import get_task
from claimboard.web.tasks.workflow import TaskWorkflow

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=UTC)


@pytest.fixture
def claimed_task(db, make_task):
    async def _claimed(user_id: int = 7, title: str = "Write tests") -> dict:
        task = await make_task(title)
        claimed, _ = await TaskWorkflow(db).claim(task["id"], user_id, 1)
        return claimed

    return _claimed


class TestStart:
    @pytest.mark.asyncio
    async def test_start(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        assert session["user_id"] == 7
        assert session["ended_at"] is None
        assert session["started_at"] == session["last_heartbeat_at"] == "2026-03-02 09:00:00"

        refreshed = await get_task(db, task["id"])
        assert refreshed["is_ongoing"] is True
        assert refreshed["work_state"] == "ongoing"
        assert refreshed["ongoing_by_user_id"] == 7

    @pytest.mark.asyncio
    async def test_start_unclaimed_task(self, db, make_task):
        task = await make_task()
        with pytest.raises(InvalidTransition):
            await start_session(db, 7, task["id"])

    @pytest.mark.asyncio
    async def test_start_on_task_claimed_by_other(self, db, claimed_task):
        task = await claimed_task(user_id=9)
        with pytest.raises(NotAuthorized):
            await start_session(db, 7, task["id"])

    @pytest.mark.asyncio
    async def test_start_missing_task(self, db):
        with pytest.raises(NotFound):
            await start_session(db, 7, 999)

    @pytest.mark.asyncio
    async def test_second_active_session_rejected(self, db, claimed_task):
        task = await claimed_task()
        await start_session(db, 7, task["id"], now=T0)
        with pytest.raises(SessionAlreadyActive):
            await start_session(db, 7, task["id"], now=T0 + timedelta(seconds=5))
        cursor = await db.execute(
            "SELECT COUNT(*) FROM work_sessions WHERE task_id = ? AND ended_at IS NULL", (task["id"],)
        )
        assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_several_tasks_at_once(self, db, claimed_task):
        a = await claimed_task(title="A")
        b = await claimed_task(title="B")
        await start_session(db, 7, a["id"], now=T0)
        await start_session(db, 7, b["id"], now=T0)
        assert len(await get_active_sessions(db, 7)) == 2

    @pytest.mark.asyncio
    async def test_release_racing_start_leaves_no_orphan(self, db, other_db, claimed_task, monkeypatch):
        task = await claimed_task()
        original = task_store.get_task_state
        pending = []

        async def read_then_release(conn, task_id):
            if conn is db and not pending:
                # Another connection releases right as the start reads the claim.
                pending.append(asyncio.create_task(TaskWorkflow(other_db).release(task_id, 7, 2)))
                await asyncio.sleep(0.1)
            return await original(conn, task_id)

        monkeypatch.setattr(task_store, "get_task_state", read_then_release)
        session = await start_session(db, 7, task["id"], now=T0)
        released, _ = await pending[0]

        assert released["status"] == "available"
        closed = await get_session(db, session["id"])
        assert closed["ended_reason"] == EndReason.TASK_RELEASED
        cursor = await db.execute(
            "SELECT COUNT(*) FROM work_sessions WHERE task_id = ? AND ended_at IS NULL", (task["id"],)
        )
        assert (await cursor.fetchone())[0] == 0


class TestHeartbeatAndPause:
    @pytest.mark.asyncio
    async def test_heartbeat_updates_row(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        beat = await heartbeat(db, session["id"], 7, now=T0 + timedelta(seconds=60))
        assert beat["id"] == session["id"]
        assert beat["last_heartbeat_at"] == "2026-03-02 09:01:00"
        cursor = await db.execute("SELECT COUNT(*) FROM work_sessions")
        assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_heartbeat_other_users_session(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        with pytest.raises(NotFound):
            await heartbeat(db, session["id"], 9, now=T0)

    @pytest.mark.asyncio
    async def test_heartbeat_closed_session(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        await pause_session(db, session["id"], 7, now=T0 + timedelta(seconds=10))
        with pytest.raises(NotFound):
            await heartbeat(db, session["id"], 7, now=T0 + timedelta(seconds=20))

    @pytest.mark.asyncio
    async def test_pause_credits_elapsed(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        paused = await pause_session(db, session["id"], 7, now=T0 + timedelta(seconds=90))
        assert paused["ended_reason"] == EndReason.USER_PAUSE
        assert paused["elapsed_s"] == 90
        assert await get_work_total(db, 7, task["id"]) == 90

    @pytest.mark.asyncio
    async def test_pause_is_idempotent(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        await pause_session(db, session["id"], 7, now=T0 + timedelta(seconds=40))
        again = await pause_session(db, session["id"], 7, now=T0 + timedelta(seconds=400))
        assert again["ended_at"] == "2026-03-02 09:00:40"
        assert await get_work_total(db, 7, task["id"]) == 40

    @pytest.mark.asyncio
    async def test_pause_other_users_session(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        with pytest.raises(NotAuthorized):
            await pause_session(db, session["id"], 9)

    @pytest.mark.asyncio
    async def test_close_twice_is_noop(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        first = await close_session(db, session["id"], EndReason.USER_PAUSE, now=T0 + timedelta(seconds=5))
        second = await close_session(db, session["id"], EndReason.USER_PAUSE, now=T0 + timedelta(seconds=50))
        assert first is not None
        assert second is None
        assert await get_work_total(db, 7, task["id"]) == 5

    @pytest.mark.asyncio
    async def test_clock_skew_never_negative(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        closed = await close_session(db, session["id"], EndReason.USER_PAUSE, now=T0 - timedelta(seconds=30))
        assert closed["elapsed_s"] == 0
        assert await get_work_total(db, 7, task["id"]) == 0


class TestTotals:
    @pytest.mark.asyncio
    async def test_totals_accumulate(self, db, claimed_task):
        task = await claimed_task()
        first = await start_session(db, 7, task["id"], now=T0)
        await pause_session(db, first["id"], 7, now=T0 + timedelta(seconds=100))
        second = await start_session(db, 7, task["id"], now=T0 + timedelta(seconds=200))
        await pause_session(db, second["id"], 7, now=T0 + timedelta(seconds=250))
        assert await get_work_total(db, 7, task["id"]) == 150

    @pytest.mark.asyncio
    async def test_complete_credits_session(self, db, claimed_task):
        """Start, heartbeat a minute later, complete: about two minutes credited."""
        task = await claimed_task()
        start = datetime.now(UTC) - timedelta(seconds=120)
        session = await start_session(db, 7, task["id"], now=start)
        await heartbeat(db, session["id"], 7, now=start + timedelta(seconds=60))

        await TaskWorkflow(db).complete(task["id"], 7, task["version"])

        closed = await get_session(db, session["id"])
        assert closed["ended_reason"] == "task_completed"
        total = await get_work_total(db, 7, task["id"])
        assert 119 <= total <= 130


class TestStaleSweep:
    @pytest.mark.asyncio
    async def test_stale_session_ends_at_last_heartbeat(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        await heartbeat(db, session["id"], 7, now=T0 + timedelta(seconds=60))

        closed = await close_stale_sessions(db, 300, now=T0 + timedelta(seconds=60 + 301))
        assert closed == 1
        swept = await get_session(db, session["id"])
        assert swept["ended_reason"] == "stale_timeout"
        assert swept["ended_at"] == "2026-03-02 09:01:00"
        assert await get_work_total(db, 7, task["id"]) == 60

    @pytest.mark.asyncio
    async def test_fresh_session_kept(self, db, claimed_task):
        task = await claimed_task()
        session = await start_session(db, 7, task["id"], now=T0)
        assert await close_stale_sessions(db, 300, now=T0 + timedelta(seconds=120)) == 0
        assert (await get_session(db, session["id"]))["ended_at"] is None

    @pytest.mark.asyncio
    async def test_sweep_then_restart(self, db, claimed_task):
        task = await claimed_task()
        await start_session(db, 7, task["id"], now=T0)
        await close_stale_sessions(db, 300, now=T0 + timedelta(seconds=600))
        restarted = await start_session(db, 7, task["id"], now=T0 + timedelta(seconds=700))
        assert restarted["ended_at"] is None
