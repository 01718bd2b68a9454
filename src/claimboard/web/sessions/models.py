"""Work session models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class EndReason(StrEnum):
    USER_PAUSE = "user_pause"
    STALE_TIMEOUT = "stale_timeout"
    TASK_COMPLETED = "task_completed"
    TASK_RELEASED = "task_released"


class SessionResponse(BaseModel):
    id: int
    user_id: int
    task_id: int
    started_at: str
    last_heartbeat_at: str
    ended_at: str | None
    ended_reason: EndReason | None
    elapsed_s: int | None = None


class HeartbeatResponse(BaseModel):
    session: SessionResponse
    heartbeat_interval_seconds: int = 60


class WorkTotalResponse(BaseModel):
    user_id: int
    task_id: int
    accumulated_s: int
