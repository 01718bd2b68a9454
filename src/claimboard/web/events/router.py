"""SSE streaming endpoint."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator
from typing import Any

import jwt
from fastapi import APIRouter, HTTPException, Query
from sse_starlette.sse import EventSourceResponse

from ..db.database import session
from ..projects.service import get_member_role, get_user
from .manager import event_manager, project_channel
from .models import Event, EventType

router = APIRouter(prefix="/api/events", tags=["events"])

KEEPALIVE_SECONDS = 30.0

# Events whose data is a flat entity dict, wrapped under a key for the client.
_ENTITY_WRAP_KEY: dict[EventType, str] = {
    EventType.TASK_CREATED: "task",
    EventType.TASK_CLAIMED: "task",
    EventType.TASK_RELEASED: "task",
    EventType.TASK_COMPLETED: "task",
    EventType.TASK_UPDATED: "task",
    EventType.CARD_CREATED: "card",
    EventType.SESSION_STARTED: "session",
    EventType.SESSION_CLOSED: "session",
}


def format_event(event: Event) -> dict[str, Any]:
    """Shape an Event as the JSON payload of an unnamed SSE message."""
    wrap_key = _ENTITY_WRAP_KEY.get(event.event_type)
    if wrap_key:
        return {"type": event.event_type.value, wrap_key: event.data}
    return {"type": event.event_type.value, **event.data}


@router.get("/stream")
async def event_stream(
    project_id: int = Query(..., description="Project to subscribe to"),
    token: str = Query("", description="JWT token (EventSource can't send headers)"),
):
    """SSE stream of a project's task, card, rule and session events."""
    if not token:
        raise HTTPException(status_code=401, detail="Missing token")

    try:
        from ..auth.service import user_id_from_token

        user_id = user_id_from_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token") from None

    # The stream outlives the request, so no connection is held while it runs.
    async with session() as db:
        if await get_user(db, user_id) is None:
            raise HTTPException(status_code=401, detail="User not found")
        if await get_member_role(db, project_id, user_id) is None:
            raise HTTPException(status_code=403, detail="Not a member of this project")

    return EventSourceResponse(_stream(project_id, user_id))


async def _presence(channel: str, user_id: int, action: str) -> None:
    await event_manager.publish(
        channel,
        Event(event_type=EventType.USER_PRESENCE, data={"user_id": user_id, "action": action}),
    )


async def _stream(project_id: int, user_id: int) -> AsyncIterator[dict[str, str]]:
    channel = project_channel(project_id)
    queue = await event_manager.subscribe(channel)
    await _presence(channel, user_id, "joined")
    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except TimeoutError:
                payload = {"type": EventType.HEARTBEAT.value, "timestamp": time.time()}
            else:
                payload = format_event(event)
            yield {"data": json.dumps(payload, default=str)}
    finally:
        await event_manager.unsubscribe(channel, queue)
        await _presence(channel, user_id, "left")
