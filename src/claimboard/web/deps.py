"""FastAPI dependency injection."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

import aiosqlite
import jwt
from fastapi import Depends, HTTPException, Request

from .config import WebConfig
from .db.database import session
from .orchestrator import WorkflowOrchestrator


async def _get_db() -> AsyncIterator[aiosqlite.Connection]:
    async with session() as db:
        yield db


Db = Annotated[aiosqlite.Connection, Depends(_get_db)]


async def _get_current_user(request: Request, db: Db) -> int:
    """Extract and validate the JWT from the Authorization header.

    Also verifies the user still exists in the DB. Returns the user id.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = auth_header.removeprefix("Bearer ").strip()
    try:
        from .auth.service import user_id_from_token

        user_id = user_id_from_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired") from None
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token") from None

    cursor = await db.execute("SELECT id FROM users WHERE id = ?", (user_id,))
    if not await cursor.fetchone():
        raise HTTPException(status_code=401, detail="User not found")

    return user_id


CurrentUser = Annotated[int, Depends(_get_current_user)]


async def _get_orchestrator(db: Db) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(db)


Orchestrator = Annotated[WorkflowOrchestrator, Depends(_get_orchestrator)]


def _get_config(request: Request) -> WebConfig:
    return request.app.state.config


Config = Annotated[WebConfig, Depends(_get_config)]
