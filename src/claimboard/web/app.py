"""FastAPI app factory."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..logging_setup import setup_logging
from .config import WebConfig
from .errors import DbError, WorkflowError

logger = logging.getLogger(__name__)

DEV_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


async def _stale_session_loop(config: WebConfig) -> None:
    """Close work sessions whose heartbeats stopped."""
    from .db.database import session
    from .sessions.service import close_stale_sessions

    while True:
        await asyncio.sleep(config.sweep_interval_seconds)
        try:
            async with session() as db:
                await close_stale_sessions(db, config.stale_session_seconds)
        except Exception:
            logger.exception("Stale session sweep failed; retrying next cycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """App lifespan: init DB, optional demo seed, stale-session sweeper."""
    config: WebConfig = app.state.config

    from .db.database import init_db, session

    await init_db(config.db_path)

    if config.seed_demo:
        from .db.seed import seed_db

        async with session() as db:
            await seed_db(db)

    sweeper = asyncio.create_task(_stale_session_loop(config))

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper


def create_app(config: WebConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or WebConfig.load()
    setup_logging(config.log_level)

    from .auth.service import configure

    configure(config)

    app = FastAPI(
        title="claimboard",
        description="Team task tracking with optimistic claims, automation rules and work sessions",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins or list(DEV_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .automation.router import router as automation_router
    from .cards.router import router as cards_router
    from .events.router import router as events_router
    from .milestones.router import router as milestones_router
    from .sessions.router import router as sessions_router
    from .tasks.router import router as tasks_router

    app.include_router(automation_router)
    app.include_router(cards_router)
    app.include_router(events_router)
    app.include_router(milestones_router)
    app.include_router(sessions_router)
    app.include_router(tasks_router)

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(sqlite3.Error)
    async def db_error_handler(request: Request, exc: sqlite3.Error):
        logger.error("Unhandled database error on %s %s: %s", request.method, request.url.path, exc)
        error = DbError(str(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
