"""Best-effort post-commit steps.

Automation runs after the triggering transaction has committed. Its failures
are logged and dropped here so they can never fail or undo the operation that
triggered them.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

import aiosqlite

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(
    db: aiosqlite.Connection,
    step: str,
    work: Awaitable[T],
    **context: Any,
) -> T | None:
    """Await ``work``; on any error log it, roll back leftovers and return None."""
    try:
        return await work
    except Exception:
        logger.exception(
            "Best-effort step '%s' failed",
            step,
            extra={"step": step, **context},
        )
        if db.in_transaction:
            try:
                await db.rollback()
            except Exception:
                logger.exception("Rollback after failed step '%s' also failed", step)
        return None
