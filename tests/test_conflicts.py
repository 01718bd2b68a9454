"""Tests for classifying conditional updates that matched no row."""

from __future__ import annotations

import pytest

from claimboard.web.errors import (
    AlreadyClaimed,
    ClaimOwnershipConflict,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    VersionConflict,
)
from claimboard.web.tasks.conflicts import Action, classify, resolve_conflict


def _state(status: str, claimed_by: int | None = None, version: int = 4) -> dict:
    return {"id": 5, "project_id": 1, "status": status, "claimed_by": claimed_by, "version": version}


@pytest.mark.parametrize(
    ("current", "action", "expected"),
    [
        (None, Action.CLAIM, NotFound),
        (None, Action.COMPLETE, NotFound),
        (_state("claimed", 9), Action.CLAIM, ClaimOwnershipConflict),
        (_state("claimed", 7), Action.CLAIM, AlreadyClaimed),
        (_state("completed"), Action.CLAIM, InvalidTransition),
        (_state("available", version=5), Action.CLAIM, VersionConflict),
        (_state("claimed", 9), Action.RELEASE, NotAuthorized),
        (_state("claimed", 9), Action.COMPLETE, NotAuthorized),
        (_state("claimed", 9), Action.UPDATE, NotAuthorized),
        (_state("available"), Action.RELEASE, InvalidTransition),
        (_state("available"), Action.COMPLETE, InvalidTransition),
        (_state("completed"), Action.COMPLETE, InvalidTransition),
        (_state("completed"), Action.UPDATE, InvalidTransition),
        (_state("claimed", 7, version=6), Action.COMPLETE, VersionConflict),
    ],
)
def test_classify(current, action, expected):
    error = classify(current, action, user_id=7, expected_version=4)
    assert type(error) is expected


def test_ownership_conflict_names_claimant():
    error = classify(_state("claimed", 9), Action.CLAIM, user_id=7, expected_version=4)
    assert error.current_claimant == 9
    assert error.to_dict()["current_claimant"] == 9


def test_version_conflict_reports_current_version():
    error = classify(_state("available", version=8), Action.CLAIM, user_id=7, expected_version=4)
    assert error.current_version == 8


def test_matching_row_falls_back_to_version_conflict():
    """Every predicate matches on re-read: the row changed and changed back."""
    error = classify(_state("available", version=4), Action.CLAIM, user_id=7, expected_version=4)
    assert isinstance(error, VersionConflict)


class TestResolveConflict:
    @pytest.mark.asyncio
    async def test_reads_current_row(self, db, make_task):
        task = await make_task()
        error = await resolve_conflict(db, task["id"], Action.COMPLETE, 7, 1)
        assert isinstance(error, InvalidTransition)

    @pytest.mark.asyncio
    async def test_missing_row(self, db):
        error = await resolve_conflict(db, 404, Action.CLAIM, 7, 1)
        assert isinstance(error, NotFound)
