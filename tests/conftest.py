"""Shared fixtures: a file-backed SQLite database with the full schema and a small org."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
import pytest_asyncio

from claimboard.web.db.database import connect
from claimboard.web.tasks.workflow import TaskWorkflow

SCHEMA_PATH = Path(__file__).parent.parent / "src" / "claimboard" / "web" / "db" / "schema.sql"

# User 1 manages project 1; users 7 and 9 are members; user 11 belongs to no project.
SEED_SQL = """
INSERT INTO organizations (id, name) VALUES (1, 'Acme');
INSERT INTO users (id, org_id, email, display_name) VALUES
    (1, 1, 'maria@acme.test', 'Maria'),
    (7, 1, 'sam@acme.test', 'Sam'),
    (9, 1, 'lee@acme.test', 'Lee'),
    (11, 1, 'outsider@acme.test', '');
INSERT INTO projects (id, org_id, name) VALUES (1, 1, 'Apollo'), (2, 1, 'Gemini');
INSERT INTO project_members (project_id, user_id, role) VALUES
    (1, 1, 'manager'), (1, 7, 'member'), (1, 9, 'member'), (2, 1, 'manager');
INSERT INTO capabilities (id, project_id, name) VALUES (1, 1, 'backend');
INSERT INTO task_types (id, project_id, name, icon, capability_id) VALUES
    (1, 1, 'bug', 'B', 1),
    (2, 1, 'feature', 'F', NULL),
    (3, 1, 'review', 'R', NULL),
    (4, 2, 'chore', 'C', NULL);
"""


@pytest.fixture
def db_path(tmp_path) -> str:
    """Database file with schema and seed rows, committed."""
    path = str(tmp_path / "test.db")
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SCHEMA_PATH.read_text())
        conn.executescript(SEED_SQL)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest_asyncio.fixture
async def db(db_path):
    conn = await connect(db_path)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def other_db(db_path):
    """A second connection to the same file, for concurrent writers."""
    conn = await connect(db_path)
    yield conn
    await conn.close()


@pytest.fixture
def make_task(db):
    """Create an available task in project 1 as the manager."""

    async def _make(title: str = "Write tests", type_id: int = 2, **kwargs) -> dict:
        kwargs.setdefault("project_id", 1)
        kwargs.setdefault("user_id", 1)
        task, _ = await TaskWorkflow(db).create(type_id=type_id, title=title, **kwargs)
        return task

    return _make
