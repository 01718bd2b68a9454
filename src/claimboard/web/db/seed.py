"""Seed database with demo data."""

from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger(__name__)


async def seed_db(db: aiosqlite.Connection) -> bool:
    """Seed an organization, three users, one project with task types, a card,
    an active milestone and a workflow that files a review task whenever a card
    closes. Returns False when the database already had users."""

    cursor = await db.execute("SELECT COUNT(*) FROM users")
    row = await cursor.fetchone()
    if row[0] > 0:
        return False

    cursor = await db.execute("INSERT INTO organizations (name) VALUES (?)", ("Demo Org",))
    org_id = cursor.lastrowid

    # --- Users ---
    users = [
        ("alice@example.com", "Alice Johnson"),
        ("bob@example.com", "Bob Smith"),
        ("charlie@example.com", "Charlie Davis"),
    ]
    user_ids = []
    for email, name in users:
        cursor = await db.execute(
            "INSERT INTO users (org_id, email, display_name) VALUES (?, ?, ?)",
            (org_id, email, name),
        )
        user_ids.append(cursor.lastrowid)
    alice_id, bob_id, charlie_id = user_ids

    # --- Project ---
    cursor = await db.execute(
        "INSERT INTO projects (org_id, name) VALUES (?, ?)", (org_id, "Website Relaunch")
    )
    project_id = cursor.lastrowid
    await db.executemany(
        "INSERT INTO project_members (project_id, user_id, role) VALUES (?, ?, ?)",
        [
            (project_id, alice_id, "manager"),
            (project_id, bob_id, "member"),
            (project_id, charlie_id, "member"),
        ],
    )

    cursor = await db.execute(
        "INSERT INTO capabilities (project_id, name) VALUES (?, ?)", (project_id, "frontend")
    )
    frontend_id = cursor.lastrowid

    type_ids = {}
    for name, icon, capability_id in [
        ("bug", "🐞", None),
        ("feature", "✨", frontend_id),
        ("review", "🔍", None),
    ]:
        cursor = await db.execute(
            "INSERT INTO task_types (project_id, name, icon, capability_id) VALUES (?, ?, ?, ?)",
            (project_id, name, icon, capability_id),
        )
        type_ids[name] = cursor.lastrowid

    # --- Milestone and card ---
    cursor = await db.execute(
        """INSERT INTO milestones (project_id, name, state, position, created_by, activated_at)
           VALUES (?, ?, 'active', 0, ?, CURRENT_TIMESTAMP)""",
        (project_id, "Beta", alice_id),
    )
    milestone_id = cursor.lastrowid
    cursor = await db.execute(
        """INSERT INTO cards (project_id, milestone_id, title, description, color, created_by)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (project_id, milestone_id, "Landing page", "New hero and pricing sections", "#6366f1", alice_id),
    )
    card_id = cursor.lastrowid

    # --- Tasks ---
    tasks = [
        ("Build hero section", type_ids["feature"], 2),
        ("Pricing table", type_ids["feature"], 3),
        ("Fix mobile nav overlap", type_ids["bug"], 1),
    ]
    await db.executemany(
        """INSERT INTO tasks (project_id, type_id, title, priority, created_by, card_id)
           VALUES (?, ?, ?, ?, ?, ?)""",
        [(project_id, type_id, title, prio, alice_id, card_id) for title, type_id, prio in tasks],
    )

    # --- Automation ---
    cursor = await db.execute(
        """INSERT INTO workflows (org_id, project_id, name, description, active, created_by)
           VALUES (?, ?, ?, ?, 1, ?)""",
        (org_id, project_id, "Review closed cards", "QA pass for every finished card", alice_id),
    )
    workflow_id = cursor.lastrowid
    cursor = await db.execute(
        """INSERT INTO rules (workflow_id, name, goal, resource_type, to_state)
           VALUES (?, ?, ?, 'card', 'cerrada')""",
        (workflow_id, "Card closed", "Every closed card gets a review"),
    )
    rule_id = cursor.lastrowid
    cursor = await db.execute(
        """INSERT INTO task_templates (org_id, project_id, name, description, type_id, priority, created_by)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            org_id,
            project_id,
            "Review {{father}}",
            "Closed by {{user}} in {{project}}",
            type_ids["review"],
            2,
            alice_id,
        ),
    )
    await db.execute(
        "INSERT INTO rule_templates (rule_id, template_id, execution_order) VALUES (?, ?, 0)",
        (rule_id, cursor.lastrowid),
    )

    await db.commit()
    logger.info("Seeded demo project %s", project_id)
    return True
