"""Rules engine - spawns tasks from templates when resources change state.

A rule fires at most once per (rule, origin resource). The ledger row in
``rule_executions`` is the claim: the call whose insert lands owns the firing,
and the spawned tasks commit in the same transaction as that row.
"""

from __future__ import annotations

import logging

import aiosqlite

from ..db.database import transaction
from ..events import DomainEvent, Event, EventType, ResourceType, event_manager
from ..projects.service import get_project, get_user
from ..tasks import service as task_store
from ..tasks.models import TITLE_MAX_LENGTH
from .models import Outcome, RuleOutcome, SuppressionReason
from .templates import build_variables, render_template

logger = logging.getLogger(__name__)


async def find_matching_rules(db: aiosqlite.Connection, event: DomainEvent) -> list[dict]:
    """Active rules of active workflows in the event's project for this transition."""
    cursor = await db.execute(
        """SELECT r.*, w.project_id, w.org_id, w.created_by AS workflow_created_by
           FROM rules r
           JOIN workflows w ON w.id = r.workflow_id
           WHERE r.active = 1 AND w.active = 1
             AND w.project_id = ?
             AND r.resource_type = ?
             AND r.to_state = ?
             AND (r.task_type_id IS NULL OR r.task_type_id = ?)
           ORDER BY r.id""",
        (
            event.project_id,
            str(event.resource_type),
            event.to_state,
            event.task_type_id if event.resource_type == ResourceType.TASK else None,
        ),
    )
    return [dict(r) for r in await cursor.fetchall()]


async def get_rule_templates(db: aiosqlite.Connection, rule_id: int) -> list[dict]:
    cursor = await db.execute(
        """SELECT t.*, rt.execution_order, tt.project_id AS type_project_id
           FROM rule_templates rt
           JOIN task_templates t ON t.id = rt.template_id
           LEFT JOIN task_types tt ON tt.id = t.type_id
           WHERE rt.rule_id = ?
           ORDER BY rt.execution_order, t.id""",
        (rule_id,),
    )
    return [dict(r) for r in await cursor.fetchall()]


async def record_execution(
    db: aiosqlite.Connection,
    rule_id: int,
    origin_type: str,
    origin_id: int,
    outcome: Outcome,
    reason: SuppressionReason | None = None,
    user_id: int | None = None,
) -> bool:
    """Insert the ledger row. True when this call owns the firing."""
    cursor = await db.execute(
        """INSERT INTO rule_executions
               (rule_id, origin_type, origin_id, outcome, suppression_reason, user_id)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT(rule_id, origin_type, origin_id) DO NOTHING""",
        (rule_id, origin_type, origin_id, str(outcome), reason and str(reason), user_id),
    )
    return cursor.rowcount == 1


async def list_executions(db: aiosqlite.Connection, rule_id: int) -> list[dict]:
    cursor = await db.execute(
        "SELECT * FROM rule_executions WHERE rule_id = ? ORDER BY id", (rule_id,)
    )
    return [dict(r) for r in await cursor.fetchall()]


class RulesEngine:
    """Evaluates domain events against the configured rules."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def evaluate(self, event: DomainEvent) -> list[RuleOutcome]:
        rules = await find_matching_rules(self.db, event)
        if not rules:
            return []

        project = await get_project(self.db, event.project_id)
        user = await get_user(self.db, event.actor_user_id) if event.actor_user_id else None
        variables = build_variables(
            event,
            project_name=project["name"] if project else "",
            user_name=(user["display_name"] or user["email"]) if user else "",
        )

        outcomes = []
        for rule in rules:
            outcome = await self._fire(rule, event, variables)
            outcomes.append(outcome)
            if outcome.outcome == Outcome.APPLIED:
                await event_manager.publish_to_project(
                    event.project_id,
                    Event(
                        event_type=EventType.RULE_APPLIED,
                        data={
                            "rule_id": rule["id"],
                            "origin_type": str(event.resource_type),
                            "origin_id": event.resource_id,
                            "task_ids": outcome.created_task_ids,
                        },
                    ),
                )
        return outcomes

    async def _fire(self, rule: dict, event: DomainEvent, variables: dict[str, str]) -> RuleOutcome:
        db = self.db
        rule_id = rule["id"]
        origin_type = str(event.resource_type)
        created_by = event.actor_user_id or rule["workflow_created_by"]

        async with transaction(db):
            templates = await get_rule_templates(db, rule_id)
            invalid = [t for t in templates if t["type_project_id"] != rule["project_id"]]
            if invalid:
                owned = await record_execution(
                    db,
                    rule_id,
                    origin_type,
                    event.resource_id,
                    Outcome.SUPPRESSED,
                    SuppressionReason.INVALID_TEMPLATE,
                    event.actor_user_id,
                )
                if not owned:
                    return RuleOutcome(rule_id, Outcome.SUPPRESSED, SuppressionReason.ALREADY_EXECUTED)
                logger.warning(
                    "Rule %s suppressed: template(s) %s use a task type outside project %s",
                    rule_id,
                    [t["id"] for t in invalid],
                    rule["project_id"],
                    extra={"rule_id": rule_id, "origin_type": origin_type, "origin_id": event.resource_id},
                )
                return RuleOutcome(rule_id, Outcome.SUPPRESSED, SuppressionReason.INVALID_TEMPLATE)

            owned = await record_execution(
                db, rule_id, origin_type, event.resource_id, Outcome.APPLIED, None, event.actor_user_id
            )
            if not owned:
                logger.debug(
                    "Rule %s already executed for %s %s", rule_id, origin_type, event.resource_id
                )
                return RuleOutcome(rule_id, Outcome.SUPPRESSED, SuppressionReason.ALREADY_EXECUTED)

            created = []
            for template in templates:
                title = render_template(template["name"], variables).strip()[:TITLE_MAX_LENGTH]
                task_id = await task_store.insert_task(
                    db,
                    project_id=rule["project_id"],
                    type_id=template["type_id"],
                    title=title or template["name"][:TITLE_MAX_LENGTH],
                    created_by=created_by,
                    description=render_template(template["description"] or "", variables),
                    priority=template["priority"],
                    created_from_rule_id=rule_id,
                )
                await task_store.insert_task_event(
                    db, rule["org_id"], rule["project_id"], task_id, created_by, EventType.TASK_CREATED
                )
                created.append(task_id)

        logger.info(
            "Rule %s applied on %s %s -> %s, created tasks %s",
            rule_id,
            origin_type,
            event.resource_id,
            event.to_state,
            created,
            extra={"rule_id": rule_id, "origin_type": origin_type, "origin_id": event.resource_id},
        )
        return RuleOutcome(rule_id, Outcome.APPLIED, created_task_ids=created)
