"""Tests for the rules engine, its execution ledger and template rendering."""

from __future__ import annotations

import asyncio

import pytest

from claimboard.web.automation import service as automation
from claimboard.web.automation.models import Outcome, SuppressionReason
from claimboard.web.automation.rules import RulesEngine, list_executions
from claimboard.web.automation.templates import build_variables, render_template
from claimboard.web.events import DomainEvent, ResourceType
from claimboard.web.tasks import service as task_store
from claimboard.web.tasks.service import get_task, get_task_events


def _task_event(task_id: int, to_state: str = "completed", type_id: int = 2) -> DomainEvent:
    return DomainEvent(
        resource_type=ResourceType.TASK,
        resource_id=task_id,
        project_id=1,
        org_id=1,
        actor_user_id=7,
        from_state="claimed",
        to_state=to_state,
        task_type_id=type_id,
    )


async def _rule(db, to_state="completed", task_type_id=None, active=True, template_name="Review {{father}}"):
    workflow = await automation.create_workflow(db, 1, f"wf-{to_state}-{task_type_id}", 1, active=active)
    rule = await automation.create_rule(
        db, workflow["id"], "On done", "task", to_state, task_type_id=task_type_id
    )
    template = await automation.create_task_template(
        db, 1, template_name, type_id=3, created_by=1, description="{{from_state}} -> {{to_state}} by {{user}}"
    )
    await automation.attach_template(db, rule["id"], template["id"])
    return rule


class TestTemplates:
    def test_render_known_variables(self):
        text = render_template("Check {{ father }} in {{project}}", {"father": "/x", "project": "Apollo"})
        assert text == "Check /x in Apollo"

    def test_unknown_placeholder_kept(self):
        assert render_template("Hi {{nobody}}", {"user": "Sam"}) == "Hi {{nobody}}"

    def test_empty_text(self):
        assert render_template("", {"user": "Sam"}) == ""

    def test_build_variables(self):
        variables = build_variables(_task_event(12), project_name="Apollo", user_name="Sam")
        assert variables["father"] == "/projects/1/tasks/12"
        assert variables["from_state"] == "claimed"
        assert variables["to_state"] == "completed"
        assert variables["project"] == "Apollo"
        assert variables["user"] == "Sam"

    def test_build_variables_without_from_state(self):
        event = DomainEvent(ResourceType.CARD, 3, 1, 1, None, None, "cerrada")
        variables = build_variables(event, project_name="Apollo", user_name="")
        assert variables["father"] == "/projects/1/cards/3"
        assert variables["from_state"] == ""


class TestRulesEngine:
    @pytest.mark.asyncio
    async def test_fires_once_per_entity(self, db, make_task):
        rule = await _rule(db)
        task = await make_task()
        engine = RulesEngine(db)

        first = await engine.evaluate(_task_event(task["id"]))
        assert len(first) == 1
        assert first[0].outcome == Outcome.APPLIED
        assert len(first[0].created_task_ids) == 1

        second = await engine.evaluate(_task_event(task["id"]))
        assert second[0].outcome == Outcome.SUPPRESSED
        assert second[0].reason == SuppressionReason.ALREADY_EXECUTED
        assert second[0].created_task_ids == []

        executions = await list_executions(db, rule["id"])
        assert len(executions) == 1
        assert executions[0]["outcome"] == "applied"
        assert executions[0]["origin_id"] == task["id"]

    @pytest.mark.asyncio
    async def test_spawned_task_rendered(self, db, make_task):
        rule = await _rule(db)
        task = await make_task()
        outcomes = await RulesEngine(db).evaluate(_task_event(task["id"]))

        spawned = await get_task(db, outcomes[0].created_task_ids[0])
        assert spawned["title"] == f"Review /projects/1/tasks/{task['id']}"
        assert spawned["description"] == "claimed -> completed by Sam"
        assert spawned["status"] == "available"
        assert spawned["version"] == 1
        assert spawned["type_id"] == 3
        assert spawned["created_by"] == 7
        assert spawned["created_from_rule_id"] == rule["id"]
        events = await get_task_events(db, spawned["id"])
        assert [e["event_type"] for e in events] == ["task_created"]

    @pytest.mark.asyncio
    async def test_title_truncated(self, db, make_task):
        await _rule(db, template_name="Follow up on {{father}} " + "x" * 60)
        task = await make_task()
        outcomes = await RulesEngine(db).evaluate(_task_event(task["id"]))
        spawned = await get_task(db, outcomes[0].created_task_ids[0])
        assert len(spawned["title"]) == 56

    @pytest.mark.asyncio
    async def test_other_state_does_not_match(self, db, make_task):
        await _rule(db, to_state="completed")
        task = await make_task()
        assert await RulesEngine(db).evaluate(_task_event(task["id"], to_state="claimed")) == []

    @pytest.mark.asyncio
    async def test_inactive_workflow_ignored(self, db, make_task):
        await _rule(db, active=False)
        task = await make_task()
        assert await RulesEngine(db).evaluate(_task_event(task["id"])) == []

    @pytest.mark.asyncio
    async def test_task_type_filter(self, db, make_task):
        await _rule(db, task_type_id=1)
        task = await make_task(type_id=2)
        assert await RulesEngine(db).evaluate(_task_event(task["id"], type_id=2)) == []

        bug = await make_task("Crash", type_id=1)
        outcomes = await RulesEngine(db).evaluate(_task_event(bug["id"], type_id=1))
        assert [o.outcome for o in outcomes] == [Outcome.APPLIED]

    @pytest.mark.asyncio
    async def test_invalid_template_suppressed(self, db, make_task):
        rule = await _rule(db)
        # The template's type has been moved to another project.
        await db.execute("UPDATE task_types SET project_id = 2 WHERE id = 3")
        await db.commit()
        task = await make_task()

        outcomes = await RulesEngine(db).evaluate(_task_event(task["id"]))
        assert outcomes[0].outcome == Outcome.SUPPRESSED
        assert outcomes[0].reason == SuppressionReason.INVALID_TEMPLATE

        executions = await list_executions(db, rule["id"])
        assert executions[0]["outcome"] == "suppressed"
        assert executions[0]["suppression_reason"] == "invalid_template"
        cursor = await db.execute("SELECT COUNT(*) FROM tasks WHERE created_from_rule_id = ?", (rule["id"],))
        assert (await cursor.fetchone())[0] == 0

    @pytest.mark.asyncio
    async def test_failure_rolls_back_ledger(self, db, make_task, monkeypatch):
        rule = await _rule(db)
        task = await make_task()
        original = task_store.insert_task

        async def broken(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(task_store, "insert_task", broken)
        with pytest.raises(RuntimeError):
            await RulesEngine(db).evaluate(_task_event(task["id"]))
        assert await list_executions(db, rule["id"]) == []

        monkeypatch.setattr(task_store, "insert_task", original)
        outcomes = await RulesEngine(db).evaluate(_task_event(task["id"]))
        assert outcomes[0].outcome == Outcome.APPLIED

    @pytest.mark.asyncio
    async def test_concurrent_evaluations_fire_once(self, db, other_db, make_task):
        rule = await _rule(db)
        task = await make_task()
        event = _task_event(task["id"])

        results = await asyncio.gather(RulesEngine(db).evaluate(event), RulesEngine(other_db).evaluate(event))
        outcomes = sorted((r[0] for r in results), key=lambda o: o.outcome)
        assert [o.outcome for o in outcomes] == [Outcome.APPLIED, Outcome.SUPPRESSED]
        assert outcomes[1].reason == SuppressionReason.ALREADY_EXECUTED

        assert len(await list_executions(db, rule["id"])) == 1
        cursor = await db.execute("SELECT COUNT(*) FROM tasks WHERE created_from_rule_id = ?", (rule["id"],))
        assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_templates_run_in_execution_order(self, db, make_task):
        workflow = await automation.create_workflow(db, 1, "Release", 1, active=True)
        rule = await automation.create_rule(db, workflow["id"], "Ship", "task", "completed")
        for name, order in (("Announce", 3), ("Write notes", 1), ("Tag build", 2)):
            template = await automation.create_task_template(db, 1, name, type_id=3, created_by=1)
            await automation.attach_template(db, rule["id"], template["id"], execution_order=order)
        task = await make_task()

        outcomes = await RulesEngine(db).evaluate(_task_event(task["id"]))
        titles = [(await get_task(db, tid))["title"] for tid in outcomes[0].created_task_ids]
        assert titles == ["Write notes", "Tag build", "Announce"]


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_rule_state_must_fit_resource(self, db):
        from claimboard.web.errors import ValidationError

        workflow = await automation.create_workflow(db, 1, "wf", 1)
        with pytest.raises(ValidationError):
            await automation.create_rule(db, workflow["id"], "bad", "card", "completed")
        with pytest.raises(ValidationError):
            await automation.create_rule(db, workflow["id"], "bad", "task", "cerrada")
        with pytest.raises(ValidationError):
            await automation.create_rule(db, workflow["id"], "bad", "card", "cerrada", task_type_id=1)
        rule = await automation.create_rule(db, workflow["id"], "ok", "card", "cerrada")
        assert rule["active"] is True

    @pytest.mark.asyncio
    async def test_template_from_other_project_rejected(self, db):
        from claimboard.web.errors import ValidationError

        workflow = await automation.create_workflow(db, 1, "wf", 1)
        rule = await automation.create_rule(db, workflow["id"], "r", "task", "completed")
        other = await automation.create_task_template(db, 2, "Elsewhere", type_id=4, created_by=1)
        with pytest.raises(ValidationError):
            await automation.attach_template(db, rule["id"], other["id"])

    @pytest.mark.asyncio
    async def test_duplicate_workflow_name(self, db):
        from claimboard.web.errors import ValidationError

        await automation.create_workflow(db, 1, "wf", 1)
        with pytest.raises(ValidationError):
            await automation.create_workflow(db, 1, "wf", 1)
