"""Tests for the SQL repositories against a SQLite file database."""

from __future__ import annotations

from datetime import timedelta, timezone

import pytest

from automation_engine.core.dependencies import build_container
from automation_engine.db import create_engine, create_session_factory, init_db
from automation_engine.db.seed import seed_registries
from automation_engine.engine.types import WorkflowContext
from automation_engine.repositories import Repositories
from tests.factories import (
    ACTIVATION_FILTER,
    FIXED_NOW,
    LEAD_TRIGGER,
    activation_event,
    make_settings,
    workflow_request,
)


@pytest.fixture
async def sql_repositories(tmp_path):
    """Repositories backed by a fresh SQLite database file."""
    db_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'automation.db'}")
    await init_db(db_engine)
    yield Repositories.sql(create_session_factory(db_engine))
    await db_engine.dispose()


class TestSqlRepository:
    @pytest.mark.asyncio
    async def test_create_find_save_delete(self, sql_repositories):
        triggers = sql_repositories.triggers
        created = await triggers.create(
            key="orders_change",
            name="Orders",
            event_source="debezium",
            properties_schema=[{"name": "table_name", "value": "orders"}],
        )

        found = await triggers.find_one(key="orders_change")
        assert found.id == created.id
        assert found.properties_schema == [{"name": "table_name", "value": "orders"}]

        found.is_active = False
        found.webhook_config = {"methods": ["POST"]}
        await triggers.save(found)
        reloaded = await triggers.find_one(id=created.id)
        assert reloaded.is_active is False
        assert reloaded.webhook_config == {"methods": ["POST"]}

        assert await triggers.find(is_active=True) == []
        assert await triggers.delete(key="orders_change") == 1
        assert await triggers.find_one(key="orders_change") is None

    @pytest.mark.asyncio
    async def test_ordering_and_null_criteria(self, sql_repositories):
        versions = sql_repositories.versions
        for num in (1, 3, 2):
            await versions.create(workflow_id="wf_1", version_num=num, editor_id=None if num != 2 else "u_1")

        ordered = await versions.find(order_by="version_num", descending=True, workflow_id="wf_1")
        assert [v.version_num for v in ordered] == [3, 2, 1]

        unedited = await versions.find(order_by="version_num", editor_id=None)
        assert [v.version_num for v in unedited] == [1, 3]

    @pytest.mark.asyncio
    async def test_composite_keys(self, sql_repositories):
        step_runs = sql_repositories.step_runs
        record = await step_runs.create(run_id="run_1", step_id="step_1", status="RUNNING")
        record.status = "SUCCESS"
        record.output_data = {"ok": True}
        await step_runs.save(record)

        [stored] = await step_runs.find(run_id="run_1")
        assert (stored.status, stored.output_data) == ("SUCCESS", {"ok": True})

    @pytest.mark.asyncio
    async def test_seeding_is_idempotent(self, sql_repositories):
        first = await seed_registries(sql_repositories)
        second = await seed_registries(sql_repositories)

        assert first["triggers"] > 0
        assert second == {"triggers": 0, "actions": 0}
        assert len(await sql_repositories.actions.find()) == first["actions"]


class TestSqlExecution:
    @pytest.mark.asyncio
    async def test_activation_scenario(self, sql_repositories):
        await seed_registries(sql_repositories)
        container = build_container(sql_repositories, make_settings(), clock=lambda: FIXED_NOW)
        created = await container.workflow_service.create_workflow(
            workflow_request(
                [
                    {
                        "name": "create_setup_task",
                        "action_key": "task_management",
                        "cfg": {"title": "Setup lead source: {{variable.after.name}}", "dueDateDynamic": "+1d"},
                    }
                ],
                filter_conditions=ACTIVATION_FILTER,
            )
        )

        result = await container.engine.process_trigger_event(
            LEAD_TRIGGER, activation_event(), WorkflowContext(execution_mode="sync")
        )

        [run_result] = result.results
        assert run_result.success, run_result.error
        [task] = await sql_repositories.tasks.find()
        assert task.title == "Setup lead source: Email Marketing Campaign"
        assert task.due_date.replace(tzinfo=timezone.utc) == FIXED_NOW + timedelta(days=1)

        detail = await container.execution_service.get_run(run_result.result["runId"])
        assert detail.workflow_id == created.id
        assert detail.status == "SUCCESS"
        assert [s.status for s in detail.step_runs] == ["SUCCESS"]
        assert detail.output_data["create_setup_task"]["task"]["title"] == task.title

        metrics = await container.execution_service.run_metrics(detail.id)
        assert metrics.success_rate == 100.0
