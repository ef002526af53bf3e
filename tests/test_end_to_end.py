"""End-to-end scenarios: a lead source change flowing from trigger to task."""

from __future__ import annotations

from datetime import timedelta

import pytest

from automation_engine.engine.types import WorkflowContext
from automation_engine.schemas.execution import TriggerEventRequest
from tests.factories import (
    ACTIVATION_FILTER,
    FIXED_NOW,
    LEAD_TRIGGER,
    activation_event,
    lead_source_event,
)

SETUP_TASK = {
    "name": "create_setup_task",
    "action_key": "task_management",
    "cfg": {
        "operation": "create",
        "title": "Setup lead source: {{variable.after.name}}",
        "description": "Configure tracking for {{variable.after.name}}",
        "entityId": "{{variable.after.id}}",
        "dueDateDynamic": "+1d",
        "priority": "high",
    },
}


def sync_context() -> WorkflowContext:
    return WorkflowContext(execution_mode="sync")


class TestLeadSourceActivation:
    @pytest.mark.asyncio
    async def test_activation_creates_setup_task(self, container, make_workflow):
        workflow_id = await make_workflow([SETUP_TASK], filter_conditions=ACTIVATION_FILTER)

        result = await container.engine.process_trigger_event(LEAD_TRIGGER, activation_event(), sync_context())

        assert result.success
        assert result.workflows_triggered == 1
        assert result.workflow_ids == [workflow_id]
        [run_result] = result.results
        assert run_result.success, run_result.error

        [task] = await container.repositories.tasks.find()
        assert task.title == "Setup lead source: Email Marketing Campaign"
        assert task.description == "Configure tracking for Email Marketing Campaign"
        assert task.entity_id == "ls_1"
        assert task.priority == "high"
        assert task.due_date == FIXED_NOW + timedelta(days=1)

        run = await container.repositories.runs.find_one(id=run_result.result["runId"])
        assert run.status == "SUCCESS"
        assert run.trigger_type == "database"
        assert run.execution_mode == "sync"
        assert run.trigger_summary == {"table": "lead_sources", "operation": "UPDATE", "recordId": "ls_1"}
        assert run.context_data["after"]["name"] == "Email Marketing Campaign"

    @pytest.mark.asyncio
    async def test_non_activation_does_not_match(self, container, make_workflow):
        await make_workflow([SETUP_TASK], filter_conditions=ACTIVATION_FILTER)
        event = lead_source_event(
            before={"id": "ls_1", "name": "Webinar", "is_active": True},
            after={"id": "ls_1", "name": "Webinar 2024", "is_active": True},
        )

        result = await container.engine.process_trigger_event(LEAD_TRIGGER, event, sync_context())

        assert result.success
        assert result.workflows_triggered == 0
        assert result.message == "No matching subscriptions"
        assert await container.repositories.tasks.find() == []
        assert await container.repositories.runs.find() == []

    @pytest.mark.asyncio
    async def test_insert_does_not_match(self, container, make_workflow):
        await make_workflow([SETUP_TASK], filter_conditions=ACTIVATION_FILTER)
        event = lead_source_event("INSERT", after={"id": "ls_2", "name": "Referral", "is_active": True})
        result = await container.engine.process_trigger_event(LEAD_TRIGGER, event, sync_context())
        assert result.workflows_triggered == 0

    @pytest.mark.asyncio
    async def test_failing_step_stops_the_run(self, container, make_workflow):
        await make_workflow(
            [
                {"name": "1_notify", "action_key": "send_email", "cfg": {"subject": "missing recipient"}},
                {**SETUP_TASK, "name": "2_task"},
            ],
            filter_conditions=ACTIVATION_FILTER,
        )

        result = await container.engine.process_trigger_event(LEAD_TRIGGER, activation_event(), sync_context())

        [run_result] = result.results
        assert not run_result.success
        assert run_result.error == "Email recipient is required"
        assert await container.repositories.tasks.find() == []
        step_runs = await container.repositories.step_runs.find(run_id=run_result.result["runId"])
        assert len(step_runs) == 1

    @pytest.mark.asyncio
    async def test_unregistered_action_fails_the_run(self, container, make_workflow):
        await make_workflow([SETUP_TASK], filter_conditions=ACTIVATION_FILTER)
        # Registry entries can disappear after the workflow is saved
        [step] = await container.repositories.steps.find(name="create_setup_task")
        step.action_key = "does_not_exist"
        await container.repositories.steps.save(step)

        result = await container.engine.process_trigger_event(LEAD_TRIGGER, activation_event(), sync_context())

        [run_result] = result.results
        assert not run_result.success
        run = await container.repositories.runs.find_one(id=run_result.result["runId"])
        assert run.status == "FAILED"
        assert run.fail_reason == "Action registry entry not found: does_not_exist"
        [record] = await container.repositories.step_runs.find(run_id=run.id)
        assert record.status == "FAILED"
        assert record.error_message == "Action registry entry not found: does_not_exist"
        assert await container.repositories.tasks.find() == []

    @pytest.mark.asyncio
    async def test_event_text_is_not_expanded(self, container, make_workflow):
        await make_workflow(
            [SETUP_TASK],
            filter_conditions=ACTIVATION_FILTER,
            variables=[{"key": "api_secret", "value": "s3cr3t"}],
        )

        result = await container.engine.process_trigger_event(
            LEAD_TRIGGER, activation_event(name="{{variable.api_secret}}"), sync_context()
        )

        [run_result] = result.results
        assert run_result.success, run_result.error
        [task] = await container.repositories.tasks.find()
        assert task.title == "Setup lead source: {{variable.api_secret}}"

    @pytest.mark.asyncio
    async def test_async_dispatch(self, container, make_workflow):
        await make_workflow([SETUP_TASK], filter_conditions=ACTIVATION_FILTER)

        result = await container.engine.process_trigger_event(
            LEAD_TRIGGER, activation_event(), WorkflowContext(execution_mode="async")
        )
        assert result.workflows_triggered == 1
        assert result.results == []

        await container.run_dispatcher.drain(timeout=5)

        [run] = await container.repositories.runs.find()
        assert run.status == "SUCCESS"
        assert run.execution_mode == "async"
        assert len(await container.repositories.tasks.find()) == 1
        assert container.run_dispatcher.stats()["completed"] == 1

    @pytest.mark.asyncio
    async def test_every_matching_workflow_runs(self, container, make_workflow):
        first = await make_workflow([SETUP_TASK], filter_conditions=ACTIVATION_FILTER, name="first")
        second = await make_workflow([SETUP_TASK], name="second")

        result = await container.engine.process_trigger_event(LEAD_TRIGGER, activation_event(), sync_context())

        assert sorted(result.workflow_ids) == sorted([first, second])
        assert len(await container.repositories.tasks.find()) == 2


class TestTriggerEdgeCases:
    @pytest.mark.asyncio
    async def test_unknown_trigger(self, container):
        result = await container.engine.process_trigger_event("no_such_trigger", activation_event(), sync_context())
        assert result.success
        assert result.workflows_triggered == 0
        assert result.message == "Trigger not found or inactive: no_such_trigger"

    @pytest.mark.asyncio
    async def test_inactive_workflow_is_skipped(self, container, make_workflow):
        workflow_id = await make_workflow([SETUP_TASK])
        await container.workflow_service.set_active(workflow_id, False)

        result = await container.engine.process_trigger_event(LEAD_TRIGGER, activation_event(), sync_context())

        assert result.workflows_triggered == 0

    @pytest.mark.asyncio
    async def test_invalid_event_data(self, container):
        result = await container.engine.process_trigger_event(LEAD_TRIGGER, ["not", "an", "object"])
        assert not result.success
        assert result.message == "Event data must be an object"

    @pytest.mark.asyncio
    async def test_manual_event_through_service(self, container, make_workflow):
        workflow_id = await make_workflow([SETUP_TASK])

        response = await container.execution_service.process_event(
            LEAD_TRIGGER,
            TriggerEventRequest(event_data=activation_event(), execution_mode="sync", manual=True),
        )

        assert response.workflow_ids == [workflow_id]
        [run_response] = response.results
        assert run_response.status == "SUCCESS"
        run = await container.repositories.runs.find_one(id=run_response.run_id)
        assert run.trigger_type == "manual"
