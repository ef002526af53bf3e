"""Execution service: entry points and run history."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ..core.exceptions import (
    RunNotFoundError,
    WorkflowInactiveError,
    WorkflowNotFoundError,
)
from ..db.models import new_id
from ..engine.event_canonicalizer import EventCanonicalizer
from ..engine.types import ExecutionMode, ExecutionResult, RunStatus, WorkflowContext
from ..schemas.execution import (
    ExecuteWorkflowRequest,
    ExecutionResponse,
    RunDetailResponse,
    RunListItem,
    RunMetricsResponse,
    StepRunSchema,
    TriggerEventRequest,
    TriggerEventResponse,
)

if TYPE_CHECKING:
    from ..db.models import StepRunModel, WorkflowRunModel
    from ..engine.execution_engine import ExecutionEngine
    from ..repositories import Repositories

logger = logging.getLogger(__name__)


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


class ExecutionService:
    """Service for running workflows and reading run history."""

    def __init__(
        self,
        repositories: Repositories,
        engine: ExecutionEngine,
        canonicalizer: EventCanonicalizer | None = None,
    ) -> None:
        self._repositories = repositories
        self._engine = engine
        self._canonicalizer = canonicalizer or EventCanonicalizer()

    # --- Entry points ---

    async def execute_workflow(
        self,
        workflow_id: str,
        request: ExecuteWorkflowRequest,
    ) -> ExecutionResponse:
        """Run a workflow directly. Async mode returns as soon as the run is queued."""
        workflow = await self._repositories.definitions.find_one(id=workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        if not workflow.is_active:
            raise WorkflowInactiveError(workflow_id)

        context = WorkflowContext(
            trigger_data=dict(request.trigger_data),
            variables=dict(request.variables),
            run_id=new_id(),
            user_id=request.user_id,
            tenant_id=request.tenant_id,
            execution_mode=request.execution_mode,
            manual=True,
        )

        if request.execution_mode == ExecutionMode.ASYNC.value:
            self._engine.run_dispatcher.submit(
                lambda: self._engine.execute_workflow(workflow_id, context),
                label=context.run_id,
            )
            return ExecutionResponse(success=True, run_id=context.run_id, status=RunStatus.PENDING.value)

        result = await self._engine.execute_in_task(workflow_id, context)
        return self._to_execution_response(result, context.run_id)

    async def process_event(self, trigger_key: str, request: TriggerEventRequest) -> TriggerEventResponse:
        """Deliver an event to a trigger's subscribers."""
        context = WorkflowContext(
            variables=dict(request.variables),
            user_id=request.user_id,
            tenant_id=request.tenant_id,
            execution_mode=request.execution_mode,
            manual=request.manual,
        )
        result = await self._engine.process_trigger_event(trigger_key, request.event_data, context)
        return TriggerEventResponse(
            success=result.success,
            message=result.message,
            workflows_triggered=result.workflows_triggered,
            workflow_ids=result.workflow_ids,
            results=[self._to_execution_response(r) for r in result.results],
        )

    async def handle_webhook(
        self,
        trigger_key: str,
        *,
        url: str,
        method: str,
        headers: dict[str, Any],
        body: Any,
        query: dict[str, Any] | None = None,
        raw_body: bytes | None = None,
    ) -> TriggerEventResponse:
        """Canonicalize an inbound HTTP request and deliver it to ``trigger_key``."""
        event = self._canonicalizer.from_webhook(
            url=url,
            method=method,
            headers=headers,
            body=body,
            query=query,
            raw_body=raw_body,
        )
        result = await self._engine.process_trigger_event(
            trigger_key,
            event,
            WorkflowContext(trigger_event_id=event.id),
        )
        return TriggerEventResponse(
            success=result.success,
            message=result.message,
            workflows_triggered=result.workflows_triggered,
            workflow_ids=result.workflow_ids,
        )

    # --- Run history ---

    async def list_runs(
        self,
        workflow_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> list[RunListItem]:
        """List runs, newest first."""
        criteria: dict[str, Any] = {}
        if workflow_id is not None:
            criteria["workflow_id"] = workflow_id
        if status is not None:
            criteria["status"] = status.upper()
        runs = await self._repositories.runs.find(order_by="started_at", descending=True, **criteria)
        return [RunListItem(**self._run_fields(run)) for run in runs[:limit]]

    async def get_run(self, run_id: str) -> RunDetailResponse:
        """Get a run with its step runs."""
        run = await self._get_run(run_id)
        step_runs = await self._repositories.step_runs.find(order_by="started_at", run_id=run_id)
        return RunDetailResponse(
            **self._run_fields(run),
            trigger_event_id=run.trigger_event_id,
            trigger_summary=run.trigger_summary,
            context_data=run.context_data,
            output_data=run.output_data,
            step_runs=[self._step_run_schema(s) for s in step_runs],
        )

    async def cancel_run(self, run_id: str) -> bool:
        """Cancel a run. False when it had already finished."""
        return await self._engine.cancel_run(run_id)

    async def run_metrics(self, run_id: str) -> RunMetricsResponse:
        run = await self._get_run(run_id)
        rate = run.completed_steps / run.total_steps * 100 if run.total_steps else 0.0
        return RunMetricsResponse(
            run_id=run.id,
            status=run.status,
            total_steps=run.total_steps,
            completed_steps=run.completed_steps,
            failed_steps=run.failed_steps,
            skipped_steps=run.skipped_steps,
            success_rate=round(rate, 2),
            execution_time=run.execution_time,
        )

    # --- Helpers ---

    async def _get_run(self, run_id: str) -> WorkflowRunModel:
        run = await self._repositories.runs.find_one(id=run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    @staticmethod
    def _run_fields(run: WorkflowRunModel) -> dict[str, Any]:
        return {
            "id": run.id,
            "workflow_id": run.workflow_id,
            "version_id": run.version_id,
            "status": run.status,
            "trigger_type": run.trigger_type,
            "execution_mode": run.execution_mode,
            "total_steps": run.total_steps,
            "completed_steps": run.completed_steps,
            "failed_steps": run.failed_steps,
            "skipped_steps": run.skipped_steps,
            "fail_reason": run.fail_reason,
            "started_at": _iso(run.started_at),
            "ended_at": _iso(run.ended_at),
            "execution_time": run.execution_time,
        }

    @staticmethod
    def _step_run_schema(step_run: StepRunModel) -> StepRunSchema:
        return StepRunSchema(
            step_id=step_run.step_id,
            step_name=step_run.step_name,
            status=step_run.status,
            input_data=step_run.input_data,
            output_data=step_run.output_data,
            error_message=step_run.error_message,
            retry_count=step_run.retry_count,
            started_at=_iso(step_run.started_at),
            ended_at=_iso(step_run.ended_at),
            execution_time=step_run.execution_time,
        )

    @staticmethod
    def _to_execution_response(result: ExecutionResult, run_id: str | None = None) -> ExecutionResponse:
        summary = result.result if isinstance(result.result, dict) else {}
        return ExecutionResponse(
            success=result.success,
            run_id=summary.get("runId", run_id),
            status=summary.get("status"),
            result=summary.get("outputs", result.result),
            error=result.error,
            execution_time=result.execution_time,
        )
