"""
Execution engine.

Orchestrates workflow runs: creates run and step records, walks the steps
sequentially against an accumulating variable context, and records the
outcome. Both entry points return structured results and never raise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from ..core.exceptions import (
    AutomationEngineError,
    DispatchError,
    RunNotFoundError,
    ValidationError,
    WorkflowInactiveError,
    WorkflowNotFoundError,
)
from ..db.models import new_id, utcnow
from .action_dispatcher import ActionDispatcher
from .filter_engine import FilterEngine, is_group
from .run_dispatcher import RunDispatcher
from .trigger_matcher import TriggerMatcher
from .types import (
    TERMINAL_RUN_STATUSES,
    CanonicalEvent,
    EventSource,
    ExecutionMode,
    ExecutionResult,
    RunStatus,
    StepKind,
    StepStatus,
    TriggerProcessResult,
    TriggerType,
    WorkflowContext,
)
from .variable_resolver import VariableResolver

if TYPE_CHECKING:
    from ..db.models import (
        StepRunModel,
        TriggerRegistryModel,
        WorkflowRunModel,
        WorkflowStepModel,
        WorkflowVersionModel,
    )
    from ..repositories import Repositories

logger = logging.getLogger(__name__)

STEP_ORDER_NAME = "name"
STEP_ORDER_GRAPH = "graph"
DEFAULT_BRANCH = "default"

_SOURCE_TRIGGER_TYPES = {
    EventSource.DEBEZIUM.value: TriggerType.DATABASE.value,
    EventSource.WEBHOOK.value: TriggerType.WEBHOOK.value,
    EventSource.SCHEDULE.value: TriggerType.SCHEDULE.value,
    EventSource.POLL.value: TriggerType.SCHEDULE.value,
    EventSource.MANUAL.value: TriggerType.MANUAL.value,
}


@dataclass
class _RunState:
    """Mutable bookkeeping for one run in flight."""

    run: WorkflowRunModel
    started: float
    current_step_run: StepRunModel | None = None
    outputs: dict[str, Any] = field(default_factory=dict)
    visited: int | None = None


def create_trigger_summary(trigger_type: str | None, event: CanonicalEvent) -> dict[str, Any]:
    """Short description of the triggering event stored on the run."""
    if trigger_type == TriggerType.DATABASE.value:
        record = event.after or event.before or {}
        return {"table": event.table, "operation": event.operation, "recordId": record.get("id")}
    if trigger_type == TriggerType.WEBHOOK.value:
        return {
            "method": event.method,
            "url": event.url,
            "source": (event.headers or {}).get("user-agent") or "webhook",
        }
    return {"source": trigger_type, "eventId": event.id}


class ExecutionEngine:
    """Runs workflows and fans trigger events out to matching subscriptions."""

    def __init__(
        self,
        repositories: Repositories,
        filter_engine: FilterEngine,
        resolver: VariableResolver,
        dispatcher: ActionDispatcher,
        matcher: TriggerMatcher,
        run_dispatcher: RunDispatcher,
        *,
        run_timeout_seconds: float = 0,
        default_delay_ms: int = 1000,
        max_delay_ms: int = 300_000,
        step_ordering: str = STEP_ORDER_NAME,
        default_run_max_retries: int = 3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._repositories = repositories
        self._filter_engine = filter_engine
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._matcher = matcher
        self._run_dispatcher = run_dispatcher
        self._run_timeout = run_timeout_seconds
        self._default_delay_ms = default_delay_ms
        self._max_delay_ms = max_delay_ms
        self._step_ordering = step_ordering
        self._default_run_max_retries = default_run_max_retries
        self._sleep = sleep
        self._active: dict[str, asyncio.Task[Any]] = {}

    @property
    def run_dispatcher(self) -> RunDispatcher:
        return self._run_dispatcher

    # --- Entry point: trigger events ---

    async def process_trigger_event(
        self,
        trigger_key: str,
        event_data: CanonicalEvent | dict[str, Any],
        context: WorkflowContext | None = None,
    ) -> TriggerProcessResult:
        """Start one run per matching subscription."""
        context = context or WorkflowContext()
        try:
            if isinstance(event_data, CanonicalEvent):
                event = event_data
                event_dict = event_data.to_dict()
            elif isinstance(event_data, dict):
                event = CanonicalEvent.from_dict(event_data)
                event_dict = dict(event_data)
            else:
                raise ValidationError("Event data must be an object", field="eventData")

            trigger = await self._matcher.get_trigger(trigger_key)
            if trigger is None:
                return TriggerProcessResult(
                    success=True,
                    message=f"Trigger not found or inactive: {trigger_key}",
                )

            subscriptions = await self._matcher.find_matches(trigger_key, event_data, trigger=trigger)
            if not subscriptions:
                return TriggerProcessResult(success=True, message="No matching subscriptions")

            trigger_type = self._trigger_type(trigger, context)
            summary = create_trigger_summary(trigger_type, event)
            synchronous = context.execution_mode in (ExecutionMode.SYNC.value, ExecutionMode.TEST.value)

            results: list[ExecutionResult] = []
            workflow_ids: list[str] = []
            for subscription in subscriptions:
                run_context = WorkflowContext(
                    trigger_data=event_dict,
                    variables={**event_dict, **context.variables, "trigger": event_dict},
                    workflow_id=subscription.workflow_id,
                    run_id=new_id(),
                    user_id=context.user_id,
                    tenant_id=context.tenant_id,
                    trigger_type=trigger_type,
                    trigger_event_id=context.trigger_event_id or event.id,
                    execution_mode=context.execution_mode,
                    manual=context.manual,
                    metadata={
                        **context.metadata,
                        "trigger_key": trigger_key,
                        "subscription_id": subscription.id,
                        "trigger_summary": summary,
                    },
                )
                workflow_ids.append(subscription.workflow_id)

                if synchronous:
                    results.append(await self.execute_in_task(subscription.workflow_id, run_context))
                else:
                    self._run_dispatcher.submit(
                        lambda wid=subscription.workflow_id, ctx=run_context: self.execute_workflow(wid, ctx),
                        label=run_context.run_id,
                    )

            logger.info(f"Trigger {trigger_key} started {len(workflow_ids)} workflow(s)")
            return TriggerProcessResult(
                success=True,
                message=f"Triggered {len(workflow_ids)} workflow(s)",
                workflows_triggered=len(workflow_ids),
                workflow_ids=workflow_ids,
                results=results,
            )

        except AutomationEngineError as e:
            logger.warning(f"Trigger {trigger_key} event rejected: {e.message}")
            return TriggerProcessResult(success=False, message=e.message)
        except Exception as e:
            logger.exception(f"Failed to process event for trigger {trigger_key}")
            return TriggerProcessResult(success=False, message=str(e) or type(e).__name__)

    # --- Entry point: single workflow ---

    async def execute_workflow(
        self,
        workflow_id: str,
        context: WorkflowContext | None = None,
    ) -> ExecutionResult:
        """Execute the latest version of a workflow."""
        context = context or WorkflowContext()
        context.workflow_id = workflow_id
        started = time.monotonic()
        state: _RunState | None = None

        try:
            workflow = await self._repositories.definitions.find_one(id=workflow_id)
            if workflow is None:
                return self._failure(WorkflowNotFoundError(workflow_id).message, started)
            if not workflow.is_active:
                return self._failure(WorkflowInactiveError(workflow_id).message, started)

            version = None
            if workflow.latest_ver_id:
                version = await self._repositories.versions.find_one(id=workflow.latest_ver_id)
            if version is None:
                return self._failure(f"Workflow has no version to run: {workflow_id}", started)

            variables = await self._load_variables(workflow_id)
            context.variables = {**variables, **context.variables, "trigger": context.trigger_data}

            steps = await self._repositories.steps.find(version_id=version.id)
            run = await self._create_run(workflow_id, version, len(steps), context)
            context.run_id = run.id
            state = _RunState(run=run, started=started)

            current = asyncio.current_task()
            if current is not None:
                self._active[run.id] = current

            state.run.status = RunStatus.RUNNING.value
            await self._save_run(state)
            logger.info(f"Run {run.id} started for workflow {workflow_id} ({len(steps)} steps)")

            try:
                if self._run_timeout and self._run_timeout > 0:
                    error = await asyncio.wait_for(
                        self._execute_steps(state, steps, version, context),
                        timeout=self._run_timeout,
                    )
                else:
                    error = await self._execute_steps(state, steps, version, context)
            except asyncio.TimeoutError:
                message = f"Run timed out after {self._run_timeout}s"
                await self._finish_run(state, RunStatus.TIMEOUT, message)
                return self._failure(message, started, state)

            if error is None:
                await self._finish_run(state, RunStatus.SUCCESS)
                return ExecutionResult(
                    success=True,
                    result=self._run_summary(state),
                    execution_time=self._elapsed_ms(started),
                )

            await self._finish_run(state, RunStatus.FAILED, error)
            return self._failure(error, started, state)

        except asyncio.CancelledError:
            if state is not None:
                await asyncio.shield(self._finish_run(state, RunStatus.CANCELLED, "Run cancelled"))
            raise
        except Exception as e:
            logger.exception(f"Workflow {workflow_id} execution failed")
            message = str(e) or type(e).__name__
            if state is not None:
                try:
                    await self._finish_run(state, RunStatus.FAILED, message)
                except Exception:
                    logger.exception(f"Could not mark run {state.run.id} as failed")
            return self._failure(message, started, state)
        finally:
            if state is not None:
                self._active.pop(state.run.id, None)

    async def execute_in_task(
        self,
        workflow_id: str,
        context: WorkflowContext,
    ) -> ExecutionResult:
        """
        Execute a workflow in its own task and wait for it.

        ``cancel_run`` on the run cancels that task only, so the caller gets a
        failed result instead of a CancelledError. Cancelling the caller still
        cancels the run.
        """
        context.run_id = context.run_id or new_id()
        task = asyncio.create_task(
            self.execute_workflow(workflow_id, context),
            name=f"run:{context.run_id}",
        )
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            return ExecutionResult(
                success=False,
                result={"runId": context.run_id, "status": RunStatus.CANCELLED.value},
                error="Run cancelled",
            )
        return task.result()

    async def cancel_run(self, run_id: str) -> bool:
        """Cancel a run in flight, or mark a stored non-terminal run CANCELLED."""
        task = self._active.get(run_id)
        if task is not None and not task.done():
            task.cancel()
            return True
        if self._run_dispatcher.cancel(run_id):
            return True

        run = await self._repositories.runs.find_one(id=run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        if run.status in TERMINAL_RUN_STATUSES:
            return False
        run.status = RunStatus.CANCELLED.value
        run.fail_reason = "Run cancelled"
        run.ended_at = utcnow()
        await self._repositories.runs.save(run)
        return True

    # --- Step walking ---

    async def _execute_steps(
        self,
        state: _RunState,
        steps: list[WorkflowStepModel],
        version: WorkflowVersionModel,
        context: WorkflowContext,
    ) -> str | None:
        """Run steps until one fails. Returns the first error, or None."""
        edges = await self._load_edges(steps)

        if self._step_ordering == STEP_ORDER_GRAPH:
            return await self._execute_graph(state, steps, version, edges, context)

        if edges:
            logger.warning(
                f"Workflow {version.workflow_id} defines edges, but steps run in name order"
            )
        ordered = sorted(steps, key=lambda s: (s.name is None, s.name or "", s.id))
        for step in ordered:
            result = await self._execute_step(state, step, context)
            if not result.success:
                return result.error or "Step failed"
        return None

    async def _execute_graph(
        self,
        state: _RunState,
        steps: list[WorkflowStepModel],
        version: WorkflowVersionModel,
        edges: dict[str, dict[str, str]],
        context: WorkflowContext,
    ) -> str | None:
        by_id = {step.id: step for step in steps}
        step = by_id.get(version.root_step_id or "")
        if step is None and steps:
            step = min(steps, key=lambda s: (s.name is None, s.name or "", s.id))
            logger.warning(f"Version {version.id} has no root step, starting at {step.name}")

        visited: set[str] = set()
        while step is not None:
            if step.id in visited:
                logger.warning(f"Cycle detected at step {step.name or step.id}, stopping walk")
                break
            visited.add(step.id)

            result = await self._execute_step(state, step, context)
            if not result.success:
                return result.error or "Step failed"

            branch = DEFAULT_BRANCH
            if isinstance(result.result, dict) and (step.kind or "").lower() == StepKind.CONDITION.value:
                branch = result.result.get("branch", DEFAULT_BRANCH)
            targets = edges.get(step.id, {})
            next_id = targets.get(branch) or targets.get(DEFAULT_BRANCH)
            step = by_id.get(next_id) if next_id else None

        state.visited = len(visited)
        return None

    async def _execute_step(
        self,
        state: _RunState,
        step: WorkflowStepModel,
        context: WorkflowContext,
    ) -> ExecutionResult:
        step_key = step.name or step.id
        started = time.monotonic()

        step_run = await self._repositories.step_runs.create(
            run_id=state.run.id,
            step_id=step.id,
            step_name=step.name,
            status=StepStatus.PENDING.value,
            max_retries=step.retry_on_fail or 0,
            started_at=utcnow(),
        )
        state.current_step_run = step_run

        resolved = self._resolver.resolve(step.cfg or {}, context)
        step_run.status = StepStatus.RUNNING.value
        step_run.input_data = resolved
        state.current_step_run = await self._repositories.step_runs.save(step_run)

        result = await self._run_with_retries(state, step, resolved, context)

        step_run = state.current_step_run
        step_run.ended_at = utcnow()
        step_run.execution_time = self._elapsed_ms(started)
        if result.success:
            context.variables[step_key] = result.result
            state.outputs[step_key] = result.result
            step_run.status = StepStatus.SUCCESS.value
            step_run.output_data = result.result
            state.run.completed_steps += 1
        else:
            logger.warning(f"Step {step_key} of run {state.run.id} failed: {result.error}")
            step_run.status = StepStatus.FAILED.value
            step_run.error_message = result.error
            state.run.failed_steps += 1
            state.run.fail_reason = result.error

        await self._repositories.step_runs.save(step_run)
        state.current_step_run = None
        await self._save_run(state)
        return result

    async def _run_with_retries(
        self,
        state: _RunState,
        step: WorkflowStepModel,
        config: dict[str, Any],
        context: WorkflowContext,
    ) -> ExecutionResult:
        attempts = max(step.retry_on_fail or 0, 0) + 1
        result = ExecutionResult.fail("Step was not executed")
        for attempt in range(attempts):
            result = await self._dispatch_step(step, config, context)
            if result.success or attempt == attempts - 1:
                break

            step_run = state.current_step_run
            step_run.retry_count = attempt + 1
            state.current_step_run = await self._repositories.step_runs.save(step_run)
            logger.info(
                f"Retrying step {step.name or step.id} ({attempt + 1}/{attempts - 1}): {result.error}"
            )
            await self._sleep((step.retry_delay or 0) / 1000)
        return result

    async def _dispatch_step(
        self,
        step: WorkflowStepModel,
        config: dict[str, Any],
        context: WorkflowContext,
    ) -> ExecutionResult:
        kind = (step.kind or "").lower()
        try:
            if kind == StepKind.ACTION.value:
                if not step.action_key:
                    raise ValidationError(
                        f"Action step '{step.name or step.id}' has no action_key",
                        field="action_key",
                    )
                return await self._dispatcher.execute(step.action_key, config, context, resolved=True)

            if kind == StepKind.CONDITION.value:
                return self._evaluate_condition(step, context)

            if kind == StepKind.DELAY.value:
                return await self._delay(config)

            if kind == StepKind.LOOP.value:
                raise DispatchError("Loop steps are not supported", kind=step.kind)

            raise DispatchError(f"Unknown step kind: {step.kind}", kind=step.kind)

        except AutomationEngineError as e:
            return ExecutionResult.fail(e.message)
        except Exception as e:
            logger.exception(f"Step {step.name or step.id} raised")
            return ExecutionResult.fail(str(e) or type(e).__name__)

    def _evaluate_condition(self, step: WorkflowStepModel, context: WorkflowContext) -> ExecutionResult:
        # Field references stay as paths; only comparison values are resolved
        condition = (step.cfg or {}).get("condition")
        if condition is None:
            met = True
        else:
            condition = self._resolve_condition_values(condition, context)
            met = self._filter_engine.evaluate(condition, context.variables)
        return ExecutionResult.ok({"conditionMet": met, "branch": "true" if met else "false"})

    def _resolve_condition_values(self, node: Any, context: WorkflowContext) -> Any:
        if not isinstance(node, dict):
            return node
        if is_group(node):
            return {
                **node,
                "conditions": [
                    self._resolve_condition_values(child, context)
                    for child in node.get("conditions") or []
                ],
            }
        if "value" in node:
            return {**node, "value": self._resolver.resolve(node["value"], context)}
        return node

    async def _delay(self, config: dict[str, Any]) -> ExecutionResult:
        raw = config.get("delayMs", config.get("delay"))
        if raw is None:
            delay_ms = float(self._default_delay_ms)
        else:
            try:
                delay_ms = float(raw)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid delay: {raw}", field="delayMs")
        if delay_ms < 0:
            raise ValidationError(f"Delay must not be negative: {raw}", field="delayMs")

        delay_ms = min(delay_ms, float(self._max_delay_ms))
        await self._sleep(delay_ms / 1000)
        return ExecutionResult.ok({"delayedMs": int(delay_ms)})

    # --- Run records ---

    async def _create_run(
        self,
        workflow_id: str,
        version: WorkflowVersionModel,
        total_steps: int,
        context: WorkflowContext,
    ) -> WorkflowRunModel:
        trigger_type = context.trigger_type or (
            TriggerType.MANUAL.value if context.manual else TriggerType.API.value
        )
        return await self._repositories.runs.create(
            id=context.run_id or new_id(),
            workflow_id=workflow_id,
            version_id=version.id,
            status=RunStatus.PENDING.value,
            trigger_type=trigger_type,
            trigger_event_id=context.trigger_event_id,
            trigger_summary=context.metadata.get("trigger_summary"),
            execution_mode=context.execution_mode,
            total_steps=total_steps,
            completed_steps=0,
            failed_steps=0,
            skipped_steps=0,
            retry_count=0,
            max_retries=self._default_run_max_retries,
            context_data=context.trigger_data,
            started_at=utcnow(),
        )

    async def _finish_run(
        self,
        state: _RunState,
        status: RunStatus,
        fail_reason: str | None = None,
    ) -> None:
        """Move the run to a terminal status. Later calls are no-ops."""
        run = state.run
        if run.status in TERMINAL_RUN_STATUSES:
            return

        step_run = state.current_step_run
        if step_run is not None and step_run.status in (StepStatus.PENDING.value, StepStatus.RUNNING.value):
            step_run.status = StepStatus.FAILED.value
            step_run.error_message = fail_reason
            step_run.ended_at = utcnow()
            await self._repositories.step_runs.save(step_run)
            run.failed_steps += 1
        state.current_step_run = None

        if status is RunStatus.SUCCESS and state.visited is not None:
            run.skipped_steps = max(run.total_steps - run.completed_steps - run.failed_steps, 0)

        run.status = status.value
        run.fail_reason = fail_reason if status is not RunStatus.SUCCESS else None
        run.ended_at = utcnow()
        run.execution_time = self._elapsed_ms(state.started)
        run.output_data = state.outputs
        await self._save_run(state)
        logger.info(f"Run {run.id} finished with status {run.status} in {run.execution_time}ms")

    async def _save_run(self, state: _RunState) -> None:
        state.run = await self._repositories.runs.save(state.run)

    async def _load_variables(self, workflow_id: str) -> dict[str, Any]:
        rows = await self._repositories.variables.find(workflow_id=workflow_id)
        return {row.key: row.value if row.value is not None else row.default_value for row in rows}

    async def _load_edges(self, steps: list[WorkflowStepModel]) -> dict[str, dict[str, str]]:
        edges: dict[str, dict[str, str]] = {}
        for step in steps:
            for edge in await self._repositories.edges.find(from_step_id=step.id):
                edges.setdefault(step.id, {})[edge.branch_key or DEFAULT_BRANCH] = edge.to_step_id
        return edges

    # --- Helpers ---

    @staticmethod
    def _trigger_type(trigger: TriggerRegistryModel, context: WorkflowContext) -> str:
        if context.manual:
            return TriggerType.MANUAL.value
        if context.trigger_type:
            return context.trigger_type
        return _SOURCE_TRIGGER_TYPES.get((trigger.event_source or "").lower(), TriggerType.API.value)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    @staticmethod
    def _run_summary(state: _RunState) -> dict[str, Any]:
        return {
            "runId": state.run.id,
            "status": state.run.status,
            "outputs": state.outputs,
        }

    def _failure(
        self,
        error: str,
        started: float,
        state: _RunState | None = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            result=self._run_summary(state) if state is not None else None,
            error=error,
            execution_time=self._elapsed_ms(started),
        )
