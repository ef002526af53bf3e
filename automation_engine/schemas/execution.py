"""Execution-related Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ExecuteWorkflowRequest(BaseModel):
    """Request schema for running a workflow directly."""

    trigger_data: dict[str, Any] = Field(default_factory=dict, description="Data exposed as {{trigger.*}}")
    variables: dict[str, Any] = Field(default_factory=dict, description="Run variables")
    execution_mode: Literal["sync", "async", "test"] = "sync"
    user_id: str | None = None
    tenant_id: str | None = None


class ExecutionResponse(BaseModel):
    """Response schema for workflow execution."""

    success: bool
    run_id: str | None = None
    status: str | None = None
    result: Any = None
    error: str | None = None
    execution_time: int | None = Field(None, description="Milliseconds")


class TriggerEventRequest(BaseModel):
    """Request schema for delivering an event to a trigger."""

    event_data: dict[str, Any] = Field(..., description="Canonical event or raw event payload")
    variables: dict[str, Any] = Field(default_factory=dict)
    execution_mode: Literal["sync", "async", "test"] = "async"
    manual: bool = False
    user_id: str | None = None
    tenant_id: str | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "event_data": {
                    "operation": "UPDATE",
                    "table": "lead_sources",
                    "before": {"is_active": False},
                    "after": {"is_active": True, "name": "Email Marketing Campaign"},
                }
            }
        }


class TriggerEventResponse(BaseModel):
    """Outcome of processing a trigger event."""

    success: bool
    message: str
    workflows_triggered: int
    workflow_ids: list[str] = Field(default_factory=list)
    results: list[ExecutionResponse] = Field(default_factory=list)


class StepRunSchema(BaseModel):
    """Schema for one step run."""

    step_id: str
    step_name: str | None
    status: str
    input_data: Any = None
    output_data: Any = None
    error_message: str | None = None
    retry_count: int = 0
    started_at: str
    ended_at: str | None
    execution_time: int | None


class RunListItem(BaseModel):
    """Schema for a run in list responses."""

    id: str
    workflow_id: str
    version_id: str | None
    status: str
    trigger_type: str | None
    execution_mode: str
    total_steps: int
    completed_steps: int
    failed_steps: int
    skipped_steps: int
    fail_reason: str | None
    started_at: str
    ended_at: str | None
    execution_time: int | None


class RunDetailResponse(RunListItem):
    """Detailed run response."""

    trigger_event_id: str | None
    trigger_summary: dict[str, Any] | None
    context_data: dict[str, Any] | None
    output_data: dict[str, Any] | None
    step_runs: list[StepRunSchema]


class RunMetricsResponse(BaseModel):
    """Aggregate numbers for one run."""

    run_id: str
    status: str
    total_steps: int
    completed_steps: int
    failed_steps: int
    skipped_steps: int
    success_rate: float
    execution_time: int | None
