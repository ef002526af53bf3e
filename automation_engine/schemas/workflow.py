"""Workflow-related Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class StepSchema(BaseModel):
    """Schema for a step in a workflow version."""

    name: str = Field(..., min_length=1, description="Step name, unique within the workflow")
    kind: Literal["action", "condition", "delay", "loop"] = Field("action", description="Step kind")
    action_key: str | None = Field(None, description="Action registry key for action steps")
    cfg: dict[str, Any] = Field(default_factory=dict, description="Step parameters, may hold tokens")
    retry_on_fail: int = Field(0, ge=0, description="Number of retries on failure")
    retry_delay: int = Field(1000, ge=0, description="Delay between retries in ms")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "create_setup_task",
                "kind": "action",
                "action_key": "task_management",
                "cfg": {
                    "operation": "create",
                    "title": "Setup lead source: {{variable.after.name}}",
                    "dueDateDynamic": "+1d",
                },
            }
        }


class EdgeSchema(BaseModel):
    """Schema for a connection between two steps, by step name."""

    from_step: str = Field(..., description="Source step name")
    to_step: str = Field(..., description="Target step name")
    branch_key: str = Field("default", description="Branch label, e.g. true/false after a condition")


class TriggerSchema(BaseModel):
    """Trigger binding for a workflow."""

    trigger_key: str = Field(..., min_length=1, description="Trigger registry key")
    filter_conditions: dict[str, Any] | None = Field(
        None, description="Filter tree evaluated against the event"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "trigger_key": "lead_sources_db_change",
                "filter_conditions": {
                    "combinator": "AND",
                    "conditions": [
                        {"variable": "{{variable.operation}}", "operator": "equals", "value": "UPDATE"},
                        {"variable": "{{variable.after.is_active}}", "operator": "equals", "value": True},
                    ],
                },
            }
        }


class VariableSchema(BaseModel):
    """Workflow-level variable."""

    key: str = Field(..., min_length=1)
    value: Any = None
    default_value: Any = None
    data_type: str = "string"
    is_secret: bool = False


class WorkflowCreateRequest(BaseModel):
    """Request schema for creating a workflow."""

    name: str = Field(..., min_length=1, max_length=255, description="Workflow name")
    description: str | None = Field(None, max_length=1000, description="Workflow description")
    segment: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_by: str | None = None
    trigger: TriggerSchema
    steps: list[StepSchema] = Field(..., min_length=1, description="Steps of the first version")
    edges: list[EdgeSchema] = Field(default_factory=list)
    variables: list[VariableSchema] = Field(default_factory=list)


class WorkflowUpdateRequest(BaseModel):
    """Request schema for updating a workflow.

    Changing trigger, steps or edges publishes a new version.
    """

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    segment: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    editor_id: str | None = None
    trigger: TriggerSchema | None = None
    steps: list[StepSchema] | None = None
    edges: list[EdgeSchema] | None = None


class ActiveToggleRequest(BaseModel):
    """Request schema for toggling workflow active state."""

    active: bool = Field(..., description="Whether the workflow should be active")


class StepResponse(BaseModel):
    id: str
    name: str | None
    kind: str
    action_key: str | None
    cfg: dict[str, Any]
    retry_on_fail: int
    retry_delay: int


class EdgeResponse(BaseModel):
    from_step_id: str
    to_step_id: str
    branch_key: str


class VersionResponse(BaseModel):
    id: str
    version_num: int
    root_step_id: str | None
    created_at: str
    steps: list[StepResponse] = Field(default_factory=list)
    edges: list[EdgeResponse] = Field(default_factory=list)


class WorkflowResponse(BaseModel):
    """Response schema for workflow create/update."""

    id: str
    name: str
    is_active: bool
    latest_version_id: str | None
    version_num: int | None
    created_at: str
    updated_at: str


class WorkflowDetailResponse(WorkflowResponse):
    """Detailed workflow response."""

    description: str | None
    segment: str | None
    category: str | None
    tags: list[str]
    trigger_key: str | None
    filter_conditions: dict[str, Any] | None
    version: VersionResponse | None


class SubscriptionRequest(BaseModel):
    """Subscribe a workflow to a trigger."""

    trigger_key: str = Field(..., min_length=1)
    filter_conditions: dict[str, Any] | None = None
    is_active: bool = True


class SubscriptionResponse(BaseModel):
    id: str
    workflow_id: str
    trigger_key: str
    filter_conditions: dict[str, Any] | None
    is_active: bool
