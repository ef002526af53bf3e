"""Pydantic schemas for API request/response validation."""

from .workflow import (
    StepSchema,
    EdgeSchema,
    TriggerSchema,
    VariableSchema,
    WorkflowCreateRequest,
    WorkflowUpdateRequest,
    ActiveToggleRequest,
    StepResponse,
    EdgeResponse,
    VersionResponse,
    WorkflowResponse,
    WorkflowDetailResponse,
    SubscriptionRequest,
    SubscriptionResponse,
)
from .execution import (
    ExecuteWorkflowRequest,
    ExecutionResponse,
    TriggerEventRequest,
    TriggerEventResponse,
    StepRunSchema,
    RunListItem,
    RunDetailResponse,
    RunMetricsResponse,
)
from .common import (
    SuccessResponse,
    HealthResponse,
    RootResponse,
)

__all__ = [
    # Workflow schemas
    "StepSchema",
    "EdgeSchema",
    "TriggerSchema",
    "VariableSchema",
    "WorkflowCreateRequest",
    "WorkflowUpdateRequest",
    "ActiveToggleRequest",
    "StepResponse",
    "EdgeResponse",
    "VersionResponse",
    "WorkflowResponse",
    "WorkflowDetailResponse",
    "SubscriptionRequest",
    "SubscriptionResponse",
    # Execution schemas
    "ExecuteWorkflowRequest",
    "ExecutionResponse",
    "TriggerEventRequest",
    "TriggerEventResponse",
    "StepRunSchema",
    "RunListItem",
    "RunDetailResponse",
    "RunMetricsResponse",
    # Common schemas
    "SuccessResponse",
    "HealthResponse",
    "RootResponse",
]
