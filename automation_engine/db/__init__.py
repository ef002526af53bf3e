"""Database configuration and models."""

from .session import (
    engine,
    async_session_factory,
    create_engine,
    create_session_factory,
    init_db,
    get_session,
)
from .models import (
    WorkflowDefinitionModel,
    WorkflowVersionModel,
    WorkflowStepModel,
    WorkflowEdgeModel,
    WorkflowVariableModel,
    TriggerRegistryModel,
    ActionRegistryModel,
    SubscriptionModel,
    WorkflowRunModel,
    StepRunModel,
    TaskModel,
)

__all__ = [
    "engine",
    "async_session_factory",
    "create_engine",
    "create_session_factory",
    "init_db",
    "get_session",
    "WorkflowDefinitionModel",
    "WorkflowVersionModel",
    "WorkflowStepModel",
    "WorkflowEdgeModel",
    "WorkflowVariableModel",
    "TriggerRegistryModel",
    "ActionRegistryModel",
    "SubscriptionModel",
    "WorkflowRunModel",
    "StepRunModel",
    "TaskModel",
]
