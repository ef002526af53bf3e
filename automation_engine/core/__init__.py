"""Core module for the automation engine - config, exceptions, and dependencies."""

from .config import settings, Settings, get_settings
from .exceptions import (
    AutomationEngineError,
    NotFoundError,
    WorkflowNotFoundError,
    WorkflowInactiveError,
    TriggerNotFoundError,
    ActionNotFoundError,
    SubscriptionNotFoundError,
    RunNotFoundError,
    ValidationError,
    TransformError,
    ExecutionError,
    DispatchError,
)
from .dependencies import (
    EngineContainer,
    build_container,
    get_container,
    get_engine,
    get_workflow_service,
    get_subscription_service,
    get_execution_service,
)

__all__ = [
    # Config
    "settings",
    "Settings",
    "get_settings",
    # Exceptions
    "AutomationEngineError",
    "NotFoundError",
    "WorkflowNotFoundError",
    "WorkflowInactiveError",
    "TriggerNotFoundError",
    "ActionNotFoundError",
    "SubscriptionNotFoundError",
    "RunNotFoundError",
    "ValidationError",
    "TransformError",
    "ExecutionError",
    "DispatchError",
    # Dependencies
    "EngineContainer",
    "build_container",
    "get_container",
    "get_engine",
    "get_workflow_service",
    "get_subscription_service",
    "get_execution_service",
]
