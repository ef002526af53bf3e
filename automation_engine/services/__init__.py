"""Service layer for automation engine business logic."""

from .workflow_service import WorkflowService
from .subscription_service import SubscriptionService
from .execution_service import ExecutionService

__all__ = [
    "WorkflowService",
    "SubscriptionService",
    "ExecutionService",
]
