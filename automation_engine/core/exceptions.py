"""Custom exceptions for the automation engine."""

from typing import Any


class AutomationEngineError(Exception):
    """Base exception for all automation engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Not found ---


class NotFoundError(AutomationEngineError):
    """Raised when a referenced entity is missing or inactive."""


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow definition is not found."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            message=f"Workflow not found: {workflow_id}",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class WorkflowInactiveError(NotFoundError):
    """Raised when an inactive workflow is asked to run."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            message=f"Workflow is not active: {workflow_id}",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class TriggerNotFoundError(NotFoundError):
    """Raised when a trigger registry entry is not found."""

    def __init__(self, trigger_key: str) -> None:
        super().__init__(
            message=f"Trigger not found: {trigger_key}",
            details={"trigger_key": trigger_key},
        )
        self.trigger_key = trigger_key


class ActionNotFoundError(NotFoundError):
    """Raised when an action registry entry is not found."""

    def __init__(self, action_key: str) -> None:
        super().__init__(
            message=f"Action registry entry not found: {action_key}",
            details={"action_key": action_key},
        )
        self.action_key = action_key


class SubscriptionNotFoundError(NotFoundError):
    """Raised when a subscription is not found."""

    def __init__(self, workflow_id: str, trigger_key: str | None = None) -> None:
        super().__init__(
            message=f"Subscription not found for workflow: {workflow_id}",
            details={"workflow_id": workflow_id, "trigger_key": trigger_key},
        )
        self.workflow_id = workflow_id
        self.trigger_key = trigger_key


class RunNotFoundError(NotFoundError):
    """Raised when a workflow run is not found."""

    def __init__(self, run_id: str) -> None:
        super().__init__(
            message=f"Run not found: {run_id}",
            details={"run_id": run_id},
        )
        self.run_id = run_id


# --- Malformed input ---


class ValidationError(AutomationEngineError):
    """Raised when a filter, trigger or action config is malformed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["errors"] = errors
        super().__init__(message=message, details=details)
        self.field = field
        self.errors = errors or []


class TransformError(AutomationEngineError):
    """Raised when a raw event payload cannot be canonicalized."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message=message, details={"payload": payload})
        self.payload = payload


# --- Execution ---


class ExecutionError(AutomationEngineError):
    """Raised when a step handler fails."""

    def __init__(
        self,
        message: str,
        workflow_id: str | None = None,
        step_name: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            details={
                "workflow_id": workflow_id,
                "step_name": step_name,
            },
        )
        self.workflow_id = workflow_id
        self.step_name = step_name


class DispatchError(AutomationEngineError):
    """Raised for an unknown action handler or step kind."""

    def __init__(self, message: str, kind: str | None = None) -> None:
        super().__init__(message=message, details={"kind": kind} if kind else {})
        self.kind = kind
