"""Core automation engine components."""

from .types import (
    MISSING,
    CanonicalEvent,
    EventSource,
    ExecutionMode,
    ExecutionResult,
    Operation,
    RunStatus,
    StepKind,
    StepStatus,
    TriggerProcessResult,
    TriggerType,
    WorkflowContext,
)
from .filter_engine import FilterEngine
from .variable_resolver import VariableResolver
from .event_canonicalizer import EventCanonicalizer
from .trigger_matcher import TriggerMatcher, verify_hmac_sha256
from .handler_registry import ActionHandlerRegistry, register_builtin_handlers
from .action_dispatcher import ActionDispatcher
from .run_dispatcher import RunDispatcher, RunFailure
from .execution_engine import ExecutionEngine

__all__ = [
    "MISSING",
    "CanonicalEvent",
    "EventSource",
    "ExecutionMode",
    "ExecutionResult",
    "Operation",
    "RunStatus",
    "StepKind",
    "StepStatus",
    "TriggerProcessResult",
    "TriggerType",
    "WorkflowContext",
    "FilterEngine",
    "VariableResolver",
    "EventCanonicalizer",
    "TriggerMatcher",
    "verify_hmac_sha256",
    "ActionHandlerRegistry",
    "register_builtin_handlers",
    "ActionDispatcher",
    "RunDispatcher",
    "RunFailure",
    "ExecutionEngine",
]
