"""Core types for the automation engine."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class _Missing:
    """Marker for a path that does not resolve. Distinct from None."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class RunStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"


TERMINAL_RUN_STATUSES = frozenset(
    {RunStatus.SUCCESS.value, RunStatus.FAILED.value, RunStatus.CANCELLED.value, RunStatus.TIMEOUT.value}
)


class StepStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class StepKind(str, Enum):
    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"
    LOOP = "loop"


class ExecutionMode(str, Enum):
    SYNC = "sync"
    ASYNC = "async"
    TEST = "test"


class TriggerType(str, Enum):
    DATABASE = "database"
    WEBHOOK = "webhook"
    SCHEDULE = "schedule"
    MANUAL = "manual"
    API = "api"


class EventSource(str, Enum):
    WEBHOOK = "webhook"
    DEBEZIUM = "debezium"
    POLL = "poll"
    MANUAL = "manual"
    SCHEDULE = "schedule"


class Operation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    READ = "READ"


def generate_event_id() -> str:
    return f"event_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class CanonicalEvent:
    """Normalized form of any raw trigger payload. Never persisted."""

    operation: str | None = None
    table: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    changed_fields: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)
    source: str = EventSource.DEBEZIUM.value
    id: str = field(default_factory=generate_event_id)
    # Webhook-only
    data: Any = None
    headers: dict[str, str] | None = None
    url: str | None = None
    method: str | None = None
    query: dict[str, Any] | None = None
    raw_body: bytes | None = None

    @property
    def is_webhook(self) -> bool:
        return self.source == EventSource.WEBHOOK.value

    def to_dict(self) -> dict[str, Any]:
        """Wire shape of the event."""
        payload: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "operation": self.operation,
            "table": self.table,
            "before": self.before,
            "after": self.after,
            "changedFields": list(self.changed_fields),
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }
        if self.is_webhook:
            payload.update(
                {
                    "data": self.data,
                    "headers": dict(self.headers or {}),
                    "url": self.url,
                    "method": self.method,
                    "query": dict(self.query or {}),
                }
            )
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> CanonicalEvent:
        """Build an event from the wire shape emitted by other systems."""
        timestamp = payload.get("timestamp")
        parsed = timestamp if isinstance(timestamp, datetime) else None
        if isinstance(timestamp, str):
            try:
                parsed = datetime.fromisoformat(timestamp)
            except ValueError:
                parsed = None
        if parsed is None:
            parsed = datetime.now(timezone.utc)
        elif parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)

        headers = payload.get("headers")
        changed = payload.get("changedFields") or payload.get("changed_fields")
        before = payload.get("before")
        after = payload.get("after")
        return cls(
            operation=payload.get("operation"),
            table=payload.get("table"),
            before=before if isinstance(before, dict) else None,
            after=after if isinstance(after, dict) else None,
            changed_fields=list(changed) if isinstance(changed, list) else [],
            timestamp=parsed,
            metadata=dict(payload["metadata"]) if isinstance(payload.get("metadata"), dict) else {},
            source=payload.get("source") or (
                EventSource.WEBHOOK.value if payload.get("method") else EventSource.DEBEZIUM.value
            ),
            id=payload.get("id") or generate_event_id(),
            data=payload.get("data"),
            headers={str(k).lower(): v for k, v in headers.items()} if isinstance(headers, dict) else None,
            url=payload.get("url"),
            method=payload.get("method"),
            query=payload.get("query") if isinstance(payload.get("query"), dict) else None,
        )


@dataclass
class WorkflowContext:
    """Run-scoped execution context."""

    trigger_data: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    workflow_id: str | None = None
    run_id: str | None = None
    user_id: str | None = None
    tenant_id: str | None = None
    trigger_type: str | None = None
    trigger_event_id: str | None = None
    execution_mode: str = ExecutionMode.ASYNC.value
    manual: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Outcome of an action, a step or a whole run."""

    success: bool
    result: Any = None
    error: str | None = None
    execution_time: int | None = None  # milliseconds

    @classmethod
    def ok(cls, result: Any = None) -> ExecutionResult:
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str) -> ExecutionResult:
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result,
            "error": self.error,
            "executionTime": self.execution_time,
        }


@dataclass
class TriggerProcessResult:
    """Outcome of processing one trigger event."""

    success: bool
    message: str
    workflows_triggered: int = 0
    workflow_ids: list[str] = field(default_factory=list)
    results: list[ExecutionResult] = field(default_factory=list)
