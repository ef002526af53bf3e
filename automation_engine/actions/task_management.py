"""Task management action: create, update, delete, get and list tasks."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, TYPE_CHECKING

from ..core.exceptions import ValidationError
from .base import BaseActionHandler

if TYPE_CHECKING:
    from ..db.models import TaskModel
    from ..engine.types import ExecutionResult, WorkflowContext
    from ..repositories import Repository

logger = logging.getLogger(__name__)

TASK_STATUSES = ("pending", "in_progress", "completed", "expired", "cancelled")
DEFAULT_ENTITY_TYPE = "crm_leads"
DEFAULT_LIST_LIMIT = 50

_RELATIVE_DUE = re.compile(r"^\+(\d+)\s*([mhdw])$")
_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def parse_due_date(value: Any, now: datetime) -> datetime | None:
    """
    Parse an absolute ISO date or a relative offset such as ``+1d``, ``+2h``,
    ``+30m`` or ``+1w``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        text = value.strip()
        relative = _RELATIVE_DUE.match(text.lower())
        if relative:
            amount, unit = relative.groups()
            return now + timedelta(**{_UNITS[unit]: int(amount)})
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            pass
    raise ValidationError(f"Invalid due date: {value}", field="dueDate")


def task_to_dict(task: TaskModel) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "dueDate": task.due_date.isoformat() if task.due_date else None,
        "status": task.status,
        "priority": task.priority,
        "entityType": task.entity_type,
        "entityId": task.entity_id,
        "cronExpression": task.cron_expression,
        "additionalData": task.additional_data,
        "createdAt": task.created_at.isoformat() if task.created_at else None,
        "updatedAt": task.updated_at.isoformat() if task.updated_at else None,
    }


class TaskManagementHandler(BaseActionHandler):
    """Persists Task rows through the task repository."""

    aliases = ("taskManagement", "task_manager", "tasks")
    category = "task_management"

    def __init__(
        self,
        tasks: Repository[TaskModel],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tasks = tasks
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return "task_management"

    async def execute(self, config: dict[str, Any], context: WorkflowContext) -> ExecutionResult:
        operation = str(self.get_parameter(config, "operation", default="create")).lower()
        operations = {
            "create": self._create,
            "update": self._update,
            "delete": self._delete,
            "get": self._get,
            "list": self._list,
        }
        handler = operations.get(operation)
        if handler is None:
            return self.fail(f"Unsupported task operation: {operation}")

        try:
            return await handler(config)
        except ValidationError as e:
            return self.fail(e.message)
        except Exception as e:
            logger.exception(f"Task {operation} failed")
            return self.fail(f"Failed to {operation} task: {e}")

    # --- Operations ---

    async def _create(self, config: dict[str, Any]) -> ExecutionResult:
        title = self.get_parameter(config, "title")
        if not title:
            raise ValidationError("Task title is required", field="title")

        now = self._clock()
        entity_id = self.get_parameter(config, "entityId", "entity_id")
        task = await self._tasks.create(
            title=str(title),
            description=self.get_parameter(config, "description"),
            due_date=self._due_date(config, now),
            status=self._status(self.get_parameter(config, "status", default="pending")),
            priority=self.get_parameter(config, "priority"),
            entity_type=self.get_parameter(
                config, "entityType", "entity_type", default=DEFAULT_ENTITY_TYPE
            ),
            entity_id=str(entity_id) if entity_id is not None else None,
            cron_expression=self.get_parameter(config, "cronExpression", "cron_expression"),
            additional_data=self.get_parameter(config, "additionalData", "additional_data"),
            created_at=now,
            updated_at=now,
        )
        logger.info(f"Created task {task.id}: {task.title}")
        return self.ok({"operation": "create", "taskId": task.id, "task": task_to_dict(task)})

    async def _update(self, config: dict[str, Any]) -> ExecutionResult:
        task = await self._require_task(config, "update")
        now = self._clock()

        if (title := self.get_parameter(config, "title")) is not None:
            task.title = str(title)
        if "description" in config:
            task.description = config["description"]
        if (status := self.get_parameter(config, "status")) is not None:
            task.status = self._status(status)
        if (priority := self.get_parameter(config, "priority")) is not None:
            task.priority = priority
        if (entity_type := self.get_parameter(config, "entityType", "entity_type")) is not None:
            task.entity_type = entity_type
        if (entity_id := self.get_parameter(config, "entityId", "entity_id")) is not None:
            task.entity_id = str(entity_id)
        if (cron := self.get_parameter(config, "cronExpression", "cron_expression")) is not None:
            task.cron_expression = cron
        if (extra := self.get_parameter(config, "additionalData", "additional_data")) is not None:
            task.additional_data = extra
        due_date = self._due_date(config, now)
        if due_date is not None:
            task.due_date = due_date
        task.updated_at = now

        task = await self._tasks.save(task)
        return self.ok({"operation": "update", "taskId": task.id, "task": task_to_dict(task)})

    async def _delete(self, config: dict[str, Any]) -> ExecutionResult:
        task = await self._require_task(config, "delete")
        await self._tasks.delete(id=task.id)
        return self.ok({"operation": "delete", "taskId": task.id, "deleted": True})

    async def _get(self, config: dict[str, Any]) -> ExecutionResult:
        task = await self._require_task(config, "get")
        return self.ok({"operation": "get", "taskId": task.id, "task": task_to_dict(task)})

    async def _list(self, config: dict[str, Any]) -> ExecutionResult:
        filters = config.get("filters") if isinstance(config.get("filters"), dict) else config
        now = self._clock()

        criteria: dict[str, Any] = {}
        entity_type = self.get_parameter(filters, "entityType", "entity_type")
        if entity_type:
            criteria["entity_type"] = entity_type

        statuses = filters.get("status")
        if isinstance(statuses, str):
            statuses = [statuses]
        due_from = parse_due_date(self.get_parameter(filters, "dueDateFrom", "due_date_from"), now)
        due_to = parse_due_date(self.get_parameter(filters, "dueDateTo", "due_date_to"), now)
        limit = int(self.get_parameter(config, "limit", default=DEFAULT_LIST_LIMIT))
        offset = int(self.get_parameter(config, "offset", default=0))

        tasks = await self._tasks.find(order_by="created_at", descending=True, **criteria)
        if statuses:
            tasks = [t for t in tasks if t.status in statuses]
        if due_from is not None:
            tasks = [t for t in tasks if t.due_date and as_utc(t.due_date) >= due_from]
        if due_to is not None:
            tasks = [t for t in tasks if t.due_date and as_utc(t.due_date) <= due_to]

        page = tasks[offset:offset + limit]
        return self.ok(
            {
                "operation": "list",
                "tasks": [task_to_dict(t) for t in page],
                "total": len(tasks),
                "limit": limit,
                "offset": offset,
            }
        )

    # --- Helpers ---

    async def _require_task(self, config: dict[str, Any], operation: str) -> TaskModel:
        task_id = self.get_parameter(config, "taskId", "task_id")
        if not task_id:
            raise ValidationError(f"Task ID is required for {operation} operation", field="taskId")
        task = await self._tasks.find_one(id=str(task_id))
        if task is None:
            raise ValidationError(f"Task not found: {task_id}", field="taskId")
        return task

    def _due_date(self, config: dict[str, Any], now: datetime) -> datetime | None:
        dynamic = self.get_parameter(config, "dueDateDynamic", "due_date_dynamic")
        if dynamic:
            return parse_due_date(dynamic, now)
        return parse_due_date(self.get_parameter(config, "dueDate", "due_date"), now)

    @staticmethod
    def _status(value: Any) -> str:
        status = str(value).lower()
        if status not in TASK_STATUSES:
            raise ValidationError(
                f"Invalid task status: {value}. Expected one of {', '.join(TASK_STATUSES)}",
                field="status",
            )
        return status
