"""SQLModel database models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# --- Workflow definitions ---


class WorkflowDefinitionModel(SQLModel, table=True):
    """Mutable workflow header. Owns the version history."""

    __tablename__ = "workflow_definitions"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    segment: str | None = Field(default=None)
    category: str | None = Field(default=None)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    latest_ver_id: str | None = Field(default=None)
    is_active: bool = Field(default=True, index=True)
    is_template: bool = Field(default=False)
    pinned: bool = Field(default=False)
    created_by: str | None = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkflowVersionModel(SQLModel, table=True):
    """Immutable snapshot of trigger, steps and edges."""

    __tablename__ = "workflow_versions"

    id: str = Field(default_factory=new_id, primary_key=True)
    workflow_id: str = Field(index=True)
    version_num: int
    # Copy of {name, description, segment, trigger, steps, edges}
    inline_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    root_step_id: str | None = Field(default=None)
    editor_id: str | None = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)


class WorkflowStepModel(SQLModel, table=True):
    """A step belonging to exactly one version."""

    __tablename__ = "workflow_steps"

    id: str = Field(default_factory=new_id, primary_key=True)
    version_id: str = Field(index=True)
    name: str | None = Field(default=None)
    kind: str  # action, condition, delay, loop
    action_key: str | None = Field(default=None)
    cfg: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    retry_on_fail: int = Field(default=0)
    retry_delay: int = Field(default=1000)
    resource: str | None = Field(default=None)
    operation: str | None = Field(default=None)
    credential_id: str | None = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)


class WorkflowEdgeModel(SQLModel, table=True):
    """Directed connection between two steps of a version."""

    __tablename__ = "workflow_edges"

    from_step_id: str = Field(primary_key=True)
    branch_key: str = Field(default="default", primary_key=True)
    to_step_id: str = Field(index=True)


class WorkflowVariableModel(SQLModel, table=True):
    """Persisted workflow-level variable."""

    __tablename__ = "workflow_variables"

    id: str = Field(default_factory=new_id, primary_key=True)
    workflow_id: str = Field(index=True)
    key: str
    value: Any = Field(default=None, sa_column=Column(JSON))
    default_value: Any = Field(default=None, sa_column=Column(JSON))
    data_type: str = Field(default="string")
    is_secret: bool = Field(default=False)


# --- Registries ---


class TriggerRegistryModel(SQLModel, table=True):
    """Catalog entry for a trigger kind."""

    __tablename__ = "trigger_registry"

    id: str = Field(default_factory=new_id, primary_key=True)
    key: str = Field(index=True, unique=True)
    name: str
    description: str | None = Field(default=None)
    category: str | None = Field(default=None)
    event_source: str = Field(default="manual")  # webhook, debezium, poll, manual
    is_active: bool = Field(default=True, index=True)
    properties_schema: Any = Field(default=None, sa_column=Column(JSON))
    filter_schema: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    sample_payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    webhook_config: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    available_variables: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))


class ActionRegistryModel(SQLModel, table=True):
    """Catalog entry for an action kind."""

    __tablename__ = "action_registry"

    id: str = Field(default_factory=new_id, primary_key=True)
    key: str = Field(index=True, unique=True)
    name: str
    display_name: str | None = Field(default=None)
    description: str | None = Field(default=None)
    category: str | None = Field(default=None)
    group: str | None = Field(default=None)
    execution_type: str | None = Field(default=None)  # internal_function, external_api, conditional
    version: str = Field(default="1.0.0")
    is_active: bool = Field(default=True, index=True)
    properties_schema: Any = Field(default=None, sa_column=Column(JSON))
    operation_schema: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    filter_schema: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    sample_payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))


class SubscriptionModel(SQLModel, table=True):
    """Binds a workflow to a trigger key with an optional filter."""

    __tablename__ = "subscriptions"

    id: str = Field(default_factory=new_id, primary_key=True)
    workflow_id: str = Field(index=True)
    trigger_key: str = Field(index=True)
    filter_conditions: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utcnow)


# --- Runs ---


class WorkflowRunModel(SQLModel, table=True):
    """One row per execution attempt."""

    __tablename__ = "workflow_runs"

    id: str = Field(default_factory=new_id, primary_key=True)
    workflow_id: str = Field(index=True)
    version_id: str | None = Field(default=None)
    status: str = Field(default="PENDING", index=True)
    trigger_type: str | None = Field(default=None)
    trigger_event_id: str | None = Field(default=None)
    trigger_summary: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    execution_mode: str = Field(default="async")

    total_steps: int = Field(default=0)
    completed_steps: int = Field(default=0)
    failed_steps: int = Field(default=0)
    skipped_steps: int = Field(default=0)
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)

    context_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    output_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    fail_reason: str | None = Field(default=None)

    started_at: datetime = Field(default_factory=utcnow, index=True)
    ended_at: datetime | None = Field(default=None)
    execution_time: int | None = Field(default=None)  # milliseconds


class StepRunModel(SQLModel, table=True):
    """One row per (run, step) pair."""

    __tablename__ = "step_runs"

    run_id: str = Field(primary_key=True)
    step_id: str = Field(primary_key=True)
    step_name: str | None = Field(default=None)
    status: str = Field(default="PENDING")
    input_data: Any = Field(default=None, sa_column=Column(JSON))
    output_data: Any = Field(default=None, sa_column=Column(JSON))
    error_message: str | None = Field(default=None)
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=0)

    started_at: datetime = Field(default_factory=utcnow)
    ended_at: datetime | None = Field(default=None)
    execution_time: int | None = Field(default=None)  # milliseconds


# --- Side-effect entities ---


class TaskModel(SQLModel, table=True):
    """Task created by the task management action."""

    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    title: str
    description: str | None = Field(default=None)
    due_date: datetime | None = Field(default=None)
    status: str = Field(default="pending", index=True)
    priority: str | None = Field(default=None)
    entity_type: str = Field(default="crm_leads", index=True)
    entity_id: str | None = Field(default=None)
    cron_expression: str | None = Field(default=None)
    additional_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
