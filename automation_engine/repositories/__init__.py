"""Repository layer for data persistence."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import sessionmaker

from ..db.models import (
    ActionRegistryModel,
    StepRunModel,
    SubscriptionModel,
    TaskModel,
    TriggerRegistryModel,
    WorkflowDefinitionModel,
    WorkflowEdgeModel,
    WorkflowRunModel,
    WorkflowStepModel,
    WorkflowVariableModel,
    WorkflowVersionModel,
)
from .base import Repository, primary_key_names
from .sql_repository import SqlRepository

_MODELS: dict[str, type] = {
    "definitions": WorkflowDefinitionModel,
    "versions": WorkflowVersionModel,
    "steps": WorkflowStepModel,
    "edges": WorkflowEdgeModel,
    "variables": WorkflowVariableModel,
    "triggers": TriggerRegistryModel,
    "actions": ActionRegistryModel,
    "subscriptions": SubscriptionModel,
    "runs": WorkflowRunModel,
    "step_runs": StepRunModel,
    "tasks": TaskModel,
}


@dataclass
class Repositories:
    """One repository per entity, handed to components through their constructors."""

    definitions: Repository[WorkflowDefinitionModel]
    versions: Repository[WorkflowVersionModel]
    steps: Repository[WorkflowStepModel]
    edges: Repository[WorkflowEdgeModel]
    variables: Repository[WorkflowVariableModel]
    triggers: Repository[TriggerRegistryModel]
    actions: Repository[ActionRegistryModel]
    subscriptions: Repository[SubscriptionModel]
    runs: Repository[WorkflowRunModel]
    step_runs: Repository[StepRunModel]
    tasks: Repository[TaskModel]

    @classmethod
    def sql(cls, session_factory: sessionmaker) -> Repositories:
        """Bundle backed by the relational database."""
        repos: dict[str, Any] = {
            name: SqlRepository(model, session_factory) for name, model in _MODELS.items()
        }
        return cls(**repos)

    @classmethod
    def in_memory(cls) -> Repositories:
        """Bundle backed by process memory."""
        from ..storage import InMemoryRepository

        repos: dict[str, Any] = {
            name: InMemoryRepository(model) for name, model in _MODELS.items()
        }
        return cls(**repos)


__all__ = [
    "Repository",
    "Repositories",
    "SqlRepository",
    "primary_key_names",
]
