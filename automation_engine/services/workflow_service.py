"""Workflow service for business logic."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ..core.exceptions import (
    ActionNotFoundError,
    TriggerNotFoundError,
    ValidationError,
    WorkflowNotFoundError,
)
from ..db.models import utcnow
from ..engine.types import StepKind
from ..schemas.workflow import (
    EdgeResponse,
    EdgeSchema,
    StepResponse,
    StepSchema,
    TriggerSchema,
    VersionResponse,
    WorkflowCreateRequest,
    WorkflowDetailResponse,
    WorkflowResponse,
    WorkflowUpdateRequest,
)
from .subscription_service import SubscriptionService

if TYPE_CHECKING:
    from ..db.models import WorkflowDefinitionModel, WorkflowVersionModel
    from ..engine.filter_engine import FilterEngine
    from ..repositories import Repositories

logger = logging.getLogger(__name__)


class WorkflowService:
    """
    Service for workflow operations.

    A workflow is a definition header plus immutable versions. Each version
    owns its steps and edges; the definition points at the latest one.
    """

    def __init__(self, repositories: Repositories, filter_engine: FilterEngine) -> None:
        self._repositories = repositories
        self._filter_engine = filter_engine
        self._subscriptions = SubscriptionService(repositories, filter_engine)

    async def create_workflow(self, request: WorkflowCreateRequest) -> WorkflowResponse:
        """Create a workflow, its first version and its trigger subscription."""
        await self._validate_definition(request.trigger, request.steps, request.edges)

        definition = await self._repositories.definitions.create(
            name=request.name,
            description=request.description,
            segment=request.segment,
            category=request.category,
            tags=list(request.tags),
            is_active=request.is_active,
            created_by=request.created_by,
        )
        version = await self._create_version(
            definition,
            version_num=1,
            trigger=request.trigger,
            steps=request.steps,
            edges=request.edges,
            editor_id=request.created_by,
        )
        definition.latest_ver_id = version.id
        definition = await self._repositories.definitions.save(definition)

        for variable in request.variables:
            await self._repositories.variables.create(
                workflow_id=definition.id,
                key=variable.key,
                value=variable.value,
                default_value=variable.default_value,
                data_type=variable.data_type,
                is_secret=variable.is_secret,
            )

        await self._subscriptions.subscribe(
            definition.id,
            request.trigger.trigger_key,
            request.trigger.filter_conditions,
        )

        logger.info(f"Created workflow {definition.id} ({definition.name}) with {len(request.steps)} steps")
        return self._to_response(definition, version)

    async def update_workflow(
        self,
        workflow_id: str,
        request: WorkflowUpdateRequest,
    ) -> WorkflowDetailResponse:
        """
        Update a workflow.

        Header fields change in place. A new version is published only when the
        trigger, steps or edges differ from the latest version.
        """
        definition = await self._get_definition(workflow_id)
        current = await self._latest_version(definition)
        inline = current.inline_json if current is not None else {}

        old_trigger = TriggerSchema(**inline["trigger"]) if inline.get("trigger") else None
        trigger = request.trigger or old_trigger
        steps = request.steps if request.steps is not None else [
            StepSchema(**s) for s in inline.get("steps") or []
        ]
        edges = request.edges if request.edges is not None else [
            EdgeSchema(**e) for e in inline.get("edges") or []
        ]
        if trigger is None:
            raise ValidationError("Workflow has no trigger", field="trigger")

        structural_change = (
            trigger.model_dump() != inline.get("trigger")
            or [s.model_dump() for s in steps] != inline.get("steps")
            or [e.model_dump() for e in edges] != inline.get("edges")
        )
        if structural_change:
            await self._validate_definition(trigger, steps, edges)

        for name in ("name", "description", "segment", "category", "tags"):
            value = getattr(request, name)
            if value is not None:
                setattr(definition, name, value)

        if structural_change:
            version = await self._create_version(
                definition,
                version_num=(current.version_num if current is not None else 0) + 1,
                trigger=trigger,
                steps=steps,
                edges=edges,
                editor_id=request.editor_id,
            )
            definition.latest_ver_id = version.id

            if old_trigger is not None and old_trigger.trigger_key != trigger.trigger_key:
                await self._repositories.subscriptions.delete(
                    workflow_id=workflow_id, trigger_key=old_trigger.trigger_key
                )
            await self._subscriptions.subscribe(
                workflow_id, trigger.trigger_key, trigger.filter_conditions
            )
            logger.info(f"Workflow {workflow_id} published version {version.version_num}")

        definition.updated_at = utcnow()
        await self._repositories.definitions.save(definition)
        return await self.get_workflow(workflow_id)

    async def set_active(self, workflow_id: str, active: bool) -> WorkflowResponse:
        """Activate or deactivate a workflow."""
        definition = await self._get_definition(workflow_id)
        definition.is_active = active
        definition.updated_at = utcnow()
        definition = await self._repositories.definitions.save(definition)
        logger.info(f"Workflow {workflow_id} {'activated' if active else 'deactivated'}")
        return self._to_response(definition, await self._latest_version(definition))

    async def get_workflow(self, workflow_id: str) -> WorkflowDetailResponse:
        """Get a workflow with its latest version's steps and edges."""
        definition = await self._get_definition(workflow_id)
        version = await self._latest_version(definition)
        trigger = (version.inline_json or {}).get("trigger") if version is not None else None
        base = self._to_response(definition, version)

        return WorkflowDetailResponse(
            **base.model_dump(),
            description=definition.description,
            segment=definition.segment,
            category=definition.category,
            tags=list(definition.tags or []),
            trigger_key=trigger.get("trigger_key") if trigger else None,
            filter_conditions=trigger.get("filter_conditions") if trigger else None,
            version=await self._version_response(version) if version is not None else None,
        )

    async def list_versions(self, workflow_id: str) -> list[VersionResponse]:
        """All versions of a workflow, newest first."""
        await self._get_definition(workflow_id)
        versions = await self._repositories.versions.find(
            order_by="version_num", descending=True, workflow_id=workflow_id
        )
        return [await self._version_response(v) for v in versions]

    # --- Helpers ---

    async def _get_definition(self, workflow_id: str) -> WorkflowDefinitionModel:
        definition = await self._repositories.definitions.find_one(id=workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(workflow_id)
        return definition

    async def _latest_version(self, definition: WorkflowDefinitionModel) -> WorkflowVersionModel | None:
        if not definition.latest_ver_id:
            return None
        return await self._repositories.versions.find_one(id=definition.latest_ver_id)

    async def _validate_definition(
        self,
        trigger: TriggerSchema,
        steps: list[StepSchema],
        edges: list[EdgeSchema],
    ) -> None:
        if await self._repositories.triggers.find_one(key=trigger.trigger_key, is_active=True) is None:
            raise TriggerNotFoundError(trigger.trigger_key)
        if trigger.filter_conditions:
            self._filter_engine.ensure_valid(trigger.filter_conditions, path="trigger.filter_conditions")

        if not steps:
            raise ValidationError("Workflow must have at least one step", field="steps")

        names: set[str] = set()
        for step in steps:
            if step.name in names:
                raise ValidationError(f"Duplicate step name: {step.name}", field="steps")
            names.add(step.name)

            if step.kind == StepKind.ACTION.value:
                if not step.action_key:
                    raise ValidationError(
                        f"Action step '{step.name}' has no action_key", field="action_key"
                    )
                action = await self._repositories.actions.find_one(key=step.action_key, is_active=True)
                if action is None:
                    raise ActionNotFoundError(step.action_key)
            elif step.kind == StepKind.CONDITION.value and step.cfg.get("condition") is not None:
                self._filter_engine.ensure_valid(step.cfg["condition"], path=f"steps.{step.name}.condition")

        branches: set[tuple[str, str]] = set()
        for edge in edges:
            for name in (edge.from_step, edge.to_step):
                if name not in names:
                    raise ValidationError(f"Edge references unknown step: {name}", field="edges")
            if (edge.from_step, edge.branch_key) in branches:
                raise ValidationError(
                    f"Step '{edge.from_step}' has two '{edge.branch_key}' edges", field="edges"
                )
            branches.add((edge.from_step, edge.branch_key))

    async def _create_version(
        self,
        definition: WorkflowDefinitionModel,
        version_num: int,
        trigger: TriggerSchema,
        steps: list[StepSchema],
        edges: list[EdgeSchema],
        editor_id: str | None = None,
    ) -> WorkflowVersionModel:
        version = await self._repositories.versions.create(
            workflow_id=definition.id,
            version_num=version_num,
            inline_json={
                "name": definition.name,
                "description": definition.description,
                "segment": definition.segment,
                "trigger": trigger.model_dump(),
                "steps": [s.model_dump() for s in steps],
                "edges": [e.model_dump() for e in edges],
            },
            editor_id=editor_id,
        )

        step_ids: dict[str, str] = {}
        for step in steps:
            row = await self._repositories.steps.create(
                version_id=version.id,
                name=step.name,
                kind=step.kind,
                action_key=step.action_key,
                cfg=dict(step.cfg),
                retry_on_fail=step.retry_on_fail,
                retry_delay=step.retry_delay,
            )
            step_ids[step.name] = row.id

        for edge in edges:
            await self._repositories.edges.create(
                from_step_id=step_ids[edge.from_step],
                to_step_id=step_ids[edge.to_step],
                branch_key=edge.branch_key,
            )

        # Root is the first step as submitted
        version.root_step_id = step_ids[steps[0].name]
        return await self._repositories.versions.save(version)

    async def _version_response(self, version: WorkflowVersionModel) -> VersionResponse:
        steps = await self._repositories.steps.find(order_by="name", version_id=version.id)
        edges: list[EdgeResponse] = []
        for step in steps:
            for edge in await self._repositories.edges.find(from_step_id=step.id):
                edges.append(EdgeResponse(
                    from_step_id=edge.from_step_id,
                    to_step_id=edge.to_step_id,
                    branch_key=edge.branch_key,
                ))

        return VersionResponse(
            id=version.id,
            version_num=version.version_num,
            root_step_id=version.root_step_id,
            created_at=version.created_at.isoformat(),
            steps=[
                StepResponse(
                    id=s.id,
                    name=s.name,
                    kind=s.kind,
                    action_key=s.action_key,
                    cfg=s.cfg or {},
                    retry_on_fail=s.retry_on_fail,
                    retry_delay=s.retry_delay,
                )
                for s in steps
            ],
            edges=edges,
        )

    @staticmethod
    def _to_response(
        definition: WorkflowDefinitionModel,
        version: WorkflowVersionModel | None,
    ) -> WorkflowResponse:
        return WorkflowResponse(
            id=definition.id,
            name=definition.name,
            is_active=definition.is_active,
            latest_version_id=definition.latest_ver_id,
            version_num=version.version_num if version is not None else None,
            created_at=definition.created_at.isoformat(),
            updated_at=definition.updated_at.isoformat(),
        )
