"""Workflow routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ..core.dependencies import (
    get_execution_service,
    get_subscription_service,
    get_workflow_service,
)
from ..core.exceptions import AutomationEngineError, NotFoundError, ValidationError
from ..schemas.execution import ExecuteWorkflowRequest, ExecutionResponse
from ..schemas.workflow import (
    ActiveToggleRequest,
    SubscriptionRequest,
    SubscriptionResponse,
    VersionResponse,
    WorkflowCreateRequest,
    WorkflowDetailResponse,
    WorkflowResponse,
    WorkflowUpdateRequest,
)
from ..services.execution_service import ExecutionService
from ..services.subscription_service import SubscriptionService
from ..services.workflow_service import WorkflowService

router = APIRouter(prefix="/workflows")


# Type aliases for dependency injection
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]
ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]


@router.post("", response_model=WorkflowResponse, status_code=201)
async def create_workflow(
    workflow: WorkflowCreateRequest,
    service: WorkflowServiceDep,
) -> WorkflowResponse:
    """Create a workflow with its first version and subscription."""
    try:
        return await service.create_workflow(workflow)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)


@router.get("/{workflow_id}", response_model=WorkflowDetailResponse)
async def get_workflow(
    workflow_id: str,
    service: WorkflowServiceDep,
) -> WorkflowDetailResponse:
    """Get a single workflow by ID."""
    try:
        return await service.get_workflow(workflow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/{workflow_id}/versions", response_model=list[VersionResponse])
async def list_versions(
    workflow_id: str,
    service: WorkflowServiceDep,
) -> list[VersionResponse]:
    """List the versions of a workflow."""
    try:
        return await service.list_versions(workflow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.put("/{workflow_id}", response_model=WorkflowDetailResponse)
async def update_workflow(
    workflow_id: str,
    workflow: WorkflowUpdateRequest,
    service: WorkflowServiceDep,
) -> WorkflowDetailResponse:
    """Update an existing workflow."""
    try:
        return await service.update_workflow(workflow_id, workflow)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)


@router.patch("/{workflow_id}/active", response_model=WorkflowResponse)
async def toggle_workflow_active(
    workflow_id: str,
    body: ActiveToggleRequest,
    service: WorkflowServiceDep,
) -> WorkflowResponse:
    """Toggle workflow active state."""
    try:
        return await service.set_active(workflow_id, body.active)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{workflow_id}/execute", response_model=ExecutionResponse)
async def execute_workflow(
    workflow_id: str,
    service: ExecutionServiceDep,
    body: ExecuteWorkflowRequest | None = None,
) -> ExecutionResponse:
    """Run the latest version of a workflow."""
    try:
        return await service.execute_workflow(workflow_id, body or ExecuteWorkflowRequest())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except AutomationEngineError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.post("/{workflow_id}/subscriptions", response_model=SubscriptionResponse)
async def subscribe_workflow(
    workflow_id: str,
    body: SubscriptionRequest,
    service: SubscriptionServiceDep,
) -> SubscriptionResponse:
    """Create or update the workflow's subscription to a trigger."""
    try:
        return await service.subscribe(
            workflow_id,
            body.trigger_key,
            body.filter_conditions,
            body.is_active,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)
