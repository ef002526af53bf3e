"""Run history routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_execution_service
from ..core.exceptions import NotFoundError
from ..schemas.common import SuccessResponse
from ..schemas.execution import RunDetailResponse, RunListItem, RunMetricsResponse
from ..services.execution_service import ExecutionService

router = APIRouter(prefix="/runs")

ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]


@router.get("", response_model=list[RunListItem])
async def list_runs(
    service: ExecutionServiceDep,
    workflow_id: str | None = None,
    status: str | None = None,
    limit: int = Query(50, ge=1, le=500),
) -> list[RunListItem]:
    """List runs, newest first."""
    return await service.list_runs(workflow_id=workflow_id, status=status, limit=limit)


@router.get("/{run_id}", response_model=RunDetailResponse)
async def get_run(
    run_id: str,
    service: ExecutionServiceDep,
) -> RunDetailResponse:
    """Get a run with its step runs."""
    try:
        return await service.get_run(run_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/{run_id}/metrics", response_model=RunMetricsResponse)
async def get_run_metrics(
    run_id: str,
    service: ExecutionServiceDep,
) -> RunMetricsResponse:
    """Get step counts and success rate of a run."""
    try:
        return await service.run_metrics(run_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{run_id}/cancel", response_model=SuccessResponse)
async def cancel_run(
    run_id: str,
    service: ExecutionServiceDep,
) -> SuccessResponse:
    """Cancel a run that has not finished."""
    try:
        cancelled = await service.cancel_run(run_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    if not cancelled:
        return SuccessResponse(success=False, message="Run already finished")
    return SuccessResponse(message="Run cancelled")
