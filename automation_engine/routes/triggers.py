"""Trigger event routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ..core.dependencies import get_execution_service, get_subscription_service
from ..schemas.execution import TriggerEventRequest, TriggerEventResponse
from ..schemas.workflow import SubscriptionResponse
from ..services.execution_service import ExecutionService
from ..services.subscription_service import SubscriptionService

router = APIRouter(prefix="/triggers")

ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]
SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]


@router.post("/{trigger_key}/events", response_model=TriggerEventResponse)
async def process_trigger_event(
    trigger_key: str,
    body: TriggerEventRequest,
    service: ExecutionServiceDep,
) -> TriggerEventResponse:
    """Deliver an event to every matching subscription of a trigger."""
    return await service.process_event(trigger_key, body)


@router.get("/{trigger_key}/subscriptions", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    trigger_key: str,
    service: SubscriptionServiceDep,
    active_only: bool = True,
) -> list[SubscriptionResponse]:
    """List the subscriptions of a trigger."""
    return await service.list_for_trigger(trigger_key, active_only=active_only)
