"""Subscription service: binds workflows to triggers."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ..core.exceptions import (
    SubscriptionNotFoundError,
    TriggerNotFoundError,
    WorkflowNotFoundError,
)
from ..schemas.workflow import SubscriptionResponse

if TYPE_CHECKING:
    from ..db.models import SubscriptionModel
    from ..engine.filter_engine import FilterEngine
    from ..repositories import Repositories

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Service for workflow/trigger subscriptions."""

    def __init__(self, repositories: Repositories, filter_engine: FilterEngine) -> None:
        self._repositories = repositories
        self._filter_engine = filter_engine

    async def subscribe(
        self,
        workflow_id: str,
        trigger_key: str,
        filter_conditions: dict[str, Any] | None = None,
        is_active: bool = True,
    ) -> SubscriptionResponse:
        """Create or update the subscription of a workflow to a trigger."""
        if await self._repositories.definitions.find_one(id=workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)
        if await self._repositories.triggers.find_one(key=trigger_key, is_active=True) is None:
            raise TriggerNotFoundError(trigger_key)
        if filter_conditions:
            self._filter_engine.ensure_valid(filter_conditions, path="filter_conditions")

        existing = await self._repositories.subscriptions.find_one(
            workflow_id=workflow_id, trigger_key=trigger_key
        )
        if existing is None:
            subscription = await self._repositories.subscriptions.create(
                workflow_id=workflow_id,
                trigger_key=trigger_key,
                filter_conditions=filter_conditions or None,
                is_active=is_active,
            )
            logger.info(f"Workflow {workflow_id} subscribed to {trigger_key}")
        else:
            existing.filter_conditions = filter_conditions or None
            existing.is_active = is_active
            subscription = await self._repositories.subscriptions.save(existing)
            logger.info(f"Subscription of workflow {workflow_id} to {trigger_key} updated")

        return self._to_response(subscription)

    async def unsubscribe(self, workflow_id: str, trigger_key: str | None = None) -> int:
        """Remove a workflow's subscriptions, optionally only the one for ``trigger_key``."""
        criteria: dict[str, Any] = {"workflow_id": workflow_id}
        if trigger_key is not None:
            criteria["trigger_key"] = trigger_key
        removed = await self._repositories.subscriptions.delete(**criteria)
        if not removed:
            raise SubscriptionNotFoundError(workflow_id, trigger_key)
        return removed

    async def list_for_trigger(
        self,
        trigger_key: str,
        active_only: bool = True,
    ) -> list[SubscriptionResponse]:
        criteria: dict[str, Any] = {"trigger_key": trigger_key}
        if active_only:
            criteria["is_active"] = True
        subscriptions = await self._repositories.subscriptions.find(order_by="created_at", **criteria)
        return [self._to_response(s) for s in subscriptions]

    @staticmethod
    def _to_response(subscription: SubscriptionModel) -> SubscriptionResponse:
        return SubscriptionResponse(
            id=subscription.id,
            workflow_id=subscription.workflow_id,
            trigger_key=subscription.trigger_key,
            filter_conditions=subscription.filter_conditions,
            is_active=subscription.is_active,
        )
