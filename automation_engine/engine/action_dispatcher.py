"""Action dispatcher: registry lookup, config resolution and handler routing."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, TYPE_CHECKING

from ..core.exceptions import ActionNotFoundError
from .handler_registry import ActionHandlerRegistry
from .types import ExecutionResult, WorkflowContext
from .variable_resolver import VariableResolver

if TYPE_CHECKING:
    from ..db.models import ActionRegistryModel
    from ..repositories import Repositories

logger = logging.getLogger(__name__)

INTERNAL_FUNCTION = "internal_function"
EXTERNAL_API = "external_api"
CONDITIONAL = "conditional"


class ActionDispatcher:
    """Executes registered actions. Never raises."""

    def __init__(
        self,
        repositories: Repositories,
        handlers: ActionHandlerRegistry,
        resolver: VariableResolver,
    ) -> None:
        self._repositories = repositories
        self._handlers = handlers
        self._resolver = resolver

    async def execute(
        self,
        action_key: str,
        config: dict[str, Any] | None,
        context: WorkflowContext,
        *,
        resolved: bool = False,
    ) -> ExecutionResult:
        """Run an action. Pass ``resolved=True`` when ``config`` has already been through the resolver."""
        start = time.monotonic()
        result = await self._execute(action_key, config or {}, context, resolved)
        result.execution_time = int((time.monotonic() - start) * 1000)
        return result

    async def _execute(
        self,
        action_key: str,
        config: dict[str, Any],
        context: WorkflowContext,
        resolved: bool,
    ) -> ExecutionResult:
        try:
            action = await self._repositories.actions.find_one(key=action_key, is_active=True)
            if action is None:
                error = ActionNotFoundError(action_key)
                logger.warning(error.message)
                return ExecutionResult.fail(error.message)

            # Resolve once; tokens that arrive inside event data stay literal
            if not resolved:
                config = self._resolver.resolve(config, context)
            execution_type = (action.execution_type or "").lower()

            if execution_type == INTERNAL_FUNCTION:
                return await self._execute_internal(action, config, context)
            if execution_type in (EXTERNAL_API, CONDITIONAL):
                return self._placeholder(action, execution_type, config)
            return self._generic(action, config)

        except Exception as e:
            logger.exception(f"Action {action_key} failed")
            return ExecutionResult.fail(str(e) or type(e).__name__)

    async def _execute_internal(
        self,
        action: ActionRegistryModel,
        config: dict[str, Any],
        context: WorkflowContext,
    ) -> ExecutionResult:
        handler = self._handlers.resolve(action.key, action.name, action.category)
        if handler is None:
            logger.warning(f"No internal handler for action {action.key}, echoing config")
            return self._generic(action, config)
        return await handler.execute(config, context)

    @staticmethod
    def _placeholder(
        action: ActionRegistryModel,
        execution_type: str,
        config: dict[str, Any],
    ) -> ExecutionResult:
        # Not implemented yet; must not fail the step
        logger.info(f"Action {action.key} ({execution_type}) is not implemented, returning placeholder")
        return ExecutionResult.ok(
            {
                "action": action.key,
                "executionType": execution_type,
                "status": "not_implemented",
                "config": config,
            }
        )

    @staticmethod
    def _generic(action: ActionRegistryModel, config: dict[str, Any]) -> ExecutionResult:
        return ExecutionResult.ok(
            {
                "action": action.key,
                "config": config,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
