"""Registry mapping action keys to internal-function handlers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, TYPE_CHECKING

from ..core.exceptions import DispatchError

if TYPE_CHECKING:
    from ..actions.base import BaseActionHandler
    from ..repositories import Repositories

logger = logging.getLogger(__name__)


class ActionHandlerRegistry:
    """
    Handlers are looked up by key or alias first, then by category.

    New internal functions are added with ``register``; dispatch code never
    changes.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, BaseActionHandler] = {}
        self._categories: dict[str, BaseActionHandler] = {}

    def register(self, handler: BaseActionHandler, replace: bool = False) -> None:
        """Register a handler under its key and aliases."""
        for name in (handler.key, *handler.aliases):
            if name in self._handlers and not replace:
                logger.debug(f"Handler already registered for {name}")
                continue
            self._handlers[name] = handler
        # First handler of a category serves as its fallback
        if handler.category and handler.category not in self._categories:
            self._categories[handler.category] = handler

    def get(self, name: str) -> BaseActionHandler:
        """
        Get a handler by key or alias.

        Raises:
            DispatchError: If nothing is registered under ``name``
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise DispatchError(f'No handler registered for "{name}"', kind=name)
        return handler

    def has(self, name: str) -> bool:
        return name in self._handlers

    def list(self) -> list[str]:
        """Primary keys of all registered handlers."""
        return sorted({handler.key for handler in self._handlers.values()})

    def resolve(
        self,
        key: str | None,
        name: str | None = None,
        category: str | None = None,
    ) -> BaseActionHandler | None:
        for candidate in (key, name):
            if candidate and candidate in self._handlers:
                return self._handlers[candidate]
        if category:
            return self._categories.get(category)
        return None


def register_builtin_handlers(
    registry: ActionHandlerRegistry,
    repositories: Repositories,
    clock: Callable[[], datetime] | None = None,
) -> ActionHandlerRegistry:
    """Register the handlers shipped with the engine."""
    from ..actions import (
        DatabaseQueryHandler,
        DriveUploadHandler,
        SendEmailHandler,
        SendSmsHandler,
        SlackNotificationHandler,
        TaskManagementHandler,
    )

    registry.register(TaskManagementHandler(repositories.tasks, clock=clock))
    registry.register(SendEmailHandler())
    registry.register(SendSmsHandler())
    registry.register(SlackNotificationHandler())
    registry.register(DriveUploadHandler())
    registry.register(DatabaseQueryHandler())
    return registry
