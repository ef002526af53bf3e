"""Base class for built-in action handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ..engine.types import ExecutionResult, WorkflowContext


class BaseActionHandler(ABC):
    """
    Abstract base class for internal-function actions.

    Handlers are registered by ``key`` (plus ``aliases``) and optionally serve
    as the fallback for their ``category``. Config arrives already resolved.
    """

    aliases: tuple[str, ...] = ()
    category: str | None = None

    @property
    @abstractmethod
    def key(self) -> str:
        """Registry key this handler serves."""
        ...

    @abstractmethod
    async def execute(
        self,
        config: dict[str, Any],
        context: WorkflowContext,
    ) -> ExecutionResult:
        """Run the action."""
        ...

    def get_parameter(self, config: dict[str, Any], *names: str, default: Any = None) -> Any:
        """First non-null value among ``names`` (camelCase and snake_case spellings)."""
        for name in names:
            value = config.get(name)
            if value is not None:
                return value
        return default

    def ok(self, result: Any = None) -> ExecutionResult:
        from ..engine.types import ExecutionResult

        return ExecutionResult(success=True, result=result)

    def fail(self, error: str) -> ExecutionResult:
        from ..engine.types import ExecutionResult

        return ExecutionResult(success=False, error=error)
