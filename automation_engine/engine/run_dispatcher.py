"""
Detached run dispatcher.

Runs triggered asynchronously are started as asyncio tasks bounded by a
semaphore. Failures are recorded instead of being lost in the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from .types import ExecutionResult

logger = logging.getLogger(__name__)


@dataclass
class RunFailure:
    """A detached run that failed or raised."""

    label: str
    error: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RunDispatcher:
    """Bounded pool of detached workflow executions."""

    def __init__(self, max_concurrency: int = 10, max_failures: int = 100) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_concurrency = max_concurrency
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._failures: deque[RunFailure] = deque(maxlen=max_failures)
        self._counter = 0
        self.submitted = 0
        self.completed = 0
        self.failed = 0

    def submit(
        self,
        factory: Callable[[], Awaitable[ExecutionResult]],
        label: str | None = None,
    ) -> str:
        """Start ``factory()`` in the background and return its label."""
        self._counter += 1
        label = label or f"run-{self._counter}"
        if label in self._tasks:
            label = f"{label}-{self._counter}"

        async def _run() -> ExecutionResult | None:
            async with self._semaphore:
                try:
                    result = await factory()
                except asyncio.CancelledError:
                    self._record_failure(label, "cancelled")
                    raise
                except Exception as e:
                    logger.exception(f"Detached run {label} raised")
                    self._record_failure(label, str(e) or type(e).__name__)
                    return None

                if result is not None and not result.success:
                    self._record_failure(label, result.error or "unknown error")
                else:
                    self.completed += 1
                return result

        task = asyncio.create_task(_run(), name=label)
        self._tasks[label] = task
        task.add_done_callback(lambda _: self._tasks.pop(label, None))
        self.submitted += 1
        logger.debug(f"Submitted detached run {label}")
        return label

    def cancel(self, label: str) -> bool:
        task = self._tasks.get(label)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every in-flight run, including runs submitted while waiting."""
        async def _wait_all() -> None:
            while self._tasks:
                await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

        await asyncio.wait_for(_wait_all(), timeout=timeout)

    async def shutdown(self) -> None:
        """Cancel in-flight runs and wait for them to settle."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def failures(self) -> list[RunFailure]:
        return list(self._failures)

    @property
    def active(self) -> int:
        return len(self._tasks)

    def stats(self) -> dict[str, int]:
        return {
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "active": self.active,
            "max_concurrency": self._max_concurrency,
        }

    def _record_failure(self, label: str, error: str) -> None:
        self.failed += 1
        self._failures.append(RunFailure(label=label, error=error))
        logger.warning(f"Detached run {label} failed: {error}")
