"""Tests for automation_engine.engine.run_dispatcher."""

from __future__ import annotations

import asyncio

import pytest

from automation_engine.engine.run_dispatcher import RunDispatcher
from automation_engine.engine.types import ExecutionResult


class TestRunDispatcher:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        dispatcher = RunDispatcher(max_concurrency=2)
        running = 0
        peak = 0

        async def work():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return ExecutionResult.ok()

        for _ in range(6):
            dispatcher.submit(work)
        await dispatcher.drain(timeout=5)

        assert peak == 2
        assert dispatcher.stats() == {
            "submitted": 6,
            "completed": 6,
            "failed": 0,
            "active": 0,
            "max_concurrency": 2,
        }

    @pytest.mark.asyncio
    async def test_failures_are_recorded(self):
        dispatcher = RunDispatcher()

        async def fails():
            return ExecutionResult.fail("step failed")

        async def raises():
            raise RuntimeError("exploded")

        dispatcher.submit(fails, label="a")
        dispatcher.submit(raises, label="b")
        await dispatcher.drain(timeout=5)

        assert dispatcher.failed == 2
        assert [(f.label, f.error) for f in dispatcher.failures()] == [
            ("a", "step failed"),
            ("b", "exploded"),
        ]

    @pytest.mark.asyncio
    async def test_failure_history_is_bounded(self):
        dispatcher = RunDispatcher(max_failures=2)

        async def fails():
            return ExecutionResult.fail("nope")

        for label in ("a", "b", "c"):
            dispatcher.submit(fails, label=label)
        await dispatcher.drain(timeout=5)

        assert [f.label for f in dispatcher.failures()] == ["b", "c"]
        assert dispatcher.failed == 3

    @pytest.mark.asyncio
    async def test_duplicate_labels_are_made_unique(self):
        dispatcher = RunDispatcher()
        gate = asyncio.Event()

        async def wait():
            await gate.wait()
            return ExecutionResult.ok()

        first = dispatcher.submit(wait, label="run")
        second = dispatcher.submit(wait, label="run")
        assert first == "run"
        assert second != first
        gate.set()
        await dispatcher.drain(timeout=5)

    @pytest.mark.asyncio
    async def test_cancel(self):
        dispatcher = RunDispatcher()

        async def forever():
            await asyncio.sleep(60)

        label = dispatcher.submit(forever, label="slow")
        await asyncio.sleep(0)
        assert dispatcher.cancel(label)
        await dispatcher.drain(timeout=5)

        assert not dispatcher.cancel(label)
        assert [f.error for f in dispatcher.failures()] == ["cancelled"]

    @pytest.mark.asyncio
    async def test_drain_picks_up_late_submissions(self):
        dispatcher = RunDispatcher()
        done = []

        async def second():
            done.append("second")
            return ExecutionResult.ok()

        async def first():
            dispatcher.submit(second)
            done.append("first")
            return ExecutionResult.ok()

        dispatcher.submit(first)
        await dispatcher.drain(timeout=5)

        assert done == ["first", "second"]

    @pytest.mark.asyncio
    async def test_drain_timeout(self):
        dispatcher = RunDispatcher()

        async def forever():
            await asyncio.sleep(60)

        dispatcher.submit(forever)
        with pytest.raises(asyncio.TimeoutError):
            await dispatcher.drain(timeout=0.01)
        await dispatcher.shutdown()
        assert dispatcher.active == 0
