"""Test configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from automation_engine.core.config import Settings
from automation_engine.core.dependencies import EngineContainer, build_container
from automation_engine.db.seed import seed_registries
from automation_engine.repositories import Repositories
from tests.factories import FIXED_NOW, make_settings, workflow_request


@pytest.fixture
def test_settings() -> Settings:
    """Provide settings that never touch a real database or broker."""
    return make_settings()


@pytest.fixture
def repositories() -> Repositories:
    """Provide empty in-memory repositories."""
    return Repositories.in_memory()


@pytest.fixture
async def seeded_repositories(repositories: Repositories) -> Repositories:
    """Provide in-memory repositories with the default registries."""
    await seed_registries(repositories)
    return repositories


@pytest.fixture
def sleeps() -> list[float]:
    """Seconds passed to the engine's sleep function."""
    return []


@pytest.fixture
def container(
    seeded_repositories: Repositories,
    test_settings: Settings,
    sleeps: list[float],
) -> EngineContainer:
    """Provide a wired engine whose sleeps return immediately."""

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return build_container(
        seeded_repositories,
        test_settings,
        sleep=record_sleep,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def make_workflow(container: EngineContainer):
    """Create a workflow through the container's workflow service and return its ID."""

    async def _make(steps: list[dict[str, Any]], **options: Any) -> str:
        response = await container.workflow_service.create_workflow(workflow_request(steps, **options))
        return response.id

    return _make
