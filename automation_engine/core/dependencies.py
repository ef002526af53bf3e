"""Composition root and FastAPI dependency injection."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from fastapi import Depends, Request

from .config import Settings, get_settings

if TYPE_CHECKING:
    from ..engine import (
        ActionDispatcher,
        ActionHandlerRegistry,
        EventCanonicalizer,
        ExecutionEngine,
        FilterEngine,
        RunDispatcher,
        TriggerMatcher,
        VariableResolver,
    )
    from ..messaging import EventIngestor, MessageBus
    from ..repositories import Repositories
    from ..services import ExecutionService, SubscriptionService, WorkflowService


@dataclass
class EngineContainer:
    """Every long-lived component, wired once per process."""

    settings: Settings
    repositories: Repositories
    filter_engine: FilterEngine
    resolver: VariableResolver
    canonicalizer: EventCanonicalizer
    matcher: TriggerMatcher
    handlers: ActionHandlerRegistry
    dispatcher: ActionDispatcher
    run_dispatcher: RunDispatcher
    engine: ExecutionEngine
    bus: MessageBus
    ingestor: EventIngestor
    workflow_service: WorkflowService
    subscription_service: SubscriptionService
    execution_service: ExecutionService

    async def shutdown(self) -> None:
        await self.bus.stop()
        await self.run_dispatcher.shutdown()


def build_container(
    repositories: Repositories,
    settings: Settings | None = None,
    *,
    bus: MessageBus | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], datetime] | None = None,
) -> EngineContainer:
    """Wire the engine from its parts. Settings are read here and nowhere else."""
    from ..engine import (
        ActionDispatcher,
        ActionHandlerRegistry,
        EventCanonicalizer,
        ExecutionEngine,
        FilterEngine,
        RunDispatcher,
        TriggerMatcher,
        VariableResolver,
        register_builtin_handlers,
    )
    from ..messaging import EventIngestor, InMemoryMessageBus
    from ..services import ExecutionService, SubscriptionService, WorkflowService

    settings = settings or get_settings()

    filter_engine = FilterEngine()
    resolver = VariableResolver()
    canonicalizer = EventCanonicalizer()
    matcher = TriggerMatcher(repositories, filter_engine, canonicalizer)
    handlers = register_builtin_handlers(ActionHandlerRegistry(), repositories, clock=clock)
    dispatcher = ActionDispatcher(repositories, handlers, resolver)
    run_dispatcher = RunDispatcher(
        max_concurrency=settings.max_concurrent_runs,
        max_failures=settings.max_failure_records,
    )
    engine = ExecutionEngine(
        repositories,
        filter_engine,
        resolver,
        dispatcher,
        matcher,
        run_dispatcher,
        run_timeout_seconds=settings.run_timeout_seconds,
        default_delay_ms=settings.default_delay_ms,
        max_delay_ms=settings.max_delay_ms,
        step_ordering=settings.step_ordering,
        default_run_max_retries=settings.default_run_max_retries,
        sleep=sleep,
    )

    bus = bus or InMemoryMessageBus()
    ingestor = EventIngestor(
        bus,
        engine,
        canonicalizer,
        repositories,
        cdc_topic_prefix=settings.cdc_topic_prefix,
        cdc_schema=settings.cdc_schema,
        trigger_key_template=settings.cdc_trigger_key_template,
        webhook_topic=settings.webhook_topic,
        webhook_trigger_header=settings.webhook_trigger_header,
    )

    return EngineContainer(
        settings=settings,
        repositories=repositories,
        filter_engine=filter_engine,
        resolver=resolver,
        canonicalizer=canonicalizer,
        matcher=matcher,
        handlers=handlers,
        dispatcher=dispatcher,
        run_dispatcher=run_dispatcher,
        engine=engine,
        bus=bus,
        ingestor=ingestor,
        workflow_service=WorkflowService(repositories, filter_engine),
        subscription_service=SubscriptionService(repositories, filter_engine),
        execution_service=ExecutionService(repositories, engine, canonicalizer),
    )


# --- Request Dependencies ---


def get_container(request: Request) -> EngineContainer:
    """Get the container built by the application lifespan."""
    return request.app.state.container


def get_engine(container: EngineContainer = Depends(get_container)):
    """Get the execution engine."""
    return container.engine


def get_workflow_service(container: EngineContainer = Depends(get_container)):
    """Get workflow service instance."""
    return container.workflow_service


def get_subscription_service(container: EngineContainer = Depends(get_container)):
    """Get subscription service instance."""
    return container.subscription_service


def get_execution_service(container: EngineContainer = Depends(get_container)):
    """Get execution service instance."""
    return container.execution_service
