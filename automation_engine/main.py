"""Main entry point for the automation engine server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.dependencies import EngineContainer, build_container
from .core.logging_config import configure_logging
from .routes import api_router, webhook_router
from .schemas.common import HealthResponse, RootResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging(settings.log_level)

    container: EngineContainer | None = getattr(app.state, "container", None)
    if container is None:
        from .db import async_session_factory, init_db
        from .repositories import Repositories

        await init_db()
        logger.info("Database initialized")
        container = build_container(Repositories.sql(async_session_factory), settings)
        app.state.container = container

    if container.settings.seed_registries:
        from .db.seed import seed_registries

        await seed_registries(container.repositories)

    if container.settings.consume_messages:
        await container.ingestor.start()

    logger.info(f"{settings.app_name} v{settings.app_version} started")
    logger.info(f"Running on http://{settings.host}:{settings.port}")

    yield

    await container.shutdown()
    logger.info(f"{settings.app_name} stopped")


def create_app(container: EngineContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Event-triggered workflow automation engine",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )
    if container is not None:
        app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Include routers
    app.include_router(api_router)
    app.include_router(webhook_router, tags=["Webhooks"])

    # Root endpoints
    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint."""
        return RootResponse(
            name=settings.app_name,
            version=settings.app_version,
            status="running",
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        current: EngineContainer | None = getattr(app.state, "container", None)
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            runs=current.run_dispatcher.stats() if current is not None else None,
        )

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "automation_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
