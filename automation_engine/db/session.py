"""Database session management."""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from ..core.config import settings

# Registers the table metadata
from . import models  # noqa: F401


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL."""
    return create_async_engine(database_url, echo=echo, future=True)


def create_session_factory(db_engine: AsyncEngine) -> sessionmaker:
    """Create a session factory bound to an engine."""
    return sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = create_engine(settings.database_url, echo=settings.debug)

async_session_factory = create_session_factory(engine)


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Initialize database tables."""
    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with async_session_factory() as session:
        yield session
