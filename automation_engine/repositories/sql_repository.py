"""SQL repository backed by SQLModel and an async session factory."""

from __future__ import annotations

from typing import Any, Generic

from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from .base import ModelT


class SqlRepository(Generic[ModelT]):
    """Repository for one table.

    Each call opens its own session so concurrent runs never share one.
    Returned instances are detached and stay readable (expire_on_commit=False).
    """

    def __init__(self, model: type[ModelT], session_factory: sessionmaker) -> None:
        self._model = model
        self._session_factory = session_factory

    def _where(self, statement: Any, criteria: dict[str, Any]) -> Any:
        for name, value in criteria.items():
            column = getattr(self._model, name)
            if value is None:
                statement = statement.where(column.is_(None))
            else:
                statement = statement.where(column == value)
        return statement

    async def find_one(self, **criteria: Any) -> ModelT | None:
        statement = self._where(select(self._model), criteria).limit(1)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return result.scalars().first()

    async def find(
        self,
        order_by: str | None = None,
        descending: bool = False,
        **criteria: Any,
    ) -> list[ModelT]:
        statement = self._where(select(self._model), criteria)
        if order_by:
            column = getattr(self._model, order_by)
            statement = statement.order_by(column.desc() if descending else column.asc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def create(self, **fields: Any) -> ModelT:
        entity = self._model(**fields)
        async with self._session_factory() as session:
            session.add(entity)
            await session.commit()
            await session.refresh(entity)
        return entity

    async def save(self, entity: ModelT) -> ModelT:
        async with self._session_factory() as session:
            merged = await session.merge(entity)
            await session.commit()
            await session.refresh(merged)
        return merged

    async def delete(self, **criteria: Any) -> int:
        statement = self._where(delete(self._model), criteria)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            await session.commit()
        return result.rowcount or 0
