"""Repository contract shared by the SQL and in-memory stores."""

from __future__ import annotations

from typing import Any, Protocol, TypeVar

from sqlmodel import SQLModel

ModelT = TypeVar("ModelT", bound=SQLModel)


class Repository(Protocol[ModelT]):
    """The five operations the engine needs per entity.

    Criteria are plain attribute equality, e.g. ``find(workflow_id=wid, is_active=True)``.
    """

    async def find_one(self, **criteria: Any) -> ModelT | None: ...

    async def find(
        self,
        order_by: str | None = None,
        descending: bool = False,
        **criteria: Any,
    ) -> list[ModelT]: ...

    async def create(self, **fields: Any) -> ModelT: ...

    async def save(self, entity: ModelT) -> ModelT: ...

    async def delete(self, **criteria: Any) -> int: ...


def primary_key_names(model: type[SQLModel]) -> list[str]:
    """Names of the primary key columns of a table model."""
    return [column.name for column in model.__table__.primary_key.columns]
