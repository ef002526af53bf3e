"""In-memory repository, used by tests and local tooling."""

from __future__ import annotations

from typing import Any, Generic

from ..repositories.base import ModelT, primary_key_names


class InMemoryRepository(Generic[ModelT]):
    """Dict-backed implementation of the repository contract."""

    def __init__(self, model: type[ModelT]) -> None:
        self._model = model
        self._pk = primary_key_names(model)
        self._rows: dict[tuple[Any, ...], ModelT] = {}

    def _key(self, entity: ModelT) -> tuple[Any, ...]:
        return tuple(getattr(entity, name) for name in self._pk)

    @staticmethod
    def _matches(entity: Any, criteria: dict[str, Any]) -> bool:
        return all(getattr(entity, name) == value for name, value in criteria.items())

    async def find_one(self, **criteria: Any) -> ModelT | None:
        for entity in self._rows.values():
            if self._matches(entity, criteria):
                return entity
        return None

    async def find(
        self,
        order_by: str | None = None,
        descending: bool = False,
        **criteria: Any,
    ) -> list[ModelT]:
        rows = [e for e in self._rows.values() if self._matches(e, criteria)]
        if order_by:
            # None sorts last ascending
            rows.sort(
                key=lambda e: (getattr(e, order_by) is None, getattr(e, order_by)),
                reverse=descending,
            )
        return rows

    async def create(self, **fields: Any) -> ModelT:
        entity = self._model(**fields)
        key = self._key(entity)
        if key in self._rows:
            raise ValueError(f"Duplicate {self._model.__name__} key: {key}")
        self._rows[key] = entity
        return entity

    async def save(self, entity: ModelT) -> ModelT:
        self._rows[self._key(entity)] = entity
        return entity

    async def delete(self, **criteria: Any) -> int:
        doomed = [k for k, e in self._rows.items() if self._matches(e, criteria)]
        for key in doomed:
            del self._rows[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._rows)
