"""Chainable query helpers exposed as ``Model.objects`` on table models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlmodel import col, select

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel import SQLModel
    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound="SQLModel")


@dataclass(frozen=True)
class ModelQuery(Generic[ModelT]):
    """Immutable query builder; each call returns a refined copy."""

    model: type[ModelT]
    criteria: tuple[Any, ...] = field(default_factory=tuple)
    ordering: tuple[Any, ...] = field(default_factory=tuple)
    offset_value: int | None = None
    limit_value: int | None = None
    lock: bool = False

    def filter(self, *expressions: ColumnElement[bool] | bool) -> ModelQuery[ModelT]:
        return replace(self, criteria=self.criteria + expressions)

    def filter_by(self, **values: object) -> ModelQuery[ModelT]:
        expressions = tuple(
            col(getattr(self.model, name)) == value for name, value in values.items()
        )
        return replace(self, criteria=self.criteria + expressions)

    def order_by(self, *columns: Any) -> ModelQuery[ModelT]:
        return replace(self, ordering=self.ordering + columns)

    def offset(self, value: int) -> ModelQuery[ModelT]:
        return replace(self, offset_value=value)

    def limit(self, value: int) -> ModelQuery[ModelT]:
        return replace(self, limit_value=value)

    def for_update(self) -> ModelQuery[ModelT]:
        return replace(self, lock=True)

    def statement(self) -> Any:
        stmt = select(self.model)
        for criterion in self.criteria:
            stmt = stmt.where(criterion)
        if self.ordering:
            stmt = stmt.order_by(*self.ordering)
        if self.offset_value is not None:
            stmt = stmt.offset(self.offset_value)
        if self.limit_value is not None:
            stmt = stmt.limit(self.limit_value)
        if self.lock:
            stmt = stmt.with_for_update()
        return stmt

    async def all(self, session: AsyncSession) -> list[ModelT]:
        result = await session.exec(self.statement())
        return list(result.all())

    async def first(self, session: AsyncSession) -> ModelT | None:
        result = await session.exec(self.statement())
        return result.first()

    async def count(self, session: AsyncSession) -> int:
        return len(await self.all(session))


class QueryManager:
    """Descriptor returning a fresh ``ModelQuery`` for the owning model class."""

    def __get__(self, instance: object, owner: type[ModelT]) -> Manager[ModelT]:
        return Manager(owner)


@dataclass(frozen=True)
class Manager(Generic[ModelT]):
    """Entry point for model queries (``Model.objects``)."""

    model: type[ModelT]

    def all(self) -> ModelQuery[ModelT]:
        return ModelQuery(self.model)

    def by_id(self, obj_id: UUID | str) -> ModelQuery[ModelT]:
        return ModelQuery(self.model).filter_by(id=obj_id)

    def filter(self, *expressions: ColumnElement[bool] | bool) -> ModelQuery[ModelT]:
        return ModelQuery(self.model).filter(*expressions)

    def filter_by(self, **values: object) -> ModelQuery[ModelT]:
        return ModelQuery(self.model).filter_by(**values)
