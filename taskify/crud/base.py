"""
Generic async CRUD base class.
Services never commit; every write here only flushes so the request
transaction decides the outcome.
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskify.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """Id-keyed CRUD for one ORM model, parameterised by its create/update schemas."""

    def __init__(self, model: type[ModelType]) -> None:
        self.model = model

    async def get(self, db: AsyncSession, id: int) -> ModelType | None:
        """Fetch by primary key, overwriting any stale copy in the identity map."""
        result = await db.execute(
            select(self.model)
            .where(self.model.id == id)  # type: ignore[attr-defined]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[ModelType], int]:
        """Fetch a page of records, newest id first, with the total count."""
        total = await self.get_count(db)
        result = await db.execute(
            select(self.model)
            .order_by(self.model.id.desc())  # type: ignore[attr-defined]
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_count(self, db: AsyncSession) -> int:
        """Return total count of records in the table."""
        result = await db.execute(select(func.count()).select_from(self.model))
        return result.scalar_one()

    async def create(self, db: AsyncSession, *, obj_in: CreateSchemaType) -> ModelType:
        """Create a new record from a Pydantic schema."""
        return await self.create_from_dict(db, obj_in=obj_in.model_dump())

    async def create_from_dict(
        self, db: AsyncSession, *, obj_in: dict[str, Any]
    ) -> ModelType:
        """Create a new record from a plain dictionary."""
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: UpdateSchemaType | dict[str, Any],
    ) -> ModelType:
        """Apply a partial update; a schema contributes only the fields it was given."""
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            setattr(db_obj, field, value)

        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def exists(
        self, db: AsyncSession, *, exclude_id: int | None = None, **filters: Any
    ) -> bool:
        """Return True if any record (other than ``exclude_id``) matches the filters."""
        query = select(func.count()).select_from(self.model)
        for attr, value in filters.items():
            query = query.where(getattr(self.model, attr) == value)
        if exclude_id is not None:
            query = query.where(self.model.id != exclude_id)  # type: ignore[attr-defined]
        result = await db.execute(query)
        return (result.scalar_one() or 0) > 0
