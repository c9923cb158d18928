"""
Task CRUD operations.
Extends CRUDBase with filtering, pagination, archive toggling and the
row-level primitives invoices use to claim and release tasks.
"""
from __future__ import annotations

from collections.abc import Collection
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskify.crud.base import CRUDBase
from taskify.models.task import Task
from taskify.schemas.task import TaskCreate, TaskFilter, TaskUpdate

# Rows behind the joined read fields (owner name, client, invoice status).
_JOINED = (
    selectinload(Task.owner),
    selectinload(Task.client),
    selectinload(Task.invoice),
)


class CRUDTask(CRUDBase[Task, TaskCreate, TaskUpdate]):

    async def get(self, db: AsyncSession, id: int) -> Task | None:
        result = await db.execute(
            select(Task)
            .where(Task.id == id)
            .options(*_JOINED)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_task(
        self,
        db: AsyncSession,
        *,
        obj_in: TaskCreate,
        owner_id: int,
    ) -> Task:
        task = Task(
            title=obj_in.title,
            description=obj_in.description,
            priority=obj_in.priority,
            starting_date=obj_in.starting_date,
            due_date=obj_in.due_date,
            status=obj_in.status,
            amount=obj_in.amount,
            client_id=obj_in.client_id,
            user_id=obj_in.user_id or owner_id,
        )
        db.add(task)
        await db.flush()
        return await self.get(db, task.id)

    async def list_with_filters(
        self,
        db: AsyncSession,
        *,
        filters: TaskFilter,
        user_id: int,
        skip: int = 0,
        limit: int = 15,
    ) -> tuple[list[Task], int]:
        """
        Return (tasks, total) for ``user_id`` applying all filter criteria.
        ``filters.archived`` selects the archived view instead of the visible one.
        """
        conditions = [Task.user_id == user_id, Task.is_hidden == filters.archived]

        if filters.status is not None:
            conditions.append(Task.status == filters.status)
        if filters.priority is not None:
            conditions.append(Task.priority == filters.priority)
        if filters.client_id is not None:
            conditions.append(Task.client_id == filters.client_id)
        if filters.invoice_id is not None:
            conditions.append(Task.invoice_id == filters.invoice_id)

        # Substring search on title and description
        if filters.search:
            search_term = f"%{filters.search}%"
            conditions.append(
                or_(Task.title.ilike(search_term), Task.description.ilike(search_term))
            )

        total_result = await db.execute(
            select(func.count()).select_from(Task).where(*conditions)
        )
        total = total_result.scalar_one()

        result = await db.execute(
            select(Task)
            .where(*conditions)
            .order_by(Task.created_at.desc(), Task.id.desc())
            .offset(skip)
            .limit(limit)
            .options(*_JOINED)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total

    async def list_billable(self, db: AsyncSession, *, user_id: int) -> list[Task]:
        """Completed, uninvoiced tasks owned by ``user_id``."""
        result = await db.execute(
            select(Task)
            .where(
                Task.user_id == user_id,
                Task.status == "completed",
                Task.invoice_id.is_(None),
            )
            .order_by(Task.due_date, Task.id)
            .options(*_JOINED)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_by_invoice(self, db: AsyncSession, *, invoice_id: int) -> list[Task]:
        result = await db.execute(
            select(Task)
            .where(Task.invoice_id == invoice_id)
            .order_by(Task.id)
            .options(*_JOINED)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def lock_for_invoicing(
        self, db: AsyncSession, *, task_ids: Collection[int]
    ) -> dict[int, Task]:
        """
        Load the given tasks with a row lock (SELECT ... FOR UPDATE) so the
        eligibility check and the claim that follows see the same rows.
        """
        if not task_ids:
            return {}
        result = await db.execute(
            select(Task)
            .where(Task.id.in_(task_ids))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {task.id: task for task in result.scalars().all()}

    async def claim_for_invoice(
        self, db: AsyncSession, *, task_ids: Collection[int], invoice_id: int
    ) -> int:
        """
        Compare-and-swap: link only tasks that are still unassigned.
        Returns the number of rows claimed.
        """
        if not task_ids:
            return 0
        result = await db.execute(
            update(Task)
            .where(Task.id.in_(task_ids), Task.invoice_id.is_(None))
            .values(invoice_id=invoice_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def release_from_invoice(
        self,
        db: AsyncSession,
        *,
        invoice_id: int,
        task_ids: Collection[int] | None = None,
    ) -> int:
        """Unlink tasks from ``invoice_id`` (all of them when task_ids is None)."""
        stmt = update(Task).where(Task.invoice_id == invoice_id)
        if task_ids is not None:
            stmt = stmt.where(Task.id.in_(task_ids))
        result = await db.execute(
            stmt.values(invoice_id=None).execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def count_by_invoice(self, db: AsyncSession, *, invoice_id: int) -> int:
        result = await db.execute(
            select(func.count()).select_from(Task).where(Task.invoice_id == invoice_id)
        )
        return result.scalar_one()

    async def set_archived(
        self, db: AsyncSession, *, task: Task, archived_by: int
    ) -> Task:
        task.is_hidden = True
        task.archived_at = datetime.now(timezone.utc)
        task.archived_by = archived_by
        db.add(task)
        await db.flush()
        return await self.get(db, task.id)

    async def set_unarchived(self, db: AsyncSession, *, task: Task) -> Task:
        task.is_hidden = False
        task.archived_at = None
        task.archived_by = None
        db.add(task)
        await db.flush()
        return await self.get(db, task.id)

    async def invoice_ids_for_client(self, db: AsyncSession, *, client_id: int) -> set[int]:
        """Invoices holding at least one task of the client."""
        result = await db.execute(
            select(Task.invoice_id)
            .where(Task.client_id == client_id, Task.invoice_id.is_not(None))
            .distinct()
        )
        return {row[0] for row in result.all()}

    async def delete_by_client(self, db: AsyncSession, *, client_id: int) -> None:
        await db.execute(
            delete(Task)
            .where(Task.client_id == client_id)
            .execution_options(synchronize_session=False)
        )

    async def count_by_status(self, db: AsyncSession, *, user_id: int) -> dict[str, int]:
        """Return a dict mapping status -> count for the user's visible tasks."""
        result = await db.execute(
            select(Task.status, func.count(Task.id))
            .where(Task.user_id == user_id, Task.is_hidden.is_(False))
            .group_by(Task.status)
        )
        return {row[0]: row[1] for row in result.all()}


crud_task = CRUDTask(Task)
