"""
Invoice CRUD operations.
Adds the aggregate queries that derive invoice totals from task amounts.
"""
from __future__ import annotations

from collections.abc import Collection
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskify.crud.base import CRUDBase
from taskify.models.invoice import Invoice
from taskify.models.task import Task
from taskify.schemas.invoice import CENT, InvoiceCreate, InvoiceUpdate


def _as_decimal(value: object) -> Decimal:
    # SQLite may hand SUM() back as float; amounts are whole cents.
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value)).quantize(CENT)


class CRUDInvoice(CRUDBase[Invoice, InvoiceCreate, InvoiceUpdate]):

    async def get_for_update(self, db: AsyncSession, id: int) -> Invoice | None:
        """Fetch and row-lock an invoice so concurrent edits of it serialize."""
        result = await db.execute(
            select(Invoice)
            .where(Invoice.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock_many(self, db: AsyncSession, *, invoice_ids: Collection[int]) -> None:
        """Row-lock several invoices, in id order."""
        if not invoice_ids:
            return
        await db.execute(
            select(Invoice.id)
            .where(Invoice.id.in_(invoice_ids))
            .order_by(Invoice.id)
            .with_for_update()
        )

    async def list_invoices(
        self,
        db: AsyncSession,
        *,
        status: str | None = None,
        skip: int = 0,
        limit: int = 15,
    ) -> tuple[list[Invoice], int]:
        query = select(Invoice)
        count_query = select(func.count()).select_from(Invoice)
        if status is not None:
            query = query.where(Invoice.status == status)
            count_query = count_query.where(Invoice.status == status)

        total_result = await db.execute(count_query)
        total = total_result.scalar_one()

        result = await db.execute(
            query.order_by(Invoice.date.desc(), Invoice.id.desc())
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total

    async def subtotal(self, db: AsyncSession, *, invoice_id: int) -> Decimal:
        """Sum of linked task amounts; tasks without an amount count as zero."""
        result = await db.execute(
            select(func.sum(Task.amount)).where(Task.invoice_id == invoice_id)
        )
        return _as_decimal(result.scalar_one())

    async def subtotals(
        self, db: AsyncSession, *, invoice_ids: Collection[int]
    ) -> dict[int, Decimal]:
        if not invoice_ids:
            return {}
        result = await db.execute(
            select(Task.invoice_id, func.sum(Task.amount))
            .where(Task.invoice_id.in_(invoice_ids))
            .group_by(Task.invoice_id)
        )
        return {row[0]: _as_decimal(row[1]) for row in result.all()}

    async def task_ids_by_invoice(
        self, db: AsyncSession, *, invoice_ids: Collection[int]
    ) -> dict[int, list[int]]:
        if not invoice_ids:
            return {}
        result = await db.execute(
            select(Task.invoice_id, Task.id)
            .where(Task.invoice_id.in_(invoice_ids))
            .order_by(Task.id)
        )
        grouped: dict[int, list[int]] = {}
        for invoice_id, task_id in result.all():
            grouped.setdefault(invoice_id, []).append(task_id)
        return grouped

    async def find_empty(
        self, db: AsyncSession, *, invoice_ids: Collection[int]
    ) -> list[Invoice]:
        """Invoices among ``invoice_ids`` that no task references any more."""
        if not invoice_ids:
            return []
        linked = select(Task.id).where(Task.invoice_id == Invoice.id).exists()
        result = await db.execute(
            select(Invoice).where(Invoice.id.in_(invoice_ids), ~linked)
        )
        return list(result.scalars().all())

    async def revenue_for_user(
        self, db: AsyncSession, *, user_id: int, statuses: Collection[str]
    ) -> Decimal:
        """Sum of the user's task amounts on invoices in the given statuses."""
        result = await db.execute(
            select(func.sum(Task.amount))
            .join(Invoice, Task.invoice_id == Invoice.id)
            .where(Task.user_id == user_id, Invoice.status.in_(statuses))
        )
        return _as_decimal(result.scalar_one())


crud_invoice = CRUDInvoice(Invoice)
