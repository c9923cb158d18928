"""
Invoice aggregation service.
Builds invoices out of a user's completed, unbilled tasks and keeps the
task -> invoice linkage consistent:

- every task being linked is checked under a row lock, then claimed with a
  compare-and-swap update, so two requests can never both claim a task;
- an invoice never outlives its last task: whichever operation empties it
  deletes it and reports ``InvoiceDeleted`` instead of an updated record.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from taskify.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvoiceValidationException,
    NotFoundException,
    UnprocessableEntityException,
)
from taskify.crud.invoice import crud_invoice
from taskify.crud.task import crud_task
from taskify.models.invoice import Invoice
from taskify.models.user import User
from taskify.schemas.invoice import (
    InvoiceCreate,
    InvoiceOutcomeRead,
    InvoiceRead,
    InvoiceTotals,
    InvoiceUpdate,
)
from taskify.schemas.pagination import PageParams
from taskify.schemas.task import TaskRead
from taskify.services.activity_service import activity_service

logger = logging.getLogger(__name__)

# Columns that may not be cleared by an update.
_REQUIRED_FIELDS = ("date", "status", "tax_rate")


@dataclass(frozen=True)
class InvoiceUpdated:
    invoice: Invoice


@dataclass(frozen=True)
class InvoiceDeleted:
    invoice_id: int


InvoiceOutcome = InvoiceUpdated | InvoiceDeleted


def _unique(ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(ids))


def _ineligible(task_id: int | None, code: str, message: str) -> dict[str, Any]:
    return {"task_id": task_id, "code": code, "message": message}


class InvoiceService:

    # ── Queries ───────────────────────────────────────────────────────────────

    async def get_invoice(self, db: AsyncSession, *, invoice_id: int) -> Invoice:
        invoice = await crud_invoice.get(db, invoice_id)
        if invoice is None:
            raise NotFoundException("Invoice", invoice_id)
        return invoice

    async def compute_totals(self, db: AsyncSession, *, invoice_id: int) -> InvoiceTotals:
        """
        Derive subtotal, tax and total from the tasks currently linked.
        Values are exact; rounding happens when they are serialized.
        """
        invoice = await self.get_invoice(db, invoice_id=invoice_id)
        subtotal = await crud_invoice.subtotal(db, invoice_id=invoice.id)
        return InvoiceTotals.compute(subtotal, invoice.tax_rate)

    async def build_read(self, db: AsyncSession, *, invoice: Invoice) -> InvoiceRead:
        """Render an invoice with its tasks and totals."""
        tasks = await crud_task.list_by_invoice(db, invoice_id=invoice.id)
        totals = await self.compute_totals(db, invoice_id=invoice.id)
        return InvoiceRead.from_invoice(
            invoice,
            totals=totals,
            task_ids=[task.id for task in tasks],
            tasks=[TaskRead.model_validate(task) for task in tasks],
        )

    async def build_outcome(
        self, db: AsyncSession, *, outcome: InvoiceOutcome
    ) -> InvoiceOutcomeRead:
        if isinstance(outcome, InvoiceDeleted):
            return InvoiceOutcomeRead(outcome="deleted", invoice_id=outcome.invoice_id)
        return InvoiceOutcomeRead(
            outcome="updated",
            invoice_id=outcome.invoice.id,
            invoice=await self.build_read(db, invoice=outcome.invoice),
        )

    async def list_invoices(
        self,
        db: AsyncSession,
        *,
        params: PageParams,
        status: str | None = None,
    ) -> tuple[list[InvoiceRead], int]:
        invoices, total = await crud_invoice.list_invoices(
            db, status=status, skip=params.offset, limit=params.size
        )
        ids = [invoice.id for invoice in invoices]
        subtotals = await crud_invoice.subtotals(db, invoice_ids=ids)
        task_ids = await crud_invoice.task_ids_by_invoice(db, invoice_ids=ids)

        items = [
            InvoiceRead.from_invoice(
                invoice,
                totals=InvoiceTotals.compute(
                    subtotals.get(invoice.id, Decimal("0")), invoice.tax_rate
                ),
                task_ids=task_ids.get(invoice.id, []),
            )
            for invoice in invoices
        ]
        return items, total

    # ── Commands ──────────────────────────────────────────────────────────────

    async def create_invoice(
        self,
        db: AsyncSession,
        *,
        invoice_in: InvoiceCreate,
        current_user: User,
    ) -> Invoice:
        """
        Create a draft invoice from a non-empty set of eligible tasks.
        Nothing is written unless every task passes the eligibility check.
        """
        task_ids = _unique(invoice_in.task_ids)
        if not task_ids:
            raise InvoiceValidationException(
                [_ineligible(None, "EMPTY_TASK_SET", "An invoice needs at least one task")]
            )

        await self._check_eligibility(db, task_ids=task_ids, owner_id=current_user.id)

        if invoice_in.status not in (None, "draft"):
            logger.info(
                "Ignoring requested status %r: new invoices start as draft",
                invoice_in.status,
            )

        invoice = await crud_invoice.create_from_dict(
            db,
            obj_in={
                "date": invoice_in.date,
                "due_date": invoice_in.due_date,
                "status": "draft",
                "tax_rate": invoice_in.tax_rate,
                "description": invoice_in.description,
            },
        )

        claimed = await crud_task.claim_for_invoice(
            db, task_ids=task_ids, invoice_id=invoice.id
        )
        if claimed != len(task_ids):
            await self._destroy(db, invoice=invoice)
            logger.warning(
                "Invoice creation lost a race: claimed %d of %d tasks %s",
                claimed,
                len(task_ids),
                task_ids,
            )
            raise ConflictException(
                "Some tasks were claimed by another invoice; nothing was created",
                error_code="TASK_ALREADY_CLAIMED",
            )

        await activity_service.log(
            db,
            user_id=current_user.id,
            action="invoice_created",
            entity_type="invoice",
            entity_id=invoice.id,
            meta={"task_ids": task_ids, "tax_rate": str(invoice.tax_rate)},
        )
        logger.info("Created invoice %s with %d task(s)", invoice.id, len(task_ids))
        return invoice

    async def update_invoice(
        self,
        db: AsyncSession,
        *,
        invoice_id: int,
        invoice_in: InvoiceUpdate,
        current_user: User,
    ) -> InvoiceOutcome:
        """
        Edit invoice fields and add tasks to it.
        ``invoice_in.task_ids`` is merged with the current task set; when the
        merged set is empty the invoice is deleted instead.
        """
        invoice = await crud_invoice.get_for_update(db, invoice_id)
        if invoice is None:
            raise NotFoundException("Invoice", invoice_id)

        to_add = await self._check_eligibility(
            db,
            task_ids=_unique(invoice_in.task_ids),
            owner_id=current_user.id,
            invoice_id=invoice.id,
        )

        current_count = await crud_task.count_by_invoice(db, invoice_id=invoice.id)
        if current_count + len(to_add) == 0:
            await self._destroy(db, invoice=invoice)
            await self._log_deleted(db, invoice_id=invoice_id, user=current_user, reason="empty")
            return InvoiceDeleted(invoice_id=invoice_id)

        claimed = await crud_task.claim_for_invoice(db, task_ids=to_add, invoice_id=invoice.id)
        if claimed != len(to_add):
            await crud_task.release_from_invoice(db, invoice_id=invoice.id, task_ids=to_add)
            logger.warning(
                "Invoice %s update lost a race: claimed %d of %d tasks",
                invoice.id,
                claimed,
                len(to_add),
            )
            raise ConflictException(
                "Some tasks were claimed by another invoice; invoice left unchanged",
                error_code="TASK_ALREADY_CLAIMED",
            )

        changes = self._field_changes(invoice, invoice_in)
        if changes:
            invoice = await crud_invoice.update(db, db_obj=invoice, obj_in=changes)

        await activity_service.log(
            db,
            user_id=current_user.id,
            action="invoice_updated",
            entity_type="invoice",
            entity_id=invoice.id,
            meta={
                "fields": sorted(changes),
                "added_task_ids": to_add,
            },
        )
        return InvoiceUpdated(invoice=invoice)

    async def remove_task_from_invoice(
        self,
        db: AsyncSession,
        *,
        invoice_id: int,
        task_id: int,
        current_user: User,
    ) -> InvoiceOutcome:
        """
        Unlink one of the caller's tasks; deletes the invoice if that was its
        last task.
        """
        invoice = await crud_invoice.get_for_update(db, invoice_id)
        if invoice is None:
            raise NotFoundException("Invoice", invoice_id)

        task = await crud_task.get(db, task_id)
        if task is None:
            raise NotFoundException("Task", task_id)
        if task.user_id != current_user.id:
            raise ForbiddenException("Only the task owner can remove it from an invoice")
        if task.invoice_id != invoice.id:
            raise UnprocessableEntityException(
                f"Task {task_id} is not part of invoice {invoice_id}",
                error_code="TASK_NOT_IN_INVOICE",
            )

        await crud_task.release_from_invoice(db, invoice_id=invoice.id, task_ids=[task_id])
        await activity_service.log(
            db,
            user_id=current_user.id,
            action="invoice_task_removed",
            entity_type="invoice",
            entity_id=invoice.id,
            meta={"task_id": task_id},
        )

        if await crud_task.count_by_invoice(db, invoice_id=invoice.id) == 0:
            await self._destroy(db, invoice=invoice)
            await self._log_deleted(db, invoice_id=invoice_id, user=current_user, reason="empty")
            return InvoiceDeleted(invoice_id=invoice_id)
        return InvoiceUpdated(invoice=invoice)

    async def delete_invoice(
        self, db: AsyncSession, *, invoice_id: int, current_user: User
    ) -> None:
        invoice = await crud_invoice.get_for_update(db, invoice_id)
        if invoice is None:
            raise NotFoundException("Invoice", invoice_id)
        await self._destroy(db, invoice=invoice)
        await self._log_deleted(db, invoice_id=invoice_id, user=current_user, reason="requested")

    async def prune_empty_invoices(
        self,
        db: AsyncSession,
        *,
        invoice_ids: Iterable[int],
        current_user: User,
    ) -> list[int]:
        """
        Delete any of ``invoice_ids`` left without tasks, e.g. after task or
        client deletion. Returns the ids that were deleted.
        """
        empty = await crud_invoice.find_empty(db, invoice_ids=_unique(invoice_ids))
        deleted = []
        for invoice in empty:
            deleted.append(invoice.id)
            await self._destroy(db, invoice=invoice)
            await self._log_deleted(db, invoice_id=deleted[-1], user=current_user, reason="empty")
        return deleted

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _check_eligibility(
        self,
        db: AsyncSession,
        *,
        task_ids: list[int],
        owner_id: int,
        invoice_id: int | None = None,
    ) -> list[int]:
        """
        Lock the tasks and verify each can join the invoice.
        Tasks already on ``invoice_id`` pass as-is. Returns the ids still to
        be claimed; raises with one entry per violation otherwise.
        """
        tasks = await crud_task.lock_for_invoicing(db, task_ids=task_ids)
        errors: list[dict[str, Any]] = []
        to_claim: list[int] = []

        for task_id in task_ids:
            task = tasks.get(task_id)
            if task is None:
                errors.append(_ineligible(task_id, "TASK_NOT_FOUND", "Task does not exist"))
                continue
            if invoice_id is not None and task.invoice_id == invoice_id:
                continue
            if task.invoice_id is not None:
                errors.append(
                    _ineligible(
                        task_id,
                        "TASK_ALREADY_INVOICED",
                        f"Task is already on invoice {task.invoice_id}",
                    )
                )
            if task.status != "completed":
                errors.append(
                    _ineligible(
                        task_id,
                        "TASK_NOT_COMPLETED",
                        f"Only completed tasks can be invoiced (status is {task.status})",
                    )
                )
            if task.user_id != owner_id:
                errors.append(
                    _ineligible(task_id, "TASK_NOT_OWNED", "Task belongs to another user")
                )
            to_claim.append(task_id)

        if errors:
            raise InvoiceValidationException(errors)
        return to_claim

    def _field_changes(self, invoice: Invoice, invoice_in: InvoiceUpdate) -> dict[str, Any]:
        changes = invoice_in.field_changes()
        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise UnprocessableEntityException(
                    f"{field} cannot be cleared", error_code="INVALID_INVOICE_FIELD"
                )
        date = changes.get("date", invoice.date)
        due_date = changes.get("due_date", invoice.due_date)
        if due_date is not None and due_date < date:
            raise UnprocessableEntityException(
                "due_date must be on or after date", error_code="INVALID_DATE_RANGE"
            )
        return changes

    async def _destroy(self, db: AsyncSession, *, invoice: Invoice) -> None:
        # Detach first so no task points at a deleted invoice, even where the
        # database does not enforce ON DELETE SET NULL.
        await crud_task.release_from_invoice(db, invoice_id=invoice.id)
        await db.delete(invoice)
        await db.flush()

    async def _log_deleted(
        self, db: AsyncSession, *, invoice_id: int, user: User, reason: str
    ) -> None:
        await activity_service.log(
            db,
            user_id=user.id,
            action="invoice_deleted",
            entity_type="invoice",
            entity_id=invoice_id,
            meta={"reason": reason},
        )
        logger.info("Deleted invoice %s (%s)", invoice_id, reason)


invoice_service = InvoiceService()
