"""
Invoice Pydantic schemas.
Money is carried as Decimal end to end and rounded to cents only when an
invoice is rendered.
"""
from __future__ import annotations

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, field_serializer, model_validator

from taskify.schemas.task import TaskRead

InvoiceStatus = Literal["draft", "sent", "paid", "overdue", "cancelled"]

CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ── Create ────────────────────────────────────────────────────────────────────

class InvoiceCreate(BaseModel):
    # Emptiness is reported by the service as EMPTY_TASK_SET.
    task_ids: list[int]
    date: dt.date
    due_date: dt.date | None = None
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100, decimal_places=2)
    description: str | None = Field(default=None, max_length=5000)
    # Accepted for compatibility; new invoices always start as draft.
    status: InvoiceStatus | None = None

    @model_validator(mode="after")
    def check_due_date(self) -> "InvoiceCreate":
        if self.due_date is not None and self.due_date < self.date:
            raise ValueError("due_date must be on or after date")
        return self


# ── Update ────────────────────────────────────────────────────────────────────

class InvoiceUpdate(BaseModel):
    date: dt.date | None = None
    due_date: dt.date | None = None
    status: InvoiceStatus | None = None
    tax_rate: Decimal | None = Field(default=None, ge=0, le=100, decimal_places=2)
    description: str | None = Field(default=None, max_length=5000)
    # Tasks to add; merged with the tasks already on the invoice.
    task_ids: list[int] = Field(default_factory=list)

    def field_changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True, exclude={"task_ids"})


# ── Totals ────────────────────────────────────────────────────────────────────

class InvoiceTotals(BaseModel):
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    @classmethod
    def compute(cls, subtotal: Decimal, tax_rate: Decimal) -> "InvoiceTotals":
        tax_amount = subtotal * tax_rate / Decimal(100)
        return cls(subtotal=subtotal, tax_amount=tax_amount, total=subtotal - tax_amount)

    @field_serializer("subtotal", "tax_amount", "total")
    def serialize_money(self, value: Decimal) -> str:
        return str(to_cents(value))


# ── Read ──────────────────────────────────────────────────────────────────────

class InvoiceRead(BaseModel):
    id: int
    date: dt.date
    due_date: dt.date | None
    status: str
    tax_rate: Decimal
    description: str | None
    created_at: dt.datetime
    updated_at: dt.datetime
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    task_ids: list[int] = Field(default_factory=list)
    tasks: list[TaskRead] | None = None

    @classmethod
    def from_invoice(
        cls,
        invoice: Any,
        *,
        totals: InvoiceTotals,
        task_ids: list[int],
        tasks: list[TaskRead] | None = None,
    ) -> "InvoiceRead":
        # Column attributes only; the ORM `tasks` relationship is never touched.
        return cls(
            id=invoice.id,
            date=invoice.date,
            due_date=invoice.due_date,
            status=invoice.status,
            tax_rate=invoice.tax_rate,
            description=invoice.description,
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total=totals.total,
            task_ids=task_ids,
            tasks=tasks,
        )

    @field_serializer("subtotal", "tax_amount", "total")
    def serialize_money(self, value: Decimal) -> str:
        return str(to_cents(value))


class InvoiceOutcomeRead(BaseModel):
    """Result of an operation that may delete the invoice it touches."""

    outcome: Literal["updated", "deleted"]
    invoice_id: int
    invoice: InvoiceRead | None = None
