"""
Task Pydantic schemas.
Includes create/update/read variants, the archive toggle and a filter schema
for list endpoints.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, model_validator

TaskStatus = Literal["pending", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high"]


# ── Create ────────────────────────────────────────────────────────────────────

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)
    priority: TaskPriority = "medium"
    starting_date: date
    due_date: date
    status: TaskStatus = "pending"
    amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    client_id: int
    # Defaults to the caller when omitted.
    user_id: int | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "TaskCreate":
        if self.due_date < self.starting_date:
            raise ValueError("due_date must be on or after starting_date")
        return self


# ── Update ────────────────────────────────────────────────────────────────────

class TaskUpdate(BaseModel):
    """
    Partial update. Only fields present in the request body are applied.
    Sending ``invoice_id: null`` detaches the task from its invoice; sending an
    id attaches it, subject to the same eligibility rules as invoice creation.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1, max_length=5000)
    priority: TaskPriority | None = None
    starting_date: date | None = None
    due_date: date | None = None
    status: TaskStatus | None = None
    amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    client_id: int | None = None
    invoice_id: int | None = None
    is_hidden: bool | None = None


# ── Archive ───────────────────────────────────────────────────────────────────

class TaskArchive(BaseModel):
    is_hidden: bool


# ── Read ──────────────────────────────────────────────────────────────────────

class TaskRead(BaseModel):
    id: int
    title: str
    description: str
    priority: str
    starting_date: date
    due_date: date
    status: str
    amount: Decimal | None
    user_id: int
    client_id: int
    invoice_id: int | None
    is_hidden: bool
    archived_at: datetime | None
    archived_by: int | None
    created_at: datetime
    updated_at: datetime
    # Joined from the owner, client and invoice rows
    user_name: str | None = None
    client_name: str | None = None
    client_company: str | None = None
    invoice_status: str | None = None

    model_config = {"from_attributes": True}


class TaskUpdateRead(TaskRead):
    """Updated task plus what happened to the invoice whose linkage changed."""

    invoice_outcome: Literal["updated", "deleted"] | None = None
    affected_invoice_id: int | None = None


# ── Filter ────────────────────────────────────────────────────────────────────

class TaskFilter(BaseModel):
    """Query parameters for filtering task list endpoints."""

    archived: bool = False
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    client_id: int | None = None
    invoice_id: int | None = None
    search: str | None = Field(default=None, max_length=200)
