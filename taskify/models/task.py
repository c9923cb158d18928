"""
Task ORM model.
Billable unit of work. ``invoice_id`` is the only link between tasks and
invoices: an invoice has many tasks, a task sits on at most one invoice.
Archiving hides a task (``is_hidden``) without touching its status.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskify.db.base import Base

TASK_STATUSES = ("pending", "in_progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        Enum(*TASK_PRIORITIES, name="task_priority_enum"),
        nullable=False,
        default="medium",
        server_default="medium",
    )
    starting_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(*TASK_STATUSES, name="task_status_enum"),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    client_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    invoice_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_hidden: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived_by: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ─────────────────────────────────────────────────────────
    owner: Mapped["User"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "User",
        foreign_keys=[user_id],
        back_populates="tasks",
    )
    client: Mapped["Client"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "Client",
        back_populates="tasks",
    )
    invoice: Mapped["Invoice | None"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "Invoice",
        back_populates="tasks",
    )

    __table_args__ = (
        CheckConstraint("due_date >= starting_date", name="due_after_start"),
        CheckConstraint("amount IS NULL OR amount >= 0", name="amount_non_negative"),
        Index("ix_tasks_user_id", "user_id"),
        Index("ix_tasks_client_id", "client_id"),
        Index("ix_tasks_invoice_id", "invoice_id"),
        Index("ix_tasks_status", "status"),
        Index("ix_tasks_is_hidden", "is_hidden"),
        Index("ix_tasks_user_status_invoice", "user_id", "status", "invoice_id"),
    )

    # Joined fields for task reads; the relationships must be eagerly loaded.
    @property
    def user_name(self) -> str | None:
        return self.owner.name if self.owner is not None else None

    @property
    def client_name(self) -> str | None:
        return self.client.name if self.client is not None else None

    @property
    def client_company(self) -> str | None:
        return self.client.company if self.client is not None else None

    @property
    def invoice_status(self) -> str | None:
        return self.invoice.status if self.invoice is not None else None

    def __repr__(self) -> str:
        return f"<Task id={self.id} title={self.title!r} status={self.status}>"
