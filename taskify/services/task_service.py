"""
Task business logic service.
Enforces ownership, keeps dates consistent, and routes invoice linkage
changes through the invoice service so its invariants hold.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from taskify.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    UnprocessableEntityException,
)
from taskify.crud.client import crud_client
from taskify.crud.invoice import crud_invoice
from taskify.crud.task import crud_task
from taskify.crud.user import crud_user
from taskify.models.task import Task
from taskify.models.user import User
from taskify.schemas.invoice import InvoiceUpdate
from taskify.schemas.pagination import PageParams
from taskify.schemas.task import TaskCreate, TaskFilter, TaskUpdate
from taskify.services.activity_service import activity_service
from taskify.services.invoice_service import InvoiceOutcome, invoice_service

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = (
    "title",
    "description",
    "priority",
    "starting_date",
    "due_date",
    "status",
    "client_id",
)


class TaskService:

    async def create_task(
        self,
        db: AsyncSession,
        *,
        task_in: TaskCreate,
        current_user: User,
    ) -> Task:
        """
        Create a task owned by ``task_in.user_id`` or, when omitted, the caller.
        The referenced client and user must exist.
        """
        await self._assert_client_exists(db, client_id=task_in.client_id)
        if task_in.user_id is not None and await crud_user.get(db, task_in.user_id) is None:
            raise UnprocessableEntityException(
                f"User {task_in.user_id} does not exist", error_code="USER_NOT_FOUND"
            )

        task = await crud_task.create_task(db, obj_in=task_in, owner_id=current_user.id)

        await activity_service.log(
            db,
            user_id=current_user.id,
            action="task_created",
            entity_type="task",
            entity_id=task.id,
            meta={"title": task.title, "status": task.status, "priority": task.priority},
        )
        return task

    async def get_task(
        self,
        db: AsyncSession,
        *,
        task_id: int,
        current_user: User,
    ) -> Task:
        """Fetch a task, enforcing ownership."""
        task = await crud_task.get(db, task_id)
        if task is None:
            raise NotFoundException("Task", task_id)
        self._assert_owner(task=task, user=current_user)
        return task

    async def list_tasks(
        self,
        db: AsyncSession,
        *,
        filters: TaskFilter,
        params: PageParams,
        current_user: User,
    ) -> tuple[list[Task], int]:
        return await crud_task.list_with_filters(
            db,
            filters=filters,
            user_id=current_user.id,
            skip=params.offset,
            limit=params.size,
        )

    async def list_billable(self, db: AsyncSession, *, current_user: User) -> list[Task]:
        """Tasks the caller could put on a new invoice right now."""
        return await crud_task.list_billable(db, user_id=current_user.id)

    async def update_task(
        self,
        db: AsyncSession,
        *,
        task_id: int,
        task_in: TaskUpdate,
        current_user: User,
    ) -> tuple[Task, InvoiceOutcome | None]:
        """
        Partially update a task.

        ``invoice_id`` and ``is_hidden`` are not plain columns here:
        clearing ``invoice_id`` removes the task from its invoice (deleting
        the invoice if it empties), setting it attaches the task to that
        invoice under the usual eligibility rules, and ``is_hidden``
        archives or unarchives. Returns the task and, when the linkage
        changed, the invoice outcome.
        """
        task = await self.get_task(db, task_id=task_id, current_user=current_user)

        data = task_in.model_dump(exclude_unset=True)
        for field in _REQUIRED_FIELDS:
            if field in data and data[field] is None:
                raise UnprocessableEntityException(
                    f"{field} cannot be null", error_code="INVALID_TASK_FIELD"
                )

        starting_date = data.get("starting_date", task.starting_date)
        due_date = data.get("due_date", task.due_date)
        if due_date < starting_date:
            raise UnprocessableEntityException(
                "due_date must be on or after starting_date",
                error_code="INVALID_DATE_RANGE",
            )
        if "client_id" in data and data["client_id"] != task.client_id:
            await self._assert_client_exists(db, client_id=data["client_id"])

        link_invoice = "invoice_id" in data
        target_invoice_id = data.pop("invoice_id", None)
        is_hidden = data.pop("is_hidden", None)
        relink = link_invoice and target_invoice_id != task.invoice_id

        # Invoice-side writes lock the invoice row before any task row; take
        # the same order here before the task's columns are written.
        if relink:
            await self._lock_invoice(
                db,
                invoice_id=target_invoice_id if target_invoice_id is not None else task.invoice_id,
            )

        if data:
            task = await crud_task.update(db, db_obj=task, obj_in=data)

        outcome: InvoiceOutcome | None = None
        if relink:
            outcome = await self._relink(
                db, task=task, invoice_id=target_invoice_id, current_user=current_user
            )

        if is_hidden is not None:
            task = await self.set_archive_state(
                db, task_id=task.id, is_hidden=is_hidden, current_user=current_user
            )

        await activity_service.log(
            db,
            user_id=current_user.id,
            action="task_updated",
            entity_type="task",
            entity_id=task_id,
            meta=task_in.model_dump(mode="json", exclude_unset=True),
        )

        refreshed = await crud_task.get(db, task_id)
        return refreshed, outcome

    async def delete_task(
        self,
        db: AsyncSession,
        *,
        task_id: int,
        current_user: User,
    ) -> None:
        """Hard-delete a task; an invoice it leaves empty is deleted too."""
        task = await self.get_task(db, task_id=task_id, current_user=current_user)
        invoice_id = task.invoice_id
        if invoice_id is not None:
            await self._lock_invoice(db, invoice_id=invoice_id)

        await db.delete(task)
        await db.flush()

        await activity_service.log(
            db,
            user_id=current_user.id,
            action="task_deleted",
            entity_type="task",
            entity_id=task_id,
            meta={"invoice_id": invoice_id},
        )
        if invoice_id is not None:
            await invoice_service.prune_empty_invoices(
                db, invoice_ids=[invoice_id], current_user=current_user
            )

    async def archive_task(
        self, db: AsyncSession, *, task_id: int, current_user: User
    ) -> Task:
        """Hide a task, recording who archived it and when. Re-archiving is a no-op."""
        task = await self.get_task(db, task_id=task_id, current_user=current_user)
        if task.is_hidden:
            return task

        task = await crud_task.set_archived(db, task=task, archived_by=current_user.id)
        await activity_service.log(
            db,
            user_id=current_user.id,
            action="task_archived",
            entity_type="task",
            entity_id=task.id,
        )
        logger.info("Task %s archived by user %s", task.id, current_user.id)
        return task

    async def unarchive_task(
        self, db: AsyncSession, *, task_id: int, current_user: User
    ) -> Task:
        task = await self.get_task(db, task_id=task_id, current_user=current_user)
        if not task.is_hidden and task.archived_at is None:
            return task

        task = await crud_task.set_unarchived(db, task=task)
        await activity_service.log(
            db,
            user_id=current_user.id,
            action="task_unarchived",
            entity_type="task",
            entity_id=task.id,
        )
        logger.info("Task %s unarchived by user %s", task.id, current_user.id)
        return task

    async def set_archive_state(
        self,
        db: AsyncSession,
        *,
        task_id: int,
        is_hidden: bool,
        current_user: User,
    ) -> Task:
        if is_hidden:
            return await self.archive_task(db, task_id=task_id, current_user=current_user)
        return await self.unarchive_task(db, task_id=task_id, current_user=current_user)

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _relink(
        self,
        db: AsyncSession,
        *,
        task: Task,
        invoice_id: int | None,
        current_user: User,
    ) -> InvoiceOutcome:
        if invoice_id is None:
            return await invoice_service.remove_task_from_invoice(
                db,
                invoice_id=task.invoice_id,
                task_id=task.id,
                current_user=current_user,
            )
        # Moving between invoices is refused by the eligibility check
        # (TASK_ALREADY_INVOICED); the task has to be removed first.
        return await invoice_service.update_invoice(
            db,
            invoice_id=invoice_id,
            invoice_in=InvoiceUpdate(task_ids=[task.id]),
            current_user=current_user,
        )

    async def _lock_invoice(self, db: AsyncSession, *, invoice_id: int) -> None:
        if await crud_invoice.get_for_update(db, invoice_id) is None:
            raise NotFoundException("Invoice", invoice_id)

    async def _assert_client_exists(self, db: AsyncSession, *, client_id: int) -> None:
        if await crud_client.get(db, client_id) is None:
            raise UnprocessableEntityException(
                f"Client {client_id} does not exist", error_code="CLIENT_NOT_FOUND"
            )

    def _assert_owner(self, *, task: Task, user: User) -> None:
        if task.user_id != user.id:
            raise ForbiddenException("Only the task owner can access this task")


task_service = TaskService()
