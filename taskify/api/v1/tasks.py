"""
Task routes.
Full CRUD + filtering + pagination + archive toggle + billable listing.
"""
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from taskify.core.dependencies import CurrentUser, DBSession, Pagination
from taskify.schemas.pagination import ApiResponse, PaginatedResponse
from taskify.schemas.task import (
    TaskArchive,
    TaskCreate,
    TaskFilter,
    TaskPriority,
    TaskRead,
    TaskStatus,
    TaskUpdate,
    TaskUpdateRead,
)
from taskify.services.invoice_service import InvoiceDeleted, InvoiceUpdated
from taskify.services.task_service import task_service

router = APIRouter(prefix="/tasks", tags=["Tasks"])


def _task_filter_params(
    archived: bool = Query(default=False),
    status: TaskStatus | None = Query(default=None),
    priority: TaskPriority | None = Query(default=None),
    client_id: int | None = Query(default=None),
    invoice_id: int | None = Query(default=None),
    search: str | None = Query(default=None, max_length=200),
) -> TaskFilter:
    return TaskFilter(
        archived=archived,
        status=status,
        priority=priority,
        client_id=client_id,
        invoice_id=invoice_id,
        search=search,
    )


@router.get(
    "",
    response_model=PaginatedResponse[TaskRead],
    summary="List tasks with filters and pagination",
)
async def list_tasks(
    current_user: CurrentUser,
    db: DBSession,
    params: Pagination,
    filters: Annotated[TaskFilter, Depends(_task_filter_params)],
) -> PaginatedResponse[TaskRead]:
    tasks, total = await task_service.list_tasks(
        db, filters=filters, params=params, current_user=current_user
    )
    return PaginatedResponse.build([TaskRead.model_validate(t) for t in tasks], total, params)


@router.post(
    "",
    response_model=ApiResponse[TaskRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create a new task",
)
async def create_task(
    task_in: TaskCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[TaskRead]:
    task = await task_service.create_task(db, task_in=task_in, current_user=current_user)
    return ApiResponse(message="Task created", data=TaskRead.model_validate(task))


@router.get(
    "/billable",
    response_model=ApiResponse[list[TaskRead]],
    summary="List completed tasks not yet on an invoice",
)
async def list_billable(
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[list[TaskRead]]:
    tasks = await task_service.list_billable(db, current_user=current_user)
    return ApiResponse(data=[TaskRead.model_validate(t) for t in tasks])


@router.get(
    "/{task_id}",
    response_model=ApiResponse[TaskRead],
    summary="Get a task by ID",
)
async def get_task(
    task_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[TaskRead]:
    task = await task_service.get_task(db, task_id=task_id, current_user=current_user)
    return ApiResponse(data=TaskRead.model_validate(task))


@router.api_route(
    "/{task_id}",
    methods=["PUT", "PATCH"],
    response_model=ApiResponse[TaskUpdateRead],
    summary="Update a task",
)
async def update_task(
    task_id: int,
    task_in: TaskUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[TaskUpdateRead]:
    task, outcome = await task_service.update_task(
        db, task_id=task_id, task_in=task_in, current_user=current_user
    )
    read = TaskUpdateRead.model_validate(task)
    if isinstance(outcome, InvoiceDeleted):
        read.invoice_outcome = "deleted"
        read.affected_invoice_id = outcome.invoice_id
    elif isinstance(outcome, InvoiceUpdated):
        read.invoice_outcome = "updated"
        read.affected_invoice_id = outcome.invoice.id
    return ApiResponse(message="Task updated", data=read)


@router.patch(
    "/{task_id}/archive",
    response_model=ApiResponse[TaskRead],
    summary="Archive or unarchive a task",
)
async def archive_task(
    task_id: int,
    body: TaskArchive,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[TaskRead]:
    task = await task_service.set_archive_state(
        db, task_id=task_id, is_hidden=body.is_hidden, current_user=current_user
    )
    message = "Task archived" if body.is_hidden else "Task unarchived"
    return ApiResponse(message=message, data=TaskRead.model_validate(task))


@router.delete(
    "/{task_id}",
    response_model=ApiResponse[None],
    summary="Delete a task",
)
async def delete_task(
    task_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[None]:
    await task_service.delete_task(db, task_id=task_id, current_user=current_user)
    return ApiResponse(message="Task deleted")
