"""
Invoice routes.
Create from tasks, list, read, update (may delete), remove a task, delete.
"""
from __future__ import annotations

from fastapi import APIRouter, Query, status

from taskify.core.dependencies import CurrentUser, DBSession, Pagination
from taskify.schemas.invoice import (
    InvoiceCreate,
    InvoiceOutcomeRead,
    InvoiceRead,
    InvoiceStatus,
    InvoiceUpdate,
)
from taskify.schemas.pagination import ApiResponse, PaginatedResponse
from taskify.services.invoice_service import invoice_service

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.get(
    "",
    response_model=PaginatedResponse[InvoiceRead],
    summary="List invoices, newest first",
)
async def list_invoices(
    current_user: CurrentUser,
    db: DBSession,
    params: Pagination,
    status_filter: InvoiceStatus | None = Query(default=None, alias="status"),
) -> PaginatedResponse[InvoiceRead]:
    invoices, total = await invoice_service.list_invoices(
        db, params=params, status=status_filter
    )
    return PaginatedResponse.build(invoices, total, params)


@router.post(
    "",
    response_model=ApiResponse[InvoiceRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft invoice from completed tasks",
)
async def create_invoice(
    invoice_in: InvoiceCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[InvoiceRead]:
    invoice = await invoice_service.create_invoice(
        db, invoice_in=invoice_in, current_user=current_user
    )
    return ApiResponse(
        message="Invoice created",
        data=await invoice_service.build_read(db, invoice=invoice),
    )


@router.get(
    "/{invoice_id}",
    response_model=ApiResponse[InvoiceRead],
    summary="Get an invoice with its tasks and totals",
)
async def get_invoice(
    invoice_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[InvoiceRead]:
    invoice = await invoice_service.get_invoice(db, invoice_id=invoice_id)
    return ApiResponse(data=await invoice_service.build_read(db, invoice=invoice))


@router.api_route(
    "/{invoice_id}",
    methods=["PUT", "PATCH"],
    response_model=ApiResponse[InvoiceOutcomeRead],
    summary="Update an invoice and add tasks to it",
)
async def update_invoice(
    invoice_id: int,
    invoice_in: InvoiceUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[InvoiceOutcomeRead]:
    outcome = await invoice_service.update_invoice(
        db, invoice_id=invoice_id, invoice_in=invoice_in, current_user=current_user
    )
    read = await invoice_service.build_outcome(db, outcome=outcome)
    message = "Invoice updated" if read.outcome == "updated" else "Invoice had no tasks left and was deleted"
    return ApiResponse(message=message, data=read)


@router.delete(
    "/{invoice_id}",
    response_model=ApiResponse[None],
    summary="Delete an invoice and release its tasks",
)
async def delete_invoice(
    invoice_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[None]:
    await invoice_service.delete_invoice(db, invoice_id=invoice_id, current_user=current_user)
    return ApiResponse(message="Invoice deleted")


@router.delete(
    "/{invoice_id}/tasks/{task_id}",
    response_model=ApiResponse[InvoiceOutcomeRead],
    summary="Remove a task from an invoice",
)
async def remove_task(
    invoice_id: int,
    task_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[InvoiceOutcomeRead]:
    outcome = await invoice_service.remove_task_from_invoice(
        db, invoice_id=invoice_id, task_id=task_id, current_user=current_user
    )
    read = await invoice_service.build_outcome(db, outcome=outcome)
    message = "Task removed" if read.outcome == "updated" else "Task removed; empty invoice deleted"
    return ApiResponse(message=message, data=read)
