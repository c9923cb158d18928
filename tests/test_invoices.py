"""
Invoice tests.
Covers: creation from completed tasks, eligibility errors, totals, update
outcomes, task removal, deletion, and the compare-and-swap task claim.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskify.core.exceptions import ConflictException, InvoiceValidationException
from taskify.crud.task import crud_task
from taskify.models.invoice import Invoice
from taskify.models.task import Task
from taskify.models.user import User
from taskify.schemas.invoice import InvoiceCreate, InvoiceUpdate
from taskify.services.invoice_service import (
    InvoiceDeleted,
    InvoiceUpdated,
    invoice_service,
)

pytestmark = pytest.mark.asyncio(loop_scope="session")


async def _invoice_count(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(Invoice))
    return result.scalar_one()


async def _invoice_of(db: AsyncSession, task_id: int) -> int | None:
    result = await db.execute(select(Task.invoice_id).where(Task.id == task_id))
    return result.scalar_one()


async def _empty_invoice_count(db: AsyncSession) -> int:
    linked = select(Task.id).where(Task.invoice_id == Invoice.id).exists()
    result = await db.execute(select(func.count()).select_from(Invoice).where(~linked))
    return result.scalar_one()


def _payload(task_ids: list[int], **kwargs) -> dict:
    return {"task_ids": task_ids, "date": "2026-02-01", **kwargs}


class TestCreateInvoice:
    async def test_create_invoice_computes_totals(
        self, client: AsyncClient, auth_headers: dict, make_task
    ) -> None:
        task = await make_task(amount=Decimal("100.00"))
        response = await client.post(
            "/api/invoices",
            json=_payload([task.id], tax_rate="23", status="paid"),
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["status"] == "draft"
        assert data["subtotal"] == "100.00"
        assert data["tax_amount"] == "23.00"
        assert data["total"] == "77.00"
        assert data["task_ids"] == [task.id]
        assert data["tasks"][0]["invoice_id"] == data["id"]

    async def test_subtotal_sums_linked_amounts(
        self, db: AsyncSession, user: User, make_task
    ) -> None:
        tasks = [
            await make_task(amount=Decimal("10.10")),
            await make_task(amount=Decimal("0.05")),
            await make_task(amount=None),
        ]
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(
                task_ids=[t.id for t in tasks], date=date(2026, 2, 1), tax_rate=Decimal("8.5")
            ),
            current_user=user,
        )
        totals = await invoice_service.compute_totals(db, invoice_id=invoice.id)
        assert totals.subtotal == Decimal("10.15")
        assert totals.tax_amount == Decimal("10.15") * Decimal("8.5") / 100
        assert totals.total == totals.subtotal - totals.tax_amount

    async def test_duplicate_ids_are_collapsed(
        self, db: AsyncSession, user: User, make_task
    ) -> None:
        task = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id, task.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        assert await crud_task.count_by_invoice(db, invoice_id=invoice.id) == 1

    async def test_task_of_another_user_is_rejected(
        self, client: AsyncClient, db: AsyncSession, auth_headers: dict,
        other_user: User, make_task,
    ) -> None:
        foreign = await make_task(user_id=other_user.id)
        response = await client.post(
            "/api/invoices", json=_payload([foreign.id]), headers=auth_headers
        )
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "INVOICE_VALIDATION_ERROR"
        assert body["errors"] == [
            {"task_id": foreign.id, "code": "TASK_NOT_OWNED", "message": "Task belongs to another user"}
        ]
        assert await _invoice_count(db) == 0
        assert await _invoice_of(db, foreign.id) is None

    async def test_every_violation_is_reported(
        self, db: AsyncSession, user: User, make_task
    ) -> None:
        ok = await make_task()
        pending = await make_task(status="pending")
        with pytest.raises(InvoiceValidationException) as exc_info:
            await invoice_service.create_invoice(
                db,
                invoice_in=InvoiceCreate(task_ids=[ok.id, pending.id, 999_999], date=date(2026, 2, 1)),
                current_user=user,
            )
        assert exc_info.value.codes == {"TASK_NOT_COMPLETED", "TASK_NOT_FOUND"}
        assert await _invoice_count(db) == 0
        assert await _invoice_of(db, ok.id) is None

    async def test_already_invoiced_task_is_rejected(
        self, db: AsyncSession, user: User, make_task
    ) -> None:
        task = await make_task()
        await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        with pytest.raises(InvoiceValidationException) as exc_info:
            await invoice_service.create_invoice(
                db,
                invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 2)),
                current_user=user,
            )
        assert exc_info.value.codes == {"TASK_ALREADY_INVOICED"}
        assert await _invoice_count(db) == 1

    async def test_empty_task_list_is_rejected(
        self, client: AsyncClient, auth_headers: dict
    ) -> None:
        response = await client.post("/api/invoices", json=_payload([]), headers=auth_headers)
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "INVOICE_VALIDATION_ERROR"
        assert [e["code"] for e in body["errors"]] == ["EMPTY_TASK_SET"]

    async def test_tax_rate_out_of_range(
        self, client: AsyncClient, auth_headers: dict, make_task
    ) -> None:
        task = await make_task()
        response = await client.post(
            "/api/invoices", json=_payload([task.id], tax_rate="100.5"), headers=auth_headers
        )
        assert response.status_code == 422

    async def test_requires_authentication(self, client: AsyncClient) -> None:
        response = await client.post("/api/invoices", json=_payload([1]))
        assert response.status_code == 401


class TestConcurrentClaim:
    async def test_lost_claim_leaves_no_invoice(
        self, db: AsyncSession, user: User, make_task, monkeypatch
    ) -> None:
        first = await make_task()
        second = await make_task()
        rival = Invoice(date=date(2026, 1, 31))
        db.add(rival)
        await db.flush()

        original_lock = crud_task.lock_for_invoicing

        async def lock_then_lose_race(session, *, task_ids):
            locked = await original_lock(session, task_ids=task_ids)
            # Another transaction claims one task after the eligibility read.
            await session.execute(
                update(Task)
                .where(Task.id == second.id)
                .values(invoice_id=rival.id)
                .execution_options(synchronize_session=False)
            )
            return locked

        monkeypatch.setattr(crud_task, "lock_for_invoicing", lock_then_lose_race)

        with pytest.raises(ConflictException) as exc_info:
            await invoice_service.create_invoice(
                db,
                invoice_in=InvoiceCreate(task_ids=[first.id, second.id], date=date(2026, 2, 1)),
                current_user=user,
            )

        assert exc_info.value.status_code == 409
        assert await _invoice_count(db) == 1
        assert await _invoice_of(db, first.id) is None
        assert await _invoice_of(db, second.id) == rival.id

    async def test_lost_claim_on_update_leaves_invoice_unchanged(
        self, db: AsyncSession, user: User, make_task, monkeypatch
    ) -> None:
        existing = await make_task()
        first = await make_task()
        second = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[existing.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        rival = Invoice(date=date(2026, 1, 31))
        db.add(rival)
        await db.flush()

        original_lock = crud_task.lock_for_invoicing

        async def lock_then_lose_race(session, *, task_ids):
            locked = await original_lock(session, task_ids=task_ids)
            await session.execute(
                update(Task)
                .where(Task.id == second.id)
                .values(invoice_id=rival.id)
                .execution_options(synchronize_session=False)
            )
            return locked

        monkeypatch.setattr(crud_task, "lock_for_invoicing", lock_then_lose_race)

        with pytest.raises(ConflictException) as exc_info:
            await invoice_service.update_invoice(
                db,
                invoice_id=invoice.id,
                invoice_in=InvoiceUpdate(status="sent", task_ids=[first.id, second.id]),
                current_user=user,
            )

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "TASK_ALREADY_CLAIMED"
        assert await _invoice_of(db, existing.id) == invoice.id
        assert await _invoice_of(db, first.id) is None
        assert await _invoice_of(db, second.id) == rival.id
        assert await crud_task.count_by_invoice(db, invoice_id=invoice.id) == 1
        refreshed = await invoice_service.get_invoice(db, invoice_id=invoice.id)
        assert refreshed.status == "draft"


class TestReadInvoices:
    async def test_get_invoice(
        self, client: AsyncClient, db: AsyncSession, user: User, auth_headers: dict, make_task
    ) -> None:
        task = await make_task(amount=Decimal("40.00"))
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        response = await client.get(f"/api/invoices/{invoice.id}", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == "40.00"
        assert [t["id"] for t in data["tasks"]] == [task.id]
        assert data["tasks"][0]["invoice_status"] == "draft"
        assert data["tasks"][0]["client_name"] == "Acme"

    async def test_get_missing_invoice(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.get("/api/invoices/424242", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_list_newest_first_with_status_filter(
        self, client: AsyncClient, db: AsyncSession, user: User, auth_headers: dict, make_task
    ) -> None:
        for day in (1, 3, 2):
            task = await make_task()
            await invoice_service.create_invoice(
                db,
                invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 3, day)),
                current_user=user,
            )

        response = await client.get("/api/invoices", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert [i["date"] for i in body["data"]] == ["2026-03-03", "2026-03-02", "2026-03-01"]
        assert body["pagination"] == {"total": 3, "per_page": 15, "current_page": 1, "last_page": 1}
        assert body["data"][0]["subtotal"] == "100.00"

        response = await client.get("/api/invoices?status=paid", headers=auth_headers)
        assert response.json()["data"] == []


class TestUpdateInvoice:
    async def test_update_fields_and_add_task(
        self, client: AsyncClient, db: AsyncSession, user: User, auth_headers: dict, make_task
    ) -> None:
        first = await make_task(amount=Decimal("100.00"))
        second = await make_task(amount=Decimal("50.00"))
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[first.id], date=date(2026, 2, 1)),
            current_user=user,
        )

        response = await client.patch(
            f"/api/invoices/{invoice.id}",
            json={"status": "sent", "tax_rate": "10", "task_ids": [first.id, second.id]},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["outcome"] == "updated"
        assert data["invoice"]["status"] == "sent"
        assert data["invoice"]["subtotal"] == "150.00"
        assert data["invoice"]["tax_amount"] == "15.00"
        assert data["invoice"]["total"] == "135.00"
        assert sorted(data["invoice"]["task_ids"]) == sorted([first.id, second.id])

    async def test_update_with_ineligible_task_changes_nothing(
        self, db: AsyncSession, user: User, make_task
    ) -> None:
        task = await make_task()
        unfinished = await make_task(status="in_progress")
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        with pytest.raises(InvoiceValidationException) as exc_info:
            await invoice_service.update_invoice(
                db,
                invoice_id=invoice.id,
                invoice_in=InvoiceUpdate(status="paid", task_ids=[unfinished.id]),
                current_user=user,
            )
        assert exc_info.value.codes == {"TASK_NOT_COMPLETED"}
        refreshed = await invoice_service.get_invoice(db, invoice_id=invoice.id)
        assert refreshed.status == "draft"
        assert await _invoice_of(db, unfinished.id) is None

    async def test_update_rejects_due_date_before_date(
        self, client: AsyncClient, db: AsyncSession, user: User, auth_headers: dict, make_task
    ) -> None:
        task = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 10)),
            current_user=user,
        )
        response = await client.put(
            f"/api/invoices/{invoice.id}",
            json={"due_date": "2026-02-01"},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_DATE_RANGE"

    async def test_invoice_emptied_elsewhere_is_deleted_on_update(
        self, db: AsyncSession, user: User, make_task
    ) -> None:
        task = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        await crud_task.release_from_invoice(db, invoice_id=invoice.id)

        outcome = await invoice_service.update_invoice(
            db, invoice_id=invoice.id, invoice_in=InvoiceUpdate(), current_user=user
        )
        assert outcome == InvoiceDeleted(invoice_id=invoice.id)
        assert await _invoice_count(db) == 0


class TestRemoveTask:
    async def test_removing_only_task_deletes_invoice(
        self, client: AsyncClient, db: AsyncSession, user: User, auth_headers: dict, make_task
    ) -> None:
        task = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 1)),
            current_user=user,
        )

        response = await client.delete(
            f"/api/invoices/{invoice.id}/tasks/{task.id}", headers=auth_headers
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data == {"outcome": "deleted", "invoice_id": invoice.id, "invoice": None}
        assert await _invoice_count(db) == 0
        assert await _invoice_of(db, task.id) is None

    async def test_removing_one_of_two_keeps_invoice(
        self, db: AsyncSession, user: User, make_task
    ) -> None:
        first = await make_task(amount=Decimal("30.00"))
        second = await make_task(amount=Decimal("20.00"))
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[first.id, second.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        outcome = await invoice_service.remove_task_from_invoice(
            db, invoice_id=invoice.id, task_id=first.id, current_user=user
        )
        assert isinstance(outcome, InvoiceUpdated)
        totals = await invoice_service.compute_totals(db, invoice_id=invoice.id)
        assert totals.subtotal == Decimal("20.00")
        assert await _empty_invoice_count(db) == 0

    async def test_task_not_in_invoice(
        self, client: AsyncClient, db: AsyncSession, user: User, auth_headers: dict, make_task
    ) -> None:
        on_invoice = await make_task()
        loose = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[on_invoice.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        response = await client.delete(
            f"/api/invoices/{invoice.id}/tasks/{loose.id}", headers=auth_headers
        )
        assert response.status_code == 422
        assert response.json()["error"] == "TASK_NOT_IN_INVOICE"

    async def test_only_owner_can_remove_task(
        self, client: AsyncClient, db: AsyncSession, user: User, other_headers: dict, make_task
    ) -> None:
        task = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        response = await client.delete(
            f"/api/invoices/{invoice.id}/tasks/{task.id}", headers=other_headers
        )
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"
        assert await _invoice_count(db) == 1
        assert await _invoice_of(db, task.id) == invoice.id


class TestDeleteInvoice:
    async def test_delete_releases_tasks(
        self, client: AsyncClient, db: AsyncSession, user: User, auth_headers: dict, make_task
    ) -> None:
        first = await make_task()
        second = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[first.id, second.id], date=date(2026, 2, 1)),
            current_user=user,
        )

        response = await client.delete(f"/api/invoices/{invoice.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Invoice deleted", "data": None}
        assert await _invoice_count(db) == 0
        assert await _invoice_of(db, first.id) is None
        assert await _invoice_of(db, second.id) is None

        billable = await crud_task.list_billable(db, user_id=user.id)
        assert {t.id for t in billable} == {first.id, second.id}

    async def test_delete_missing_invoice(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.delete("/api/invoices/424242", headers=auth_headers)
        assert response.status_code == 404
