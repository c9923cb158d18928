"""
Client endpoint tests.
Covers: CRUD, uniqueness conflicts, the isActive alias, and cascading delete.
"""
from __future__ import annotations

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskify.crud.invoice import crud_invoice
from taskify.crud.task import crud_task
from taskify.models.client import Client
from taskify.models.invoice import Invoice
from taskify.models.task import Task
from taskify.models.user import User
from taskify.schemas.invoice import InvoiceCreate
from taskify.services.invoice_service import invoice_service

pytestmark = pytest.mark.asyncio(loop_scope="session")


def _client_payload(**kwargs) -> dict:
    return {
        "name": "Globex",
        "tin": "DE999888777",
        "address": "42 Harbour Road",
        "email": "accounts@globex.io",
        "company": "Globex Corporation",
        "phone": "+48 600 100 200",
        **kwargs,
    }


async def _count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestCreateClient:
    async def test_create_client_success(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.post(
            "/api/clients", json=_client_payload(isActive=False), headers=auth_headers
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        assert data["name"] == "Globex"
        assert data["tin"] == "DE999888777"
        assert data["is_active"] is False

    async def test_duplicate_tin(
        self, client: AsyncClient, auth_headers: dict, acme: Client
    ) -> None:
        response = await client.post(
            "/api/clients", json=_client_payload(tin=acme.tin), headers=auth_headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "CLIENT_TIN_TAKEN"

    async def test_duplicate_email(
        self, client: AsyncClient, auth_headers: dict, acme: Client
    ) -> None:
        response = await client.post(
            "/api/clients", json=_client_payload(email=acme.email), headers=auth_headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "CLIENT_EMAIL_TAKEN"

    async def test_invalid_email(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.post(
            "/api/clients", json=_client_payload(email="not-an-email"), headers=auth_headers
        )
        assert response.status_code == 422

    async def test_name_too_long(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.post(
            "/api/clients", json=_client_payload(name="x" * 101), headers=auth_headers
        )
        assert response.status_code == 422


class TestReadClients:
    async def test_list_newest_first(
        self, client: AsyncClient, auth_headers: dict, acme: Client
    ) -> None:
        await client.post("/api/clients", json=_client_payload(), headers=auth_headers)
        response = await client.get("/api/clients", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert [c["name"] for c in body["data"]] == ["Globex", "Acme"]
        assert body["pagination"]["total"] == 2

    async def test_get_client(
        self, client: AsyncClient, auth_headers: dict, acme: Client
    ) -> None:
        response = await client.get(f"/api/clients/{acme.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["email"] == "billing@acme.io"

    async def test_get_missing_client(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.get("/api/clients/424242", headers=auth_headers)
        assert response.status_code == 404


class TestUpdateClient:
    async def test_partial_update(
        self, client: AsyncClient, auth_headers: dict, acme: Client
    ) -> None:
        response = await client.patch(
            f"/api/clients/{acme.id}",
            json={"phone": "+48 111 222 333", "isActive": False},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["phone"] == "+48 111 222 333"
        assert data["is_active"] is False
        assert data["name"] == "Acme"

    async def test_keeping_own_tin_is_not_a_conflict(
        self, client: AsyncClient, auth_headers: dict, acme: Client
    ) -> None:
        response = await client.put(
            f"/api/clients/{acme.id}", json={"tin": acme.tin}, headers=auth_headers
        )
        assert response.status_code == 200

    async def test_taking_another_clients_email(
        self, client: AsyncClient, auth_headers: dict, acme: Client
    ) -> None:
        created = await client.post("/api/clients", json=_client_payload(), headers=auth_headers)
        other_id = created.json()["data"]["id"]
        response = await client.patch(
            f"/api/clients/{other_id}", json={"email": acme.email}, headers=auth_headers
        )
        assert response.status_code == 409


class TestDeleteClient:
    async def test_delete_cascades_and_prunes_invoices(
        self,
        client: AsyncClient,
        db: AsyncSession,
        user: User,
        auth_headers: dict,
        acme: Client,
        make_task,
    ) -> None:
        created = await client.post("/api/clients", json=_client_payload(), headers=auth_headers)
        globex_id = created.json()["data"]["id"]

        acme_task = await make_task()
        globex_task = await make_task(client_id=globex_id)
        shared = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[acme_task.id, globex_task.id], date=date(2026, 2, 1)),
            current_user=user,
        )
        acme_only = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[(await make_task()).id], date=date(2026, 2, 2)),
            current_user=user,
        )

        response = await client.delete(f"/api/clients/{acme.id}", headers=auth_headers)
        assert response.status_code == 200, response.text

        remaining_tasks = await db.execute(select(Task.id))
        assert [row[0] for row in remaining_tasks.all()] == [globex_task.id]

        remaining_invoices = await db.execute(select(Invoice.id))
        invoice_ids = [row[0] for row in remaining_invoices.all()]
        assert invoice_ids == [shared.id]
        assert acme_only.id not in invoice_ids
        assert await _count(db, Client) == 1

    async def test_invoices_are_locked_before_tasks_are_deleted(
        self,
        client: AsyncClient,
        db: AsyncSession,
        user: User,
        auth_headers: dict,
        acme: Client,
        make_task,
        monkeypatch,
    ) -> None:
        task = await make_task()
        invoice = await invoice_service.create_invoice(
            db,
            invoice_in=InvoiceCreate(task_ids=[task.id], date=date(2026, 2, 1)),
            current_user=user,
        )

        events: list[tuple[str, object]] = []
        lock_many = crud_invoice.lock_many
        delete_by_client = crud_task.delete_by_client

        async def recording_lock(session, *, invoice_ids):
            events.append(("lock invoices", set(invoice_ids)))
            await lock_many(session, invoice_ids=invoice_ids)

        async def recording_delete(session, *, client_id):
            events.append(("delete tasks", client_id))
            await delete_by_client(session, client_id=client_id)

        monkeypatch.setattr(crud_invoice, "lock_many", recording_lock)
        monkeypatch.setattr(crud_task, "delete_by_client", recording_delete)

        response = await client.delete(f"/api/clients/{acme.id}", headers=auth_headers)
        assert response.status_code == 200, response.text
        assert events == [("lock invoices", {invoice.id}), ("delete tasks", acme.id)]
        assert await _count(db, Invoice) == 0
