"""
Client business logic service.
TIN and email are unique across clients; deleting a client removes its
tasks and any invoice those tasks were the last members of.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from taskify.core.exceptions import (
    ConflictException,
    NotFoundException,
    UnprocessableEntityException,
)
from taskify.crud.client import crud_client
from taskify.crud.invoice import crud_invoice
from taskify.crud.task import crud_task
from taskify.models.client import Client
from taskify.models.user import User
from taskify.schemas.client import ClientCreate, ClientUpdate
from taskify.schemas.pagination import PageParams
from taskify.services.activity_service import activity_service
from taskify.services.invoice_service import invoice_service

logger = logging.getLogger(__name__)

_UNIQUE_FIELDS = ("tin", "email")
_REQUIRED_FIELDS = ("name", "tin", "address", "email", "is_active")


class ClientService:

    async def list_clients(
        self, db: AsyncSession, *, params: PageParams
    ) -> tuple[list[Client], int]:
        return await crud_client.get_multi(db, skip=params.offset, limit=params.size)

    async def get_client(self, db: AsyncSession, *, client_id: int) -> Client:
        client = await crud_client.get(db, client_id)
        if client is None:
            raise NotFoundException("Client", client_id)
        return client

    async def create_client(
        self, db: AsyncSession, *, client_in: ClientCreate, current_user: User
    ) -> Client:
        await self._assert_unique(db, values=client_in.model_dump(include=set(_UNIQUE_FIELDS)))
        client = await crud_client.create(db, obj_in=client_in)

        await activity_service.log(
            db,
            user_id=current_user.id,
            action="client_created",
            entity_type="client",
            entity_id=client.id,
            meta={"name": client.name, "tin": client.tin},
        )
        return client

    async def update_client(
        self,
        db: AsyncSession,
        *,
        client_id: int,
        client_in: ClientUpdate,
        current_user: User,
    ) -> Client:
        client = await self.get_client(db, client_id=client_id)

        data = client_in.model_dump(exclude_unset=True)
        for field in _REQUIRED_FIELDS:
            if field in data and data[field] is None:
                raise UnprocessableEntityException(
                    f"{field} cannot be null", error_code="INVALID_CLIENT_FIELD"
                )
        await self._assert_unique(
            db,
            values={k: v for k, v in data.items() if k in _UNIQUE_FIELDS},
            exclude_id=client.id,
        )

        client = await crud_client.update(db, db_obj=client, obj_in=data)
        await activity_service.log(
            db,
            user_id=current_user.id,
            action="client_updated",
            entity_type="client",
            entity_id=client.id,
            meta={"fields": sorted(data)},
        )
        return client

    async def delete_client(
        self, db: AsyncSession, *, client_id: int, current_user: User
    ) -> None:
        """Delete a client with all of its tasks, then prune emptied invoices."""
        client = await self.get_client(db, client_id=client_id)

        invoice_ids = await crud_task.invoice_ids_for_client(db, client_id=client.id)
        # Invoice rows are locked before task rows on every write path.
        await crud_invoice.lock_many(db, invoice_ids=invoice_ids)
        await crud_task.delete_by_client(db, client_id=client.id)
        await db.delete(client)
        await db.flush()

        pruned = await invoice_service.prune_empty_invoices(
            db, invoice_ids=invoice_ids, current_user=current_user
        )
        await activity_service.log(
            db,
            user_id=current_user.id,
            action="client_deleted",
            entity_type="client",
            entity_id=client_id,
            meta={"pruned_invoice_ids": pruned},
        )
        logger.info(
            "Deleted client %s; %d emptied invoice(s) removed", client_id, len(pruned)
        )

    async def _assert_unique(
        self,
        db: AsyncSession,
        *,
        values: dict[str, object],
        exclude_id: int | None = None,
    ) -> None:
        for field, value in values.items():
            if await crud_client.exists(db, exclude_id=exclude_id, **{field: value}):
                raise ConflictException(
                    f"A client with this {field} already exists",
                    error_code=f"CLIENT_{field.upper()}_TAKEN",
                )


client_service = ClientService()
