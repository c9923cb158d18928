"""
Client CRUD operations.
Plain CRUDBase behaviour; uniqueness checks go through ``exists``.
"""
from __future__ import annotations

from taskify.crud.base import CRUDBase
from taskify.models.client import Client
from taskify.schemas.client import ClientCreate, ClientUpdate


class CRUDClient(CRUDBase[Client, ClientCreate, ClientUpdate]):
    pass


crud_client = CRUDClient(Client)
