"""
Client routes.
"""
from __future__ import annotations

from fastapi import APIRouter, status

from taskify.core.dependencies import CurrentUser, DBSession, Pagination
from taskify.schemas.client import ClientCreate, ClientRead, ClientUpdate
from taskify.schemas.pagination import ApiResponse, PaginatedResponse
from taskify.services.client_service import client_service

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("", response_model=PaginatedResponse[ClientRead], summary="List clients")
async def list_clients(
    current_user: CurrentUser,
    db: DBSession,
    params: Pagination,
) -> PaginatedResponse[ClientRead]:
    clients, total = await client_service.list_clients(db, params=params)
    return PaginatedResponse.build(
        [ClientRead.model_validate(c) for c in clients], total, params
    )


@router.post(
    "",
    response_model=ApiResponse[ClientRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create a client",
)
async def create_client(
    client_in: ClientCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[ClientRead]:
    client = await client_service.create_client(
        db, client_in=client_in, current_user=current_user
    )
    return ApiResponse(message="Client created", data=ClientRead.model_validate(client))


@router.get("/{client_id}", response_model=ApiResponse[ClientRead], summary="Get a client")
async def get_client(
    client_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[ClientRead]:
    client = await client_service.get_client(db, client_id=client_id)
    return ApiResponse(data=ClientRead.model_validate(client))


@router.api_route(
    "/{client_id}",
    methods=["PUT", "PATCH"],
    response_model=ApiResponse[ClientRead],
    summary="Update a client",
)
async def update_client(
    client_id: int,
    client_in: ClientUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[ClientRead]:
    client = await client_service.update_client(
        db, client_id=client_id, client_in=client_in, current_user=current_user
    )
    return ApiResponse(message="Client updated", data=ClientRead.model_validate(client))


@router.delete(
    "/{client_id}",
    response_model=ApiResponse[None],
    summary="Delete a client and its tasks",
)
async def delete_client(
    client_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ApiResponse[None]:
    await client_service.delete_client(db, client_id=client_id, current_user=current_user)
    return ApiResponse(message="Client deleted")
