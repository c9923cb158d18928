"""
Activity log routes.
"""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter

from taskify.core.dependencies import CurrentUser, DBSession, Pagination
from taskify.schemas.activity_log import ActivityLogRead
from taskify.schemas.pagination import PaginatedResponse
from taskify.services.activity_service import activity_service

router = APIRouter(prefix="/activity", tags=["Activity Logs"])

EntityType = Literal["task", "invoice", "client"]


@router.get(
    "",
    response_model=PaginatedResponse[ActivityLogRead],
    summary="Get my activity log",
)
async def my_activity(
    current_user: CurrentUser,
    db: DBSession,
    params: Pagination,
) -> PaginatedResponse[ActivityLogRead]:
    logs, total = await activity_service.list_entries(
        db, user_id=current_user.id, skip=params.offset, limit=params.size
    )
    return PaginatedResponse.build(
        [ActivityLogRead.model_validate(log) for log in logs], total, params
    )


@router.get(
    "/{entity_type}/{entity_id}",
    response_model=PaginatedResponse[ActivityLogRead],
    summary="Get the history of one task, invoice or client",
)
async def entity_activity(
    entity_type: EntityType,
    entity_id: int,
    current_user: CurrentUser,
    db: DBSession,
    params: Pagination,
) -> PaginatedResponse[ActivityLogRead]:
    logs, total = await activity_service.list_entries(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        skip=params.offset,
        limit=params.size,
    )
    return PaginatedResponse.build(
        [ActivityLogRead.model_validate(log) for log in logs], total, params
    )
