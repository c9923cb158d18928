"""
Dashboard routes.
"""
from __future__ import annotations

from fastapi import APIRouter

from taskify.core.dependencies import CurrentUser, DBSession
from taskify.schemas.dashboard import DashboardSummary
from taskify.schemas.pagination import ApiResponse
from taskify.services.dashboard_service import dashboard_service

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get(
    "/summary",
    response_model=ApiResponse[DashboardSummary],
    summary="Revenue and task counters for the current user",
)
async def summary(current_user: CurrentUser, db: DBSession) -> ApiResponse[DashboardSummary]:
    return ApiResponse(data=await dashboard_service.summary(db, current_user=current_user))
