"""
User profile routes.
Accounts are managed by the identity provider; only GET /users/me is served.
"""
from __future__ import annotations

from fastapi import APIRouter

from taskify.core.dependencies import CurrentUser
from taskify.schemas.pagination import ApiResponse
from taskify.schemas.user import UserRead

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=ApiResponse[UserRead], summary="Get current user profile")
async def get_me(current_user: CurrentUser) -> ApiResponse[UserRead]:
    return ApiResponse(data=UserRead.model_validate(current_user))
