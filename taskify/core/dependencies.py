"""
FastAPI dependency injection functions.
Provides get_db, get_current_user and pagination parameters.
"""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from taskify.core.config import settings
from taskify.core.exceptions import InvalidTokenException, UnauthorizedException
from taskify.core.security import decode_access_token
from taskify.crud.user import crud_user
from taskify.db.session import get_db
from taskify.models.user import User
from taskify.schemas.pagination import PageParams

# Re-export get_db so routes can import from one place
__all__ = ["get_db", "get_current_user", "DBSession", "CurrentUser", "Pagination"]

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ] = None,
) -> User:
    """
    Extract and validate the JWT access token from the Authorization header.
    Returns the authenticated User model.
    """
    if credentials is None:
        raise UnauthorizedException("Missing authentication token")

    token = credentials.credentials
    try:
        payload = decode_access_token(token)
    except JWTError:
        raise InvalidTokenException("Invalid or expired access token")

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise InvalidTokenException("Malformed token: missing subject")

    try:
        user_id = int(user_id_str)
    except ValueError:
        raise InvalidTokenException("Malformed token: invalid subject format")

    user = await crud_user.get(db, user_id)
    if user is None:
        raise UnauthorizedException("User not found")
    if not user.is_active:
        raise UnauthorizedException("User account is deactivated")

    return user


def get_page_params(
    page: int = Query(default=1, ge=1),
    size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, size=size)


# Convenience type aliases for route signatures
DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
Pagination = Annotated[PageParams, Depends(get_page_params)]
