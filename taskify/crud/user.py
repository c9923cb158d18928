"""
User CRUD operations.
Users are created by the identity provider; this module only
provisions the local record for a new identity.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from taskify.crud.base import CRUDBase
from taskify.models.user import User
from taskify.schemas.user import UserRead


class CRUDUser(CRUDBase[User, UserRead, UserRead]):

    async def create_user(
        self,
        db: AsyncSession,
        *,
        name: str,
        email: str,
        is_active: bool = True,
    ) -> User:
        """
        Insert the local row for an identity the provider has registered.
        No endpoint calls this; the provider's provisioning and the tests do.
        """
        user = User(name=name, email=email, is_active=is_active)
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user


crud_user = CRUDUser(User)
