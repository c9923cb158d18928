"""
Client Pydantic schemas.
The frontend sends ``isActive``; both spellings are accepted on input.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, AliasChoices, BaseModel, EmailStr, Field

EMAIL_MAX_LENGTH = 50


def _check_email_length(v: str) -> str:
    if len(v) > EMAIL_MAX_LENGTH:
        raise ValueError(f"email must be at most {EMAIL_MAX_LENGTH} characters")
    return v


ClientEmail = Annotated[EmailStr, AfterValidator(_check_email_length)]


# ── Create ────────────────────────────────────────────────────────────────────

class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    tin: str = Field(min_length=1, max_length=20)
    address: str = Field(min_length=1)
    email: ClientEmail
    company: str | None = Field(default=None, max_length=50)
    phone: str | None = Field(default=None, max_length=20)
    is_active: bool = Field(
        default=True, validation_alias=AliasChoices("is_active", "isActive")
    )


# ── Update ────────────────────────────────────────────────────────────────────

class ClientUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    tin: str | None = Field(default=None, min_length=1, max_length=20)
    address: str | None = Field(default=None, min_length=1)
    email: ClientEmail | None = None
    company: str | None = Field(default=None, max_length=50)
    phone: str | None = Field(default=None, max_length=20)
    is_active: bool | None = Field(
        default=None, validation_alias=AliasChoices("is_active", "isActive")
    )


# ── Read ──────────────────────────────────────────────────────────────────────

class ClientRead(BaseModel):
    id: int
    name: str
    tin: str
    address: str
    email: str
    company: str | None
    phone: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
