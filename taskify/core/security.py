"""
Security utilities: JWT creation and verification.
Taskify does not store credentials; access tokens are minted by the identity
provider with the shared SECRET_KEY and only verified here via python-jose.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from taskify.core.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    user_id: int | str,
    expire_delta: timedelta = timedelta(minutes=15),
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """
    Create a short-lived JWT access token for ``user_id``.
    The API itself never issues tokens; this mints the same tokens the identity
    provider does and exists for the test suite.
    """
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + expire_delta,
        "jti": secrets.token_hex(16),
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and validate an access token.
    Raises JWTError on failure.
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise JWTError("Invalid token type")
    return payload
