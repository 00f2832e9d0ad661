"""
Actor identity for the core.

Login, password hashing and token issuance live in the upstream auth service.
This module only verifies the bearer token that service mints and turns it
into an ``Actor`` that is handed explicitly to every core operation.

Token claims: ``sub`` (user id), ``role`` (admin | manager | member), ``exp``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from percival.core.config import get_settings
from percival_shared.schemas.common import Actor, UserRole

log = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)


def create_jwt(
    user_id: uuid.UUID,
    role: UserRole = UserRole.MEMBER,
    expires_minutes: int = 60,
) -> str:
    """Mint a token the way the auth service does (used by tooling and tests)."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def actor_from_token(token: str) -> Actor:
    """Verify ``token`` and build the Actor. Raises 401 on any defect."""
    try:
        claims = decode_jwt(token)
        return Actor(id=uuid.UUID(claims["sub"]), role=UserRole(claims.get("role", "member")))
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Actor:
    """FastAPI dependency: the authenticated actor for this request."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    actor = actor_from_token(credentials.credentials)
    structlog.contextvars.bind_contextvars(actor_id=str(actor.id))
    return actor

