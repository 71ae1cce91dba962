"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
import structlog
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mentorhub.auth.jwt import verify_token
from mentorhub.database import get_session
from mentorhub.db.models import User
from mentorhub.errors import ForbiddenError, UnauthorizedError

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Resolved identity of an authenticated request."""

    user_id: int
    role: str = "member"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _decode_caller(token: str) -> Caller:
    try:
        payload = verify_token(token, expected_type="access")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise UnauthorizedError(str(e) or "Invalid token") from e
    role = payload.get("role", "member")
    return Caller(user_id=user_id, role="admin" if role == "admin" else "member")


async def _user_exists(db: AsyncSession, user_id: int) -> bool:
    result = await db.execute(select(User.id).where(User.id == user_id))
    return result.scalar_one_or_none() is not None


def _bind_caller(caller: Caller) -> Caller:
    structlog.contextvars.bind_contextvars(user_id=caller.user_id)
    return caller


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Caller:
    """
    Verify the bearer JWT and return the caller.

    Raises 401 when the header is missing, the token is invalid, or the user
    no longer exists.
    """
    if credentials is None:
        raise UnauthorizedError("Authentication required")

    caller = _decode_caller(credentials.credentials)
    if not await _user_exists(db, caller.user_id):
        raise UnauthorizedError("User not found")
    return _bind_caller(caller)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Caller | None:
    """Same as get_current_user but returns None for anonymous, unverifiable or deleted callers."""
    if credentials is None:
        return None
    try:
        caller = _decode_caller(credentials.credentials)
    except UnauthorizedError:
        return None
    if not await _user_exists(db, caller.user_id):
        return None
    return _bind_caller(caller)


async def require_admin(caller: Caller = Depends(get_current_user)) -> Caller:
    """Allow only callers holding the admin role."""
    if not caller.is_admin:
        raise ForbiddenError("Admin access required")
    return caller
