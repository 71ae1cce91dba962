"""
JWT verification for bearer credentials issued by the identity provider.

Tokens carry the user id in ``sub`` and the platform role (``member`` or
``admin``) in ``role``. This service only verifies them; ``create_access_token``
exists for local tooling and the test suite.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import jwt

from mentorhub.config import get_settings

Role = Literal["member", "admin"]


def create_access_token(
    user_id: int,
    role: Role = "member",
    *,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    Create a signed access token.

    Args:
        user_id: The user's database ID.
        role: The caller's platform role.
        expires_in: Token lifetime.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + expires_in,
        "type": "access",
    }
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: The encoded JWT string.
        expected_type: Expected token type.

    Returns:
        Decoded payload dictionary.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or wrong type.
    """
    settings = get_settings()
    options: dict[str, Any] = {"require": ["sub", "exp"]}
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type", expected_type) != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    return payload
