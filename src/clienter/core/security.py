"""Verification of access tokens issued by the hosted auth provider.

Clienter never issues or refreshes tokens: sign-in, sign-up and OAuth
redirects happen at the provider. Every request carries the provider's
HS256 access token, whose `sub` claim is the user id that owns all rows
this service reads and writes.
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException, status
from jose import JWTError, jwt

from src.clienter.config import get_settings
from src.clienter.core.user_context import UserContext

logger = structlog.get_logger(__name__)


def decode_access_token(token: str) -> dict:
    """Decode and validate a provider access token.

    Args:
        token: The JWT string.

    Returns:
        The decoded payload dict.

    Raises:
        HTTPException(401): If the token is invalid, expired, has the wrong
            audience, or carries no subject.
    """
    settings = get_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
        )
    except JWTError as exc:
        logger.info("auth.token_rejected", reason=str(exc))
        raise credentials_exception
    if not payload.get("sub"):
        raise credentials_exception
    return payload


def user_context_from_token(token: str) -> UserContext:
    """Resolve a bearer token into the UserContext it authenticates."""
    payload = decode_access_token(token)
    return UserContext(user_id=str(payload["sub"]), email=payload.get("email"))


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token part of an `Authorization: Bearer ...` header."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return None
