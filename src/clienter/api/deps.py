"""FastAPI dependency injection for the authenticated user and repositories.

These dependencies are used in endpoint function signatures to inject the
current user and the repositories initialised on app.state during startup.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from src.clienter.core.security import extract_bearer_token, user_context_from_token
from src.clienter.core.user_context import UserContext, set_user_context


async def get_current_user(request: Request) -> UserContext:
    """Authenticate the request from its bearer token.

    Also binds the user to the request's context so user-scoped database
    sessions pick up the row-level security setting.

    Raises:
        HTTPException(401): If no valid bearer token is provided.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = user_context_from_token(token)
    set_user_context(user)
    return user


def get_state_repository(request: Request, name: str, label: str) -> Any:
    """Retrieve a repository from app.state, 503 if not available."""
    repo = getattr(request.app.state, name, None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return repo

