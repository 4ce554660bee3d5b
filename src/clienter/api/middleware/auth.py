"""User context middleware.

Resolves the bearer token (best effort) and stores the UserContext in
contextvars for the request scope, so logging, metrics and database
sessions can see who is calling. Rejecting unauthenticated requests is
left to the get_current_user dependency on each route.
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.clienter.core.security import extract_bearer_token, user_context_from_token
from src.clienter.core.user_context import (
    SKIP_AUTH_PATHS,
    reset_user_context,
    set_user_context,
)

logger = structlog.get_logger(__name__)


class AuthContextMiddleware(BaseHTTPMiddleware):
    """Sets the current UserContext from the Authorization header.

    Paths in SKIP_AUTH_PATHS are passed through untouched.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path.startswith(skip) for skip in SKIP_AUTH_PATHS):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("Authorization"))
        if token is None:
            return await call_next(request)

        try:
            ctx = user_context_from_token(token)
        except HTTPException:
            logger.debug("auth_context.token_rejected", path=path)
            return await call_next(request)

        request.state.user_id = ctx.user_id
        structlog.contextvars.bind_contextvars(user_id=ctx.user_id)
        reset_token = set_user_context(ctx)
        try:
            return await call_next(request)
        finally:
            reset_user_context(reset_token)
            structlog.contextvars.unbind_contextvars("user_id")
