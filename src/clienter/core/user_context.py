"""Current-user context propagation via Python contextvars.

The UserContext is set by AuthContextMiddleware at the start of each HTTP
request (and explicitly by the reminder WebSocket handler) and is readable
anywhere in the call stack via get_current_user_context(). Database
sessions use it to set the row-level security variable; logging, metrics
and Sentry use it for tagging.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass


@dataclass(frozen=True)
class UserContext:
    """Immutable identity of the authenticated end-user."""

    user_id: str
    email: str | None = None


_user_context: contextvars.ContextVar[UserContext] = contextvars.ContextVar("user_context")


def get_current_user_context() -> UserContext:
    """Get the user context for the current request.

    Raises RuntimeError if no user context has been set (i.e., the call
    is not within an authenticated request).
    """
    try:
        return _user_context.get()
    except LookupError:
        raise RuntimeError("No user context set -- request is not authenticated")


def set_user_context(ctx: UserContext) -> contextvars.Token[UserContext]:
    """Set the user context for the current request. Returns a token for reset."""
    return _user_context.set(ctx)


def reset_user_context(token: contextvars.Token[UserContext]) -> None:
    _user_context.reset(token)


def current_user_id_or_none() -> str | None:
    """Best-effort lookup used by logging and metrics."""
    try:
        return _user_context.get().user_id
    except LookupError:
        return None


# ── Paths that skip user resolution ─────────────────────────────────────────

SKIP_AUTH_PATHS = (
    "/health",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/redoc",
)
