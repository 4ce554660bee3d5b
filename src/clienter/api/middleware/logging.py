"""Structured logging setup and per-request access log.

configure_structlog() installs one processor chain for the whole service:
JSON lines in production, coloured console output elsewhere. Request-scoped
values (request_id, user_id) are bound through structlog.contextvars, so a
repository or reminder-engine log line emitted while serving a request
carries the same ids as the access log entry.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.clienter.config import Environment, get_settings

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def configure_structlog() -> None:
    """Configure stdlib logging and the structlog processor chain."""
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(message)s")

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _log_level_for(status_code: int):
    if status_code >= 500:
        return logger.error
    if status_code >= 400:
        return logger.warning
    return logger.info


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log with request id, calling user and duration.

    An incoming X-Request-ID is reused (so ids chain across the frontend
    and this service); otherwise one is generated. The id is echoed on the
    response. The user id comes from request.state, where
    AuthContextMiddleware records it further down the stack.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _log_level_for(status_code)(
                "request_completed" if status_code < 500 else "request_error",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
                user_id=getattr(request.state, "user_id", None),
            )
            structlog.contextvars.unbind_contextvars("request_id")
