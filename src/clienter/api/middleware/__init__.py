"""API middleware package."""

from src.clienter.api.middleware.auth import AuthContextMiddleware
from src.clienter.api.middleware.logging import LoggingMiddleware

__all__ = ["AuthContextMiddleware", "LoggingMiddleware"]
