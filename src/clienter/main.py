"""FastAPI application factory.

Creates the app with auth context middleware, logging middleware, metrics
middleware, CORS, Sentry, lifespan events for database initialization, and
the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from src.clienter.config import get_settings
from src.clienter.core.database import close_db, get_user_session, init_db
from src.clienter.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.clienter.api.middleware import AuthContextMiddleware, LoggingMiddleware
from src.clienter.api.middleware.logging import configure_structlog
from src.clienter.api.v1 import health
from src.clienter.api.v1.router import router as v1_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and repositories; close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    try:
        await init_db()
    except Exception:
        log.warning("startup.database_unreachable", exc_info=True)

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # Each module is wrapped in its own try/except so a single failure
    # leaves only that module's endpoints answering 503.

    try:
        from src.clienter.profiles.repository import ProfileRepository

        app.state.profile_repository = ProfileRepository(get_user_session)
        log.info("startup.profiles_initialized")
    except Exception:
        log.warning("startup.profiles_init_failed", exc_info=True)
        app.state.profile_repository = None

    try:
        from src.clienter.clients.repository import ClientRepository

        app.state.client_repository = ClientRepository(get_user_session)
        log.info("startup.clients_initialized")
    except Exception:
        log.warning("startup.clients_init_failed", exc_info=True)
        app.state.client_repository = None

    try:
        from src.clienter.meetings.repository import MeetingRepository
        from src.clienter.reminders.repository import ReminderRepository

        app.state.meeting_repository = MeetingRepository(get_user_session)
        app.state.reminder_repository = ReminderRepository(get_user_session)
        log.info("startup.meetings_initialized")
    except Exception:
        log.warning("startup.meetings_init_failed", exc_info=True)
        app.state.meeting_repository = None
        app.state.reminder_repository = None

    try:
        from src.clienter.dashboard.service import DashboardService

        if None in (
            app.state.client_repository,
            app.state.meeting_repository,
            app.state.reminder_repository,
        ):
            raise RuntimeError("Dashboard requires client, meeting and reminder repositories")
        app.state.dashboard_service = DashboardService(
            app.state.client_repository,
            app.state.meeting_repository,
            app.state.reminder_repository,
            timeout=settings.DASHBOARD_QUERY_TIMEOUT_SECONDS,
            retries=settings.DASHBOARD_QUERY_RETRIES,
        )
        log.info("startup.dashboard_initialized")
    except Exception:
        log.warning("startup.dashboard_init_failed", exc_info=True)
        app.state.dashboard_service = None

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    # Reminder engines are owned by their WebSocket handlers and stop on
    # disconnect; only the engine pool remains to be released.
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Clienter API",
        version="0.1.0",
        description="Freelancer client management with meeting reminders",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # Auth context middleware (inner -- binds the user for logging and RLS)
    app.add_middleware(AuthContextMiddleware)

    # CORS for the web frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Access log; binds request_id for every log line inside the request
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(health.router)
    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
