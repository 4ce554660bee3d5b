"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: request count and latency per route template
- Reminder engine metrics: refresh failures, notifications, dismissals and
  the number of engines mounted on open WebSockets
- Dashboard metrics: query latency and degraded sections
- init_sentry(): Sentry with the calling user attached to every event
- get_metrics_response(): Prometheus exposition for the /metrics route
"""

from __future__ import annotations

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.clienter.core.user_context import current_user_id_or_none

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "clienter_http_requests_total",
    "HTTP requests by route template and status",
    ["method", "route", "status_code"],
)

http_request_duration_seconds = Histogram(
    "clienter_http_request_duration_seconds",
    "HTTP request latency by route template",
    ["method", "route"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Reminder Engine Metrics ──────────────────────────────────────────────────

reminder_refresh_failures_total = Counter(
    "clienter_reminder_refresh_failures_total",
    "Reminder fetches that failed and kept the previous working set",
)

reminder_notifications_total = Counter(
    "clienter_reminder_notifications_total",
    "Reminder notifications emitted on entry into the active set",
)

reminder_dismissals_total = Counter(
    "clienter_reminder_dismissals_total",
    "Reminder dismissals through the engine by outcome",
    ["outcome"],
)

reminder_engines_active = Gauge(
    "clienter_reminder_engines_active",
    "Reminder engines currently mounted (one per open connection)",
)

# ── Dashboard Metrics ────────────────────────────────────────────────────────

dashboard_query_duration_seconds = Histogram(
    "clienter_dashboard_query_duration_seconds",
    "Dashboard query latency including retries",
    ["query"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

dashboard_degraded_total = Counter(
    "clienter_dashboard_degraded_total",
    "Dashboard responses served with a section replaced by empty values",
    ["section"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


def _route_label(request: Request) -> str:
    """Matched route template (/api/v1/clients/{client_id}), or "unmatched"."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request count and latency for every HTTP request but /metrics.

    Requests that raise are counted with status 500. Unmatched paths share
    one label so scanners cannot grow the label set.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = _route_label(request)
            http_requests_total.labels(
                method=request.method, route=route, status_code=str(status_code)
            ).inc()
            http_request_duration_seconds.labels(method=request.method, route=route).observe(
                time.perf_counter() - started
            )


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry; events carry the calling user when one is known.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    def before_send(event: dict, hint: dict) -> dict:
        user_id = current_user_id_or_none()
        if user_id is not None:
            event.setdefault("user", {})["id"] = user_id
            event.setdefault("tags", {})["user_id"] = user_id
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1 if environment == "production" else 1.0,
        send_default_pii=False,
        integrations=[StarletteIntegration(), FastApiIntegration()],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Prometheus exposition of the default registry."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
