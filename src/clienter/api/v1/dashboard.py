"""Dashboard endpoint -- recent clients, upcoming reminders and revenue stats."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.clienter.api.deps import get_current_user, get_state_repository
from src.clienter.api.v1.clients import ClientResponse, _client_to_response
from src.clienter.api.v1.reminders import ReminderResponse, _reminder_to_response
from src.clienter.core.user_context import UserContext
from src.clienter.dashboard.service import DashboardUnavailableError
from src.clienter.formatting import format_currency

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class StatsResponse(BaseModel):
    total_clients: int = 0
    total_meetings: int = 0
    total_revenue: float = 0.0
    total_paid: float = 0.0
    total_due: float = 0.0
    currency: str = "USD"
    display: dict[str, str] = Field(default_factory=dict)


class DashboardResponse(BaseModel):
    recent_clients: list[ClientResponse] = Field(default_factory=list)
    upcoming_reminders: list[ReminderResponse] = Field(default_factory=list)
    stats: StatsResponse = Field(default_factory=StatsResponse)
    degraded: list[str] = Field(default_factory=list)


def _get_dashboard_service(request: Request) -> Any:
    return get_state_repository(request, "dashboard_service", "Dashboard")


async def _user_currency(request: Request, user: UserContext) -> str:
    profiles = getattr(request.app.state, "profile_repository", None)
    if profiles is None:
        return "USD"
    try:
        profile = await profiles.get_or_create(user.user_id, user.email)
    except Exception:
        logger.warning("dashboard_profile_lookup_failed", user_id=user.user_id, exc_info=True)
        return "USD"
    return profile.currency


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> DashboardResponse:
    """Overview for the signed-in user.

    Stats and upcoming reminders degrade to empty values when their queries
    fail (listed in `degraded`); recent clients failing returns 502.
    """
    service = _get_dashboard_service(request)
    try:
        dashboard = await service.load(user.user_id)
    except DashboardUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    currency = await _user_currency(request, user)
    stats = dashboard.stats
    return DashboardResponse(
        recent_clients=[_client_to_response(c) for c in dashboard.recent_clients],
        upcoming_reminders=[_reminder_to_response(r) for r in dashboard.upcoming_reminders],
        stats=StatsResponse(
            **stats.model_dump(),
            currency=currency,
            display={
                "total_revenue": format_currency(stats.total_revenue, currency),
                "total_paid": format_currency(stats.total_paid, currency),
                "total_due": format_currency(stats.total_due, currency),
            },
        ),
        degraded=dashboard.degraded,
    )
