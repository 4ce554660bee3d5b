"""Pydantic v2 schemas for the dashboard overview."""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.clienter.clients.schemas import Client
from src.clienter.reminders.schemas import ReminderWithMeeting


class DashboardStats(BaseModel):
    """Counts and revenue over clients in ongoing or potential status."""

    total_clients: int = 0
    total_meetings: int = 0
    total_revenue: float = 0.0
    total_paid: float = 0.0
    total_due: float = 0.0


class Dashboard(BaseModel):
    """Dashboard payload.

    degraded lists the sections that fell back to empty values because
    their query failed.
    """

    recent_clients: list[Client] = Field(default_factory=list)
    upcoming_reminders: list[ReminderWithMeeting] = Field(default_factory=list)
    stats: DashboardStats = Field(default_factory=DashboardStats)
    degraded: list[str] = Field(default_factory=list)
