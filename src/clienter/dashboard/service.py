"""DashboardService -- assembles the overview with per-query timeout and retry.

Each query runs under asyncio.wait_for and a bounded tenacity retry. The
sections degrade independently: stats fall back to zeros and upcoming
reminders to an empty list, while a failing recent-clients query fails the
whole request with DashboardUnavailableError.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.clienter.clients.repository import ClientRepository
from src.clienter.clients.schemas import REVENUE_STATUSES, Client
from src.clienter.core.monitoring import (
    dashboard_degraded_total,
    dashboard_query_duration_seconds,
)
from src.clienter.dashboard.schemas import Dashboard, DashboardStats
from src.clienter.meetings.repository import MeetingRepository
from src.clienter.reminders.repository import ReminderRepository
from src.clienter.reminders.schemas import ReminderWithMeeting

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RECENT_CLIENTS_LIMIT = 5
UPCOMING_REMINDERS_LIMIT = 5


class DashboardUnavailableError(Exception):
    """A required dashboard section could not be loaded."""


class DashboardService:
    """Loads the dashboard for one user.

    Args:
        clients: ClientRepository for recent clients and revenue.
        meetings: MeetingRepository for the meeting count.
        reminders: ReminderRepository for upcoming reminders.
        timeout: Seconds allowed per query attempt.
        retries: Extra attempts after the first failure.
        wait_multiplier: Exponential backoff multiplier between attempts.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        clients: ClientRepository,
        meetings: MeetingRepository,
        reminders: ReminderRepository,
        *,
        timeout: float = 10.0,
        retries: int = 2,
        wait_multiplier: float = 0.5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clients = clients
        self._meetings = meetings
        self._reminders = reminders
        self._timeout = timeout
        self._retries = retries
        self._wait_multiplier = wait_multiplier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _query(self, name: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run one query with a timeout per attempt and bounded retries."""
        with dashboard_query_duration_seconds.labels(query=name).time():
            return await self._attempt(name, factory)

    async def _attempt(self, name: str, factory: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retries + 1),
            wait=wait_exponential(multiplier=self._wait_multiplier, max=4),
            retry=retry_if_exception_type(Exception),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "dashboard_query_retry",
                        query=name,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await asyncio.wait_for(factory(), timeout=self._timeout)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _recent_clients(self, user_id: str) -> list[Client]:
        return await self._query(
            "recent_clients",
            lambda: self._clients.list_recent(user_id, limit=RECENT_CLIENTS_LIMIT),
        )

    async def _upcoming_reminders(
        self, user_id: str, now: datetime
    ) -> list[ReminderWithMeeting]:
        return await self._query(
            "upcoming_reminders",
            lambda: self._reminders.list_upcoming(
                user_id, now, limit=UPCOMING_REMINDERS_LIMIT
            ),
        )

    async def _stats(self, user_id: str) -> DashboardStats:
        total_clients = await self._query(
            "client_count", lambda: self._clients.count_clients(user_id)
        )
        total_meetings = await self._query(
            "meeting_count", lambda: self._meetings.count_meetings(user_id)
        )
        revenue, paid = await self._query(
            "revenue", lambda: self._clients.revenue_totals(user_id, REVENUE_STATUSES)
        )
        return DashboardStats(
            total_clients=total_clients,
            total_meetings=total_meetings,
            total_revenue=revenue,
            total_paid=paid,
            total_due=revenue - paid,
        )

    async def load(self, user_id: str) -> Dashboard:
        """Load all sections concurrently.

        Raises:
            DashboardUnavailableError: If recent clients could not be loaded.
        """
        now = self._clock()
        recent, upcoming, stats = await asyncio.gather(
            self._recent_clients(user_id),
            self._upcoming_reminders(user_id, now),
            self._stats(user_id),
            return_exceptions=True,
        )

        if isinstance(recent, BaseException):
            logger.error("dashboard_recent_clients_failed", user_id=user_id, exc_info=recent)
            raise DashboardUnavailableError("Recent clients could not be loaded") from recent

        dashboard = Dashboard(recent_clients=recent)
        if isinstance(upcoming, BaseException):
            logger.warning("dashboard_reminders_degraded", user_id=user_id, exc_info=upcoming)
            dashboard.degraded.append("upcoming_reminders")
            dashboard_degraded_total.labels(section="upcoming_reminders").inc()
        else:
            dashboard.upcoming_reminders = upcoming

        if isinstance(stats, BaseException):
            logger.warning("dashboard_stats_degraded", user_id=user_id, exc_info=stats)
            dashboard.degraded.append("stats")
            dashboard_degraded_total.labels(section="stats").inc()
        else:
            dashboard.stats = stats

        return dashboard
