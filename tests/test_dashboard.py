"""Tests for DashboardService degradation rules and the dashboard endpoint."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from src.clienter.clients.schemas import ClientCreate, ClientStatus
from src.clienter.dashboard.service import (
    RECENT_CLIENTS_LIMIT,
    DashboardService,
    DashboardUnavailableError,
)
from src.clienter.meetings.schemas import MeetingCreate
from src.clienter.profiles.schemas import ProfileUpdate


class FlakyMethod:
    """Wraps an async repository method to fail (or stall) a set number of times."""

    def __init__(self, inner, failures: int = 1_000, delay: float | None = None) -> None:
        self._inner = inner
        self._failures = failures
        self._delay = delay
        self.calls = 0

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self._failures:
            if self._delay is not None:
                await asyncio.sleep(self._delay)
            else:
                raise ConnectionError("query failed")
        return await self._inner(*args, **kwargs)


def _service(client_repo, meeting_repo, reminder_repo, clock, **kwargs) -> DashboardService:
    kwargs.setdefault("retries", 0)
    kwargs.setdefault("wait_multiplier", 0)
    return DashboardService(client_repo, meeting_repo, reminder_repo, clock=clock, **kwargs)


async def _add_client(client_repo, user_id, name, status, total=None, paid=None):
    return await client_repo.create_client(
        user_id,
        ClientCreate(name=name, status=status, total_amount=total, advance_paid=paid),
    )


async def _add_meeting(meeting_repo, user_id, at, title="Sync"):
    return await meeting_repo.create_meeting(
        user_id, MeetingCreate(title=title, meeting_time=at), reminder_minutes=15
    )


# ── Service ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stats_count_ongoing_and_potential_revenue(
    client_repo, meeting_repo, reminder_repo, clock, user_id, other_user_id
):
    await _add_client(client_repo, user_id, "A", ClientStatus.ONGOING, 1000, 400)
    await _add_client(client_repo, user_id, "B", ClientStatus.POTENTIAL, 500, None)
    await _add_client(client_repo, user_id, "C", ClientStatus.COMPLETED, 9000, 9000)
    await _add_client(client_repo, user_id, "D", ClientStatus.UNCERTAIN, 300, 100)
    await _add_client(client_repo, other_user_id, "E", ClientStatus.ONGOING, 7000, 0)
    await _add_meeting(meeting_repo, user_id, clock() + timedelta(days=1))

    dashboard = await _service(client_repo, meeting_repo, reminder_repo, clock).load(user_id)

    stats = dashboard.stats
    assert stats.total_clients == 4
    assert stats.total_meetings == 1
    assert stats.total_revenue == 1500
    assert stats.total_paid == 400
    assert stats.total_due == 1100
    assert dashboard.degraded == []


@pytest.mark.asyncio
async def test_recent_clients_newest_first_and_limited(
    client_repo, meeting_repo, reminder_repo, clock, user_id
):
    for i in range(RECENT_CLIENTS_LIMIT + 2):
        await _add_client(client_repo, user_id, f"Client {i}", ClientStatus.POTENTIAL)

    dashboard = await _service(client_repo, meeting_repo, reminder_repo, clock).load(user_id)

    names = [c.name for c in dashboard.recent_clients]
    assert len(names) == RECENT_CLIENTS_LIMIT
    assert names[0] == f"Client {RECENT_CLIENTS_LIMIT + 1}"


@pytest.mark.asyncio
async def test_upcoming_reminders_exclude_past_and_dismissed(
    client_repo, meeting_repo, reminder_repo, store, clock, user_id
):
    await _add_meeting(meeting_repo, user_id, clock() - timedelta(hours=1), title="Past")
    dismissed = await _add_meeting(meeting_repo, user_id, clock() + timedelta(hours=2), "Dismissed")
    await _add_meeting(meeting_repo, user_id, clock() + timedelta(hours=3), title="Later")
    await _add_meeting(meeting_repo, user_id, clock() + timedelta(hours=1), title="Soon")
    await reminder_repo.dismiss(user_id, store.reminder_for(dismissed.id).id, clock())

    dashboard = await _service(client_repo, meeting_repo, reminder_repo, clock).load(user_id)

    assert [r.meeting.title for r in dashboard.upcoming_reminders] == ["Soon", "Later"]


@pytest.mark.asyncio
async def test_failing_stats_degrade_to_zeros(
    client_repo, meeting_repo, reminder_repo, clock, user_id
):
    await _add_client(client_repo, user_id, "A", ClientStatus.ONGOING, 1000, 400)
    meeting_repo.count_meetings = FlakyMethod(meeting_repo.count_meetings)

    dashboard = await _service(client_repo, meeting_repo, reminder_repo, clock).load(user_id)

    assert dashboard.degraded == ["stats"]
    assert dashboard.stats.total_clients == 0
    assert dashboard.stats.total_revenue == 0
    assert [c.name for c in dashboard.recent_clients] == ["A"]


@pytest.mark.asyncio
async def test_failing_reminders_degrade_to_empty(
    client_repo, meeting_repo, reminder_repo, clock, user_id
):
    await _add_meeting(meeting_repo, user_id, clock() + timedelta(hours=1))
    reminder_repo.list_upcoming = FlakyMethod(reminder_repo.list_upcoming)

    dashboard = await _service(client_repo, meeting_repo, reminder_repo, clock).load(user_id)

    assert dashboard.degraded == ["upcoming_reminders"]
    assert dashboard.upcoming_reminders == []
    assert dashboard.stats.total_meetings == 1


@pytest.mark.asyncio
async def test_failing_recent_clients_fails_dashboard(
    client_repo, meeting_repo, reminder_repo, clock, user_id
):
    client_repo.list_recent = FlakyMethod(client_repo.list_recent)

    with pytest.raises(DashboardUnavailableError):
        await _service(client_repo, meeting_repo, reminder_repo, clock).load(user_id)


@pytest.mark.asyncio
async def test_query_retried_after_transient_failure(
    client_repo, meeting_repo, reminder_repo, clock, user_id
):
    await _add_client(client_repo, user_id, "A", ClientStatus.POTENTIAL)
    flaky = FlakyMethod(client_repo.list_recent, failures=1)
    client_repo.list_recent = flaky

    service = _service(client_repo, meeting_repo, reminder_repo, clock, retries=2)
    dashboard = await service.load(user_id)

    assert flaky.calls == 2
    assert [c.name for c in dashboard.recent_clients] == ["A"]


@pytest.mark.asyncio
async def test_retries_are_bounded(client_repo, meeting_repo, reminder_repo, clock, user_id):
    flaky = FlakyMethod(reminder_repo.list_upcoming)
    reminder_repo.list_upcoming = flaky

    service = _service(client_repo, meeting_repo, reminder_repo, clock, retries=2)
    dashboard = await service.load(user_id)

    assert flaky.calls == 3
    assert dashboard.degraded == ["upcoming_reminders"]


@pytest.mark.asyncio
async def test_slow_query_times_out(client_repo, meeting_repo, reminder_repo, clock, user_id):
    client_repo.count_clients = FlakyMethod(client_repo.count_clients, delay=1.0)

    service = _service(client_repo, meeting_repo, reminder_repo, clock, timeout=0.05)
    dashboard = await service.load(user_id)

    assert dashboard.degraded == ["stats"]


# ── Endpoint ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_dashboard_endpoint_formats_in_profile_currency(
    api_client, client_repo, profile_repo, user_id
):
    await _add_client(client_repo, user_id, "Big project", ClientStatus.ONGOING, 150000, 50000)
    await profile_repo.update(user_id, ProfileUpdate(currency="INR"))

    response = await api_client.get("/api/v1/dashboard")

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["currency"] == "INR"
    assert stats["total_due"] == 100000
    assert stats["display"]["total_revenue"] == "₹1,50,000.00"
    assert stats["display"]["total_due"] == "₹1,00,000.00"


@pytest.mark.asyncio
async def test_dashboard_endpoint_empty_account(api_client):
    response = await api_client.get("/api/v1/dashboard")

    data = response.json()
    assert data["recent_clients"] == []
    assert data["upcoming_reminders"] == []
    assert data["stats"]["display"]["total_revenue"] == "$0"
    assert data["degraded"] == []


@pytest.mark.asyncio
async def test_dashboard_endpoint_502_without_recent_clients(api_client, client_repo):
    client_repo.list_recent = FlakyMethod(client_repo.list_recent)

    response = await api_client.get("/api/v1/dashboard")

    assert response.status_code == 502
