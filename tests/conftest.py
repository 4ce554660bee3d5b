"""Shared test fixtures: in-memory repositories, a fixed clock and auth helpers.

Provides:
- InMemoryStore holding clients, meetings, reminders and profiles, with the
  database's referential behaviour (reminder cascade, client SET NULL)
- In-memory test doubles mirroring ClientRepository, MeetingRepository,
  ReminderRepository and ProfileRepository
- FixedClock for time-dependent logic
- RecordingNotifier capturing reminder notifications and retractions
- A minimal FastAPI app wired with the doubles and an overridden user
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from jose import jwt

from src.clienter.clients.kanban import build_board, next_position, plan_move
from src.clienter.clients.schemas import (
    Client,
    ClientCreate,
    ClientStatus,
    ClientUpdate,
    KanbanBoard,
)
from src.clienter.config import get_settings
from src.clienter.core.user_context import UserContext
from src.clienter.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingUpdate,
    MeetingWindow,
    MeetingWithClient,
    compute_remind_at,
)
from src.clienter.profiles.schemas import Profile, ProfileUpdate
from src.clienter.reminders.schemas import (
    Reminder,
    ReminderNotification,
    ReminderWithMeeting,
)

USER_ID = str(uuid.uuid4())
OTHER_USER_ID = str(uuid.uuid4())
BASE_TIME = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


# ── Clock and Notifier ───────────────────────────────────────────────────────


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


class RecordingNotifier:
    """ReminderNotifier double that records what it was asked to show."""

    def __init__(self) -> None:
        self.notified: list[ReminderNotification] = []
        self.retracted: list[str] = []
        self.fail_notify = False

    async def notify(self, notification: ReminderNotification) -> None:
        if self.fail_notify:
            raise ConnectionError("socket closed")
        self.notified.append(notification)

    async def retract(self, reminder_id: str) -> None:
        self.retracted.append(reminder_id)

    @property
    def notified_ids(self) -> list[str]:
        return [n.reminder_id for n in self.notified]


# ── In-Memory Store ──────────────────────────────────────────────────────────


class InMemoryStore:
    """Rows shared by the in-memory repositories."""

    def __init__(self) -> None:
        self.clients: dict[str, Client] = {}
        self.meetings: dict[str, Meeting] = {}
        self.reminders: dict[str, Reminder] = {}
        self.profiles: dict[str, Profile] = {}
        self._tick = 0

    def stamp(self) -> datetime:
        """Strictly increasing created_at values."""
        self._tick += 1
        return BASE_TIME + timedelta(seconds=self._tick)

    def reminder_for(self, meeting_id: str) -> Reminder | None:
        return next((r for r in self.reminders.values() if r.meeting_id == meeting_id), None)

    def join_meeting(self, meeting: Meeting) -> MeetingWithClient:
        reminder = self.reminder_for(meeting.id)
        client = self.clients.get(meeting.client_id) if meeting.client_id else None
        return MeetingWithClient(
            **meeting.model_dump(),
            client=client,
            remind_at=reminder.remind_at if reminder else None,
            reminder_dismissed=reminder.is_dismissed if reminder else False,
        )

    def join_reminder(self, reminder: Reminder) -> ReminderWithMeeting:
        return ReminderWithMeeting(
            **reminder.model_dump(),
            meeting=self.join_meeting(self.meetings[reminder.meeting_id]),
        )


class InMemoryClientRepository:
    """In-memory ClientRepository for testing without database."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def _owned(self, user_id: str) -> list[Client]:
        return [c for c in self._store.clients.values() if c.user_id == user_id]

    async def create_client(self, user_id: str, data: ClientCreate) -> Client:
        client = Client(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=data.name,
            phone=data.phone,
            project_description=data.project_description,
            total_amount=data.total_amount,
            advance_paid=data.advance_paid,
            status=data.status,
            position=next_position(self._owned(user_id), data.status),
            created_at=self._store.stamp(),
        )
        self._store.clients[client.id] = client
        return client

    async def get_client(self, user_id: str, client_id: str) -> Client | None:
        client = self._store.clients.get(client_id)
        if client and client.user_id == user_id:
            return client
        return None

    async def list_clients(self, user_id: str, search: str | None = None) -> list[Client]:
        clients = self._owned(user_id)
        if search:
            clients = [c for c in clients if search.lower() in c.name.lower()]
        return sorted(clients, key=lambda c: c.created_at, reverse=True)

    async def update_client(self, user_id: str, client_id: str, data: ClientUpdate) -> Client:
        client = await self.get_client(user_id, client_id)
        if client is None:
            raise ValueError(f"Client not found: {client_id}")
        fields = data.model_dump(exclude_unset=True)
        status = fields.pop("status", None)
        if status is not None and status != client.status:
            fields["position"] = next_position(self._owned(user_id), status)
            fields["status"] = status
        updated = client.model_copy(update=fields)
        self._store.clients[client_id] = updated
        return updated

    async def delete_client(self, user_id: str, client_id: str) -> bool:
        if await self.get_client(user_id, client_id) is None:
            return False
        del self._store.clients[client_id]
        for meeting_id, meeting in list(self._store.meetings.items()):
            if meeting.client_id == client_id:
                self._store.meetings[meeting_id] = meeting.model_copy(update={"client_id": None})
        return True

    async def get_board(self, user_id: str) -> KanbanBoard:
        return build_board(self._owned(user_id))

    async def move_client(
        self, user_id: str, client_id: str, to_status: ClientStatus, to_index: int
    ) -> KanbanBoard:
        changes = plan_move(self._owned(user_id), client_id, to_status, to_index)
        for changed_id, (status, position) in changes.items():
            self._store.clients[changed_id] = self._store.clients[changed_id].model_copy(
                update={"status": status, "position": position}
            )
        return build_board(self._owned(user_id))

    async def list_recent(self, user_id: str, limit: int = 5) -> list[Client]:
        return (await self.list_clients(user_id))[:limit]

    async def count_clients(self, user_id: str) -> int:
        return len(self._owned(user_id))

    async def revenue_totals(
        self, user_id: str, statuses: tuple[ClientStatus, ...]
    ) -> tuple[float, float]:
        selected = [c for c in self._owned(user_id) if c.status in statuses]
        return (
            float(sum(c.total_amount or 0 for c in selected)),
            float(sum(c.advance_paid or 0 for c in selected)),
        )


class InMemoryMeetingRepository:
    """In-memory MeetingRepository, including the meeting's reminder."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def _check_client(self, user_id: str, client_id: str | None) -> None:
        if client_id is None:
            return
        client = self._store.clients.get(client_id)
        if client is None or client.user_id != user_id:
            raise ValueError(f"Client not found: {client_id}")

    def _load(self, user_id: str, meeting_id: str) -> Meeting | None:
        meeting = self._store.meetings.get(meeting_id)
        if meeting and meeting.user_id == user_id:
            return meeting
        return None

    async def create_meeting(
        self, user_id: str, data: MeetingCreate, reminder_minutes: int
    ) -> MeetingWithClient:
        self._check_client(user_id, data.client_id)
        meeting = Meeting(
            id=str(uuid.uuid4()),
            user_id=user_id,
            client_id=data.client_id,
            title=data.title,
            description=data.description,
            meeting_time=data.meeting_time,
            duration_minutes=data.duration_minutes,
            meeting_link=data.meeting_link,
            reminder_minutes=reminder_minutes,
            created_at=self._store.stamp(),
        )
        reminder = Reminder(
            id=str(uuid.uuid4()),
            user_id=user_id,
            meeting_id=meeting.id,
            remind_at=compute_remind_at(meeting.meeting_time, reminder_minutes),
            created_at=meeting.created_at,
        )
        self._store.meetings[meeting.id] = meeting
        self._store.reminders[reminder.id] = reminder
        return self._store.join_meeting(meeting)

    async def get_meeting(self, user_id: str, meeting_id: str) -> MeetingWithClient | None:
        meeting = self._load(user_id, meeting_id)
        return self._store.join_meeting(meeting) if meeting else None

    async def list_meetings(
        self,
        user_id: str,
        window: MeetingWindow | None = None,
        now: datetime | None = None,
        client_id: str | None = None,
    ) -> list[MeetingWithClient]:
        meetings = [m for m in self._store.meetings.values() if m.user_id == user_id]
        if window is not None and now is not None:
            if window == MeetingWindow.UPCOMING:
                meetings = [m for m in meetings if m.meeting_time > now]
            else:
                meetings = [m for m in meetings if m.meeting_time <= now]
        if client_id is not None:
            meetings = [m for m in meetings if m.client_id == client_id]
        meetings.sort(key=lambda m: m.meeting_time)
        return [self._store.join_meeting(m) for m in meetings]

    async def update_meeting(
        self, user_id: str, meeting_id: str, data: MeetingUpdate
    ) -> MeetingWithClient:
        meeting = self._load(user_id, meeting_id)
        if meeting is None:
            raise ValueError(f"Meeting not found: {meeting_id}")
        fields = data.model_dump(exclude_unset=True)
        if "client_id" in fields:
            self._check_client(user_id, fields["client_id"])
        fields = {
            k: v for k, v in fields.items()
            if v is not None or k in ("client_id", "description", "meeting_link")
        }
        meeting = meeting.model_copy(update=fields)
        self._store.meetings[meeting_id] = meeting

        remind_at = compute_remind_at(meeting.meeting_time, meeting.reminder_minutes)
        reminder = self._store.reminder_for(meeting_id)
        if reminder is not None and reminder.remind_at != remind_at:
            self._store.reminders[reminder.id] = reminder.model_copy(
                update={"remind_at": remind_at, "is_dismissed": False, "dismissed_at": None}
            )
        return self._store.join_meeting(meeting)

    async def delete_meeting(self, user_id: str, meeting_id: str) -> bool:
        if self._load(user_id, meeting_id) is None:
            return False
        del self._store.meetings[meeting_id]
        for reminder_id, reminder in list(self._store.reminders.items()):
            if reminder.meeting_id == meeting_id:
                del self._store.reminders[reminder_id]
        return True

    async def count_meetings(self, user_id: str) -> int:
        return sum(1 for m in self._store.meetings.values() if m.user_id == user_id)


class InMemoryReminderRepository:
    """In-memory ReminderRepository with failure switches."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self.fail_list = False
        self.fail_dismiss = False
        self.list_calls = 0
        self.dismiss_calls = 0

    def _pending(self, user_id: str) -> list[ReminderWithMeeting]:
        pending = [
            r for r in self._store.reminders.values()
            if r.user_id == user_id and not r.is_dismissed
        ]
        pending.sort(key=lambda r: r.remind_at)
        return [self._store.join_reminder(r) for r in pending]

    async def list_pending_for_engine(
        self, user_id: str, since: datetime
    ) -> list[ReminderWithMeeting]:
        self.list_calls += 1
        if self.fail_list:
            raise ConnectionError("database unavailable")
        return [r for r in self._pending(user_id) if r.remind_at >= since]

    async def list_undismissed(self, user_id: str, limit: int = 20) -> list[ReminderWithMeeting]:
        return self._pending(user_id)[:limit]

    async def list_upcoming(
        self, user_id: str, now: datetime, limit: int = 5
    ) -> list[ReminderWithMeeting]:
        return [r for r in self._pending(user_id) if r.remind_at >= now][:limit]

    async def dismiss(self, user_id: str, reminder_id: str, dismissed_at: datetime) -> datetime:
        self.dismiss_calls += 1
        if self.fail_dismiss:
            raise ConnectionError("database unavailable")
        reminder = self._store.reminders.get(reminder_id)
        if reminder is None or reminder.user_id != user_id:
            raise ValueError(f"Reminder not found: {reminder_id}")
        self._store.reminders[reminder_id] = reminder.model_copy(
            update={"is_dismissed": True, "dismissed_at": dismissed_at}
        )
        return reminder.remind_at


class InMemoryProfileRepository:
    """In-memory ProfileRepository."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def get_or_create(self, user_id: str, email: str | None = None) -> Profile:
        if user_id not in self._store.profiles:
            self._store.profiles[user_id] = Profile(
                id=user_id, email=email, created_at=self._store.stamp()
            )
        return self._store.profiles[user_id]

    async def update(self, user_id: str, data: ProfileUpdate) -> Profile:
        profile = await self.get_or_create(user_id)
        fields = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        profile = profile.model_copy(update=fields)
        self._store.profiles[user_id] = profile
        return profile


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def client_repo(store: InMemoryStore) -> InMemoryClientRepository:
    return InMemoryClientRepository(store)


@pytest.fixture
def meeting_repo(store: InMemoryStore) -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository(store)


@pytest.fixture
def reminder_repo(store: InMemoryStore) -> InMemoryReminderRepository:
    return InMemoryReminderRepository(store)


@pytest.fixture
def profile_repo(store: InMemoryStore) -> InMemoryProfileRepository:
    return InMemoryProfileRepository(store)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def make_token(user_id: str = USER_ID, **claims) -> str:
    """Sign an access token the way the hosted auth provider does."""
    settings = get_settings()
    payload = {
        "sub": user_id,
        "aud": settings.AUTH_JWT_AUDIENCE,
        "email": "freelancer@example.com",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    payload.update(claims)
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


@pytest.fixture
def token_factory():
    return make_token


def _mock_get_current_user() -> UserContext:
    """Return the test user for auth bypass."""
    return UserContext(user_id=USER_ID, email="freelancer@example.com")


@pytest.fixture
def api_app(client_repo, meeting_repo, reminder_repo, profile_repo) -> FastAPI:
    """Minimal app with the v1 router, in-memory repositories and mocked auth."""
    from src.clienter.api.deps import get_current_user
    from src.clienter.api.v1.router import router
    from src.clienter.dashboard.service import DashboardService

    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.dependency_overrides[get_current_user] = _mock_get_current_user

    app.state.client_repository = client_repo
    app.state.meeting_repository = meeting_repo
    app.state.reminder_repository = reminder_repo
    app.state.profile_repository = profile_repo
    app.state.dashboard_service = DashboardService(
        client_repo, meeting_repo, reminder_repo, retries=0, wait_multiplier=0
    )
    return app


@pytest_asyncio.fixture
async def api_client(api_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=api_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def other_user_id() -> str:
    return OTHER_USER_ID
