"""Meeting repository -- async CRUD for meetings and the reminder each owns.

Provides MeetingRepository with the session_factory callable pattern. A
meeting and its reminder are always written in the same transaction, so
the one-reminder-per-meeting invariant holds even when a write fails
halfway.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienter.clients.models import ClientModel
from src.clienter.clients.repository import _model_to_client
from src.clienter.core.database import parse_uuid
from src.clienter.meetings.models import MeetingModel
from src.clienter.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingUpdate,
    MeetingWindow,
    MeetingWithClient,
    compute_remind_at,
)
from src.clienter.reminders.models import ReminderModel

logger = structlog.get_logger(__name__)

# Fields a partial update may explicitly clear
_NULLABLE_FIELDS = frozenset({"description", "meeting_link"})


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=str(model.id),
        user_id=str(model.user_id),
        client_id=str(model.client_id) if model.client_id else None,
        title=model.title,
        description=model.description,
        meeting_time=model.meeting_time,
        duration_minutes=model.duration_minutes,
        meeting_link=model.meeting_link,
        reminder_minutes=model.reminder_minutes,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _row_to_meeting_with_client(
    meeting: MeetingModel,
    client: ClientModel | None,
    reminder: ReminderModel | None,
) -> MeetingWithClient:
    return MeetingWithClient(
        **_model_to_meeting(meeting).model_dump(),
        client=_model_to_client(client) if client is not None else None,
        remind_at=reminder.remind_at if reminder is not None else None,
        reminder_dismissed=bool(reminder.is_dismissed) if reminder is not None else False,
    )


def _joined_select(user_id: str):
    return (
        select(MeetingModel, ClientModel, ReminderModel)
        .outerjoin(ClientModel, ClientModel.id == MeetingModel.client_id)
        .outerjoin(ReminderModel, ReminderModel.meeting_id == MeetingModel.id)
        .where(MeetingModel.user_id == uuid.UUID(user_id))
    )


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async CRUD operations for meetings.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def _ensure_client(
        self, session: AsyncSession, user_id: str, client_id: str | None
    ) -> uuid.UUID | None:
        if client_id is None:
            return None
        client_uuid = parse_uuid(client_id)
        if client_uuid is None:
            raise ValueError(f"Client not found: {client_id}")
        stmt = select(ClientModel.id).where(
            ClientModel.user_id == uuid.UUID(user_id),
            ClientModel.id == client_uuid,
        )
        found = (await session.execute(stmt)).scalar_one_or_none()
        if found is None:
            raise ValueError(f"Client not found: {client_id}")
        return found

    async def _load(
        self, session: AsyncSession, user_id: str, meeting_id: str
    ) -> MeetingModel | None:
        meeting_uuid = parse_uuid(meeting_id)
        if meeting_uuid is None:
            return None
        stmt = select(MeetingModel).where(
            MeetingModel.user_id == uuid.UUID(user_id),
            MeetingModel.id == meeting_uuid,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    # ── Meetings ─────────────────────────────────────────────────────────

    async def create_meeting(
        self, user_id: str, data: MeetingCreate, reminder_minutes: int
    ) -> MeetingWithClient:
        """Create a meeting and its reminder atomically.

        Args:
            user_id: Owning user id.
            data: MeetingCreate with the meeting details.
            reminder_minutes: Resolved lead time (data.reminder_minutes or
                the profile default).

        Raises:
            ValueError: If data.client_id is not one of the user's clients.
        """
        async for session in self._session_factory():
            client_uuid = await self._ensure_client(session, user_id, data.client_id)
            meeting = MeetingModel(
                id=uuid.uuid4(),
                user_id=uuid.UUID(user_id),
                client_id=client_uuid,
                title=data.title,
                description=data.description,
                meeting_time=data.meeting_time,
                duration_minutes=data.duration_minutes,
                meeting_link=data.meeting_link,
                reminder_minutes=reminder_minutes,
            )
            session.add(meeting)
            await session.flush()

            session.add(
                ReminderModel(
                    user_id=uuid.UUID(user_id),
                    meeting_id=meeting.id,
                    remind_at=compute_remind_at(data.meeting_time, reminder_minutes),
                )
            )
            await session.commit()

            logger.info(
                "meeting_created",
                meeting_id=str(meeting.id),
                meeting_time=data.meeting_time.isoformat(),
                reminder_minutes=reminder_minutes,
            )
        return await self.get_meeting(user_id, str(meeting.id))  # type: ignore[return-value]

    async def get_meeting(
        self, user_id: str, meeting_id: str
    ) -> MeetingWithClient | None:
        meeting_uuid = parse_uuid(meeting_id)
        if meeting_uuid is None:
            return None
        async for session in self._session_factory():
            stmt = _joined_select(user_id).where(MeetingModel.id == meeting_uuid)
            row = (await session.execute(stmt)).one_or_none()
            if row is None:
                return None
            return _row_to_meeting_with_client(*row)

    async def list_meetings(
        self,
        user_id: str,
        window: MeetingWindow | None = None,
        now: datetime | None = None,
        client_id: str | None = None,
    ) -> list[MeetingWithClient]:
        """List meetings ordered by meeting_time.

        Args:
            user_id: Owning user id.
            window: UPCOMING (meeting_time > now) or PAST (<= now); None for all.
            now: Reference instant for the window filter.
            client_id: Restrict to one client's meetings; an id that is not a
                UUID matches nothing.
        """
        client_uuid = parse_uuid(client_id)
        if client_id is not None and client_uuid is None:
            return []
        async for session in self._session_factory():
            stmt = _joined_select(user_id)
            if window is not None and now is not None:
                if window == MeetingWindow.UPCOMING:
                    stmt = stmt.where(MeetingModel.meeting_time > now)
                else:
                    stmt = stmt.where(MeetingModel.meeting_time <= now)
            if client_uuid is not None:
                stmt = stmt.where(MeetingModel.client_id == client_uuid)
            stmt = stmt.order_by(MeetingModel.meeting_time)
            rows = (await session.execute(stmt)).all()
            return [_row_to_meeting_with_client(*row) for row in rows]

    async def update_meeting(
        self, user_id: str, meeting_id: str, data: MeetingUpdate
    ) -> MeetingWithClient:
        """Apply a partial update and keep the reminder in step.

        If the derived remind_at changes, the reminder is re-armed
        (is_dismissed reset) so a rescheduled meeting alerts again.

        Raises:
            ValueError: If the meeting, or a newly referenced client, does
                not exist for this user.
        """
        async for session in self._session_factory():
            meeting = await self._load(session, user_id, meeting_id)
            if meeting is None:
                raise ValueError(f"Meeting not found: {meeting_id}")

            fields = data.model_dump(exclude_unset=True)
            if "client_id" in fields:
                meeting.client_id = await self._ensure_client(
                    session, user_id, fields.pop("client_id")
                )
            for field, value in fields.items():
                if value is None and field not in _NULLABLE_FIELDS:
                    continue
                setattr(meeting, field, value)

            remind_at = compute_remind_at(meeting.meeting_time, meeting.reminder_minutes)
            stmt = select(ReminderModel).where(ReminderModel.meeting_id == meeting.id)
            reminder = (await session.execute(stmt)).scalar_one_or_none()
            if reminder is None:
                session.add(
                    ReminderModel(
                        user_id=meeting.user_id,
                        meeting_id=meeting.id,
                        remind_at=remind_at,
                    )
                )
            elif reminder.remind_at != remind_at:
                reminder.remind_at = remind_at
                reminder.is_dismissed = False
                reminder.dismissed_at = None
                logger.info(
                    "reminder_rearmed",
                    meeting_id=meeting_id,
                    remind_at=remind_at.isoformat(),
                )

            await session.commit()
        return await self.get_meeting(user_id, meeting_id)  # type: ignore[return-value]

    async def delete_meeting(self, user_id: str, meeting_id: str) -> bool:
        """Delete a meeting; its reminder goes with it (ON DELETE CASCADE)."""
        async for session in self._session_factory():
            meeting = await self._load(session, user_id, meeting_id)
            if meeting is None:
                return False
            await session.delete(meeting)
            await session.commit()
            logger.info("meeting_deleted", meeting_id=meeting_id)
            return True

    async def count_meetings(self, user_id: str) -> int:
        async for session in self._session_factory():
            stmt = select(func.count()).select_from(MeetingModel).where(
                MeetingModel.user_id == uuid.UUID(user_id)
            )
            return (await session.execute(stmt)).scalar_one()
