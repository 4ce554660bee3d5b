"""Reminder repository -- reads joined reminders and persists dismissals.

Reminders are created and re-armed by MeetingRepository alongside their
meeting; this repository only reads them and marks them dismissed.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienter.clients.models import ClientModel
from src.clienter.core.database import parse_uuid
from src.clienter.meetings.models import MeetingModel
from src.clienter.meetings.repository import _row_to_meeting_with_client
from src.clienter.reminders.models import ReminderModel
from src.clienter.reminders.schemas import ReminderWithMeeting

logger = structlog.get_logger(__name__)


def _row_to_reminder(
    reminder: ReminderModel, meeting: MeetingModel, client: ClientModel | None
) -> ReminderWithMeeting:
    return ReminderWithMeeting(
        id=str(reminder.id),
        user_id=str(reminder.user_id),
        meeting_id=str(reminder.meeting_id),
        remind_at=reminder.remind_at,
        is_dismissed=bool(reminder.is_dismissed),
        dismissed_at=reminder.dismissed_at,
        created_at=reminder.created_at,
        meeting=_row_to_meeting_with_client(meeting, client, reminder),
    )


class ReminderRepository:
    """Async reads and dismissals for reminders.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def _list_pending(
        self, user_id: str, since: datetime | None, limit: int | None
    ) -> list[ReminderWithMeeting]:
        async for session in self._session_factory():
            stmt = (
                select(ReminderModel, MeetingModel, ClientModel)
                .join(MeetingModel, MeetingModel.id == ReminderModel.meeting_id)
                .outerjoin(ClientModel, ClientModel.id == MeetingModel.client_id)
                .where(
                    ReminderModel.user_id == uuid.UUID(user_id),
                    ReminderModel.is_dismissed.is_(False),
                )
            )
            if since is not None:
                stmt = stmt.where(ReminderModel.remind_at >= since)
            stmt = stmt.order_by(ReminderModel.remind_at)
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = (await session.execute(stmt)).all()
            return [_row_to_reminder(*row) for row in rows]

    async def list_pending_for_engine(
        self, user_id: str, since: datetime
    ) -> list[ReminderWithMeeting]:
        """Undismissed reminders due at or after `since`, earliest first."""
        return await self._list_pending(user_id, since, None)

    async def list_undismissed(
        self, user_id: str, limit: int = 20
    ) -> list[ReminderWithMeeting]:
        """Notification-centre listing: every undismissed reminder, earliest first."""
        return await self._list_pending(user_id, None, limit)

    async def list_upcoming(
        self, user_id: str, now: datetime, limit: int = 5
    ) -> list[ReminderWithMeeting]:
        return await self._list_pending(user_id, now, limit)

    async def dismiss(
        self, user_id: str, reminder_id: str, dismissed_at: datetime
    ) -> datetime:
        """Mark a reminder dismissed.

        Returns:
            The reminder's remind_at at the moment it was dismissed.

        Raises:
            ValueError: If the reminder does not exist for this user.
        """
        reminder_uuid = parse_uuid(reminder_id)
        if reminder_uuid is None:
            raise ValueError(f"Reminder not found: {reminder_id}")
        async for session in self._session_factory():
            stmt = select(ReminderModel).where(
                ReminderModel.user_id == uuid.UUID(user_id),
                ReminderModel.id == reminder_uuid,
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                raise ValueError(f"Reminder not found: {reminder_id}")
            model.is_dismissed = True
            model.dismissed_at = dismissed_at
            await session.commit()
            logger.info("reminder_dismissed", reminder_id=reminder_id)
            return model.remind_at
