"""Pydantic v2 schemas for reminders and the notifications they produce."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.clienter.meetings.schemas import MeetingWithClient


class Reminder(BaseModel):
    """A scheduled alert tied to exactly one meeting."""

    id: str
    user_id: str
    meeting_id: str
    remind_at: datetime
    is_dismissed: bool = False
    dismissed_at: datetime | None = None
    created_at: datetime | None = None


class ReminderWithMeeting(Reminder):
    """Reminder joined with its meeting and the meeting's client.

    The meeting is always present: a reminder cannot exist without one.
    """

    meeting: MeetingWithClient


class ReminderNotification(BaseModel):
    """One transient alert for a reminder that entered the active window.

    Keyed by reminder_id; it stays visible until acted upon, and for at
    least min_visible_seconds.
    """

    reminder_id: str
    meeting_id: str
    title: str
    meeting_time: datetime
    relative_time: str
    client_name: str | None = None
    meeting_link: str | None = None
    remind_at: datetime
    issued_at: datetime
    min_visible_seconds: int = Field(default=60, ge=0)
