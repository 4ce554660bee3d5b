"""Pydantic v2 schemas for meetings.

The reminder's due time is derived here (compute_remind_at) because the
lead time is a property of the meeting; reminders.schemas builds on these
types for the joined reminder payload.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from src.clienter.clients.schemas import Client


def compute_remind_at(meeting_time: datetime, reminder_minutes: int) -> datetime:
    """Due time of a meeting's reminder: meeting time minus lead time."""
    return meeting_time - timedelta(minutes=reminder_minutes)


def _assume_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Naive datetimes from forms are taken as UTC
UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class MeetingWindow(str, Enum):
    """List filter relative to now."""

    UPCOMING = "upcoming"
    PAST = "past"


# ── Request Models ───────────────────────────────────────────────────────────


class MeetingCreate(BaseModel):
    """Request schema for scheduling a meeting.

    reminder_minutes defaults to the user's profile setting when omitted.
    """

    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    client_id: str | None = None
    meeting_time: UtcDatetime
    duration_minutes: int = Field(60, gt=0, le=24 * 60)
    meeting_link: str | None = Field(None, max_length=1000)
    reminder_minutes: int | None = Field(None, ge=0, le=7 * 24 * 60)


class MeetingUpdate(BaseModel):
    """Partial update; changing meeting_time or reminder_minutes re-arms the reminder."""

    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = None
    client_id: str | None = None
    meeting_time: UtcDatetime | None = None
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    meeting_link: str | None = Field(None, max_length=1000)
    reminder_minutes: int | None = Field(None, ge=0, le=7 * 24 * 60)


# ── Meeting Models ───────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """Full meeting entity."""

    id: str
    user_id: str
    client_id: str | None = None
    title: str
    description: str | None = None
    meeting_time: datetime
    duration_minutes: int = 60
    meeting_link: str | None = None
    reminder_minutes: int = 15
    created_at: datetime
    updated_at: datetime | None = None

    @property
    def ends_at(self) -> datetime:
        return self.meeting_time + timedelta(minutes=self.duration_minutes)


class MeetingWithClient(Meeting):
    """Meeting joined with its client and the state of its reminder."""

    client: Client | None = None
    remind_at: datetime | None = None
    reminder_dismissed: bool = False
