"""REST API endpoints for meetings.

Provides scheduling, listing (upcoming / past), detail, rescheduling and
deletion. Every meeting owns exactly one reminder: it is created with the
meeting, re-armed when the meeting is rescheduled and removed with it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.clienter.api.deps import get_current_user, get_state_repository
from src.clienter.config import get_settings
from src.clienter.core.user_context import UserContext
from src.clienter.meetings.schemas import MeetingCreate, MeetingUpdate, MeetingWindow

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class MeetingResponse(BaseModel):
    """Response for meeting data, serializes datetimes to ISO strings."""

    id: str
    title: str
    description: str | None = None
    client_id: str | None = None
    client_name: str | None = None
    meeting_time: str
    ends_at: str
    duration_minutes: int = 60
    meeting_link: str | None = None
    reminder_minutes: int = 15
    remind_at: str | None = None
    reminder_dismissed: bool = False
    created_at: str | None = None
    updated_at: str | None = None


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_meeting_repository(request: Request) -> Any:
    return get_state_repository(request, "meeting_repository", "Meeting scheduling")


async def _default_reminder_minutes(request: Request, user: UserContext) -> int:
    """Lead time from the user's profile; the configured default without one."""
    profiles = getattr(request.app.state, "profile_repository", None)
    if profiles is None:
        return get_settings().DEFAULT_REMINDER_MINUTES
    profile = await profiles.get_or_create(user.user_id, user.email)
    return profile.default_reminder_minutes


# ── Conversion Helpers ───────────────────────────────────────────────────────


def _meeting_to_response(meeting: Any) -> MeetingResponse:
    """Convert MeetingWithClient to MeetingResponse."""
    return MeetingResponse(
        id=meeting.id,
        title=meeting.title,
        description=meeting.description,
        client_id=meeting.client_id,
        client_name=meeting.client.name if meeting.client else None,
        meeting_time=meeting.meeting_time.isoformat(),
        ends_at=meeting.ends_at.isoformat(),
        duration_minutes=meeting.duration_minutes,
        meeting_link=meeting.meeting_link,
        reminder_minutes=meeting.reminder_minutes,
        remind_at=meeting.remind_at.isoformat() if meeting.remind_at else None,
        reminder_dismissed=meeting.reminder_dismissed,
        created_at=meeting.created_at.isoformat() if meeting.created_at else None,
        updated_at=meeting.updated_at.isoformat() if meeting.updated_at else None,
    )


def _not_found(meeting_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Meeting {meeting_id} not found",
    )


# ── Meeting Endpoints ────────────────────────────────────────────────────────


@router.post("", response_model=MeetingResponse, status_code=201)
async def create_meeting(
    body: MeetingCreate,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> MeetingResponse:
    """Schedule a meeting and its reminder.

    reminder_minutes defaults to the profile's default_reminder_minutes.
    """
    repo = _get_meeting_repository(request)
    reminder_minutes = body.reminder_minutes
    if reminder_minutes is None:
        reminder_minutes = await _default_reminder_minutes(request, user)
    try:
        meeting = await repo.create_meeting(user.user_id, body, reminder_minutes)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return _meeting_to_response(meeting)


@router.get("", response_model=list[MeetingResponse])
async def list_meetings(
    request: Request,
    when: MeetingWindow | None = Query(None, description="upcoming or past"),
    client_id: str | None = Query(None),
    user: UserContext = Depends(get_current_user),
) -> list[MeetingResponse]:
    """List meetings ordered by meeting time."""
    repo = _get_meeting_repository(request)
    meetings = await repo.list_meetings(
        user.user_id,
        window=when,
        now=datetime.now(timezone.utc),
        client_id=client_id,
    )
    return [_meeting_to_response(m) for m in meetings]


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> MeetingResponse:
    repo = _get_meeting_repository(request)
    meeting = await repo.get_meeting(user.user_id, meeting_id)
    if meeting is None:
        raise _not_found(meeting_id)
    return _meeting_to_response(meeting)


@router.patch("/{meeting_id}", response_model=MeetingResponse)
async def update_meeting(
    meeting_id: str,
    body: MeetingUpdate,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> MeetingResponse:
    """Partial update; a changed reminder time re-arms the reminder."""
    repo = _get_meeting_repository(request)
    try:
        meeting = await repo.update_meeting(user.user_id, meeting_id, body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return _meeting_to_response(meeting)


@router.delete("/{meeting_id}", status_code=204)
async def delete_meeting(
    meeting_id: str,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> None:
    """Delete a meeting together with its reminder."""
    repo = _get_meeting_repository(request)
    if not await repo.delete_meeting(user.user_id, meeting_id):
        raise _not_found(meeting_id)
