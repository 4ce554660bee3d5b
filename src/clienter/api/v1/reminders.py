"""REST API and WebSocket endpoints for reminders.

REST serves the notification centre (undismissed reminders) and persists
dismissals. The WebSocket mounts a ReminderEngine for the authenticated
user for the life of the connection and streams its notifications.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from pydantic import BaseModel

from src.clienter.api.deps import get_current_user, get_state_repository
from src.clienter.api.v1.meetings import MeetingResponse, _meeting_to_response
from src.clienter.config import get_settings
from src.clienter.core.security import user_context_from_token
from src.clienter.core.user_context import UserContext, set_user_context
from src.clienter.reminders.engine import ReminderDismissError, ReminderEngine
from src.clienter.reminders.notifier import WebSocketNotifier

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/reminders", tags=["reminders"])

# WebSocket close codes: policy violation, internal error
WS_CLOSE_UNAUTHORIZED = 1008
WS_CLOSE_UNAVAILABLE = 1011


# ── Response Schemas ─────────────────────────────────────────────────────────


class ReminderResponse(BaseModel):
    """Response for a reminder with its meeting, datetimes as ISO strings."""

    id: str
    meeting_id: str
    remind_at: str
    is_dismissed: bool = False
    dismissed_at: str | None = None
    meeting: MeetingResponse


class DismissResponse(BaseModel):
    id: str
    is_dismissed: bool = True
    dismissed_at: str


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_reminder_repository(request: Request) -> Any:
    return get_state_repository(request, "reminder_repository", "Reminders")


def _reminder_to_response(reminder: Any) -> ReminderResponse:
    """Convert ReminderWithMeeting to ReminderResponse."""
    return ReminderResponse(
        id=reminder.id,
        meeting_id=reminder.meeting_id,
        remind_at=reminder.remind_at.isoformat(),
        is_dismissed=reminder.is_dismissed,
        dismissed_at=reminder.dismissed_at.isoformat() if reminder.dismissed_at else None,
        meeting=_meeting_to_response(reminder.meeting),
    )


# ── REST Endpoints ───────────────────────────────────────────────────────────


@router.get("", response_model=list[ReminderResponse])
async def list_reminders(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    user: UserContext = Depends(get_current_user),
) -> list[ReminderResponse]:
    """Undismissed reminders, earliest first (notification centre)."""
    repo = _get_reminder_repository(request)
    reminders = await repo.list_undismissed(user.user_id, limit=limit)
    return [_reminder_to_response(r) for r in reminders]


@router.post("/{reminder_id}/dismiss", response_model=DismissResponse)
async def dismiss_reminder(
    reminder_id: str,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> DismissResponse:
    """Persist a dismissal.

    Returns 404 for unknown reminders and 502 when the store rejects the
    write, in which case the client may retry.
    """
    repo = _get_reminder_repository(request)
    dismissed_at = datetime.now(timezone.utc)
    try:
        await repo.dismiss(user.user_id, reminder_id, dismissed_at)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Reminder {reminder_id} not found",
        )
    except Exception:
        logger.warning("reminder_dismiss_write_failed", reminder_id=reminder_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Dismissal could not be saved; retry",
        )
    return DismissResponse(id=reminder_id, dismissed_at=dismissed_at.isoformat())


# ── WebSocket Endpoint ───────────────────────────────────────────────────────


async def _user_timezone(websocket: WebSocket, user: UserContext) -> str:
    profiles = getattr(websocket.app.state, "profile_repository", None)
    if profiles is None:
        return "UTC"
    try:
        profile = await profiles.get_or_create(user.user_id, user.email)
    except Exception:
        logger.warning("websocket.profile_lookup_failed", user_id=user.user_id, exc_info=True)
        return "UTC"
    return profile.timezone


@router.websocket("/ws")
async def reminders_websocket(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    """Live reminder notifications for one user.

    Message formats:
    Receive: { "type": "dismiss", "reminder_id": "..." }
             { "type": "ping" }
    Send:    { "type": "reminder", "notification": {...}, "actions": ["dismiss"] }
             { "type": "reminder_retracted", "reminder_id": "..." }
             { "type": "dismissed", "reminder_id": "..." }
             { "type": "dismiss_failed", "reminder_id": "...", "retry": true }
             { "type": "pong" }
             { "type": "error", "detail": "..." }
    """
    try:
        user = user_context_from_token(token or "")
    except HTTPException:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    store = getattr(websocket.app.state, "reminder_repository", None)
    if store is None:
        await websocket.close(code=WS_CLOSE_UNAVAILABLE)
        return

    # The engine task inherits this context, so its sessions carry the user
    set_user_context(user)
    await websocket.accept()
    logger.info("websocket.connected", user_id=user.user_id)

    settings = get_settings()
    notifier = WebSocketNotifier(websocket)
    engine = ReminderEngine(
        store,
        notifier,
        user.user_id,
        fetch_interval=settings.REMINDER_FETCH_INTERVAL_SECONDS,
        evaluate_interval=settings.REMINDER_EVALUATE_INTERVAL_SECONDS,
        grace_window=settings.reminder_grace_window,
        tz=await _user_timezone(websocket, user),
        min_visible_seconds=settings.REMINDER_NOTIFICATION_MIN_VISIBLE_SECONDS,
    )
    engine.start()

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await notifier.send({"type": "error", "detail": "Invalid JSON"})
                continue

            msg_type = message.get("type", "") if isinstance(message, dict) else ""

            if msg_type == "dismiss":
                reminder_id = message.get("reminder_id")
                if not reminder_id:
                    await notifier.send({"type": "error", "detail": "reminder_id is required"})
                    continue
                try:
                    await engine.dismiss(str(reminder_id))
                except ValueError:
                    await notifier.send({
                        "type": "error",
                        "detail": f"Reminder {reminder_id} not found",
                    })
                except ReminderDismissError:
                    await notifier.send({
                        "type": "dismiss_failed",
                        "reminder_id": reminder_id,
                        "retry": True,
                    })
                else:
                    await notifier.send({"type": "dismissed", "reminder_id": reminder_id})

            elif msg_type == "ping":
                await notifier.send({"type": "pong"})

            else:
                await notifier.send({
                    "type": "error",
                    "detail": f"Unknown message type: {msg_type}",
                })

    except WebSocketDisconnect:
        logger.info("websocket.disconnected", user_id=user.user_id)
    except Exception:
        logger.warning("websocket.error", user_id=user.user_id, exc_info=True)
    finally:
        await engine.stop()
