"""Notification sinks for the reminder engine.

ReminderNotifier is the seam the engine emits through; WebSocketNotifier
pushes each notification as a JSON message over the user's open socket.
"""

from __future__ import annotations

from typing import Any, Protocol

import structlog
from starlette.websockets import WebSocket

from src.clienter.reminders.schemas import ReminderNotification

logger = structlog.get_logger(__name__)


class ReminderNotifier(Protocol):
    """Surface for transient reminder alerts, keyed by reminder id."""

    async def notify(self, notification: ReminderNotification) -> None: ...

    async def retract(self, reminder_id: str) -> None: ...


class WebSocketNotifier:
    """Sends reminder messages to a single WebSocket connection.

    Message formats:
        { "type": "reminder", "notification": {...}, "actions": ["dismiss"] }
        { "type": "reminder_retracted", "reminder_id": "..." }
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send(self, message: dict[str, Any]) -> None:
        await self._websocket.send_json(message)

    async def notify(self, notification: ReminderNotification) -> None:
        await self.send({
            "type": "reminder",
            "notification": notification.model_dump(mode="json"),
            "actions": ["dismiss"],
        })
        logger.debug("reminder_notified", reminder_id=notification.reminder_id)

    async def retract(self, reminder_id: str) -> None:
        await self.send({"type": "reminder_retracted", "reminder_id": reminder_id})
