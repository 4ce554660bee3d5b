"""ReminderEngine -- per-user working set of reminders and the active window.

The engine keeps two collections for one user:

- reminders: undismissed reminders due no earlier than now minus the grace
  window, refreshed from the store on the fetch cadence.
- active_reminders: the subset whose due time has passed by at most the
  grace window. It is re-derived from reminders on every evaluation, never
  mutated in place.

Notifications come from the difference between consecutive active sets: a
reminder entering the set is notified exactly once; a reminder leaving it
because it vanished from the working set (dismissed elsewhere, meeting
deleted) is retracted. Leaving through expiry retracts nothing.

A single asyncio task drives both cadences. Each tick runs the fetch phase
when the fetch interval has elapsed (always on the first tick) and the
evaluate phase otherwise; a successful fetch evaluates as part of replacing
the working set.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog

from src.clienter.core.monitoring import (
    reminder_dismissals_total,
    reminder_engines_active,
    reminder_notifications_total,
    reminder_refresh_failures_total,
)
from src.clienter.formatting import format_relative_time
from src.clienter.reminders.notifier import ReminderNotifier
from src.clienter.reminders.schemas import ReminderNotification, ReminderWithMeeting

logger = structlog.get_logger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

GRACE_WINDOW = timedelta(minutes=5)
FETCH_INTERVAL_SECONDS = 30.0
EVALUATE_INTERVAL_SECONDS = 10.0
MIN_VISIBLE_SECONDS = 60


class ReminderDismissError(Exception):
    """The dismissal could not be persisted; engine state is unchanged."""

    def __init__(self, reminder_id: str) -> None:
        super().__init__(f"Failed to dismiss reminder {reminder_id}")
        self.reminder_id = reminder_id


class ReminderStore(Protocol):
    """The subset of ReminderRepository the engine depends on."""

    async def list_pending_for_engine(
        self, user_id: str, since: datetime
    ) -> list[ReminderWithMeeting]: ...

    async def dismiss(
        self, user_id: str, reminder_id: str, dismissed_at: datetime
    ) -> datetime: ...


@dataclass(frozen=True)
class ActivationDiff:
    """Transition between two consecutive active sets."""

    entered: tuple[ReminderWithMeeting, ...] = ()
    left: tuple[ReminderWithMeeting, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.entered or self.left)


# ── Window Arithmetic ────────────────────────────────────────────────────────


def fetch_cutoff(now: datetime, grace_window: timedelta = GRACE_WINDOW) -> datetime:
    """Earliest remind_at the working set keeps (inclusive)."""
    return now - grace_window


def is_within_window(
    remind_at: datetime, now: datetime, grace_window: timedelta = GRACE_WINDOW
) -> bool:
    """True when 0 <= now - remind_at <= grace_window (both ends inclusive)."""
    elapsed = now - remind_at
    return timedelta(0) <= elapsed <= grace_window


def select_active(
    reminders: Iterable[ReminderWithMeeting],
    now: datetime,
    grace_window: timedelta = GRACE_WINDOW,
) -> list[ReminderWithMeeting]:
    return [
        r for r in reminders
        if not r.is_dismissed and is_within_window(r.remind_at, now, grace_window)
    ]


def build_notification(
    reminder: ReminderWithMeeting,
    now: datetime,
    tz: str = "UTC",
    min_visible_seconds: int = MIN_VISIBLE_SECONDS,
) -> ReminderNotification:
    """Render the notification payload for a reminder entering the window."""
    meeting = reminder.meeting
    return ReminderNotification(
        reminder_id=reminder.id,
        meeting_id=reminder.meeting_id,
        title=meeting.title,
        meeting_time=meeting.meeting_time,
        relative_time=format_relative_time(meeting.meeting_time, tz, now),
        client_name=meeting.client.name if meeting.client else None,
        meeting_link=meeting.meeting_link,
        remind_at=reminder.remind_at,
        issued_at=now,
        min_visible_seconds=min_visible_seconds,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Engine ───────────────────────────────────────────────────────────────────


class ReminderEngine:
    """Keeps one user's reminders current and notifies on window entry.

    Args:
        store: Reminder store (ReminderRepository or a test double).
        notifier: Sink for notifications and retractions.
        user_id: The user whose reminders this engine tracks.
        fetch_interval: Seconds between fetches from the store.
        evaluate_interval: Seconds between scheduler ticks.
        grace_window: How long past remind_at a reminder stays active.
        clock: Returns the current aware datetime.
        monotonic: Returns monotonic seconds for the fetch cadence.
        tz: IANA timezone for the notification's relative-time label.
        min_visible_seconds: Minimum time a notification stays on screen.
    """

    def __init__(
        self,
        store: ReminderStore,
        notifier: ReminderNotifier,
        user_id: str,
        *,
        fetch_interval: float = FETCH_INTERVAL_SECONDS,
        evaluate_interval: float = EVALUATE_INTERVAL_SECONDS,
        grace_window: timedelta = GRACE_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        tz: str = "UTC",
        min_visible_seconds: int = MIN_VISIBLE_SECONDS,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._user_id = user_id
        self._fetch_interval = fetch_interval
        self._evaluate_interval = evaluate_interval
        self._grace_window = grace_window
        self._clock = clock
        self._monotonic = monotonic
        self._tz = tz
        self._min_visible_seconds = min_visible_seconds

        self._reminders: dict[str, ReminderWithMeeting] = {}
        self._active: dict[str, ReminderWithMeeting] = {}
        # reminder id -> remind_at the store reported at dismissal; a
        # re-armed reminder keeps its id but gets a new remind_at
        self._dismissed: dict[str, datetime] = {}
        self._last_fetch: float | None = None
        self._task: asyncio.Task | None = None
        self._closed = False

    # ── State ────────────────────────────────────────────────────────────

    @property
    def reminders(self) -> list[ReminderWithMeeting]:
        return list(self._reminders.values())

    @property
    def active_reminders(self) -> list[ReminderWithMeeting]:
        return list(self._active.values())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _locally_dismissed(self, reminder: ReminderWithMeeting) -> bool:
        return self._dismissed.get(reminder.id) == reminder.remind_at

    # ── Phases ───────────────────────────────────────────────────────────

    async def refresh(self) -> ActivationDiff | None:
        """Fetch phase: replace the working set from the store, then evaluate.

        Returns the resulting diff, or None when the fetch failed and the
        previous working set was kept.
        """
        if self._closed:
            return None
        now = self._clock()
        try:
            fetched = await self._store.list_pending_for_engine(
                self._user_id, fetch_cutoff(now, self._grace_window)
            )
        except Exception:
            reminder_refresh_failures_total.inc()
            logger.warning(
                "reminder_refresh_failed",
                user_id=self._user_id,
                kept=len(self._reminders),
                exc_info=True,
            )
            return None
        if self._closed:
            return None

        fetched_ids = {r.id for r in fetched}
        self._dismissed = {
            rid: at for rid, at in self._dismissed.items() if rid in fetched_ids
        }
        self._reminders = {
            r.id: r
            for r in fetched
            if not r.is_dismissed and not self._locally_dismissed(r)
        }
        logger.debug(
            "reminders_refreshed", user_id=self._user_id, count=len(self._reminders)
        )
        return await self.step(now)

    def evaluate(self, now: datetime | None = None) -> ActivationDiff:
        """Re-derive active_reminders from reminders at `now`.

        Idempotent: calling it again with an unchanged working set and the
        same `now` returns an empty diff and leaves the active set as is.
        """
        now = now or self._clock()
        active = {
            r.id: r for r in select_active(self._reminders.values(), now, self._grace_window)
        }
        diff = ActivationDiff(
            entered=tuple(r for rid, r in active.items() if rid not in self._active),
            left=tuple(r for rid, r in self._active.items() if rid not in active),
        )
        self._active = active
        return diff

    async def step(self, now: datetime | None = None) -> ActivationDiff | None:
        """Evaluate phase: evaluate and emit notifications for the diff."""
        if self._closed:
            return None
        now = now or self._clock()
        diff = self.evaluate(now)
        if diff.changed:
            await self._emit(diff, now)
        return diff

    async def _emit(self, diff: ActivationDiff, now: datetime) -> None:
        for reminder in diff.entered:
            notification = build_notification(
                reminder, now, self._tz, self._min_visible_seconds
            )
            try:
                await self._notifier.notify(notification)
                reminder_notifications_total.inc()
                logger.info(
                    "reminder_notification_sent",
                    user_id=self._user_id,
                    reminder_id=reminder.id,
                    meeting_id=reminder.meeting_id,
                )
            except Exception:
                logger.warning(
                    "reminder_notify_failed", reminder_id=reminder.id, exc_info=True
                )

        for reminder in diff.left:
            # Expired by time: the notification stays until acted upon
            if not is_within_window(reminder.remind_at, now, self._grace_window):
                continue
            await self._retract(reminder.id)

    async def _retract(self, reminder_id: str) -> None:
        try:
            await self._notifier.retract(reminder_id)
        except Exception:
            logger.warning("reminder_retract_failed", reminder_id=reminder_id, exc_info=True)

    # ── Dismissal ────────────────────────────────────────────────────────

    async def dismiss(self, reminder_id: str) -> None:
        """Persist a dismissal, then drop the reminder from both sets.

        Raises:
            ValueError: If the reminder does not exist for this user. Nothing
                in the engine changes and a retry cannot succeed.
            ReminderDismissError: If the store write failed. Nothing in the
                engine changes, so the caller may offer a retry.
        """
        now = self._clock()
        try:
            remind_at = await self._store.dismiss(self._user_id, reminder_id, now)
        except ValueError:
            reminder_dismissals_total.labels(outcome="not_found").inc()
            logger.info(
                "reminder_dismiss_not_found", user_id=self._user_id, reminder_id=reminder_id
            )
            raise
        except Exception as exc:
            reminder_dismissals_total.labels(outcome="failure").inc()
            logger.warning(
                "reminder_dismiss_failed",
                user_id=self._user_id,
                reminder_id=reminder_id,
                exc_info=True,
            )
            raise ReminderDismissError(reminder_id) from exc

        reminder_dismissals_total.labels(outcome="success").inc()
        self._reminders.pop(reminder_id, None)
        self._dismissed[reminder_id] = remind_at
        if self._active.pop(reminder_id, None) is not None:
            await self._retract(reminder_id)
        logger.info("reminder_dismissed", user_id=self._user_id, reminder_id=reminder_id)

    # ── Scheduler ────────────────────────────────────────────────────────

    async def tick(self) -> None:
        """One scheduler tick: fetch phase when due, evaluate phase otherwise."""
        mono = self._monotonic()
        if self._last_fetch is None or mono - self._last_fetch >= self._fetch_interval:
            self._last_fetch = mono
            if await self.refresh() is not None:
                return
        await self.step()

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("reminder_engine_tick_failed", user_id=self._user_id, exc_info=True)
            await asyncio.sleep(self._evaluate_interval)

    def start(self) -> None:
        """Start the scheduler task; the first tick fetches immediately."""
        if self._closed:
            raise RuntimeError("ReminderEngine has been stopped")
        if self.running:
            return
        self._task = asyncio.create_task(
            self._run(), name=f"reminder_engine_{self._user_id}"
        )
        reminder_engines_active.inc()
        logger.info("reminder_engine_started", user_id=self._user_id)

    async def stop(self) -> None:
        """Cancel the scheduler task and wait for it to finish."""
        self._closed = True
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        reminder_engines_active.dec()
        logger.info("reminder_engine_stopped", user_id=self._user_id)
