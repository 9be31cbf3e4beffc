"""
Idle alarm: the presence-check state machine that runs while clocked in.

    DISABLED ──enable──▶ ACTIVE ──alarm interval──▶ PROMPTED
                           ▲                          │
                           │◀──────acknowledge────────┤ snooze window
                           │                          ▼
                           └───────acknowledge───── IDLE ──auto clock-out──▶ FORCED_CLOCKOUT

Every transition first cancels the whole ``TimerSet`` and then starts the
timers of the state it enters, so at most one escalation chain exists.
Persistence of idle rows happens in background tasks that never block a
transition; closing a row waits for its pending create first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from lifetime.client.capabilities import AlertSound, LoggingNotifier, Notifier, TerminalBell
from lifetime.client.scheduler import AsyncioScheduler, Scheduler, TimerSet
from lifetime.core.config import settings
from lifetime.core.exceptions import TrackerError
from lifetime.repository.base import AttendanceRepository
from lifetime.schemas.attendance import IdleRead
from lifetime.utils.time import format_countdown, format_idle_time

logger = logging.getLogger(__name__)

AUTO_CLOCKOUT_NOTE = "Automatically clocked out due to prolonged inactivity."
NOTIFICATION_TITLE = "Idle Alert"
NOTIFICATION_BODY = "Are you still there? Click to confirm you're working."

_PROMPT_TITLES = {
    "prompted": "Are you still there?",
    "idle": "You are now idle",
    "forced_clockout": "You are now idle",
}

ForceClockOut = Callable[[str], Awaitable[None]]


def _pick(value: float | None, default: float) -> float:
    """Explicit override or the configured default; durations must be positive."""
    if value is None:
        return default
    if value <= 0:
        raise ValueError("Alarm durations must be positive")
    return value


class AlarmPhase(str, Enum):
    DISABLED = "disabled"
    ACTIVE = "active"
    PROMPTED = "prompted"
    IDLE = "idle"
    FORCED_CLOCKOUT = "forced_clockout"


class AlarmStatus(BaseModel):
    phase: AlarmPhase
    attendance_id: int | None
    prompt_visible: bool
    prompt_title: str | None
    idle_seconds: int
    idle_display: str
    auto_clockout_seconds_left: int
    auto_clockout_display: str


class IdleAlarm:
    """Presence checks for one signed-in user.

    The owning session calls :meth:`enable` / :meth:`disable` as its
    clocked-in state changes and forwards the user's "I'm here" to
    :meth:`acknowledge`.  *on_force_clock_out* is awaited with the system
    note when the user stays idle for the whole auto clock-out window.
    """

    def __init__(
        self,
        repository: AttendanceRepository,
        user_id: int,
        on_force_clock_out: ForceClockOut,
        scheduler: Scheduler | None = None,
        notifier: Notifier | None = None,
        alert_sound: AlertSound | None = None,
        alarm_interval: float | None = None,
        snooze_window: float | None = None,
        auto_clockout: float | None = None,
        alert_repeat_interval: float | None = None,
    ) -> None:
        self.repository = repository
        self.user_id = user_id
        self.on_force_clock_out = on_force_clock_out
        self.scheduler = scheduler or AsyncioScheduler()
        self.notifier = notifier or LoggingNotifier()
        self.alert_sound = alert_sound or TerminalBell()

        self.alarm_interval = _pick(alarm_interval, settings.ALARM_INTERVAL_SECONDS)
        self.snooze_window = _pick(snooze_window, settings.SNOOZE_WINDOW_SECONDS)
        self.auto_clockout = _pick(auto_clockout, settings.AUTO_CLOCKOUT_SECONDS)
        self.alert_repeat_interval = _pick(
            alert_repeat_interval, settings.ALERT_REPEAT_INTERVAL_SECONDS
        )

        self.timers = TimerSet(self.scheduler)
        self.phase = AlarmPhase.DISABLED
        self.attendance_id: int | None = None
        self.prompt_visible = False
        self.idle_seconds = 0
        self.auto_clockout_seconds_left = self.auto_clockout

        self._idle_started_at: datetime | None = None
        self._idle_record: asyncio.Task[IdleRead | None] | None = None
        self._alert_playing = False
        self._background: set[asyncio.Task[Any]] = set()
        self._notifications_allowed = self._request_notification_permission()

    # ── Public API ───────────────────────────────────────────────────
    def enable(self, attendance_id: int) -> None:
        """Start presence checks for the open attendance record."""
        if self.phase is not AlarmPhase.DISABLED:
            if (
                attendance_id == self.attendance_id
                and self.phase is not AlarmPhase.FORCED_CLOCKOUT
            ):
                return
            self._teardown()
        self.attendance_id = attendance_id
        logger.info("Idle alarm enabled for attendance %d", attendance_id)
        self._enter_active()

    def disable(self) -> None:
        """Stop everything; an open idle record is closed at the current time."""
        if self.phase is AlarmPhase.DISABLED:
            return
        self._teardown()
        self.phase = AlarmPhase.DISABLED
        self.attendance_id = None
        logger.info("Idle alarm disabled")

    def acknowledge(self) -> bool:
        """The user confirmed presence.  Returns whether it changed anything."""
        if self.phase is AlarmPhase.PROMPTED:
            logger.info("Presence confirmed before the snooze window elapsed")
        elif self.phase is AlarmPhase.IDLE:
            self._refresh_idle_counters()
            logger.info("Presence confirmed after %ds idle", self.idle_seconds)
            self._close_idle_in_background(self.scheduler.now(), self.idle_seconds)
        else:
            return False
        self._enter_active()
        return True

    def status(self) -> AlarmStatus:
        if self.phase is AlarmPhase.IDLE:
            self._refresh_idle_counters()
        return AlarmStatus(
            phase=self.phase,
            attendance_id=self.attendance_id,
            prompt_visible=self.prompt_visible,
            prompt_title=_PROMPT_TITLES.get(self.phase.value) if self.prompt_visible else None,
            idle_seconds=self.idle_seconds,
            idle_display=format_idle_time(self.idle_seconds),
            auto_clockout_seconds_left=round(self.auto_clockout_seconds_left),
            auto_clockout_display=format_countdown(self.auto_clockout_seconds_left),
        )

    async def flush(self) -> None:
        """Wait until every background write has finished."""
        while self._background:
            await asyncio.wait(set(self._background))

    # ── Transitions ──────────────────────────────────────────────────
    def _enter_active(self) -> None:
        self.timers.cancel_all()
        self._stop_alert()
        self._dismiss_prompt()
        self._reset_idle_counters()
        self.phase = AlarmPhase.ACTIVE
        self.timers.start_timeout("alarm", self.alarm_interval, self._on_alarm_due)

    def _on_alarm_due(self) -> None:
        if self.phase is not AlarmPhase.ACTIVE:
            return
        self.timers.cancel_all()
        self.phase = AlarmPhase.PROMPTED
        self.prompt_visible = True
        self._show_notification()
        logger.info("Presence prompt shown for attendance %s", self.attendance_id)
        self.timers.start_timeout("snooze", self.snooze_window, self._on_snooze_expired)

    def _on_snooze_expired(self) -> None:
        if self.phase is not AlarmPhase.PROMPTED:
            return
        self.timers.cancel_all()
        self.phase = AlarmPhase.IDLE
        started_at = self.scheduler.now()
        self._idle_started_at = started_at
        self.idle_seconds = 0
        self.auto_clockout_seconds_left = self.auto_clockout
        logger.info("No answer to the presence prompt, marking idle")

        if self.attendance_id is not None:
            self._idle_record = self._spawn(
                self._create_idle_record(self.attendance_id, started_at)
            )

        self.timers.start_interval("idle_tick", 1, self._refresh_idle_counters)
        self._start_alert()
        self.timers.start_timeout("auto_clockout", self.auto_clockout, self._on_auto_clockout_due)

    def _on_auto_clockout_due(self) -> None:
        if self.phase is not AlarmPhase.IDLE:
            return
        self._refresh_idle_counters()
        self.timers.cancel_all()
        self.phase = AlarmPhase.FORCED_CLOCKOUT
        logger.warning("Idle for %ds, clocking out automatically", self.idle_seconds)
        self._spawn(
            self._force_clock_out(self._take_idle_record(), self.scheduler.now(), self.idle_seconds)
        )

    async def _force_clock_out(
        self,
        idle_record: asyncio.Task[IdleRead | None] | None,
        ended_at: datetime,
        duration: int,
    ) -> None:
        if idle_record is not None:
            try:
                await self._close_idle_record(idle_record, ended_at, duration)
            except Exception:
                logger.exception("Closing the idle record before auto clock-out failed")
        try:
            await self.on_force_clock_out(AUTO_CLOCKOUT_NOTE)
        except Exception:
            logger.exception("Automatic clock-out failed")
        self._stop_alert()
        self._dismiss_prompt()
        if self.phase is AlarmPhase.FORCED_CLOCKOUT:
            self.phase = AlarmPhase.DISABLED
            self.attendance_id = None
            self._reset_idle_counters()

    def _teardown(self) -> None:
        self.timers.cancel_all()
        self._stop_alert()
        self._dismiss_prompt()
        if self._idle_record is not None and self._idle_started_at is not None:
            now = self.scheduler.now()
            duration = round((now - self._idle_started_at).total_seconds())
            self._close_idle_in_background(now, duration)
        self._reset_idle_counters()

    # ── Idle records ─────────────────────────────────────────────────
    async def _create_idle_record(self, attendance_id: int, started_at: datetime) -> IdleRead | None:
        try:
            record = await self.repository.create_idle_record(
                self.user_id, attendance_id, started_at
            )
        except TrackerError as exc:
            logger.error("Failed to log idle start: %s", exc)
            return None
        logger.info("Idle record %d opened", record.id)
        return record

    async def _close_idle_record(
        self,
        idle_record: asyncio.Task[IdleRead | None],
        ended_at: datetime,
        duration: int,
    ) -> None:
        record = await idle_record
        if record is None:
            return
        try:
            await self.repository.update_idle_record(record.id, ended_at, duration)
        except TrackerError as exc:
            logger.error("Failed to update idle record %d: %s", record.id, exc)
            return
        logger.info("Idle record %d closed after %ds", record.id, duration)

    def _close_idle_in_background(self, ended_at: datetime, duration: int) -> None:
        idle_record = self._take_idle_record()
        if idle_record is not None:
            self._spawn(self._close_idle_record(idle_record, ended_at, duration))

    def _take_idle_record(self) -> asyncio.Task[IdleRead | None] | None:
        idle_record, self._idle_record = self._idle_record, None
        return idle_record

    # ── Counters ─────────────────────────────────────────────────────
    def _refresh_idle_counters(self) -> None:
        if self._idle_started_at is None:
            return
        elapsed = (self.scheduler.now() - self._idle_started_at).total_seconds()
        self.idle_seconds = max(0, round(elapsed))
        self.auto_clockout_seconds_left = max(0.0, self.auto_clockout - elapsed)

    def _reset_idle_counters(self) -> None:
        self._idle_started_at = None
        self.idle_seconds = 0
        self.auto_clockout_seconds_left = self.auto_clockout

    # ── Capabilities ─────────────────────────────────────────────────
    def _request_notification_permission(self) -> bool:
        try:
            return self.notifier.request_permission()
        except Exception as e:
            logger.warning("Notification permission request failed: %s", e)
            return False

    def _show_notification(self) -> None:
        if not self._notifications_allowed:
            return
        try:
            self.notifier.show(NOTIFICATION_TITLE, NOTIFICATION_BODY)
        except Exception as e:
            logger.warning("Could not show idle notification: %s", e)

    def _dismiss_prompt(self) -> None:
        self.prompt_visible = False
        try:
            self.notifier.dismiss()
        except Exception as e:
            logger.warning("Could not dismiss idle notification: %s", e)

    def _ring(self) -> None:
        try:
            self.alert_sound.play()
        except Exception as e:
            logger.warning("Error playing idle alert: %s", e)

    def _start_alert(self) -> None:
        self._alert_playing = True
        self._ring()
        self.timers.start_interval("alert", self.alert_repeat_interval, self._ring)

    def _stop_alert(self) -> None:
        self.timers.cancel("alert")
        if not self._alert_playing:
            return
        self._alert_playing = False
        try:
            self.alert_sound.stop()
        except Exception as e:
            logger.warning("Error stopping idle alert: %s", e)

    # ── Background tasks ─────────────────────────────────────────────
    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Idle alarm background task failed", exc_info=task.exception())
