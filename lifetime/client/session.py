"""
Session controller — the dashboard logic of a signed-in user.

Owns the authoritative "clocked in" flag and the cached attendance / idle
rows.  The row lists are never patched locally: every write is followed by
a ``refresh()`` that re-reads both lists and re-syncs the idle alarm.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo

from lifetime.client.capabilities import AlertSound, AtexitUnloadHook, Notifier, UnloadHook
from lifetime.client.idle_alarm import IdleAlarm
from lifetime.client.scheduler import AsyncioScheduler, Scheduler, TimerSet
from lifetime.client.unload import UnloadBeacon
from lifetime.core.config import settings
from lifetime.core.exceptions import ConflictError, NotFoundError, TrackerError, ValidationError
from lifetime.repository.base import AttendanceRepository
from lifetime.schemas.attendance import AttendanceRead, IdleRead
from lifetime.schemas.user import UserRead
from lifetime.utils import reports
from lifetime.utils.time import (calculate_duration, format_datetime_for_db,
                                 format_seconds_to_hhmmss)

logger = logging.getLogger(__name__)

FETCH_ERROR = "Failed to fetch data. Please try again."
CLOCK_IN_ERROR = "Clock in failed. Please try again."
SIGN_OUT_ERROR = "Could not clock you out. Please check your connection and try again."


class SessionController:
    def __init__(
        self,
        user: UserRead,
        repository: AttendanceRepository,
        scheduler: Scheduler | None = None,
        notifier: Notifier | None = None,
        alert_sound: AlertSound | None = None,
        unload_hook: UnloadHook | None = None,
        unload_beacon: UnloadBeacon | None = None,
        tz: tzinfo | None = None,
        **alarm_options: float,
    ) -> None:
        self.user = user
        self.repository = repository
        self.scheduler = scheduler or AsyncioScheduler()
        self.unload_hook = unload_hook or AtexitUnloadHook()
        self.unload_beacon = unload_beacon
        self.tz = tz
        self.timers = TimerSet(self.scheduler)
        self.alarm = IdleAlarm(
            repository,
            user.id,
            self.force_clock_out,
            scheduler=self.scheduler,
            notifier=notifier,
            alert_sound=alert_sound,
            **alarm_options,
        )

        self.records: list[AttendanceRead] = []
        self.idle_records: list[IdleRead] = []
        self.is_clocked_in = False
        self.is_loading = False
        self.error: str | None = None
        self.elapsed_time: str | None = None
        self.started = False
        self.signed_out = False

    # ── Lifecycle ────────────────────────────────────────────────────
    async def start(self) -> None:
        """Load records, begin the one-second session clock, hook unload."""
        if self.started:
            return
        self.started = True
        self.unload_hook.register(self.handle_page_hide)
        self.timers.start_interval("elapsed", 1, self._tick)
        await self.refresh()

    async def close(self) -> None:
        """Stop the clock and the idle alarm and wait for pending writes."""
        self.timers.cancel_all()
        if self.started:
            self.unload_hook.unregister(self.handle_page_hide)
            self.started = False
        self.alarm.disable()
        await self.alarm.flush()

    # ── Derived state ────────────────────────────────────────────────
    @property
    def current_record(self) -> AttendanceRead | None:
        if not self.is_clocked_in:
            return None
        return next((r for r in self.records if r.clock_out is None), None)

    @property
    def current_attendance_id(self) -> int | None:
        record = self.current_record
        return record.id if record else None

    def compute_elapsed(self, now: datetime | None = None) -> str | None:
        """Time since clock-in as ``HH:MM:SS``; ``None`` while clocked out."""
        record = self.current_record
        if record is None:
            return None
        now = now or self.scheduler.now()
        return format_seconds_to_hhmmss((now - record.clock_in).total_seconds())

    def _tick(self) -> None:
        self.elapsed_time = self.compute_elapsed()

    # ── Fetch ────────────────────────────────────────────────────────
    async def refresh(self) -> bool:
        """Re-read both lists.  On failure the previous state is kept."""
        self.is_loading = True
        try:
            records = await self.repository.list_attendance(self.user.id)
            idle_records = await self.repository.list_idle(self.user.id)
        except TrackerError as exc:
            logger.error("Failed to fetch records for %s: %s", self.user.userid, exc)
            self.error = FETCH_ERROR
            return False
        finally:
            self.is_loading = False

        self.error = None
        self.records = records
        self.idle_records = idle_records
        self.is_clocked_in = bool(records) and records[0].clock_out is None
        self._sync_alarm()
        self._tick()
        return True

    def _sync_alarm(self) -> None:
        attendance_id = self.current_attendance_id
        if attendance_id is not None:
            self.alarm.enable(attendance_id)
        else:
            self.alarm.disable()

    # ── Clock in / out ───────────────────────────────────────────────
    async def clock_in(self) -> AttendanceRead:
        self.error = None
        if self.is_clocked_in:
            self.error = CLOCK_IN_ERROR
            raise ConflictError("Already clocked in")
        try:
            record = await self.repository.create_attendance(self.user.id, self.scheduler.now())
        except TrackerError as exc:
            logger.error("Clock in failed for %s: %s", self.user.userid, exc)
            self.error = CLOCK_IN_ERROR
            raise
        logger.info("%s clocked in (record %d)", self.user.userid, record.id)
        await self.refresh()
        return record

    async def clock_out(self, note: str | None = None) -> None:
        self.error = None
        try:
            note = self._clean_note(note)
            await self._close_open_record(note)
        except TrackerError as exc:
            logger.error("Clock out failed for %s: %s", self.user.userid, exc)
            self.error = exc.message
            raise
        self._mark_clocked_out()
        await self.refresh()

    async def force_clock_out(self, reason: str) -> None:
        """Clock-out issued by the idle alarm: no confirmation, failures only logged."""
        try:
            await self._close_open_record(reason)
        except TrackerError as exc:
            logger.error("Automatic clock-out failed for %s: %s", self.user.userid, exc)
        else:
            self._mark_clocked_out()
        await self.refresh()

    def _mark_clocked_out(self) -> None:
        # holds even when the refresh that follows fails
        self.is_clocked_in = False
        self._sync_alarm()
        self._tick()

    async def _close_open_record(self, note: str | None) -> None:
        open_record = await self.repository.find_open_attendance(self.user.id)
        if open_record is None:
            raise NotFoundError("Could not find an open clock-in record.")
        clock_out = self.scheduler.now()
        total_time = calculate_duration(open_record.clock_in, clock_out)
        await self.repository.update_attendance(open_record.id, clock_out, total_time, note)
        logger.info(
            "%s clocked out (record %d, %s)", self.user.userid, open_record.id, total_time
        )

    @staticmethod
    def _clean_note(note: str | None) -> str | None:
        if note is None:
            return None
        note = note.strip()
        if len(note) > settings.NOTE_MAX_LENGTH:
            raise ValidationError(
                f"Note must not exceed {settings.NOTE_MAX_LENGTH} characters"
            )
        return note or None

    # ── Sign out / unload ────────────────────────────────────────────
    async def sign_out(self) -> bool:
        """Clock out if needed, then stop.  Returns ``False`` if the clock-out failed."""
        self.error = None
        try:
            record = await self.repository.find_open_attendance(self.user.id)
            if record is not None:
                clock_out = self.scheduler.now()
                await self.repository.update_attendance(
                    record.id, clock_out, calculate_duration(record.clock_in, clock_out)
                )
        except ConflictError:
            logger.info("Open record was closed elsewhere before sign out")
        except TrackerError as exc:
            logger.error("Failed to clock out during sign out: %s", exc)
            self.error = SIGN_OUT_ERROR
            return False
        else:
            if record is None and self.is_clocked_in:
                logger.warning("Clocked in but no open record was found. Signing out anyway.")

        await self.close()
        self.is_clocked_in = False
        self.elapsed_time = None
        self.signed_out = True
        logger.info("%s signed out", self.user.userid)
        return True

    def handle_page_hide(self) -> None:
        """Fire-and-forget clock-out while the host goes away."""
        record = self.current_record
        if record is None:
            return
        if self.unload_beacon is None:
            logger.warning("No unload beacon configured; record %d stays open", record.id)
            return
        clock_out = self.scheduler.now()
        self.unload_beacon.dispatch(
            record.id,
            {
                "clock_out": format_datetime_for_db(clock_out),
                "total_time": calculate_duration(record.clock_in, clock_out),
            },
        )

    # ── Dashboard views ──────────────────────────────────────────────
    def filtered_records(
        self, start: str | date | None = None, end: str | date | None = None
    ) -> list[AttendanceRead]:
        return reports.filter_records_by_date_range(self.records, start, end, self.tz)

    def filtered_idle_records(
        self, start: str | date | None = None, end: str | date | None = None
    ) -> list[IdleRead]:
        return reports.filter_records_by_date_range(self.idle_records, start, end, self.tz)

    def summary(self, now: datetime | None = None) -> dict[str, str]:
        return reports.summarize_periods(self.records, now or self.scheduler.now(), self.tz)

    def range_total(
        self, start: str | date | None = None, end: str | date | None = None
    ) -> str | None:
        return reports.range_total(self.records, start, end, self.tz)
