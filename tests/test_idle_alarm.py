"""Tests for the idle alarm state machine (virtual clock)."""

from datetime import timedelta

import pytest

from conftest import RecordingNotifier
from lifetime.client.idle_alarm import (AUTO_CLOCKOUT_NOTE, NOTIFICATION_TITLE,
                                        AlarmPhase, IdleAlarm)
from lifetime.core.exceptions import TransientIOError

ATTENDANCE_ID = 7
INTERVAL = 1200
SNOOZE = 10
AUTO_CLOCKOUT = 1200


@pytest.fixture
def forced() -> list[str]:
    return []


@pytest.fixture
def alarm(repository, scheduler, notifier, sound, forced) -> IdleAlarm:
    async def on_force_clock_out(note: str) -> None:
        forced.append(note)

    return IdleAlarm(
        repository,
        1,
        on_force_clock_out,
        scheduler=scheduler,
        notifier=notifier,
        alert_sound=sound,
        alarm_interval=INTERVAL,
        snooze_window=SNOOZE,
        auto_clockout=AUTO_CLOCKOUT,
        alert_repeat_interval=2,
    )


async def _go_idle(alarm, scheduler):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL + SNOOZE)
    await alarm.flush()
    assert alarm.phase is AlarmPhase.IDLE


# ── Prompting ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_no_prompt_before_interval(alarm, scheduler, notifier):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL - 1)
    assert alarm.phase is AlarmPhase.ACTIVE
    assert notifier.shown == []
    assert not alarm.status().prompt_visible


@pytest.mark.asyncio
async def test_exactly_one_prompt_at_interval(alarm, scheduler, notifier):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL)
    assert alarm.phase is AlarmPhase.PROMPTED
    scheduler.advance(SNOOZE - 1)
    assert len(notifier.shown) == 1
    assert notifier.shown[0][0] == NOTIFICATION_TITLE

    status = alarm.status()
    assert status.prompt_visible
    assert status.prompt_title == "Are you still there?"


@pytest.mark.asyncio
async def test_prompt_without_notification_permission(repository, scheduler, sound):
    notifier = RecordingNotifier(allowed=False)

    async def on_force_clock_out(note: str) -> None:
        pass

    alarm = IdleAlarm(
        repository, 1, on_force_clock_out, scheduler=scheduler, notifier=notifier,
        alert_sound=sound, alarm_interval=INTERVAL,
    )
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL)
    assert alarm.prompt_visible
    assert notifier.shown == []


@pytest.mark.asyncio
async def test_acknowledge_while_prompted_writes_nothing(alarm, scheduler, repository, notifier):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL + SNOOZE - 1)
    assert alarm.acknowledge() is True
    await alarm.flush()

    assert alarm.phase is AlarmPhase.ACTIVE
    assert not alarm.prompt_visible
    assert repository.idle == []
    assert "create_idle_record" not in repository.calls
    assert notifier.dismissed >= 1

    # the next check is a full interval after the acknowledgement
    scheduler.advance(INTERVAL - 1)
    assert alarm.phase is AlarmPhase.ACTIVE
    scheduler.advance(1)
    assert alarm.phase is AlarmPhase.PROMPTED


@pytest.mark.asyncio
async def test_acknowledge_is_ignored_while_active(alarm, scheduler):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(60)
    assert alarm.acknowledge() is False
    assert alarm.phase is AlarmPhase.ACTIVE


# ── Idle ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_unanswered_prompt_opens_one_idle_record(alarm, scheduler, repository, sound):
    start = scheduler.now()
    await _go_idle(alarm, scheduler)

    assert len(repository.idle) == 1
    idle = repository.idle[0]
    assert idle.attendance_id == ATTENDANCE_ID
    assert idle.idle_end is None
    assert idle.idle_start == start + timedelta(seconds=INTERVAL + SNOOZE)
    assert sound.plays == 1

    scheduler.advance(4)
    assert sound.plays == 3
    status = alarm.status()
    assert status.idle_seconds == 4
    assert status.idle_display == "4 sec"
    assert status.prompt_title == "You are now idle"


@pytest.mark.asyncio
async def test_idle_countdown(alarm, scheduler):
    await _go_idle(alarm, scheduler)
    scheduler.advance(200)
    status = alarm.status()
    assert status.auto_clockout_seconds_left == AUTO_CLOCKOUT - 200
    assert status.auto_clockout_display == "16:40"
    assert status.idle_display == "3 min 20 sec"


@pytest.mark.asyncio
async def test_acknowledge_while_idle_closes_record(alarm, scheduler, repository, sound):
    await _go_idle(alarm, scheduler)
    scheduler.advance(65)
    assert alarm.acknowledge() is True
    await alarm.flush()

    idle = repository.idle[0]
    assert idle.idle_end == scheduler.now()
    assert idle.duration_seconds == 65
    assert repository.open_idle() == []
    assert sound.stops == 1
    assert alarm.phase is AlarmPhase.ACTIVE
    assert alarm.timers.active() == {"alarm"}


@pytest.mark.asyncio
async def test_acknowledge_before_idle_insert_finishes(alarm, scheduler, repository):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL + SNOOZE + 3)
    alarm.acknowledge()
    await alarm.flush()

    assert len(repository.idle) == 1
    assert repository.idle[0].duration_seconds == 3


@pytest.mark.asyncio
async def test_idle_insert_failure_keeps_alarm_running(alarm, scheduler, repository, forced):
    repository.fail["create_idle_record"] = TransientIOError()
    await _go_idle(alarm, scheduler)
    assert repository.idle == []

    scheduler.advance(AUTO_CLOCKOUT)
    await alarm.flush()
    assert forced == [AUTO_CLOCKOUT_NOTE]
    assert "update_idle_record" not in repository.calls


# ── Automatic clock-out ─────────────────────────────────────────────
@pytest.mark.asyncio
async def test_auto_clock_out_after_idle_window(alarm, scheduler, repository, sound, forced):
    await _go_idle(alarm, scheduler)
    scheduler.advance(AUTO_CLOCKOUT - 1)
    assert forced == []

    scheduler.advance(1)
    await alarm.flush()
    assert forced == [AUTO_CLOCKOUT_NOTE]
    assert repository.idle[0].duration_seconds == AUTO_CLOCKOUT
    assert repository.open_idle() == []
    assert alarm.phase is AlarmPhase.DISABLED
    assert not alarm.prompt_visible
    assert sound.stops == 1
    assert alarm.timers.active() == set()

    scheduler.advance(5 * AUTO_CLOCKOUT)
    await alarm.flush()
    assert forced == [AUTO_CLOCKOUT_NOTE]


@pytest.mark.asyncio
async def test_idle_close_failure_does_not_block_clock_out(alarm, scheduler, repository, forced):
    await _go_idle(alarm, scheduler)
    repository.fail["update_idle_record"] = TransientIOError()
    scheduler.advance(AUTO_CLOCKOUT)
    await alarm.flush()
    assert forced == [AUTO_CLOCKOUT_NOTE]


@pytest.mark.asyncio
async def test_clock_out_callback_failure_is_contained(repository, scheduler, notifier, sound):
    async def failing(note: str) -> None:
        raise TransientIOError("offline")

    alarm = IdleAlarm(
        repository, 1, failing, scheduler=scheduler, notifier=notifier, alert_sound=sound,
        alarm_interval=INTERVAL, snooze_window=SNOOZE, auto_clockout=AUTO_CLOCKOUT,
    )
    await _go_idle(alarm, scheduler)
    scheduler.advance(AUTO_CLOCKOUT)
    await alarm.flush()
    assert alarm.phase is AlarmPhase.DISABLED
    assert repository.open_idle() == []


# ── Enable / disable ────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_enable_same_record_does_not_restart(alarm, scheduler):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL / 2)
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL / 2)
    assert alarm.phase is AlarmPhase.PROMPTED


@pytest.mark.asyncio
async def test_enable_new_record_restarts(alarm, scheduler):
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(INTERVAL / 2)
    alarm.enable(ATTENDANCE_ID + 1)
    scheduler.advance(INTERVAL / 2)
    assert alarm.phase is AlarmPhase.ACTIVE
    assert alarm.attendance_id == ATTENDANCE_ID + 1


@pytest.mark.asyncio
async def test_disable_while_idle_closes_record(alarm, scheduler, repository, sound):
    await _go_idle(alarm, scheduler)
    scheduler.advance(30)
    alarm.disable()
    await alarm.flush()

    assert alarm.phase is AlarmPhase.DISABLED
    assert repository.idle[0].duration_seconds == 30
    assert sound.stops == 1
    assert alarm.timers.active() == set()
    assert scheduler.pending() == 0


@pytest.mark.asyncio
async def test_disable_cancels_pending_prompt(alarm, scheduler, notifier):
    alarm.enable(ATTENDANCE_ID)
    alarm.disable()
    scheduler.advance(10 * INTERVAL)
    assert notifier.shown == []
    assert alarm.phase is AlarmPhase.DISABLED


@pytest.mark.asyncio
async def test_sound_failure_does_not_break_idle(alarm, scheduler, sound, repository):
    def broken() -> None:
        raise RuntimeError("no audio device")

    sound.play = broken
    await _go_idle(alarm, scheduler)
    scheduler.advance(4)
    assert alarm.phase is AlarmPhase.IDLE
    assert len(repository.idle) == 1


# ── Durations ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_explicit_durations_are_honoured(repository, scheduler, notifier, sound):
    async def on_force_clock_out(note: str) -> None:
        pass

    alarm = IdleAlarm(
        repository, 1, on_force_clock_out, scheduler=scheduler, notifier=notifier,
        alert_sound=sound, alarm_interval=0.5, snooze_window=0.25,
    )
    alarm.enable(ATTENDANCE_ID)
    scheduler.advance(0.5)
    assert alarm.phase is AlarmPhase.PROMPTED
    scheduler.advance(0.25)
    await alarm.flush()
    assert alarm.phase is AlarmPhase.IDLE


@pytest.mark.parametrize("option", ["alarm_interval", "snooze_window", "auto_clockout", "alert_repeat_interval"])
def test_zero_duration_is_rejected(repository, scheduler, notifier, sound, option):
    async def on_force_clock_out(note: str) -> None:
        pass

    with pytest.raises(ValueError):
        IdleAlarm(
            repository, 1, on_force_clock_out, scheduler=scheduler, notifier=notifier,
            alert_sound=sound, **{option: 0},
        )
