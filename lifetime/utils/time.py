"""
Timestamp and duration helpers.

Everything here is pure: conversions between timestamps, durations and the
strings shown to users.  Durations stored on attendance rows use ``HH:MM``;
the live session clock uses ``HH:MM:SS``.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone, tzinfo

TimestampLike = str | datetime


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: TimestampLike | None) -> datetime | None:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into an aware datetime.

    Returns ``None`` for empty or unparsable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def format_datetime_for_db(dt: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision, e.g. ``2024-07-27T15:30:00.000Z``."""
    text = ensure_utc(dt).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def calculate_duration(clock_in: TimestampLike, clock_out: TimestampLike) -> str:
    """Whole hours and minutes between two timestamps as ``HH:MM``.

    Unparsable input or a clock-out before the clock-in gives ``"00:00"``.
    """
    start = parse_timestamp(clock_in)
    end = parse_timestamp(clock_out)
    if start is None or end is None or end < start:
        return "00:00"

    total_minutes = int((end - start).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def parse_duration_to_minutes(duration: str | None) -> int:
    """``"HH:MM"`` → total minutes; anything malformed counts as 0."""
    if not duration:
        return 0
    parts = duration.split(":")
    if len(parts) != 2:
        return 0
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
    except ValueError:
        return 0
    return hours * 60 + minutes


def format_minutes_to_hours_minutes(total_minutes: int) -> str:
    """510 → ``"8h 30m"``."""
    if total_minutes < 0:
        return "0h 0m"
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def format_seconds_to_hhmmss(total_seconds: float) -> str:
    if total_seconds < 0:
        return "00:00:00"
    total = math.floor(total_seconds)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_seconds_to_minutes_seconds(total_seconds: int) -> str:
    """Idle history duration, e.g. ``"5m 12s"``."""
    if total_seconds < 0:
        return "0m 0s"
    minutes, seconds = divmod(int(total_seconds), 60)
    return f"{minutes}m {seconds}s"


def format_idle_time(seconds: int) -> str:
    """Running idle counter: ``"42 sec"`` under a minute, ``"3 min 5 sec"`` after."""
    if seconds < 60:
        return f"{seconds} sec"
    minutes, remaining = divmod(seconds, 60)
    return f"{minutes} min {remaining} sec"


def format_countdown(seconds: float) -> str:
    """Auto clock-out countdown as ``MM:SS``."""
    remaining = max(0, math.ceil(seconds))
    minutes, secs = divmod(remaining, 60)
    return f"{minutes:02d}:{secs:02d}"


def format_display_time(value: TimestampLike | None, tz: tzinfo | None = None) -> str:
    """Localised 12-hour clock, e.g. ``"03:30 PM"``."""
    if not value:
        return "N/A"
    dt = parse_timestamp(value)
    if dt is None:
        return "Invalid Time"
    return dt.astimezone(tz).strftime("%I:%M %p")


def format_display_date(value: TimestampLike | None, tz: tzinfo | None = None) -> str:
    """Localised date, e.g. ``"Sat, Jul 27, 2024"``."""
    if not value:
        return ""
    dt = parse_timestamp(value)
    if dt is None:
        return ""
    local = dt.astimezone(tz)
    return f"{local:%a, %b} {local.day}, {local.year}"
