"""
Dashboard aggregations over attendance and idle rows.

Date boundaries are calendar days in the viewer's timezone (local time when
``tz`` is ``None``); weeks start on Sunday.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta, tzinfo
from typing import TypeVar

from lifetime.schemas.attendance import AttendanceRead, IdleRead
from lifetime.utils.time import (format_minutes_to_hours_minutes,
                                 parse_duration_to_minutes, utc_now)

RecordT = TypeVar("RecordT", AttendanceRead, IdleRead)


def _record_start(record: AttendanceRead | IdleRead) -> datetime:
    if isinstance(record, AttendanceRead):
        return record.clock_in
    return record.idle_start


def _parse_day(value: str | date | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _local_midnight(day: date, tz: tzinfo | None) -> datetime:
    naive = datetime.combine(day, time.min)
    return naive.replace(tzinfo=tz) if tz is not None else naive.astimezone()


def filter_records_by_date_range(
    records: Sequence[RecordT],
    start: str | date | None = None,
    end: str | date | None = None,
    tz: tzinfo | None = None,
) -> list[RecordT]:
    """Keep records whose start falls within ``[start 00:00, end 23:59:59.999]``.

    Either bound may be omitted; with neither, every record is returned.
    """
    start_day = _parse_day(start)
    end_day = _parse_day(end)
    if start_day is None and end_day is None:
        return list(records)

    lower = _local_midnight(start_day, tz) if start_day else None
    upper = _local_midnight(end_day + timedelta(days=1), tz) if end_day else None

    filtered = []
    for record in records:
        ts = _record_start(record)
        if lower is not None and ts < lower:
            continue
        if upper is not None and ts >= upper:
            continue
        filtered.append(record)
    return filtered


def total_minutes(records: Iterable[AttendanceRead]) -> int:
    return sum(parse_duration_to_minutes(r.total_time) for r in records)


def range_total(
    records: Sequence[AttendanceRead],
    start: str | date | None = None,
    end: str | date | None = None,
    tz: tzinfo | None = None,
) -> str | None:
    """``"Xh Ym"`` worked within the range, ``None`` when no range is set."""
    if not start and not end:
        return None
    return format_minutes_to_hours_minutes(
        total_minutes(filter_records_by_date_range(records, start, end, tz))
    )


def summarize_periods(
    records: Iterable[AttendanceRead],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> dict[str, str]:
    """Worked time for today, this week, this month and this year."""
    local_now = (now or utc_now()).astimezone(tz)
    today = local_now.date()
    start_of_today = _local_midnight(today, tz)
    days_since_sunday = (today.weekday() + 1) % 7
    boundaries = {
        "today": start_of_today,
        "week": _local_midnight(today - timedelta(days=days_since_sunday), tz),
        "month": _local_midnight(today.replace(day=1), tz),
        "year": _local_midnight(today.replace(month=1, day=1), tz),
    }

    totals = dict.fromkeys(boundaries, 0)
    for record in records:
        minutes = parse_duration_to_minutes(record.total_time)
        for period, boundary in boundaries.items():
            if record.clock_in >= boundary:
                totals[period] += minutes

    return {period: format_minutes_to_hours_minutes(m) for period, m in totals.items()}
