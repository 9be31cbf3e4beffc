"""Tests for dashboard aggregations (date filters and period totals)."""

from datetime import date, datetime, timezone

from lifetime.schemas.attendance import AttendanceRead, IdleRead
from lifetime.utils.reports import (filter_records_by_date_range, range_total,
                                    summarize_periods, total_minutes)

UTC = timezone.utc
NOW = datetime(2024, 7, 27, 12, 0, tzinfo=UTC)  # a Saturday


def _record(id_, clock_in, total_time):
    return AttendanceRead(id=id_, user_id=1, clock_in=clock_in, total_time=total_time)


RECORDS = [
    _record(5, datetime(2024, 7, 27, 9, 0, tzinfo=UTC), "02:00"),
    _record(4, datetime(2024, 7, 22, 8, 0, tzinfo=UTC), "03:00"),
    _record(3, datetime(2024, 7, 20, 8, 0, tzinfo=UTC), "01:30"),
    _record(2, datetime(2024, 3, 1, 8, 0, tzinfo=UTC), "04:00"),
    _record(1, datetime(2023, 12, 31, 8, 0, tzinfo=UTC), "05:00"),
]


def test_summarize_periods_week_starts_on_sunday():
    totals = summarize_periods(RECORDS, NOW, UTC)
    assert totals == {
        "today": "2h 0m",
        "week": "5h 0m",
        "month": "6h 30m",
        "year": "10h 30m",
    }


def test_summarize_periods_ignores_open_records():
    records = [AttendanceRead(id=9, user_id=1, clock_in=NOW)] + RECORDS
    assert summarize_periods(records, NOW, UTC)["today"] == "2h 0m"


def test_filter_without_bounds_returns_everything():
    assert filter_records_by_date_range(RECORDS, None, None, UTC) == RECORDS


def test_filter_end_day_is_inclusive():
    records = [
        _record(1, datetime(2024, 7, 22, 23, 59, 59, tzinfo=UTC), "01:00"),
        _record(2, datetime(2024, 7, 23, 0, 0, tzinfo=UTC), "01:00"),
    ]
    kept = filter_records_by_date_range(records, "2024-07-22", "2024-07-22", UTC)
    assert [r.id for r in kept] == [1]


def test_filter_with_only_a_start_bound():
    kept = filter_records_by_date_range(RECORDS, date(2024, 7, 22), None, UTC)
    assert [r.id for r in kept] == [5, 4]


def test_filter_idle_records_by_idle_start():
    idle = [
        IdleRead(id=1, user_id=1, attendance_id=5, idle_start=datetime(2024, 7, 27, 10, 0, tzinfo=UTC)),
        IdleRead(id=2, user_id=1, attendance_id=4, idle_start=datetime(2024, 7, 22, 10, 0, tzinfo=UTC)),
    ]
    kept = filter_records_by_date_range(idle, "2024-07-27", "2024-07-27", UTC)
    assert [r.id for r in kept] == [1]


def test_range_total():
    assert range_total(RECORDS, "2024-07-20", "2024-07-22", UTC) == "4h 30m"
    assert range_total(RECORDS, None, None, UTC) is None


def test_total_minutes_skips_malformed_durations():
    records = [_record(1, NOW, "01:15"), _record(2, NOW, "oops"), _record(3, NOW, None)]
    assert total_minutes(records) == 75
