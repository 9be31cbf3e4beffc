"""Pydantic schemas for attendance rows, idle rows and summaries."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from lifetime.core.config import settings
from lifetime.utils.time import ensure_utc


def _utc(v: datetime | None) -> datetime | None:
    return ensure_utc(v) if v is not None else None


# ── Attendance ──────────────────────────────────────────────────────
class AttendanceCreate(BaseModel):
    clock_in: datetime

    @field_validator("clock_in")
    @classmethod
    def _clock_in_utc(cls, v: datetime) -> datetime:
        return _utc(v)


class AttendanceUpdate(BaseModel):
    clock_out: datetime
    total_time: str
    note: str | None = None

    @field_validator("clock_out")
    @classmethod
    def _clock_out_utc(cls, v: datetime) -> datetime:
        return _utc(v)

    @field_validator("total_time")
    @classmethod
    def _total_time(cls, v: str) -> str:
        hours, sep, minutes = v.partition(":")
        if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
            raise ValueError("total_time must be formatted HH:MM")
        if int(minutes) >= 60:
            raise ValueError("total_time minutes must be below 60")
        return v

    @field_validator("note")
    @classmethod
    def _note(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if len(v) > settings.NOTE_MAX_LENGTH:
            raise ValueError(f"Note must not exceed {settings.NOTE_MAX_LENGTH} characters")
        return v or None


class AttendanceRead(BaseModel):
    id: int
    user_id: int
    clock_in: datetime
    clock_out: datetime | None = None
    total_time: str | None = None
    note: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("clock_in", "clock_out", "created_at")
    @classmethod
    def _timestamps_utc(cls, v: datetime | None) -> datetime | None:
        return _utc(v)


# ── Idle time ───────────────────────────────────────────────────────
class IdleCreate(BaseModel):
    attendance_id: int
    idle_start: datetime

    @field_validator("idle_start")
    @classmethod
    def _idle_start_utc(cls, v: datetime) -> datetime:
        return _utc(v)


class IdleUpdate(BaseModel):
    idle_end: datetime
    duration_seconds: int

    @field_validator("idle_end")
    @classmethod
    def _idle_end_utc(cls, v: datetime) -> datetime:
        return _utc(v)

    @field_validator("duration_seconds")
    @classmethod
    def _duration(cls, v: int) -> int:
        if v < 0:
            raise ValueError("duration_seconds must not be negative")
        return v


class IdleRead(BaseModel):
    id: int
    user_id: int
    attendance_id: int
    idle_start: datetime
    idle_end: datetime | None = None
    duration_seconds: int | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("idle_start", "idle_end", "created_at")
    @classmethod
    def _timestamps_utc(cls, v: datetime | None) -> datetime | None:
        return _utc(v)


# ── Summary ─────────────────────────────────────────────────────────
class SummaryResponse(BaseModel):
    today: str
    week: str
    month: str
    year: str
    range_total: str | None = None


# ── Health ──────────────────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
