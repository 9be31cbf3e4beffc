"""
Attendance & idle-time models — the records the tracker persists.

Both tables carry a partial unique index so the database itself refuses a
second open row per user (``clock_out IS NULL`` / ``idle_end IS NULL``).
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from lifetime.db.base import Base

_OPEN_ATTENDANCE = text("clock_out IS NULL")
_OPEN_IDLE = text("idle_end IS NULL")


class AttendanceRecord(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        Index("ix_attendance_user_created", "user_id", "created_at"),
        Index(
            "uq_attendance_open_per_user",
            "user_id",
            unique=True,
            sqlite_where=_OPEN_ATTENDANCE,
            postgresql_where=_OPEN_ATTENDANCE,
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    clock_in: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    clock_out: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    total_time: str | None = Column(String(16), nullable=True)  # type: ignore[assignment]  # HH:MM
    note: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    idle_records = relationship("IdleRecord", back_populates="attendance")


class IdleRecord(Base):
    __tablename__ = "idle_time"
    __table_args__ = (
        Index("ix_idle_user_created", "user_id", "created_at"),
        Index(
            "uq_idle_open_per_user",
            "user_id",
            unique=True,
            sqlite_where=_OPEN_IDLE,
            postgresql_where=_OPEN_IDLE,
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    attendance_id: int = Column(Integer, ForeignKey("attendance.id"), nullable=False)  # type: ignore[assignment]
    idle_start: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    idle_end: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    duration_seconds: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    attendance = relationship("AttendanceRecord", back_populates="idle_records")
