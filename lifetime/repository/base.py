"""
Data-access interface consumed by the session and idle controllers.

Implementations raise the ``lifetime.core.exceptions`` taxonomy:
``NotFoundError`` for unknown ids, ``ConflictError`` when an open-record
invariant would be broken or a closed row would be closed again, and
``TransientIOError`` for I/O failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from lifetime.schemas.attendance import AttendanceRead, IdleRead


class AttendanceRepository(ABC):
    @abstractmethod
    async def find_open_attendance(self, user_id: int) -> AttendanceRead | None:
        """Newest attendance row of *user_id* without a clock-out, if any."""

    @abstractmethod
    async def create_attendance(self, user_id: int, clock_in: datetime) -> AttendanceRead:
        ...

    @abstractmethod
    async def update_attendance(
        self,
        attendance_id: int,
        clock_out: datetime,
        total_time: str,
        note: str | None = None,
    ) -> None:
        ...

    @abstractmethod
    async def create_idle_record(
        self, user_id: int, attendance_id: int, idle_start: datetime
    ) -> IdleRead:
        ...

    @abstractmethod
    async def update_idle_record(
        self, idle_id: int, idle_end: datetime, duration_seconds: int
    ) -> None:
        ...

    @abstractmethod
    async def list_attendance(self, user_id: int) -> list[AttendanceRead]:
        """All attendance rows of *user_id*, newest first."""

    @abstractmethod
    async def list_idle(self, user_id: int) -> list[IdleRead]:
        """All idle rows of *user_id*, newest first."""
