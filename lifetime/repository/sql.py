"""
SQLAlchemy implementation of the data-access interface.

One repository wraps one ``AsyncSession`` (one per request in the API).
The partial unique indexes on the models turn a second open row into an
``IntegrityError``, which surfaces here as ``ConflictError``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lifetime.core.exceptions import ConflictError, NotFoundError, TransientIOError
from lifetime.models.attendance import AttendanceRecord, IdleRecord
from lifetime.repository.base import AttendanceRepository
from lifetime.schemas.attendance import AttendanceRead, IdleRead

logger = logging.getLogger(__name__)


class SqlAttendanceRepository(AttendanceRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ── Ownership helpers (used by the API layer) ────────────────────
    async def get_attendance(self, attendance_id: int) -> AttendanceRecord:
        record = await self._run(self.db.get(AttendanceRecord, attendance_id))
        if record is None:
            raise NotFoundError("Attendance record not found")
        return record

    async def get_idle_record(self, idle_id: int) -> IdleRecord:
        record = await self._run(self.db.get(IdleRecord, idle_id))
        if record is None:
            raise NotFoundError("Idle record not found")
        return record

    # ── Attendance ───────────────────────────────────────────────────
    async def find_open_attendance(self, user_id: int) -> AttendanceRead | None:
        result = await self._run(
            self.db.execute(
                select(AttendanceRecord)
                .where(
                    AttendanceRecord.user_id == user_id,
                    AttendanceRecord.clock_out.is_(None),
                )
                .order_by(AttendanceRecord.created_at.desc())
                .limit(1)
            )
        )
        record = result.scalar_one_or_none()
        return AttendanceRead.model_validate(record) if record else None

    async def create_attendance(self, user_id: int, clock_in: datetime) -> AttendanceRead:
        record = AttendanceRecord(user_id=user_id, clock_in=clock_in)
        self.db.add(record)
        await self._commit("Already clocked in: an open attendance record exists")
        await self.db.refresh(record)
        logger.info("Clock-in %d for user %d", record.id, user_id)
        return AttendanceRead.model_validate(record)

    async def update_attendance(
        self,
        attendance_id: int,
        clock_out: datetime,
        total_time: str,
        note: str | None = None,
    ) -> None:
        await self.get_attendance(attendance_id)
        values = {"clock_out": clock_out, "total_time": total_time}
        if note:
            values["note"] = note
        await self._close_row(
            update(AttendanceRecord)
            .where(AttendanceRecord.id == attendance_id, AttendanceRecord.clock_out.is_(None))
            .values(**values),
            "Attendance record is already clocked out",
        )
        logger.info("Clock-out %d (%s)", attendance_id, total_time)

    # ── Idle time ────────────────────────────────────────────────────
    async def create_idle_record(
        self, user_id: int, attendance_id: int, idle_start: datetime
    ) -> IdleRead:
        attendance = await self.get_attendance(attendance_id)
        if attendance.user_id != user_id:
            raise NotFoundError("Attendance record not found")
        if attendance.clock_out is not None:
            raise ConflictError("Idle time must reference an open attendance record")

        record = IdleRecord(
            user_id=user_id,
            attendance_id=attendance_id,
            idle_start=idle_start,
        )
        self.db.add(record)
        await self._commit("An open idle record already exists")
        await self.db.refresh(record)
        logger.info("Idle start %d for user %d (attendance %d)", record.id, user_id, attendance_id)
        return IdleRead.model_validate(record)

    async def update_idle_record(
        self, idle_id: int, idle_end: datetime, duration_seconds: int
    ) -> None:
        await self.get_idle_record(idle_id)
        await self._close_row(
            update(IdleRecord)
            .where(IdleRecord.id == idle_id, IdleRecord.idle_end.is_(None))
            .values(idle_end=idle_end, duration_seconds=duration_seconds),
            "Idle record is already closed",
        )
        logger.info("Idle end %d after %ds", idle_id, duration_seconds)

    # ── Listing ──────────────────────────────────────────────────────
    async def list_attendance(self, user_id: int) -> list[AttendanceRead]:
        result = await self._run(
            self.db.execute(
                select(AttendanceRecord)
                .where(AttendanceRecord.user_id == user_id)
                .order_by(AttendanceRecord.created_at.desc(), AttendanceRecord.id.desc())
            )
        )
        return [AttendanceRead.model_validate(r) for r in result.scalars().all()]

    async def list_idle(self, user_id: int) -> list[IdleRead]:
        result = await self._run(
            self.db.execute(
                select(IdleRecord)
                .where(IdleRecord.user_id == user_id)
                .order_by(IdleRecord.created_at.desc(), IdleRecord.id.desc())
            )
        )
        return [IdleRead.model_validate(r) for r in result.scalars().all()]

    # ── Internals ────────────────────────────────────────────────────
    async def _run(self, awaitable):
        try:
            return await awaitable
        except SQLAlchemyError as exc:
            logger.error("Database read failed: %s", exc, exc_info=True)
            raise TransientIOError("Failed to read from the data store") from exc

    async def _close_row(self, stmt, already_closed: str) -> None:
        """Run a close-once UPDATE; a row that is already closed is a conflict."""
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Database write failed: %s", exc, exc_info=True)
            raise TransientIOError("Failed to write to the data store") from exc
        if result.rowcount == 0:
            await self.db.rollback()
            logger.warning("Rejected second close: %s", already_closed)
            raise ConflictError(already_closed)
        await self._commit(already_closed)

    async def _commit(self, conflict_message: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            logger.warning("Constraint violation: %s", conflict_message)
            raise ConflictError(conflict_message) from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Database write failed: %s", exc, exc_info=True)
            raise TransientIOError("Failed to write to the data store") from exc
