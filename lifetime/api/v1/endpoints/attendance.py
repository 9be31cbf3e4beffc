"""
Attendance & idle-time endpoints — the data-access operations over HTTP.

- Every route requires an authenticated user.
- Users only see and modify their own rows (403 otherwise).
- A second open attendance or idle row per user is rejected with 409.
"""

from __future__ import annotations

import logging
from datetime import date, timezone

from fastapi import APIRouter, Depends, Query, Response

from lifetime.api.v1.deps import ensure_owner, get_current_active_user, get_repository
from lifetime.models.user import User
from lifetime.repository.sql import SqlAttendanceRepository
from lifetime.schemas.attendance import (AttendanceCreate, AttendanceRead,
                                         AttendanceUpdate, IdleCreate,
                                         IdleRead, IdleUpdate, SummaryResponse)
from lifetime.utils.reports import range_total, summarize_periods

router = APIRouter(tags=["attendance"])
logger = logging.getLogger(__name__)


# ── Attendance ──────────────────────────────────────────────────────
@router.get("/users/{user_id}/attendance", response_model=list[AttendanceRead])
async def list_attendance(
    user_id: int,
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> list[AttendanceRead]:
    ensure_owner(current_user, user_id)
    return await repo.list_attendance(user_id)


@router.get("/users/{user_id}/attendance/open", response_model=AttendanceRead | None)
async def find_open_attendance(
    user_id: int,
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> AttendanceRead | None:
    ensure_owner(current_user, user_id)
    return await repo.find_open_attendance(user_id)


@router.post("/users/{user_id}/attendance", response_model=AttendanceRead, status_code=201)
async def create_attendance(
    user_id: int,
    body: AttendanceCreate,
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> AttendanceRead:
    """Clock in.  Fails with 409 while another record is still open."""
    ensure_owner(current_user, user_id)
    return await repo.create_attendance(user_id, body.clock_in)


@router.patch("/attendance/{attendance_id}", status_code=204)
async def update_attendance(
    attendance_id: int,
    body: AttendanceUpdate,
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    """Clock out: set clock_out, total_time and an optional note."""
    record = await repo.get_attendance(attendance_id)
    ensure_owner(current_user, record.user_id)
    await repo.update_attendance(attendance_id, body.clock_out, body.total_time, body.note)
    return Response(status_code=204)


# ── Idle time ───────────────────────────────────────────────────────
@router.get("/users/{user_id}/idle", response_model=list[IdleRead])
async def list_idle(
    user_id: int,
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> list[IdleRead]:
    ensure_owner(current_user, user_id)
    return await repo.list_idle(user_id)


@router.post("/users/{user_id}/idle", response_model=IdleRead, status_code=201)
async def create_idle_record(
    user_id: int,
    body: IdleCreate,
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> IdleRead:
    """Open an idle interval on the user's open attendance record."""
    ensure_owner(current_user, user_id)
    return await repo.create_idle_record(user_id, body.attendance_id, body.idle_start)


@router.patch("/idle/{idle_id}", status_code=204)
async def update_idle_record(
    idle_id: int,
    body: IdleUpdate,
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    record = await repo.get_idle_record(idle_id)
    ensure_owner(current_user, record.user_id)
    await repo.update_idle_record(idle_id, body.idle_end, body.duration_seconds)
    return Response(status_code=204)


# ── Summary ─────────────────────────────────────────────────────────
@router.get("/users/{user_id}/summary", response_model=SummaryResponse)
async def attendance_summary(
    user_id: int,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    repo: SqlAttendanceRepository = Depends(get_repository),
    current_user: User = Depends(get_current_active_user),
) -> SummaryResponse:
    """Worked time for today / week / month / year, plus an optional range (UTC days)."""
    ensure_owner(current_user, user_id)
    records = await repo.list_attendance(user_id)
    totals = summarize_periods(records, tz=timezone.utc)
    return SummaryResponse(
        **totals,
        range_total=range_total(records, start, end, tz=timezone.utc),
    )
