"""
Shared test fixtures for the LifeTime test suite.

- API tests run against an in-memory aiosqlite database through
  httpx ``AsyncClient`` + ``ASGITransport``.
- Client controller tests run on a virtual clock (``FakeScheduler``) with
  an in-memory repository and recording capabilities.
"""

import heapq
import itertools
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lifetime.api.v1.deps import get_db
from lifetime.client.capabilities import AlertSound, Notifier, UnloadHook
from lifetime.client.scheduler import Scheduler, TimerHandle
from lifetime.client.unload import UnloadBeacon
from lifetime.core.exceptions import ConflictError, NotFoundError, TransientIOError
from lifetime.core.security import create_access_token, get_password_hash
from lifetime.db.base import Base
from lifetime.main import app
from lifetime.models.user import User
from lifetime.repository.base import AttendanceRepository
from lifetime.schemas.attendance import AttendanceRead, IdleRead
from lifetime.schemas.user import UserRead

API = "/api/v1"
PASSWORD = "s3cret-pass"


# ── Database ────────────────────────────────────────────────────────
@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test, wired into the app's ``get_db``."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    yield factory

    app.dependency_overrides.pop(get_db, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def asgi_transport(session_factory) -> ASGITransport:
    return ASGITransport(app=app)


@pytest.fixture
async def async_client(asgi_transport) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    async with AsyncClient(transport=asgi_transport, base_url="http://test") as client:
        yield client


# ── Users ───────────────────────────────────────────────────────────
async def _create_user(db: AsyncSession, userid: str, name: str, role: str = "employee") -> User:
    user = User(
        userid=userid,
        hashed_password=get_password_hash(PASSWORD),
        name=name,
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def employee(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "emp001", "Alex Employee")


@pytest.fixture
async def other_employee(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "emp002", "Sam Other")


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin", "Admin", role="admin")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.userid, user.role)}"}


@pytest.fixture
def employee_headers(employee: User) -> dict[str, str]:
    return auth_headers(employee)


@pytest.fixture
def other_headers(other_employee: User) -> dict[str, str]:
    return auth_headers(other_employee)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return auth_headers(admin)


# ── Virtual clock ───────────────────────────────────────────────────
class _FakeHandle(TimerHandle):
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Deterministic scheduler: time only moves when a test calls ``advance``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 7, 27, 9, 0, tzinfo=timezone.utc)
        self._queue: list = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self.current

    def call_later(self, delay, callback) -> TimerHandle:
        handle = _FakeHandle()
        self._push(self.current + timedelta(seconds=delay), handle, callback, None)
        return handle

    def call_every(self, interval, callback) -> TimerHandle:
        handle = _FakeHandle()
        self._push(self.current + timedelta(seconds=interval), handle, callback, interval)
        return handle

    def _push(self, when, handle, callback, interval) -> None:
        heapq.heappush(self._queue, (when, next(self._seq), handle, callback, interval))

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.current + timedelta(seconds=seconds)
        while self._queue and self._queue[0][0] <= target:
            when, _, handle, callback, interval = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.current = when
            if interval is not None:
                self._push(when + timedelta(seconds=interval), handle, callback, interval)
            callback()
        self.current = target

    def pending(self) -> int:
        return sum(1 for entry in self._queue if not entry[2].cancelled)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


# ── In-memory repository ────────────────────────────────────────────
class MemoryRepository(AttendanceRepository):
    """Keeps rows in lists and counts calls; ``fail`` injects errors per method."""

    def __init__(self) -> None:
        self.attendance: list[AttendanceRead] = []
        self.idle: list[IdleRead] = []
        self.calls: dict[str, int] = {}
        self.fail: dict[str, Exception] = {}
        self._ids = itertools.count(1)

    def _enter(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        exc = self.fail.get(name)
        if exc is not None:
            raise exc

    def _replace(self, rows: list, row) -> None:
        rows[:] = [row if r.id == row.id else r for r in rows]

    async def find_open_attendance(self, user_id):
        self._enter("find_open_attendance")
        return next(
            (r for r in self.attendance if r.user_id == user_id and r.clock_out is None),
            None,
        )

    async def create_attendance(self, user_id, clock_in):
        self._enter("create_attendance")
        if any(r.user_id == user_id and r.clock_out is None for r in self.attendance):
            raise ConflictError("Already clocked in")
        record = AttendanceRead(id=next(self._ids), user_id=user_id, clock_in=clock_in)
        self.attendance.insert(0, record)
        return record

    async def update_attendance(self, attendance_id, clock_out, total_time, note=None):
        self._enter("update_attendance")
        record = next((r for r in self.attendance if r.id == attendance_id), None)
        if record is None:
            raise NotFoundError()
        if record.clock_out is not None:
            raise ConflictError("Attendance record is already clocked out")
        self._replace(
            self.attendance,
            record.model_copy(
                update={"clock_out": clock_out, "total_time": total_time, "note": note}
            ),
        )

    async def create_idle_record(self, user_id, attendance_id, idle_start):
        self._enter("create_idle_record")
        if any(r.user_id == user_id and r.idle_end is None for r in self.idle):
            raise ConflictError("An open idle record already exists")
        record = IdleRead(
            id=next(self._ids),
            user_id=user_id,
            attendance_id=attendance_id,
            idle_start=idle_start,
        )
        self.idle.insert(0, record)
        return record

    async def update_idle_record(self, idle_id, idle_end, duration_seconds):
        self._enter("update_idle_record")
        record = next((r for r in self.idle if r.id == idle_id), None)
        if record is None:
            raise NotFoundError()
        if record.idle_end is not None:
            raise ConflictError("Idle record is already closed")
        self._replace(
            self.idle,
            record.model_copy(update={"idle_end": idle_end, "duration_seconds": duration_seconds}),
        )

    async def list_attendance(self, user_id):
        self._enter("list_attendance")
        return [r for r in self.attendance if r.user_id == user_id]

    async def list_idle(self, user_id):
        self._enter("list_idle")
        return [r for r in self.idle if r.user_id == user_id]

    def open_idle(self) -> list[IdleRead]:
        return [r for r in self.idle if r.idle_end is None]


@pytest.fixture
def repository() -> MemoryRepository:
    return MemoryRepository()


@pytest.fixture
def transient_error() -> TransientIOError:
    return TransientIOError("connection reset")


# ── Recording capabilities ──────────────────────────────────────────
class RecordingNotifier(Notifier):
    def __init__(self, allowed: bool = True) -> None:
        self.allowed = allowed
        self.shown: list[tuple[str, str]] = []
        self.dismissed = 0

    def request_permission(self) -> bool:
        return self.allowed

    def show(self, title, body) -> None:
        self.shown.append((title, body))

    def dismiss(self) -> None:
        self.dismissed += 1


class RecordingSound(AlertSound):
    def __init__(self) -> None:
        self.plays = 0
        self.stops = 0

    def play(self) -> None:
        self.plays += 1

    def stop(self) -> None:
        self.stops += 1


class RecordingUnloadHook(UnloadHook):
    def __init__(self) -> None:
        self.callbacks: list = []

    def register(self, callback) -> None:
        self.callbacks.append(callback)

    def unregister(self, callback) -> None:
        self.callbacks.remove(callback)

    def fire(self) -> None:
        for callback in list(self.callbacks):
            callback()


class RecordingBeacon(UnloadBeacon):
    def __init__(self) -> None:
        self.sent: list[tuple[int, dict]] = []

    def dispatch(self, attendance_id, payload) -> None:
        self.sent.append((attendance_id, payload))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sound() -> RecordingSound:
    return RecordingSound()


@pytest.fixture
def unload_hook() -> RecordingUnloadHook:
    return RecordingUnloadHook()


@pytest.fixture
def beacon() -> RecordingBeacon:
    return RecordingBeacon()


@pytest.fixture
def user() -> UserRead:
    return UserRead(id=1, userid="emp001", name="Alex Employee", role="employee")
