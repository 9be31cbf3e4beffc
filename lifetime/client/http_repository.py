"""
HTTP client for the LifeTime data store (httpx).

``HttpAttendanceRepository`` implements the data-access interface against
the ``/api/v1`` endpoints and maps responses back onto the error taxonomy:
4xx statuses keep their meaning, 5xx and transport failures become
``TransientIOError``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel

from lifetime.core.config import settings
from lifetime.core.exceptions import (AuthenticationError, PermissionDeniedError,
                                      TransientIOError, ValidationError,
                                      error_for_status)
from lifetime.repository.base import AttendanceRepository
from lifetime.schemas.attendance import AttendanceRead, IdleRead
from lifetime.schemas.user import UserRead
from lifetime.utils.time import format_datetime_for_db

logger = logging.getLogger(__name__)


class SignInResult(BaseModel):
    access_token: str
    user: UserRead


def create_http_client(
    base_url: str | None = None,
    token: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {token}"} if token else None
    return httpx.AsyncClient(
        base_url=base_url or settings.API_BASE_URL,
        headers=headers,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
        transport=transport,
    )


async def _request(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        logger.error("%s %s failed: %s", method, url, exc)
        raise TransientIOError("Could not reach the data store") from exc
    if resp.is_error:
        try:
            detail = resp.json().get("detail")
        except ValueError:
            detail = None
        if not isinstance(detail, str):
            detail = None
        raise error_for_status(resp.status_code, detail)
    return resp


async def sign_in(client: httpx.AsyncClient, userid: str, password: str) -> SignInResult:
    """Authenticate and point *client* at the signed-in user's token."""
    if not userid.strip() or not password.strip():
        raise ValidationError("User ID and password cannot be empty.")
    try:
        resp = await _request(
            client,
            "POST",
            "/auth/login",
            json={"userid": userid.strip(), "password": password},
        )
    except AuthenticationError:
        raise AuthenticationError("Invalid User ID or Password.") from None

    result = SignInResult.model_validate(resp.json())
    client.headers["Authorization"] = f"Bearer {result.access_token}"
    logger.info("Signed in as %s", result.user.userid)
    return result


async def resume_session(client: httpx.AsyncClient, access_token: str) -> SignInResult:
    """Point *client* at a saved token and confirm it still names a user."""
    client.headers["Authorization"] = f"Bearer {access_token}"
    try:
        resp = await _request(client, "GET", "/auth/me")
    except (AuthenticationError, PermissionDeniedError):
        del client.headers["Authorization"]
        raise
    result = SignInResult(access_token=access_token, user=UserRead.model_validate(resp.json()))
    logger.info("Resumed session for %s", result.user.userid)
    return result


class HttpAttendanceRepository(AttendanceRepository):
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def find_open_attendance(self, user_id: int) -> AttendanceRead | None:
        resp = await _request(self.client, "GET", f"/users/{user_id}/attendance/open")
        data = resp.json()
        return AttendanceRead.model_validate(data) if data else None

    async def create_attendance(self, user_id: int, clock_in: datetime) -> AttendanceRead:
        resp = await _request(
            self.client,
            "POST",
            f"/users/{user_id}/attendance",
            json={"clock_in": format_datetime_for_db(clock_in)},
        )
        return AttendanceRead.model_validate(resp.json())

    async def update_attendance(
        self,
        attendance_id: int,
        clock_out: datetime,
        total_time: str,
        note: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "clock_out": format_datetime_for_db(clock_out),
            "total_time": total_time,
        }
        if note:
            payload["note"] = note
        await _request(self.client, "PATCH", f"/attendance/{attendance_id}", json=payload)

    async def create_idle_record(
        self, user_id: int, attendance_id: int, idle_start: datetime
    ) -> IdleRead:
        resp = await _request(
            self.client,
            "POST",
            f"/users/{user_id}/idle",
            json={
                "attendance_id": attendance_id,
                "idle_start": format_datetime_for_db(idle_start),
            },
        )
        return IdleRead.model_validate(resp.json())

    async def update_idle_record(
        self, idle_id: int, idle_end: datetime, duration_seconds: int
    ) -> None:
        await _request(
            self.client,
            "PATCH",
            f"/idle/{idle_id}",
            json={
                "idle_end": format_datetime_for_db(idle_end),
                "duration_seconds": duration_seconds,
            },
        )

    async def list_attendance(self, user_id: int) -> list[AttendanceRead]:
        resp = await _request(self.client, "GET", f"/users/{user_id}/attendance")
        return [AttendanceRead.model_validate(r) for r in resp.json()]

    async def list_idle(self, user_id: int) -> list[IdleRead]:
        resp = await _request(self.client, "GET", f"/users/{user_id}/idle")
        return [IdleRead.model_validate(r) for r in resp.json()]
