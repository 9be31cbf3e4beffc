"""
Best-effort clock-out sent while the host is going away.

The request bypasses the async write path: ``dispatch`` starts a daemon
thread and returns immediately.  Nothing is retried and nothing is reported
back; a failure only reaches the log.  Requests still in flight when the
interpreter exits are waited for, bounded by ``UNLOAD_TIMEOUT_SECONDS``
(see :func:`wait_for_pending`).
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from lifetime.core.config import settings

logger = logging.getLogger(__name__)

_pending: set[threading.Thread] = set()
_pending_lock = threading.Lock()


def wait_for_pending(timeout: float | None = None) -> bool:
    """Block until in-flight unload requests finish or *timeout* runs out.

    Returns ``True`` when nothing is left in flight.
    """
    if timeout is None:
        timeout = settings.UNLOAD_TIMEOUT_SECONDS
    deadline = time.monotonic() + timeout
    with _pending_lock:
        threads = list(_pending)
    for thread in threads:
        thread.join(max(0.0, deadline - time.monotonic()))
    with _pending_lock:
        return not any(t.is_alive() for t in _pending)


class UnloadBeacon(ABC):
    @abstractmethod
    def dispatch(self, attendance_id: int, payload: dict[str, Any]) -> None:
        """Fire the clock-out write for *attendance_id* without waiting for it."""


class HttpUnloadBeacon(UnloadBeacon):
    """PATCHes ``/attendance/{id}`` with the session's bearer token."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.API_BASE_URL
        self.token = token
        self.timeout = timeout if timeout is not None else settings.UNLOAD_TIMEOUT_SECONDS
        self._transport = transport
        self.last_dispatch: threading.Thread | None = None

    def dispatch(self, attendance_id: int, payload: dict[str, Any]) -> None:
        if not self.token:
            logger.warning("Unload clock-out for %d skipped: no session token", attendance_id)
            return
        thread = threading.Thread(
            target=self._run,
            args=(attendance_id, payload, self.token),
            name="lifetime-unload",
            daemon=True,
        )
        with _pending_lock:
            _pending.add(thread)
        try:
            thread.start()
        except RuntimeError:
            # no new threads once the interpreter is shutting down
            with _pending_lock:
                _pending.discard(thread)
            self._send(attendance_id, payload, self.token)
            return
        self.last_dispatch = thread

    def _run(self, attendance_id: int, payload: dict[str, Any], token: str) -> None:
        try:
            self._send(attendance_id, payload, token)
        finally:
            with _pending_lock:
                _pending.discard(threading.current_thread())

    def _send(self, attendance_id: int, payload: dict[str, Any], token: str) -> None:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = client.patch(f"/attendance/{attendance_id}", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Unload clock-out for %d failed: %s", attendance_id, exc)
            return
        if resp.is_error:
            logger.error(
                "Unload clock-out for %d rejected with %d", attendance_id, resp.status_code
            )
        else:
            logger.info("Unload clock-out for %d sent", attendance_id)
