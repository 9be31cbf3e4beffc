"""
Assembles a signed-in session against a running LifeTime service.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from lifetime.client.http_repository import (HttpAttendanceRepository,
                                             SignInResult, create_http_client,
                                             resume_session, sign_in)
from lifetime.client.session import SessionController
from lifetime.client.token_store import FileTokenStore
from lifetime.client.unload import HttpUnloadBeacon
from lifetime.core.exceptions import (AuthenticationError,
                                      PermissionDeniedError)

logger = logging.getLogger(__name__)


async def _authenticate(
    client: httpx.AsyncClient,
    userid: str | None,
    password: str | None,
    token_store: FileTokenStore | None,
) -> SignInResult:
    stored = token_store.load() if token_store is not None else None
    if stored is not None:
        try:
            return await resume_session(client, stored.access_token)
        except (AuthenticationError, PermissionDeniedError):
            logger.info("Saved session for %s is no longer valid", stored.user.userid)
            token_store.clear()

    if userid is None or password is None:
        raise AuthenticationError("Please sign in.")
    result = await sign_in(client, userid, password)
    if token_store is not None:
        token_store.save(result)
    return result


@asynccontextmanager
async def signed_in_session(
    userid: str | None = None,
    password: str | None = None,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    token_store: FileTokenStore | None = None,
    **options: Any,
) -> AsyncIterator[SessionController]:
    """Sign in, start the dashboard logic, and tear it all down on exit.

    With a *token_store* a saved token is tried before the credentials, a
    fresh sign-in is saved, and an explicit sign-out forgets it. Extra
    keyword arguments go to :class:`SessionController` (scheduler,
    capabilities, alarm timings).
    """
    async with create_http_client(base_url, transport=transport) as client:
        result = await _authenticate(client, userid, password, token_store)
        options.setdefault(
            "unload_beacon",
            HttpUnloadBeacon(base_url=str(client.base_url), token=result.access_token),
        )
        controller = SessionController(
            result.user, HttpAttendanceRepository(client), **options
        )
        await controller.start()
        try:
            yield controller
        finally:
            await controller.close()
            if token_store is not None and controller.signed_out:
                token_store.clear()
