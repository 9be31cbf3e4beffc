"""
FastAPI dependencies — auth guards, database session and repository.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifetime.core.exceptions import PermissionDeniedError
from lifetime.core.security import decode_access_token
from lifetime.db.session import async_session_factory
from lifetime.models.user import User
from lifetime.repository.sql import SqlAttendanceRepository

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_repository(db: AsyncSession = Depends(get_db)) -> SqlAttendanceRepository:
    return SqlAttendanceRepository(db)


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the bearer JWT and look up the user."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exc

    claims = decode_access_token(token)
    if claims is None:
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == claims.sub))
    user = result.scalar_one_or_none()
    if user is None or user.userid != claims.userid:
        raise credentials_exc
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Only allow admin role to proceed."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


def ensure_owner(current_user: User, user_id: int) -> None:
    """Users may only read and write their own time records."""
    if current_user.id != user_id:
        raise PermissionDeniedError("You can only access your own records")
