"""
Auth endpoints — sign-in and user management.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lifetime.api.v1.deps import get_current_active_user, get_db, require_admin
from lifetime.core.exceptions import AuthenticationError
from lifetime.core.security import (create_access_token, get_password_hash,
                                    verify_password)
from lifetime.models.user import User
from lifetime.schemas.token import Token
from lifetime.schemas.user import SignInRequest, UserCreate, UserRead

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=Token)
async def login_for_access_token(
    body: SignInRequest,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate with User ID / password and return a bearer token."""
    result = await db.execute(select(User).where(User.userid == body.userid))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.hashed_password):
        logger.info("Failed sign-in for %s", body.userid)
        raise AuthenticationError("Invalid User ID or Password.")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is inactive")

    logger.info("User %s signed in", user.userid)
    return Token(
        access_token=create_access_token(user.id, user.userid, user.role),
        user=UserRead.model_validate(user),
    )


@router.get("/me", response_model=UserRead)
async def read_current_user(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Return profile of the currently authenticated user."""
    return current_user


# ── User management (admin-only) ───────────────────────────────────
@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> User:
    """Create a new user account (admin only)."""
    existing = await db.execute(select(User).where(User.userid == body.userid))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="User ID already registered")

    user = User(
        userid=body.userid,
        hashed_password=get_password_hash(body.password),
        name=body.name,
        role=body.role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created user %s (%s)", user.userid, user.role)
    return user
