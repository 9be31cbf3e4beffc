"""Pydantic schemas for session tokens."""

from __future__ import annotations

from pydantic import BaseModel

from lifetime.schemas.user import UserRead


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class TokenClaims(BaseModel):
    sub: int
    userid: str
    role: str
