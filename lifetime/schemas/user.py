"""Pydantic schemas for User CRUD and sign-in."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

_VALID_ROLES = {"admin", "employee"}


class SignInRequest(BaseModel):
    userid: str
    password: str

    @field_validator("userid")
    @classmethod
    def _userid(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("User ID must not be empty")
        return v

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Password must not be empty")
        return v


class UserCreate(BaseModel):
    userid: str
    password: str
    name: str
    role: str = "employee"

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str) -> str:
        if v not in _VALID_ROLES:
            raise ValueError(f"Role must be one of: {_VALID_ROLES}")
        return v

    @field_validator("userid")
    @classmethod
    def _normalise_userid(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) > 64:
            raise ValueError("User ID must be 1-64 characters")
        return v

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        if len(v) > 200:
            raise ValueError("Name must not exceed 200 characters")
        return v


class UserRead(BaseModel):
    id: int
    userid: str
    name: str
    role: str
    is_active: bool = True
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
