"""
Password hashing (bcrypt) and the signed session token a user gets at
sign-in.

The token names the account twice: ``sub`` is the numeric user id used for
lookups and ``userid`` is the sign-in name, so a token minted for a deleted
and re-created account id is not accepted for the new account.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError

from lifetime.core.config import settings
from lifetime.schemas.token import TokenClaims

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_TOKEN_TYPE = "session"


# ── Passwords ───────────────────────────────────────────────────────
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


# ── Session tokens ──────────────────────────────────────────────────
def create_access_token(
    user_id: int,
    userid: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a session token for one user; valid for ``ACCESS_TOKEN_EXPIRE_MINUTES``."""
    issued = datetime.now(timezone.utc)
    expire = issued + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {
        "sub": str(user_id),
        "userid": userid,
        "role": role,
        "type": _TOKEN_TYPE,
        "iat": issued,
        "exp": expire,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> TokenClaims | None:
    """Claims of a valid session token, ``None`` for anything else."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != _TOKEN_TYPE:
        return None
    try:
        return TokenClaims.model_validate(payload)
    except PydanticValidationError:
        return None
