"""
Bearer token signing / verification and password hashing (bcrypt).

Two token namespaces exist, ``staff`` and ``portal``. The namespace is
carried in the ``type`` claim and checked on every decode, so a token from
one namespace is never accepted by the other.
"""

from __future__ import annotations

import enum
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from crm_access.core.config import settings
from crm_access.core.exceptions import AuthenticationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class PrincipalType(str, enum.Enum):
    STAFF = "staff"
    PORTAL = "portal"


_EXPIRY_MINUTES = {
    PrincipalType.STAFF: lambda: settings.STAFF_TOKEN_EXPIRE_MINUTES,
    PrincipalType.PORTAL: lambda: settings.PORTAL_TOKEN_EXPIRE_MINUTES,
}


# ── Passwords ───────────────────────────────────────────────────────
def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # Malformed hash in storage; treat as a mismatch.
        return False


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


# ── Session tokens ──────────────────────────────────────────────────
def create_token(
    subject: str | Any,
    principal_type: PrincipalType,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=_EXPIRY_MINUTES[principal_type]())
    )
    return jwt.encode(
        {
            "sub": str(subject),
            "type": principal_type.value,
            "iat": int(now.timestamp()),
            "exp": expire,
        },
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )


def decode_token(token: str, expected_type: PrincipalType) -> dict:
    """Return the payload of a valid token of ``expected_type``.

    Raises ``AuthenticationError`` for a bad signature, an expired token, a
    missing subject or a token from the other namespace.
    """
    if not token:
        raise AuthenticationError("Invalid or expired token")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token") from None
    if payload.get("type") != expected_type.value or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token")
    return payload


# ── Portal invitation secrets ───────────────────────────────────────
def generate_invite_token() -> tuple[str, str]:
    """Return ``(raw_token, token_hash)``; only the hash is persisted."""
    raw = secrets.token_urlsafe(32)
    return raw, hash_invite_token(raw)


def hash_invite_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
