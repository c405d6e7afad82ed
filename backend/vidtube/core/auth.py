"""Password hashing and JWT creation/verification."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt

from vidtube.config import settings
from vidtube.core.errors import FatalError

if TYPE_CHECKING:
    from vidtube.models.user import User

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit); no passlib re-encoding."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify password with bcrypt (constant-time). Plain password truncated to 72 bytes."""
    if not password_hash:
        return False
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def _signing_key(secret: str, name: str) -> str:
    if not secret:
        raise FatalError(f"{name} is not configured")
    return secret


def _encode(payload: dict[str, Any], secret: str) -> str:
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user: User, now: datetime | None = None) -> str:
    """Short-lived token carrying the public identity fields."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "full_name": user.full_name,
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return _encode(payload, _signing_key(settings.access_token_secret, "ACCESS_TOKEN_SECRET"))


def create_refresh_token(user: User, now: datetime | None = None) -> str:
    """Long-lived token carrying only the user id; caller must store its hash."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "type": REFRESH_TOKEN_TYPE,
        "jti": secrets.token_hex(16),
        "iat": issued,
        "exp": issued + timedelta(days=settings.refresh_token_expire_days),
    }
    return _encode(payload, _signing_key(settings.refresh_token_secret, "REFRESH_TOKEN_SECRET"))


def issue_token_pair(user: User) -> TokenPair:
    now = datetime.now(timezone.utc)
    return TokenPair(
        access_token=create_access_token(user, now),
        refresh_token=create_refresh_token(user, now),
    )


def hash_refresh_token(token: str) -> str:
    """SHA256 hash of refresh token for storage."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def refresh_token_matches(token: str, stored_hash: str | None) -> bool:
    if not stored_hash:
        return False
    return hmac.compare_digest(hash_refresh_token(token), stored_hash)


def _decode(token: str, secret: str, name: str, expected_type: str) -> dict[str, Any]:
    payload = jwt.decode(token, _signing_key(secret, name), algorithms=[settings.jwt_algorithm])
    if payload.get("type") != expected_type:
        raise JWTError(f"expected {expected_type} token")
    return payload


def decode_access_token(token: str) -> dict[str, Any]:
    return _decode(token, settings.access_token_secret, "ACCESS_TOKEN_SECRET", ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict[str, Any]:
    return _decode(token, settings.refresh_token_secret, "REFRESH_TOKEN_SECRET", REFRESH_TOKEN_TYPE)


def user_id_from_claims(payload: dict[str, Any]) -> int | None:
    """Return the integer user id from ``sub`` or None when it is missing or malformed."""
    sub = payload.get("sub")
    if not sub:
        return None
    try:
        return int(sub)
    except (TypeError, ValueError):
        return None
