"""Login, refresh-token rotation, logout and password change.

Each user row has a single refresh-token slot (``users.refresh_token_hash``).
Login overwrites it, refresh swaps it only if it still holds the presented
token, logout clears it. Access tokens are never checked against the slot, so
they stay valid until they expire.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from jose import JWTError
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.core.auth import (
    TokenPair,
    decode_refresh_token,
    hash_password,
    hash_refresh_token,
    issue_token_pair,
    refresh_token_matches,
    user_id_from_claims,
    verify_password,
)
from vidtube.core.errors import (
    InvalidTokenError,
    NotFoundError,
    TokenReuseError,
    UnauthenticatedError,
    ValidationError,
)
from vidtube.db.session import committing
from vidtube.models.user import User
from vidtube.services.audit import log_action

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    tokens: TokenPair
    user: User


def normalize_identifier(value: str | None) -> str:
    return (value or "").strip().lower()


async def login(
    session: AsyncSession,
    *,
    username: str | None,
    email: str | None,
    password: str | None,
    ip_address: str | None = None,
) -> SessionResult:
    username = normalize_identifier(username)
    email = normalize_identifier(email)
    if not username and not email:
        raise ValidationError("Username or email is required")
    if not password:
        raise ValidationError("Password is required")

    conditions = []
    if username:
        conditions.append(User.username == username)
    if email:
        conditions.append(User.email == email)
    r = await session.execute(select(User).where(or_(*conditions)).order_by(User.id))
    user = r.scalars().first()
    if user is None:
        raise NotFoundError("User does not exist")
    if not verify_password(password, user.password_hash):
        raise UnauthenticatedError("Invalid user credentials")

    tokens = issue_token_pair(user)
    async with committing(session, "login"):
        await session.execute(
            update(User)
            .where(User.id == user.id)
            .values(refresh_token_hash=hash_refresh_token(tokens.refresh_token))
        )
        await log_action(session, user.id, "login", resource_id=str(user.id), ip_address=ip_address)
    logger.info("User %s logged in", user.id)
    return SessionResult(tokens=tokens, user=user)


async def refresh(
    session: AsyncSession,
    presented_token: str | None,
    ip_address: str | None = None,
) -> SessionResult:
    """Exchange a live refresh token for a new pair (rotation)."""
    token = (presented_token or "").strip()
    if not token:
        raise UnauthenticatedError("Refresh token is required")
    try:
        claims = decode_refresh_token(token)
    except JWTError:
        logger.warning("Refresh rejected: token failed verification")
        raise InvalidTokenError("Invalid refresh token") from None

    user_id = user_id_from_claims(claims)
    user = await session.get(User, user_id) if user_id is not None else None
    if user is None:
        logger.warning("Refresh rejected: no user for token subject")
        raise InvalidTokenError("Invalid refresh token")

    previous_hash = user.refresh_token_hash
    if not refresh_token_matches(token, previous_hash):
        logger.warning("Refresh rejected for user %s: token is not the live session", user.id)
        raise TokenReuseError()

    tokens = issue_token_pair(user)
    async with committing(session, "token refresh"):
        # Compare-and-swap: a concurrent refresh that already rotated the slot wins.
        result = await session.execute(
            update(User)
            .where(User.id == user.id, User.refresh_token_hash == previous_hash)
            .values(refresh_token_hash=hash_refresh_token(tokens.refresh_token))
        )
        if result.rowcount != 1:
            logger.warning("Refresh rejected for user %s: lost rotation race", user.id)
            raise TokenReuseError()
        await log_action(session, user.id, "refresh", resource_id=str(user.id), ip_address=ip_address)
    return SessionResult(tokens=tokens, user=user)


async def logout(session: AsyncSession, user: User, ip_address: str | None = None) -> bool:
    """Clear the refresh-token slot. Returns False when it was already empty (no write)."""
    async with committing(session, "logout"):
        result = await session.execute(
            update(User)
            .where(User.id == user.id, User.refresh_token_hash.is_not(None))
            .values(refresh_token_hash=None)
        )
        revoked = result.rowcount > 0
        if revoked:
            await log_action(session, user.id, "logout", resource_id=str(user.id), ip_address=ip_address)
    if revoked:
        logger.info("User %s logged out", user.id)
    return revoked


async def change_password(
    session: AsyncSession,
    user: User,
    old_password: str | None,
    new_password: str | None,
    ip_address: str | None = None,
) -> None:
    """Replace the password hash. Outstanding tokens are left valid."""
    if not old_password or not new_password:
        raise ValidationError("Old and new password are required")
    stored = await session.get(User, user.id)
    if stored is None:
        raise InvalidTokenError("Invalid access token")
    if not verify_password(old_password, stored.password_hash):
        raise UnauthenticatedError("Invalid old password", status_code=400)

    async with committing(session, "password change"):
        await session.execute(
            update(User).where(User.id == stored.id).values(password_hash=hash_password(new_password))
        )
        await log_action(session, stored.id, "password_change", resource_id=str(stored.id), ip_address=ip_address)
