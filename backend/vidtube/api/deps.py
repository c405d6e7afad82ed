"""FastAPI dependencies: current user from the access token (cookie or bearer)."""

import logging
from typing import Annotated

from fastapi import Depends, Request
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.core.auth import decode_access_token, user_id_from_claims
from vidtube.core.errors import InvalidTokenError, UnauthenticatedError
from vidtube.db.session import get_db
from vidtube.models.user import User
from vidtube.schemas.user import UserOut

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def extract_access_token(request: Request) -> str | None:
    """Cookie ``accessToken`` first, then ``Authorization: Bearer``."""
    token = (request.cookies.get(ACCESS_COOKIE) or "").strip()
    if token:
        return token
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


async def get_current_user(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    token = extract_access_token(request)
    if not token:
        raise UnauthenticatedError("Unauthorized request")
    try:
        payload = decode_access_token(token)
    except JWTError:
        raise InvalidTokenError("Invalid access token") from None
    user_id = user_id_from_claims(payload)
    if user_id is None:
        raise InvalidTokenError("Invalid access token")
    user = await session.get(User, user_id)
    if user is None:
        logger.info("Access token for missing user %s rejected", user_id)
        raise InvalidTokenError("Invalid access token")
    # Downstream code sees the sanitized view; handlers get the row for writes
    request.state.user = UserOut.model_validate(user)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
