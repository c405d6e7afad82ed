"""Registration and profile management (full name, email, avatar, cover image)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.config import settings
from vidtube.core.auth import hash_password
from vidtube.core.errors import ApiError, ConflictError, FatalError, ValidationError
from vidtube.db.session import committing
from vidtube.models.user import User
from vidtube.services import storage
from vidtube.services.audit import log_action
from vidtube.services.sessions import normalize_identifier

logger = logging.getLogger(__name__)

AVATAR_CATEGORY = "avatars"
COVER_CATEGORY = "covers"

# Column widths of the users table, keyed by the public field name
FIELD_MAX_LENGTHS = {
    "username": User.__table__.c.username.type.length,
    "email": User.__table__.c.email.type.length,
    "fullName": User.__table__.c.full_name.type.length,
}


@dataclass
class MediaFile:
    filename: str
    content_type: str
    data: bytes


def validate_image(media: MediaFile, field: str) -> None:
    if not media.content_type or not media.content_type.startswith("image/"):
        raise ValidationError(f"{field} must be an image")
    if len(media.data) == 0:
        raise ValidationError(f"{field} file is empty")
    if len(media.data) > settings.max_upload_bytes:
        raise ValidationError(f"{field} is too large (max {settings.max_upload_bytes // (1024 * 1024)}MB)")
    magic = media.data[:12]
    if not (
        magic.startswith(b"\xff\xd8\xff")
        or magic.startswith(b"\x89PNG\r\n\x1a\n")
        or magic.startswith(b"GIF87a")
        or magic.startswith(b"GIF89a")
        or (magic[:4] == b"RIFF" and magic[8:12] == b"WEBP")
    ):
        raise ValidationError(f"{field} must be a valid image (JPEG, PNG, GIF or WebP)")


async def _upload(media: MediaFile, user_key: str, category: str) -> str:
    try:
        return await storage.upload_media(
            media.data, user_key=user_key, category=category, content_type=media.content_type
        )
    except storage.StorageError as e:
        raise FatalError(f"Failed to upload {category.rstrip('s')}") from e


def check_field_lengths(**fields: str | None) -> None:
    errors = [
        {"field": name, "message": f"must be at most {FIELD_MAX_LENGTHS[name]} characters"}
        for name, value in fields.items()
        if value and len(value) > FIELD_MAX_LENGTHS[name]
    ]
    if errors:
        raise ValidationError("Field value is too long", errors=errors)


async def _discard_uploads(*urls: str | None) -> None:
    for url in urls:
        if not url:
            continue
        try:
            await storage.delete_media(url)
        except storage.StorageError:
            logger.warning("Could not remove orphaned media %s", url)


async def _ensure_unique(session: AsyncSession, *, username: str | None, email: str | None, exclude_id: int | None = None) -> None:
    conditions = []
    if username:
        conditions.append(User.username == username)
    if email:
        conditions.append(User.email == email)
    if not conditions:
        return
    query = select(User.id).where(or_(*conditions))
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    r = await session.execute(query.limit(1))
    if r.scalar_one_or_none() is not None:
        raise ConflictError("User with email or username already exists")


async def register(
    session: AsyncSession,
    *,
    username: str | None,
    email: str | None,
    password: str | None,
    full_name: str | None,
    avatar: MediaFile | None,
    cover_image: MediaFile | None = None,
    ip_address: str | None = None,
) -> User:
    username = normalize_identifier(username)
    email = normalize_identifier(email)
    full_name = (full_name or "").strip()
    if not all([username, email, password and password.strip(), full_name]):
        raise ValidationError("All fields are required")
    check_field_lengths(username=username, email=email, fullName=full_name)
    if avatar is None:
        raise ValidationError("Avatar file is required")
    validate_image(avatar, "Avatar")
    if cover_image is not None:
        validate_image(cover_image, "Cover image")

    await _ensure_unique(session, username=username, email=email)

    avatar_url = cover_url = None
    try:
        avatar_url = await _upload(avatar, username, AVATAR_CATEGORY)
        if cover_image is not None:
            cover_url = await _upload(cover_image, username, COVER_CATEGORY)

        async with committing(session, "registration"):
            user = User(
                username=username,
                email=email,
                password_hash=hash_password(password),
                full_name=full_name,
                avatar=avatar_url,
                cover_image=cover_url,
                watch_history=[],
            )
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as e:
                await session.rollback()
                logger.warning("Register IntegrityError for %s: %s", username, e.orig)
                raise ConflictError("User with email or username already exists") from e
            await log_action(session, user.id, "register", resource_id=str(user.id), ip_address=ip_address)
    except ApiError:
        await _discard_uploads(avatar_url, cover_url)
        raise
    logger.info("Registered user %s (%s)", user.id, username)
    return user


async def update_account(
    session: AsyncSession,
    user: User,
    *,
    full_name: str | None,
    email: str | None,
) -> User:
    values: dict[str, str] = {}
    if full_name is not None and full_name.strip():
        values["full_name"] = full_name.strip()
    if email is not None and email.strip():
        values["email"] = normalize_identifier(email)
    if not values:
        raise ValidationError("Full name or email is required")
    check_field_lengths(email=values.get("email"), fullName=values.get("full_name"))
    if "email" in values and values["email"] != user.email:
        await _ensure_unique(session, username=None, email=values["email"], exclude_id=user.id)

    async with committing(session, "account update"):
        try:
            await session.execute(update(User).where(User.id == user.id).values(**values))
        except IntegrityError as e:
            await session.rollback()
            raise ConflictError("User with email or username already exists") from e
    await session.refresh(user)
    return user


async def _replace_media(session: AsyncSession, user: User, media: MediaFile | None, field: str) -> User:
    label = "Avatar" if field == "avatar" else "Cover image"
    if media is None:
        raise ValidationError(f"{label} file is missing")
    validate_image(media, label)
    category = AVATAR_CATEGORY if field == "avatar" else COVER_CATEGORY
    url = await _upload(media, user.username, category)
    try:
        async with committing(session, f"{label.lower()} update"):
            await session.execute(update(User).where(User.id == user.id).values({field: url}))
    except FatalError:
        await _discard_uploads(url)
        raise
    await session.refresh(user)
    return user


async def update_avatar(session: AsyncSession, user: User, media: MediaFile | None) -> User:
    return await _replace_media(session, user, media, "avatar")


async def update_cover_image(session: AsyncSession, user: User, media: MediaFile | None) -> User:
    return await _replace_media(session, user, media, "cover_image")


def get_watch_history(user: User) -> list[str]:
    return list(user.watch_history or [])
