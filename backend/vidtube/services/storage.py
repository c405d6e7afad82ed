"""S3-compatible media store for avatars and cover images."""

import asyncio
import io
import logging
import mimetypes
import uuid

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from vidtube.config import settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    pass


def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key,
        aws_secret_access_key=settings.s3_secret_key,
        config=Config(signature_version="s3v4"),
    )


async def ensure_bucket_exists() -> None:
    client = get_s3_client()

    def _create_if_missing() -> None:
        try:
            client.head_bucket(Bucket=settings.s3_bucket)
        except ClientError:
            client.create_bucket(Bucket=settings.s3_bucket)

    await asyncio.to_thread(_create_if_missing)


def object_key(user_key: str, category: str, content_type: str) -> str:
    ext = mimetypes.guess_extension(content_type or "") or ".bin"
    if ext == ".jpe":
        ext = ".jpg"
    return f"{category}/{user_key}/{uuid.uuid4().hex}{ext}"


def public_url(key: str) -> str:
    return f"{settings.media_base_url}/{key}"


async def upload_media(data: bytes, *, user_key: str, category: str, content_type: str) -> str:
    """Upload bytes to the media bucket and return the public URL."""
    key = object_key(user_key, category, content_type)
    client = get_s3_client()

    def _upload() -> None:
        client.upload_fileobj(
            io.BytesIO(data),
            settings.s3_bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )

    try:
        await ensure_bucket_exists()
        await asyncio.to_thread(_upload)
    except (BotoCoreError, ClientError) as e:
        logger.exception("Media upload failed for %s", key)
        raise StorageError(f"upload failed: {type(e).__name__}") from e
    return public_url(key)


def key_from_url(url: str) -> str | None:
    """Object key for a URL produced by ``public_url``; None for foreign URLs."""
    prefix = f"{settings.media_base_url}/"
    if not url or not url.startswith(prefix):
        return None
    return url[len(prefix):] or None


async def delete_media(url: str) -> None:
    key = key_from_url(url)
    if key is None:
        return
    client = get_s3_client()
    try:
        await asyncio.to_thread(client.delete_object, Bucket=settings.s3_bucket, Key=key)
    except (BotoCoreError, ClientError) as e:
        logger.exception("Media delete failed for %s", key)
        raise StorageError(f"delete failed: {type(e).__name__}") from e
