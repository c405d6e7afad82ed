"""Tests for profile endpoints (media store mocked)."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from vidtube.core.errors import ConflictError, FatalError, ValidationError
from vidtube.services import storage
from vidtube.services.accounts import MediaFile, register, validate_image
from vidtube.db.session import async_session_maker

BASE = "/api/v1/users"
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00\xff\xd9"


@pytest.mark.asyncio
async def test_update_account(client: AsyncClient, auth_headers: dict):
    resp = await client.patch(
        f"{BASE}/update-account",
        json={"fullName": "Alice Anderson", "email": "Alice.New@X.com"},
        headers=auth_headers,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["fullName"] == "Alice Anderson"
    assert data["email"] == "alice.new@x.com"


@pytest.mark.asyncio
async def test_update_account_requires_a_field(client: AsyncClient, auth_headers: dict):
    resp = await client.patch(f"{BASE}/update-account", json={}, headers=auth_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_account_email_conflict(client: AsyncClient, auth_headers: dict, make_user):
    await make_user(username="bob", email="bob@x.com")
    resp = await client.patch(f"{BASE}/update-account", json={"email": "bob@x.com"}, headers=auth_headers)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_update_account_rejects_overlong_email(client: AsyncClient, auth_headers: dict):
    resp = await client.patch(
        f"{BASE}/update-account", json={"email": "a" * 250 + "@x.com"}, headers=auth_headers
    )
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "email"


@pytest.mark.asyncio
async def test_update_avatar(client: AsyncClient, auth_headers: dict):
    new_url = "https://media.test/avatars/alice/new.jpg"
    with patch("vidtube.services.storage.upload_media", new_callable=AsyncMock, return_value=new_url) as upload:
        resp = await client.patch(
            f"{BASE}/avatar",
            files={"avatar": ("me.jpg", JPEG_BYTES, "image/jpeg")},
            headers=auth_headers,
        )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["avatar"] == new_url
    assert upload.await_args.kwargs["category"] == "avatars"


@pytest.mark.asyncio
async def test_update_avatar_missing_file(client: AsyncClient, auth_headers: dict):
    resp = await client.patch(f"{BASE}/avatar", headers=auth_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_cover_image(client: AsyncClient, auth_headers: dict):
    new_url = "https://media.test/covers/alice/c.jpg"
    with patch("vidtube.services.storage.upload_media", new_callable=AsyncMock, return_value=new_url):
        resp = await client.patch(
            f"{BASE}/cover-image",
            files={"coverImage": ("c.jpg", JPEG_BYTES, "image/jpeg")},
            headers=auth_headers,
        )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["coverImage"] == new_url


@pytest.mark.asyncio
async def test_watch_history(client: AsyncClient, auth_headers: dict):
    resp = await client.get(f"{BASE}/history", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == ["video-1", "video-2"]


@pytest.mark.asyncio
async def test_register_upload_failure_is_fatal(clean_db):
    media = MediaFile(filename="a.jpg", content_type="image/jpeg", data=JPEG_BYTES)
    with patch(
        "vidtube.services.storage.upload_media",
        new_callable=AsyncMock,
        side_effect=storage.StorageError("upload failed"),
    ):
        async with async_session_maker() as session:
            with pytest.raises(FatalError):
                await register(
                    session,
                    username="carol",
                    email="carol@x.com",
                    password="pw",
                    full_name="Carol",
                    avatar=media,
                )


@pytest.mark.asyncio
async def test_register_rejects_overlong_username(client: AsyncClient, clean_db, png_file):
    with patch("vidtube.services.storage.upload_media", new_callable=AsyncMock) as upload:
        resp = await client.post(
            f"{BASE}/register",
            data={"username": "u" * 65, "email": "long@x.com", "password": "pw", "fullName": "Long Name"},
            files={"avatar": png_file},
        )
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "username"
    upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_cover_failure_discards_avatar(clean_db):
    avatar_url = "https://media.test/avatars/carol/a.jpg"
    media = MediaFile(filename="a.jpg", content_type="image/jpeg", data=JPEG_BYTES)
    with patch(
        "vidtube.services.storage.upload_media",
        new_callable=AsyncMock,
        side_effect=[avatar_url, storage.StorageError("upload failed")],
    ), patch("vidtube.services.storage.delete_media", new_callable=AsyncMock) as delete:
        async with async_session_maker() as session:
            with pytest.raises(FatalError):
                await register(
                    session,
                    username="carol",
                    email="carol@x.com",
                    password="pw",
                    full_name="Carol",
                    avatar=media,
                    cover_image=media,
                )
    delete.assert_awaited_once_with(avatar_url)


@pytest.mark.asyncio
async def test_register_conflict_discards_uploads(clean_db, make_user):
    await make_user(username="carol", email="carol@x.com")
    avatar_url = "https://media.test/avatars/carol/a.jpg"
    media = MediaFile(filename="a.jpg", content_type="image/jpeg", data=JPEG_BYTES)
    with patch("vidtube.services.accounts._ensure_unique", new_callable=AsyncMock), patch(
        "vidtube.services.storage.upload_media", new_callable=AsyncMock, return_value=avatar_url
    ), patch("vidtube.services.storage.delete_media", new_callable=AsyncMock) as delete:
        async with async_session_maker() as session:
            with pytest.raises(ConflictError):
                await register(
                    session,
                    username="carol",
                    email="carol@x.com",
                    password="pw",
                    full_name="Carol",
                    avatar=media,
                )
    delete.assert_awaited_once_with(avatar_url)


def test_validate_image_rejects_bad_input():
    with pytest.raises(ValidationError):
        validate_image(MediaFile("a.jpg", "image/jpeg", b""), "Avatar")
    with pytest.raises(ValidationError):
        validate_image(MediaFile("a.jpg", "image/jpeg", b"plain text"), "Avatar")
    with patch.object(storage.settings, "max_upload_bytes", 4):
        with pytest.raises(ValidationError):
            validate_image(MediaFile("a.jpg", "image/jpeg", JPEG_BYTES), "Avatar")
    validate_image(MediaFile("a.jpg", "image/jpeg", JPEG_BYTES), "Avatar")


def test_object_key_layout():
    key = storage.object_key("alice", "avatars", "image/png")
    assert key.startswith("avatars/alice/")
    assert key.endswith(".png")
    assert storage.public_url(key).endswith("/" + key)


def test_key_from_url():
    key = storage.object_key("alice", "covers", "image/jpeg")
    assert storage.key_from_url(storage.public_url(key)) == key
    assert storage.key_from_url("https://elsewhere.test/covers/alice/x.jpg") is None
