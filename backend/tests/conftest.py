"""Pytest configuration and shared fixtures for API tests."""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test DB and secrets before app imports so config/engine use them.
# DATABASE_URL may point at PostgreSQL (postgresql+asyncpg://...) instead.
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "vidtube_test.db"),
)
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("RATE_LIMIT_DEFAULT", "10000/minute")

from vidtube.core.auth import create_access_token, hash_password
from vidtube.db.base import Base
from vidtube.db.session import async_session_maker, engine, init_db
from vidtube.main import app
from vidtube.models.user import User

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
AVATAR_URL = "https://media.test/avatars/alice/avatar.png"


@pytest_asyncio.fixture
async def ensure_db():
    """Create tables; dispose pooled connections so the next test's event loop starts fresh."""
    await init_db()
    yield
    await engine.dispose()


async def _truncate_all():
    """Delete all rows in reverse dependency order so tests start clean."""
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest_asyncio.fixture
async def client(ensure_db):
    """Yield AsyncClient. No session override; use clean_db + test_user for isolated state."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def clean_db(ensure_db):
    """Truncate all tables so the next test has a clean DB."""
    await _truncate_all()
    yield


async def create_user(
    username: str = "alice",
    email: str = "alice@x.com",
    password: str = "pw123",
    full_name: str = "Alice A",
) -> User:
    async with async_session_maker() as session:
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            avatar=AVATAR_URL,
            watch_history=["video-1", "video-2"],
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest_asyncio.fixture
async def test_user(clean_db, client):
    """Create alice via DB (committed) and return (user, access_token)."""
    user = await create_user()
    return user, create_access_token(user)


@pytest.fixture
def auth_headers(test_user):
    """Return dict of Authorization header for test_user."""
    _, token = test_user
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(clean_db):
    """Factory for extra users: await make_user(username=..., email=...)."""
    return create_user


@pytest.fixture
def png_file():
    return ("avatar.png", PNG_BYTES, "image/png")
