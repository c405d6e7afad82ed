"""Tests for the error envelope on framework-level failures and the authenticator's request state."""

import json
from types import SimpleNamespace

import pytest
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request

from vidtube.api.deps import get_current_user
from vidtube.core.errors import rate_limit_exceeded_handler
from vidtube.db.session import async_session_maker
from vidtube.main import app
from vidtube.schemas.user import UserOut


def _request(headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    return Request(
        {
            "type": "http",
            "app": app,
            "method": "GET",
            "path": "/api/v1/users/me",
            "headers": headers or [],
            "query_string": b"",
        }
    )


@pytest.mark.asyncio
async def test_rate_limit_uses_error_envelope():
    assert app.exception_handlers[RateLimitExceeded] is rate_limit_exceeded_handler
    exc = RateLimitExceeded(SimpleNamespace(limit="2 per 1 minute", error_message=None))
    resp = await app.exception_handlers[RateLimitExceeded](_request(), exc)
    assert resp.status_code == 429
    body = json.loads(resp.body)
    assert body["statusCode"] == 429
    assert body["success"] is False
    assert body["data"] is None
    assert body["errors"] == []
    assert body["message"].startswith("Rate limit exceeded")


@pytest.mark.asyncio
async def test_current_user_state_is_sanitized(test_user):
    user, token = test_user
    request = _request([(b"authorization", f"Bearer {token}".encode())])
    async with async_session_maker() as session:
        loaded = await get_current_user(request, session)
    assert loaded.id == user.id
    identity = request.state.user
    assert isinstance(identity, UserOut)
    assert identity.username == "alice"
    assert not hasattr(identity, "password_hash")
    assert not hasattr(identity, "refresh_token_hash")
