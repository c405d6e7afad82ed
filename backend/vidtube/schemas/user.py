"""Request bodies and sanitized user views for /users endpoints."""

from datetime import datetime

from vidtube.schemas.response import CamelModel


class UserOut(CamelModel):
    """Public user view; never carries the password hash or refresh-token slot."""

    id: int
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str | None = None
    watch_history: list[str] = []
    created_at: datetime | None = None


class LoginBody(CamelModel):
    email: str | None = None
    username: str | None = None
    password: str = ""


class RefreshBody(CamelModel):
    refresh_token: str | None = None


class ChangePasswordBody(CamelModel):
    old_password: str = ""
    new_password: str = ""


class UpdateAccountBody(CamelModel):
    full_name: str | None = None
    email: str | None = None


class TokenPairOut(CamelModel):
    access_token: str
    refresh_token: str


class LoginOut(TokenPairOut):
    user: UserOut
