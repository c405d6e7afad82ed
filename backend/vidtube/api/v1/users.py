"""User endpoints: register, login, logout, token refresh, password and profile management."""

import logging
from typing import Annotated

from fastapi import APIRouter, Body, File, Form, Request, Response, UploadFile

from vidtube.api.deps import ACCESS_COOKIE, REFRESH_COOKIE, CurrentUser, DbSession, client_ip
from vidtube.config import settings
from vidtube.core.auth import TokenPair
from vidtube.schemas.response import ApiResponse
from vidtube.schemas.user import (
    ChangePasswordBody,
    LoginBody,
    LoginOut,
    RefreshBody,
    TokenPairOut,
    UpdateAccountBody,
    UserOut,
)
from vidtube.services import accounts, sessions
from vidtube.services.accounts import MediaFile

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])


def _set_session_cookies(response: Response, tokens: TokenPair) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        tokens.access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=settings.refresh_token_expire_days * 86400,
        path="/",
    )


def _clear_session_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            secure=settings.cookie_secure,
            httponly=True,
            samesite=settings.cookie_samesite,
        )


async def _read_media(file: UploadFile | None) -> MediaFile | None:
    if file is None:
        return None
    data = await file.read()
    return MediaFile(filename=file.filename or "", content_type=file.content_type or "", data=data)


@router.post(
    "/register",
    response_model=ApiResponse[UserOut],
    status_code=201,
    summary="Register a new user with avatar (and optional cover image)",
    responses={
        400: {"description": "Missing fields, missing avatar or invalid image"},
        409: {"description": "Username or email already registered"},
    },
)
async def register(
    request: Request,
    session: DbSession,
    username: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    full_name: Annotated[str | None, Form(alias="fullName")] = None,
    avatar: Annotated[UploadFile | None, File()] = None,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserOut]:
    user = await accounts.register(
        session,
        username=username,
        email=email,
        password=password,
        full_name=full_name,
        avatar=await _read_media(avatar),
        cover_image=await _read_media(cover_image),
        ip_address=client_ip(request),
    )
    return ApiResponse[UserOut].build(201, UserOut.model_validate(user), "User registered successfully")


@router.post(
    "/login",
    response_model=ApiResponse[LoginOut],
    summary="Login with username or email and password",
    responses={
        400: {"description": "Username or email required"},
        401: {"description": "Invalid credentials"},
        404: {"description": "User does not exist"},
    },
)
async def login(
    request: Request,
    response: Response,
    session: DbSession,
    body: LoginBody,
) -> ApiResponse[LoginOut]:
    result = await sessions.login(
        session,
        username=body.username,
        email=body.email,
        password=body.password,
        ip_address=client_ip(request),
    )
    _set_session_cookies(response, result.tokens)
    data = LoginOut(
        user=UserOut.model_validate(result.user),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )
    return ApiResponse[LoginOut].build(200, data, "User logged in successfully")


@router.post(
    "/logout",
    response_model=ApiResponse[dict],
    summary="Logout: revoke the refresh token and clear cookies",
    responses={401: {"description": "Not authenticated"}},
)
async def logout(
    request: Request,
    response: Response,
    session: DbSession,
    user: CurrentUser,
) -> ApiResponse[dict]:
    await sessions.logout(session, user, ip_address=client_ip(request))
    _clear_session_cookies(response)
    return ApiResponse[dict].build(200, {}, "User logged out")


@router.post(
    "/refresh-token",
    response_model=ApiResponse[TokenPairOut],
    summary="Exchange refresh token for a new access and refresh token (rotation)",
    responses={401: {"description": "Refresh token missing, invalid, expired or already used"}},
)
async def refresh_token(
    request: Request,
    response: Response,
    session: DbSession,
    body: Annotated[RefreshBody | None, Body()] = None,
) -> ApiResponse[TokenPairOut]:
    presented = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    result = await sessions.refresh(session, presented, ip_address=client_ip(request))
    _set_session_cookies(response, result.tokens)
    data = TokenPairOut(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )
    return ApiResponse[TokenPairOut].build(200, data, "Access token refreshed")


@router.post(
    "/change-password",
    response_model=ApiResponse[dict],
    summary="Change password of the current user",
    responses={
        400: {"description": "Wrong old password or missing fields"},
        401: {"description": "Not authenticated"},
    },
)
async def change_password(
    request: Request,
    session: DbSession,
    user: CurrentUser,
    body: ChangePasswordBody,
) -> ApiResponse[dict]:
    await sessions.change_password(
        session, user, body.old_password, body.new_password, ip_address=client_ip(request)
    )
    return ApiResponse[dict].build(200, {}, "Password changed successfully")


@router.get(
    "/me",
    response_model=ApiResponse[UserOut],
    summary="Get current authenticated user",
    responses={401: {"description": "Not authenticated or invalid token"}},
)
async def me(user: CurrentUser) -> ApiResponse[UserOut]:
    return ApiResponse[UserOut].build(200, UserOut.model_validate(user), "Current user fetched")


@router.patch(
    "/update-account",
    response_model=ApiResponse[UserOut],
    summary="Update full name and/or email",
    responses={
        400: {"description": "Nothing to update"},
        409: {"description": "Email already registered"},
    },
)
async def update_account(
    session: DbSession,
    user: CurrentUser,
    body: UpdateAccountBody,
) -> ApiResponse[UserOut]:
    user = await accounts.update_account(session, user, full_name=body.full_name, email=body.email)
    return ApiResponse[UserOut].build(200, UserOut.model_validate(user), "Account details updated")


@router.patch(
    "/avatar",
    response_model=ApiResponse[UserOut],
    summary="Replace avatar image",
    responses={400: {"description": "Missing or invalid image"}},
)
async def update_avatar(
    session: DbSession,
    user: CurrentUser,
    avatar: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[UserOut]:
    user = await accounts.update_avatar(session, user, await _read_media(avatar))
    return ApiResponse[UserOut].build(200, UserOut.model_validate(user), "Avatar updated")


@router.patch(
    "/cover-image",
    response_model=ApiResponse[UserOut],
    summary="Replace cover image",
    responses={400: {"description": "Missing or invalid image"}},
)
async def update_cover_image(
    session: DbSession,
    user: CurrentUser,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserOut]:
    user = await accounts.update_cover_image(session, user, await _read_media(cover_image))
    return ApiResponse[UserOut].build(200, UserOut.model_validate(user), "Cover image updated")


@router.get(
    "/history",
    response_model=ApiResponse[list[str]],
    summary="Watch history of the current user",
    responses={401: {"description": "Not authenticated"}},
)
async def watch_history(user: CurrentUser) -> ApiResponse[list[str]]:
    return ApiResponse[list[str]].build(200, accounts.get_watch_history(user), "Watch history fetched")
