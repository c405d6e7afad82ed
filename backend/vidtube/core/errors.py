"""Tagged API errors and the handlers that render them into the response envelope."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base for every error a service may raise towards a client.

    Subclasses fix the default HTTP status; a call site can override it when
    the public contract maps the same failure kind to a different status.
    """

    status_code: int = 500
    default_message: str = "Something went wrong"

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: list[Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid request"


class ConflictError(ApiError):
    status_code = 409
    default_message = "Resource already exists"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Not found"


class UnauthenticatedError(ApiError):
    status_code = 401
    default_message = "Unauthorized request"


class InvalidTokenError(ApiError):
    status_code = 401
    default_message = "Invalid or expired token"


class TokenReuseError(ApiError):
    status_code = 401
    default_message = "Refresh token is expired or already used"


class FatalError(ApiError):
    status_code = 500
    default_message = "Something went wrong"


def error_body(status_code: int, message: str, errors: list[Any] | None = None) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "data": None,
        "message": message,
        "success": False,
        "errors": errors or [],
    }


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.message, exc.errors))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = JSONResponse(status_code=429, content=error_body(429, f"Rate limit exceeded: {exc.detail}"))
    view_rate_limit = getattr(request.state, "view_rate_limit", None)
    if view_rate_limit is not None:
        response = request.app.state.limiter._inject_headers(response, view_rate_limit)
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body(400, "Invalid request", errors))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body(500, FatalError.default_message))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
