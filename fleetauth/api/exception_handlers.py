"""
===============================================================================
CRC CARD — api/exception_handlers.py (Centralized exception handling)
===============================================================================

Responsibilities:
  - Translate engine exceptions into RFC7807 HTTP responses.
  - Centralize error logging with request_id + error_id.
  - Never leak internal detail (which factor failed, verifier state).

Patterns applied:
  - Exception Mapping (Presentation Layer).
  - Fail-safe: any untyped exception -> INTERNAL_ERROR (logged).

Status mapping:
  401 INVALID_CREDENTIALS / TOKEN_*     423 LOCKED_OUT (+Retry-After)
  429 RATE_LIMITED (+Retry-After)       403 INSUFFICIENT_PERMISSIONS
  404 NOT_FOUND                         500 POLICY_CONFIG_ERROR / SIGNING_KEY_UNAVAILABLE
  503 SERVICE_UNAVAILABLE (store timeout, fail closed)

Collaborators:
  - crosscutting.error_responses: AppHTTPException, ErrorCode, app_exception_handler
  - crosscutting.exceptions: EngineError and subclasses
===============================================================================
"""

from __future__ import annotations

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
)
from ..crosscutting.exceptions import (
    EngineError,
    IdentityNotFoundError,
    InsufficientPermissionsError,
    InvalidCredentialsError,
    LockedOutError,
    PolicyConfigError,
    RateLimitedError,
    SigningKeyUnavailableError,
    StoreUnavailableError,
    TokenExpiredError,
    TokenInvalidError,
    TokenRevokedError,
)
from ..crosscutting.logger import logger

# Most specific class first; lookup walks the exception's MRO.
_STATUS_MAP: dict[type[EngineError], tuple[int, ErrorCode]] = {
    InvalidCredentialsError: (401, ErrorCode.INVALID_CREDENTIALS),
    TokenExpiredError: (401, ErrorCode.TOKEN_EXPIRED),
    TokenRevokedError: (401, ErrorCode.TOKEN_REVOKED),
    TokenInvalidError: (401, ErrorCode.TOKEN_INVALID),
    LockedOutError: (423, ErrorCode.LOCKED_OUT),
    RateLimitedError: (429, ErrorCode.RATE_LIMITED),
    InsufficientPermissionsError: (403, ErrorCode.INSUFFICIENT_PERMISSIONS),
    IdentityNotFoundError: (404, ErrorCode.NOT_FOUND),
    PolicyConfigError: (500, ErrorCode.POLICY_CONFIG_ERROR),
    SigningKeyUnavailableError: (500, ErrorCode.SIGNING_KEY_UNAVAILABLE),
    StoreUnavailableError: (503, ErrorCode.SERVICE_UNAVAILABLE),
}


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def status_for(exc: EngineError) -> tuple[int, ErrorCode]:
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            return _STATUS_MAP[cls]
    return 500, ErrorCode.INTERNAL_ERROR


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code, code = status_for(exc)
    request_id = _request_id_from(request)

    extra = {
        "code": code.value,
        "error_id": exc.error_id,
        "request_id": request_id,
    }
    if status_code >= 500:
        if isinstance(exc, PolicyConfigError):
            extra["problems"] = exc.problems
        logger.error("Engine error", extra=extra)
    else:
        logger.info("Request denied", extra=extra)

    headers: dict[str, str] = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
    if status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"

    # Server-side conditions keep their taxonomy code but not their detail.
    detail = exc.default_message if status_code >= 500 else exc.message

    app_exc = AppHTTPException(
        status_code=status_code,
        code=code,
        detail=detail,
        errors=[{"error_id": exc.error_id, "request_id": request_id}],
        headers=headers or None,
    )
    return await app_exception_handler(request, app_exc)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    app_exc = AppHTTPException(
        status_code=422,
        code=ErrorCode.VALIDATION_ERROR,
        detail="Request validation failed",
        errors=errors,
    )
    return await app_exception_handler(request, app_exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Fallback for untyped exceptions.

    - Full log (stacktrace).
    - Generic response in production.
    """
    request_id = _request_id_from(request)

    logger.error(
        "Unhandled exception",
        exc_info=True,
        extra={"request_id": request_id, "error": str(exc)},
    )

    try:
        production = get_settings().is_production()
    except ValueError:
        production = True
    detail = "Unexpected error" if production else str(exc)

    app_exc = AppHTTPException(
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR,
        detail=detail,
        errors=[{"request_id": request_id}],
    )
    return await app_exception_handler(request, app_exc)


def register_exception_handlers(app) -> None:
    """
    Register handlers on the FastAPI app.

    Exception is registered last as the fallback.
    """
    app.add_exception_handler(EngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers", "status_for"]
