"""
Global exception handlers for the FastAPI application.
Every error leaves the API as {"detail", "code"} plus an X-Request-ID header.
"""

import logging
import uuid
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException, ErrorCode

logger = logging.getLogger(__name__)

STATUS_TO_CODE = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTH_NOT_AUTHENTICATED,
    403: ErrorCode.AUTHZ_FORBIDDEN,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
    500: ErrorCode.SERVER_ERROR,
    502: ErrorCode.SERVER_UNAVAILABLE,
    503: ErrorCode.SERVER_UNAVAILABLE,
}


def generate_request_id() -> str:
    """Generate a short request ID for error tracing"""
    return str(uuid.uuid4())[:8]


def _error_response(
    status_code: int,
    body: dict[str, Any],
    request_id: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={**(headers or {}), "X-Request-ID": request_id},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle AppException and its subclasses (queue conflicts, missing matches,
    bad dates, ...). The exception already knows its status and code.
    """
    request_id = generate_request_id()

    logger.warning(
        "AppException: %s (code=%s, status=%d, request_id=%s, path=%s)",
        exc.message,
        exc.code.value,
        exc.status_code,
        request_id,
        request.url.path,
    )

    return _error_response(exc.status_code, exc.to_dict(), request_id)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body/query validation errors from Pydantic."""
    request_id = generate_request_id()

    logger.warning(
        "ValidationError: %s (request_id=%s, path=%s)",
        exc.errors(),
        request_id,
        request.url.path,
    )

    errors = [
        {
            "loc": list(error["loc"]),
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return _error_response(
        422,
        {"detail": errors, "code": ErrorCode.VALIDATION_ERROR.value},
        request_id,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """
    Handle plain HTTP exceptions (e.g. missing bearer token) and map their
    status code onto an ErrorCode.
    """
    request_id = generate_request_id()
    error_code = STATUS_TO_CODE.get(exc.status_code, ErrorCode.SERVER_ERROR)

    logger.warning(
        "HTTPException: %s (status=%d, request_id=%s, path=%s)",
        exc.detail,
        exc.status_code,
        request_id,
        request.url.path,
    )

    return _error_response(
        exc.status_code,
        {"detail": exc.detail or "An error occurred", "code": error_code.value},
        request_id,
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for unexpected exceptions, including database failures.
    The transaction has already been rolled back by the service layer.
    """
    request_id = generate_request_id()

    logger.exception(
        "Unhandled exception (request_id=%s, path=%s): %s",
        request_id,
        request.url.path,
        str(exc),
    )

    return _error_response(
        500,
        {
            "detail": "Internal server error. Please try again later.",
            "code": ErrorCode.SERVER_ERROR.value,
        },
        request_id,
    )
