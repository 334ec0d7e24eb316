"""Exception handlers rendering the common error envelope."""

from typing import Any

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.core.exceptions import AppException
from app.middleware.logging import get_correlation_id

logger = structlog.get_logger()


def error_response(
    request: Request,
    status_code: int,
    error: str,
    code: str,
    message: Any,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    """
    Build the JSON error body shared by every handler.

    Shape: ``{error, code, message, ...extra, path, correlation_id}``.
    """
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "code": code,
            "message": message,
            **extra,
            "path": str(request.url),
            "correlation_id": get_correlation_id(),
        },
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application exceptions, including the booking error taxonomy.

    Classified booking errors carry their own extra fields (validation kind,
    conflicting appointment id) and headers (Retry-After on 503).
    """
    if exc.status_code >= 500:
        logger.warning("request_unavailable", code=exc.code, message=exc.message)
    return error_response(
        request,
        exc.status_code,
        exc.__class__.__name__,
        exc.code,
        exc.message,
        headers=exc.headers,
        **exc.to_dict(),
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle routing and framework HTTP errors."""
    return error_response(
        request,
        exc.status_code,
        "HTTPException",
        "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR",
        exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle malformed requests; field errors are listed under ``details``."""
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "VALIDATION_ERROR",
        "Request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle anything unexpected; the message is hidden in production."""
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "INTERNAL_ERROR",
        "An unexpected error occurred" if settings.is_production else str(exc),
    )
