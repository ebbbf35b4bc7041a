"""Global exception handlers for consistent error responses.

Every failure leaves the API in the standard envelope:
``{"success": false, "message": ..., "error": {...}}``.

Design:
- AppError subclasses → their own HTTP status (400, 408, 413, 429)
- HTTPException → its status code, detail as message
- Request validation errors → 400 with per-field errors
- Unexpected Exception → generic 500 (``unhandled_error_response``)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nextevent.core.errors import AppError, RateLimitAppError, ValidationAppError
from nextevent.core.logging import get_request_id
from nextevent.core.responses import error_response, rate_limit_response

logger = logging.getLogger(__name__)


def app_error_response(exc: AppError) -> JSONResponse:
    """Render a domain error as an envelope response.

    Rate-limit rejections keep the bare ``{"success": false, "message":
    "Rate limit exceeded"}`` body and carry their throttling headers.
    Everything else gets ``error.code``, ``error.request_id`` and, when
    present, ``error.details``.

    Args:
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error's status code.
    """
    if isinstance(exc, RateLimitAppError):
        return rate_limit_response(headers=exc.headers or None)

    error_content = {
        "code": exc.code,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return error_response(exc.status_code, exc.message, error=error_content)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors raised by routes and dependencies."""
    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": exc.status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )
    return app_error_response(exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404, 405, explicit raises) in the envelope."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(
        exc.status_code,
        message,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures as 400 with field-level errors."""
    fields = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    logger.info(
        "request_validation_failed",
        extra={"request_path": request.url.path, "error_count": len(fields)},
    )
    return app_error_response(
        ValidationAppError(
            code="validation_failed",
            message="Validation failed",
            details={"fields": fields},
        )
    )


def unhandled_error_response(request: Request, exc: Exception) -> JSONResponse:
    """Log an unexpected error and render the generic 500 envelope.

    Logs detailed information for debugging while returning a generic
    message, so no implementation details reach the client.
    """
    logger.error(
        "unhandled_exception",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        error={
            "code": "internal_server_error",
            "request_id": get_request_id(),
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for errors raised outside the routes (safety net).

    Starlette runs it outside every user middleware, so these responses carry
    no request id or security headers. Route errors are caught earlier by
    ``error_boundary_middleware``.
    """
    return unhandled_error_response(request, exc)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Calling it twice simply re-registers the same handlers.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
