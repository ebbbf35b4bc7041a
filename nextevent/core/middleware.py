"""HTTP middleware guarding every request.

Request correlation:
- Accepts an incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Echoes request_id and total duration in the response headers

Request guards (built per app from settings):
- Security headers on every response
- Declared body size limit (413)
- Handling deadline (408)
- Unhandled route errors rendered as the 500 envelope

Usage:
    app.middleware("http")(error_boundary_middleware)
    app.middleware("http")(build_timeout_middleware(30.0))
    app.middleware("http")(build_request_id_middleware("X-Request-ID"))
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Awaitable, Callable, Mapping

from fastapi import Request, Response

from nextevent.core.errors import PayloadTooLargeAppError, RequestTimeoutAppError
from nextevent.core.exception_handlers import app_error_response, unhandled_error_response
from nextevent.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]
HTTPMiddleware = Callable[[Request, CallNext], Awaitable[Response]]

DEFAULT_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'self'",
}


def build_request_id_middleware(header_name: str = "X-Request-ID") -> HTTPMiddleware:
    """Build middleware for request ID generation and propagation.

    If the client sends ``header_name``, that value is used. Otherwise, a new
    UUID is generated. The id is stored in contextvars for log correlation
    while the request runs and echoed back under the same header.

    Args:
        header_name: Header carrying the correlation id in both directions.

    Returns:
        Middleware adding the request id and duration headers.
    """

    async def request_id_middleware(request: Request, call_next: CallNext) -> Response:
        request_id = request.headers.get(header_name) or str(uuid.uuid4())
        set_request_id(request_id)
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        finally:
            clear_request_id()

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[header_name] = request_id
        response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
        return response

    return request_id_middleware


async def error_boundary_middleware(request: Request, call_next: CallNext) -> Response:
    """Turn errors escaping the routes into the 500 envelope.

    Registered innermost, so the outer middleware still stamps the request id,
    security headers and rate limit headers on the failure response.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        return unhandled_error_response(request, exc)


def build_security_headers_middleware(
    headers: Mapping[str, str] | None = None,
) -> HTTPMiddleware:
    """Build middleware adding browser security headers to every response.

    Headers already set by the route are left untouched.
    """

    security_headers = dict(headers if headers is not None else DEFAULT_SECURITY_HEADERS)

    async def security_headers_middleware(request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        for name, value in security_headers.items():
            response.headers.setdefault(name, value)
        return response

    return security_headers_middleware


def build_request_size_middleware(max_bytes: int) -> HTTPMiddleware:
    """Build middleware rejecting requests whose declared body exceeds ``max_bytes``.

    Only the Content-Length header is inspected; chunked bodies pass through.

    Args:
        max_bytes: Largest accepted Content-Length.

    Returns:
        Middleware responding 413 with the standard envelope when too large.
    """

    async def request_size_middleware(request: Request, call_next: CallNext) -> Response:
        declared = request.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > max_bytes:
            logger.warning(
                "request_size.rejected",
                extra={
                    "content_length": int(declared),
                    "max_bytes": max_bytes,
                    "path": request.url.path,
                },
            )
            return app_error_response(
                PayloadTooLargeAppError(
                    code="request_too_large",
                    message="Request body too large",
                    details={"max_bytes": max_bytes, "actual_bytes": int(declared)},
                )
            )
        return await call_next(request)

    return request_size_middleware


def build_timeout_middleware(timeout_seconds: float) -> HTTPMiddleware:
    """Build middleware racing request handling against a deadline.

    Args:
        timeout_seconds: Deadline in seconds for producing a response.

    Returns:
        Middleware responding 408 with the standard envelope when the
        handler does not finish in time.
    """

    async def timeout_middleware(request: Request, call_next: CallNext) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "request.timeout",
                extra={
                    "timeout_seconds": timeout_seconds,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return app_error_response(
                RequestTimeoutAppError(
                    code="request_timeout",
                    message="Request timeout",
                    details={"timeout_seconds": timeout_seconds},
                )
            )

    return timeout_middleware
