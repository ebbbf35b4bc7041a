"""Helpers building envelope-shaped JSON responses."""

from __future__ import annotations

from typing import Any, Mapping

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from nextevent.schemas.envelope import APIResponse

RATE_LIMIT_MESSAGE = "Rate limit exceeded"


def _envelope_response(
    status_code: int,
    body: APIResponse,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    # Only the optional top-level keys are dropped; nested None values stay.
    unset = {name for name in ("data", "error") if getattr(body, name) is None}
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body.model_dump(exclude=unset)),
        headers=dict(headers) if headers else None,
    )


def success_response(
    data: Any = None,
    message: str = "Success",
    *,
    status_code: int = status.HTTP_200_OK,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Build a successful envelope response."""
    return _envelope_response(
        status_code,
        APIResponse(success=True, message=message, data=data),
        headers,
    )


def error_response(
    status_code: int,
    message: str,
    *,
    error: Any = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Build a failed envelope response.

    Args:
        status_code: HTTP status to return.
        message: Human-readable message placed in ``message``.
        error: Optional machine-readable context; omitted when None.
        headers: Optional extra response headers.

    Returns:
        JSONResponse with ``{"success": false, "message": ...}``.
    """
    return _envelope_response(
        status_code,
        APIResponse(success=False, message=message, error=error),
        headers,
    )


def rate_limit_response(headers: Mapping[str, str] | None = None) -> JSONResponse:
    """Build the 429 body: ``{"success": false, "message": "Rate limit exceeded"}``."""
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        RATE_LIMIT_MESSAGE,
        headers=headers,
    )
