"""Application-level exception types.

This module defines domain errors raised by middleware, dependencies and
routes, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    limit: int
    remaining: int
    retry_after: int
    timeout_seconds: float
    max_bytes: int
    actual_bytes: int
    fields: list[dict[str, Any]]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


@dataclass
class RateLimitAppError(AppError):
    """Raised when a client exhausted its request budget."""

    headers: dict[str, str] = field(default_factory=dict)

    status_code = 429


class RequestTimeoutAppError(AppError):
    """Raised when request handling exceeds the configured deadline."""

    status_code = 408


class PayloadTooLargeAppError(AppError):
    """Raised when a request body exceeds the configured size."""

    status_code = 413
