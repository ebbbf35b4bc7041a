"""Rate limiting for the HTTP layer.

This module wires the rate limiting adapter into FastAPI in two shapes:
- ``build_rate_limit_middleware``: app-wide limit per client address.
- ``rate_limit_dependency``: separate budget for a router or route group.

Both respond 429 with ``{"success": false, "message": "Rate limit exceeded"}``.
Rate limiting is best-effort and per process; it is not a security boundary.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from fastapi import Request, Response

from nextevent.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from nextevent.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from nextevent.core.config import RateLimitSettings
from nextevent.core.errors import RateLimitAppError
from nextevent.core.exception_handlers import app_error_response
from nextevent.core.logging import hash_identifier
from nextevent.core.middleware import CallNext, HTTPMiddleware

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def build_rate_limiter(rate_limit_settings: RateLimitSettings) -> InMemorySlidingWindowRateLimiter:
    """Create the process-wide limiter from settings."""
    return InMemorySlidingWindowRateLimiter(
        requests_per_window=rate_limit_settings.requests_per_window,
        window_seconds=rate_limit_settings.window_seconds,
    )


def client_identifier(request: Request, *, trust_forwarded_for: bool = False) -> str:
    """Return the network address identifying the caller.

    Args:
        request: Incoming request.
        trust_forwarded_for: Use the first X-Forwarded-For hop when present.
            Only enable behind a proxy that overwrites the header.

    Returns:
        Client address, or "unknown" when the server does not expose one.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def check_rate_limit(
    limiter: AbstractRateLimiter,
    request: Request,
    *,
    include_headers: bool = True,
    trust_forwarded_for: bool = False,
) -> RateLimitResult:
    """Account the request against ``limiter``.

    Raises:
        RateLimitAppError: When the client has used up its budget.
    """
    client_id = client_identifier(request, trust_forwarded_for=trust_forwarded_for)
    result = limiter.consume(client_id)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "client_hash": hash_identifier(client_id),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return result

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "client_hash": hash_identifier(client_id),
            "limit": result.limit,
            "retry_after_s": result.retry_after_seconds,
            "path": request.url.path,
            "method": request.method,
        },
    )
    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message="Rate limit exceeded",
        details={"limit": result.limit, "retry_after": result.retry_after_seconds or 0},
        headers=_rate_limit_headers(result) if include_headers else {},
    )


def build_rate_limit_middleware(
    limiter: AbstractRateLimiter,
    *,
    include_headers: bool = True,
    trust_forwarded_for: bool = False,
    exempt_paths: Iterable[str] = (),
) -> HTTPMiddleware:
    """Build app-wide HTTP middleware enforcing ``limiter`` per client.

    Configuration is fixed at construction time.

    Args:
        limiter: Shared limiter instance.
        include_headers: Add X-RateLimit-* (and Retry-After when throttled).
        trust_forwarded_for: Identify clients by X-Forwarded-For.
        exempt_paths: Request paths that skip accounting entirely.

    Returns:
        Middleware suitable for ``app.middleware("http")``.
    """
    exempt = frozenset(exempt_paths)

    async def rate_limit_middleware(request: Request, call_next: CallNext) -> Response:
        if request.url.path in exempt:
            return await call_next(request)

        # Exceptions raised in HTTP middleware bypass the app's handlers,
        # so the rejection is rendered here.
        try:
            result = check_rate_limit(
                limiter,
                request,
                include_headers=include_headers,
                trust_forwarded_for=trust_forwarded_for,
            )
        except RateLimitAppError as exc:
            return app_error_response(exc)

        response = await call_next(request)
        if include_headers:
            for name, value in _rate_limit_headers(result).items():
                response.headers.setdefault(name, value)
        return response

    return rate_limit_middleware


def rate_limit_dependency(
    limiter: AbstractRateLimiter,
    *,
    include_headers: bool = True,
    trust_forwarded_for: bool = False,
):
    """Build a FastAPI dependency giving a route group its own budget.

    Usage:
        surveys_limiter = InMemorySlidingWindowRateLimiter(requests_per_window=30)
        router = APIRouter(dependencies=[Depends(rate_limit_dependency(surveys_limiter))])
    """

    async def enforce_rate_limit(request: Request) -> None:
        check_rate_limit(
            limiter,
            request,
            include_headers=include_headers,
            trust_forwarded_for=trust_forwarded_for,
        )

    return enforce_rate_limit


async def run_rate_limit_sweeper(limiter: AbstractRateLimiter, interval_seconds: float) -> None:
    """Periodically purge idle clients until cancelled.

    Args:
        limiter: Limiter whose idle clients are removed.
        interval_seconds: Pause between sweeps.
    """
    logger.info("sweeper.started", extra={"interval_s": interval_seconds})
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            removed = limiter.sweep()
            logger.debug(
                "sweeper.swept",
                extra={"removed": removed, "tracked_clients": limiter.tracked_clients()},
            )
    finally:
        logger.info("sweeper.stopped")
