"""Application factory for the FastAPI app.

Centralizes app construction (settings, logging, middleware, handlers,
routers, background tasks) so tests can build isolated instances.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI

from nextevent.api.routes import health_router
from nextevent.core.config import Settings, settings as default_settings
from nextevent.core.exception_handlers import setup_exception_handlers
from nextevent.core.logging import configure_logging
from nextevent.core.middleware import (
    build_request_id_middleware,
    build_request_size_middleware,
    build_security_headers_middleware,
    build_timeout_middleware,
    error_boundary_middleware,
)
from nextevent.core.rate_limit import (
    build_rate_limit_middleware,
    build_rate_limiter,
    run_rate_limit_sweeper,
)

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; the global settings if omitted.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    limiter = build_rate_limiter(cfg.rate_limit) if cfg.rate_limit.enabled else None

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper: asyncio.Task | None = None
        if limiter is not None and cfg.rate_limit.sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(
                run_rate_limit_sweeper(limiter, cfg.rate_limit.sweep_interval_seconds)
            )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper

    app = FastAPI(
        title="NextEvent API",
        description=(
            "Event-management platform backend. Every endpoint answers with the "
            "standard {success, message} envelope and is rate limited per client."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.rate_limiter = limiter

    # Middleware: the last registered runs first, so register innermost first.
    app.middleware("http")(error_boundary_middleware)
    if cfg.app.request_timeout_seconds > 0:
        app.middleware("http")(build_timeout_middleware(cfg.app.request_timeout_seconds))
    app.middleware("http")(build_request_size_middleware(cfg.app.max_request_size_mb * 1024 * 1024))
    if limiter is not None:
        app.middleware("http")(
            build_rate_limit_middleware(
                limiter,
                include_headers=cfg.rate_limit.include_headers,
                trust_forwarded_for=cfg.rate_limit.trust_forwarded_for,
                exempt_paths=cfg.rate_limit.exempt_path_list,
            )
        )
    if cfg.app.security_headers_enabled:
        app.middleware("http")(build_security_headers_middleware())
    app.middleware("http")(build_request_id_middleware(cfg.log.request_id_header))

    setup_exception_handlers(app)

    app.include_router(health_router)

    logger.info(
        "app.created",
        extra={
            "app_env": cfg.app_env,
            "rate_limit_enabled": limiter is not None,
            "requests_per_window": cfg.rate_limit.requests_per_window,
            "window_s": cfg.rate_limit.window_seconds,
        },
    )
    return app
