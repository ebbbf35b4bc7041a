"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``nextevent`` import so the global
settings object is built for the testing environment.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_SWEEP_INTERVAL_SECONDS", "0")

from typing import Any, Callable

import pytest
from fastapi import FastAPI

from nextevent.core.app_factory import create_app
from nextevent.core.config import AppSettings, LogSettings, RateLimitSettings, Settings


def build_settings(
    *,
    app: dict[str, Any] | None = None,
    rate_limit: dict[str, Any] | None = None,
    log: dict[str, Any] | None = None,
) -> Settings:
    """Build an isolated Settings object with per-group overrides."""
    return Settings(
        app=AppSettings(**(app or {})),
        rate_limit=RateLimitSettings(**(rate_limit or {})),
        log=LogSettings(**(log or {})),
    )


@pytest.fixture
def make_app() -> Callable[..., FastAPI]:
    """Factory fixture creating a fresh app (and limiter) per call."""

    def _make_app(**overrides: Any) -> FastAPI:
        return create_app(build_settings(**overrides))

    return _make_app
