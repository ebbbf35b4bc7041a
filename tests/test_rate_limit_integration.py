"""Integration tests for rate limiting with a real HTTP server.

These tests start an actual Uvicorn server so requests travel over a real
socket and the limiter keys on the genuine peer address.
"""

import multiprocessing
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Generator

import httpx
import pytest
import uvicorn

from nextevent.core.app_factory import create_app
from nextevent.core.config import AppSettings, LogSettings, RateLimitSettings, Settings
from nextevent.core.responses import success_response

PORT = 8017
LIMIT = 5


def run_server() -> None:
    """Run a rate-limited app in a separate process."""
    app = create_app(
        Settings(
            app=AppSettings(),
            rate_limit=RateLimitSettings(requests_per_window=LIMIT, window_seconds=60, sweep_interval_seconds=0),
            log=LogSettings(level="ERROR"),
        )
    )

    @app.get("/v1/events")
    async def list_events():
        return success_response(data=[])

    uvicorn.run(app, host="127.0.0.1", port=PORT, log_level="error", access_log=False)


@pytest.fixture(scope="module")
def server() -> Generator[str, None, None]:
    """Start server in background process for integration tests."""
    process = multiprocessing.Process(target=run_server, daemon=True)
    process.start()

    base_url = f"http://127.0.0.1:{PORT}"
    for _ in range(50):
        try:
            response = httpx.get(f"{base_url}/health", timeout=1.0)
            if response.status_code == 200:
                break
        except (httpx.ConnectError, httpx.ReadTimeout):
            time.sleep(0.1)
    else:
        process.terminate()
        pytest.fail("Server failed to start")

    yield base_url

    process.terminate()
    process.join(timeout=5)


def test_concurrent_burst_allows_exactly_limit(server: str) -> None:
    """A burst larger than the budget lets exactly LIMIT requests through."""

    def hit(_: int) -> int:
        return httpx.get(f"{server}/v1/events", timeout=5.0).status_code

    with ThreadPoolExecutor(max_workers=12) as pool:
        statuses = list(pool.map(hit, range(12)))

    assert statuses.count(200) == LIMIT
    assert statuses.count(429) == 12 - LIMIT

    rejected = httpx.get(f"{server}/v1/events", timeout=5.0)
    assert rejected.status_code == 429
    assert rejected.json() == {"success": False, "message": "Rate limit exceeded"}
    assert int(rejected.headers["Retry-After"]) > 0


def test_health_stays_available_when_throttled(server: str) -> None:
    response = httpx.get(f"{server}/health", timeout=5.0)

    assert response.status_code == 200
    assert response.json()["data"]["rate_limit"]["tracked_clients"] >= 1
