"""Tests for timeout, request size and security header middleware."""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, Response
from fastapi.testclient import TestClient

from nextevent.core.middleware import DEFAULT_SECURITY_HEADERS


def _add_routes(app: FastAPI) -> FastAPI:
    @app.get("/slow")
    async def slow() -> dict:
        await asyncio.sleep(0.5)
        return {"done": True}

    @app.get("/fast")
    async def fast() -> dict:
        return {"done": True}

    @app.post("/upload")
    async def upload() -> dict:
        return {"stored": True}

    @app.get("/framed")
    async def framed(response: Response) -> dict:
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        return {"done": True}

    return app


class TestTimeoutMiddleware:
    def test_slow_request_gets_408(self, make_app) -> None:
        client = TestClient(_add_routes(make_app(app={"request_timeout_seconds": 0.05})))

        resp = client.get("/slow", headers={"X-Request-ID": "slow-1"})

        assert resp.status_code == 408
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Request timeout"
        assert body["error"]["code"] == "request_timeout"
        assert body["error"]["request_id"] == "slow-1"
        assert body["error"]["details"]["timeout_seconds"] == 0.05

    def test_fast_request_unaffected(self, make_app) -> None:
        client = TestClient(_add_routes(make_app(app={"request_timeout_seconds": 0.5})))

        resp = client.get("/fast")

        assert resp.status_code == 200
        assert resp.json() == {"done": True}

    def test_zero_disables_timeout(self, make_app) -> None:
        client = TestClient(_add_routes(make_app(app={"request_timeout_seconds": 0})))

        assert client.get("/slow").status_code == 200


class TestRequestSizeMiddleware:
    def test_declared_body_over_limit_gets_413(self, make_app) -> None:
        client = TestClient(_add_routes(make_app(app={"max_request_size_mb": 1})))

        resp = client.post("/upload", content=b"x" * (1024 * 1024 + 1))

        assert resp.status_code == 413
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Request body too large"
        assert body["error"]["code"] == "request_too_large"
        assert body["error"]["details"]["max_bytes"] == 1024 * 1024

    def test_body_within_limit_passes(self, make_app) -> None:
        client = TestClient(_add_routes(make_app(app={"max_request_size_mb": 1})))

        resp = client.post("/upload", content=b"x" * 1024)

        assert resp.status_code == 200
        assert resp.json() == {"stored": True}


class TestSecurityHeaders:
    def test_headers_added(self, make_app) -> None:
        client = TestClient(_add_routes(make_app()))

        resp = client.get("/fast")

        for name, value in DEFAULT_SECURITY_HEADERS.items():
            assert resp.headers[name] == value

    def test_route_value_wins(self, make_app) -> None:
        client = TestClient(_add_routes(make_app()))

        resp = client.get("/framed")

        assert resp.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    def test_can_be_disabled(self, make_app) -> None:
        client = TestClient(_add_routes(make_app(app={"security_headers_enabled": False})))

        resp = client.get("/fast")

        assert "X-Frame-Options" not in resp.headers

    def test_rejections_carry_headers(self, make_app) -> None:
        client = TestClient(_add_routes(make_app(rate_limit={"requests_per_window": 1})))

        client.get("/fast")
        resp = client.get("/fast")

        assert resp.status_code == 429
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
