from __future__ import annotations

from fastapi.testclient import TestClient

from nextevent.main import app


client = TestClient(app)


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
    assert len(generated) > 0

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_health_reports_rate_limiter():
    resp = client.get("/health")

    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Service healthy"
    assert body["data"]["status"] == "ok"
    assert body["data"]["rate_limit"]["enabled"] is True


def test_uses_configured_request_id_header(make_app):
    custom_client = TestClient(make_app(log={"request_id_header": "X-Correlation-ID"}))

    resp = custom_client.get("/health", headers={"X-Correlation-ID": "corr-1"})

    assert resp.headers.get("X-Correlation-ID") == "corr-1"
    assert "X-Request-ID" not in resp.headers


def test_configured_header_is_generated_when_missing(make_app):
    custom_client = TestClient(make_app(log={"request_id_header": "X-Correlation-ID"}))

    resp = custom_client.get("/health", headers={"X-Request-ID": "ignored"})

    generated = resp.headers.get("X-Correlation-ID")
    assert generated
    assert generated != "ignored"


class TestUnhandledRouteErrors:
    """Route failures still pass through the outer middleware."""

    def _failing_client(self, make_app) -> TestClient:
        failing_app = make_app()

        @failing_app.get("/v1/events/broken")
        async def broken():
            raise RuntimeError("registration table unavailable")

        return TestClient(failing_app)

    def test_500_carries_request_id(self, make_app):
        resp = self._failing_client(make_app).get(
            "/v1/events/broken", headers={"X-Request-ID": "fail-1"}
        )

        assert resp.status_code == 500
        assert resp.headers["X-Request-ID"] == "fail-1"
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == {"code": "internal_server_error", "request_id": "fail-1"}
        assert "registration table" not in resp.text

    def test_500_carries_security_and_rate_limit_headers(self, make_app):
        resp = self._failing_client(make_app).get("/v1/events/broken")

        assert resp.status_code == 500
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-RateLimit-Limit"] == "60"
