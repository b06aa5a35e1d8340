"""Tests for request ID middleware."""

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from apiguard.app.core.logging import request_id_var
from apiguard.app.middleware.request_id import RequestIdMiddleware, get_request_id


def _app() -> FastAPI:
    app = FastAPI()

    @app.get("/echo")
    async def echo(request: Request):
        return {
            "state": get_request_id(request),
            "context": request_id_var.get(),
        }

    app.add_middleware(RequestIdMiddleware)
    return app


class TestRequestIdMiddleware:
    """Test request ID propagation."""

    def test_generates_request_id(self):
        response = TestClient(_app()).get("/echo")

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 36  # UUID format
        assert response.json()["state"] == request_id

    def test_reuses_incoming_request_id(self):
        response = TestClient(_app()).get("/echo", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json() == {"state": "req-123", "context": "req-123"}

    def test_context_var_reset_after_request(self):
        TestClient(_app()).get("/echo", headers={"X-Request-ID": "req-456"})
        assert request_id_var.get() is None

    def test_get_request_id_default(self):
        from starlette.requests import Request as StarletteRequest

        request = StarletteRequest({"type": "http", "headers": []})
        assert get_request_id(request) == "unknown"
