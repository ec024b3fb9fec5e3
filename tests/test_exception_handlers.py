"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tenant_ratelimit.core.errors import (
    AppError,
    AuthenticationAppError,
    RateLimitExceededAppError,
    StoreUnavailableError,
    ValidationAppError,
)
from tenant_ratelimit.core.exception_handlers import (
    general_exception_handler,
    setup_exception_handlers,
)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(
                code="rate_limit_unknown_store",
                message="Unknown rate limit store",
                details={"context": {"store": "memcached"}},
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "rate_limit_unknown_store"
        assert data["error"]["details"]["context"]["store"] == "memcached"
        assert "request_id" in data["error"]

    def test_authentication_error_returns_403(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth")
        async def test_endpoint():
            raise AuthenticationAppError(
                code="invalid_api_key",
                message="Invalid or missing API key",
            )

        response = client.get("/test-auth")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "invalid_api_key"

    def test_rate_limit_error_returns_429_with_headers(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        """The 429 body carries the denial details and the response the limit headers."""

        @app_with_handlers.get("/test-limited")
        async def test_endpoint():
            raise RateLimitExceededAppError(
                code="rate_limit_exceeded",
                message="Rate limit exceeded for tenant creation. Try again in 42 seconds.",
                details={"scope": "tenant_creation", "retry_after": 42},
                headers={"Retry-After": "42", "X-RateLimit-Remaining": "0"},
            )

        response = client.get("/test-limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        error = response.json()["error"]
        assert error["code"] == "rate_limit_exceeded"
        assert error["details"] == {"scope": "tenant_creation", "retry_after": 42}

    def test_store_unavailable_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise StoreUnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit store failed during count",
            )

        response = client.get("/test-store")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "rate_limit_store_unavailable"

    def test_error_response_format_is_consistent(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-format")
        async def test_endpoint():
            raise ValidationAppError(code="test", message="test")

        data = client.get("/test-format").json()

        assert set(data["error"]) == {"code", "message", "request_id"}

    def test_unexpected_exception_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-crash")
        async def test_endpoint():
            raise RuntimeError("redis password is hunter2")

        response = client.get("/test-crash")

        assert response.status_code == 500
        assert "hunter2" not in response.text


def _bare_request(request_id: str | None = None) -> SimpleNamespace:
    state = SimpleNamespace() if request_id is None else SimpleNamespace(request_id=request_id)
    return SimpleNamespace(
        url=SimpleNamespace(path="/test"),
        method="GET",
        state=state,
        app=SimpleNamespace(state=SimpleNamespace()),
    )


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_logic(self):
        request = _bare_request(request_id="corr-1")

        exc = RuntimeError("Unexpected error: store connection failed")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "store connection" not in data["error"]["message"]
        assert data["error"]["request_id"] == "corr-1"
        assert response.headers["X-Request-ID"] == "corr-1"

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = _bare_request()

        response = asyncio.run(general_exception_handler(request, ValueError("boom")))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    """Integration tests for exception handler setup."""

    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
