"""Tests for the rate limiting error handler.

Errors carry their own status and headers; the handler renders them into
the shared ``{"error": {...}}`` body.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from window_limiter.adapters.rate_limit.base import RateLimitResult
from window_limiter.core.errors import RateLimitExceededError, StoreUnavailableError
from window_limiter.core.exception_handlers import setup_exception_handlers


def _blocked_result() -> RateLimitResult:
    return RateLimitResult(
        allowed=False,
        limit=5,
        remaining=0,
        reset_at=1010,
        retry_after_seconds=4,
        rate=6.0,
        window_start=1000,
        count_current=6,
        count_previous=0,
    )


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


def test_store_unavailable_returns_503(client: TestClient, app_with_handlers: FastAPI):
    @app_with_handlers.get("/store-down")
    async def endpoint():
        raise StoreUnavailableError(backend="redis", error_type="TimeoutError")

    response = client.get("/store-down")

    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "rate_limit_store_unavailable"
    assert error["details"] == {"backend": "redis", "error_type": "TimeoutError"}
    assert "request_id" in error
    assert "Retry-After" not in response.headers


def test_exceeded_returns_429_with_rate_limit_headers(
    client: TestClient, app_with_handlers: FastAPI
):
    @app_with_handlers.get("/blocked")
    async def endpoint():
        raise RateLimitExceededError(_blocked_result())

    response = client.get("/blocked")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "4"
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert response.headers["X-RateLimit-Reset"] == "1010"
    assert response.json()["error"]["details"] == {"limit": 5, "retry_after": 4}


def test_exceeded_without_headers(client: TestClient, app_with_handlers: FastAPI):
    @app_with_handlers.get("/blocked-quiet")
    async def endpoint():
        raise RateLimitExceededError(_blocked_result(), include_headers=False)

    response = client.get("/blocked-quiet")

    assert response.status_code == 429
    assert "Retry-After" not in response.headers
    assert "X-RateLimit-Limit" not in response.headers


def test_error_str_is_message():
    error = StoreUnavailableError(backend="memory", error_type="RuntimeError")

    assert str(error) == "Rate limit store is unavailable. Try again later."
    assert RateLimitExceededError(_blocked_result()).result.rate == 6.0
