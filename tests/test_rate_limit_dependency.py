"""Integration tests for the FastAPI rate limiting dependency."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from window_limiter.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter
from window_limiter.core import rate_limit
from window_limiter.core.app_factory import create_app
from window_limiter.core.config import settings
from window_limiter.core.rate_limit import enforce_rate_limit, reset_rate_limiter


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(settings.store, "backend", "memory")
    monkeypatch.setattr(settings.rate_limit, "enabled", True)
    monkeypatch.setattr(settings.rate_limit, "max_requests", 2)
    monkeypatch.setattr(settings.rate_limit, "window_seconds", 3600)
    monkeypatch.setattr(settings.rate_limit, "fail_open", False)
    reset_rate_limiter()

    app = create_app()

    @app.get("/v1/ping", dependencies=[Depends(enforce_rate_limit)])
    def ping() -> dict:
        return {"pong": True}

    yield TestClient(app)
    reset_rate_limiter()


def _failing_limiter() -> SlidingWindowRateLimiter:
    store = MagicMock()
    store.atomic_batch.side_effect = RedisConnectionError("connection refused")
    return SlidingWindowRateLimiter(store, max_requests=2, window_seconds=10)


def test_allows_until_limit_then_returns_429(client: TestClient) -> None:
    headers = {"X-API-Key": "key-a"}

    assert client.get("/v1/ping", headers=headers).status_code == 200
    assert client.get("/v1/ping", headers=headers).status_code == 200

    blocked = client.get("/v1/ping", headers=headers)
    assert blocked.status_code == 429
    error = blocked.json()["error"]
    assert error["code"] == "rate_limit_exceeded"
    assert error["details"] == {"limit": 2, "retry_after": int(blocked.headers["Retry-After"])}
    assert blocked.headers["X-RateLimit-Limit"] == "2"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert int(blocked.headers["Retry-After"]) >= 1
    assert "X-RateLimit-Reset" in blocked.headers


def test_limits_are_tracked_per_api_key(client: TestClient) -> None:
    for _ in range(3):
        client.get("/v1/ping", headers={"X-API-Key": "key-a"})

    assert client.get("/v1/ping", headers={"X-API-Key": "key-b"}).status_code == 200


def test_falls_back_to_client_ip_without_api_key(client: TestClient) -> None:
    assert client.get("/v1/ping").status_code == 200
    assert client.get("/v1/ping").status_code == 200
    assert client.get("/v1/ping").status_code == 429


def test_headers_can_be_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.rate_limit, "include_headers", False)

    for _ in range(2):
        client.get("/v1/ping")
    blocked = client.get("/v1/ping")

    assert blocked.status_code == 429
    assert "Retry-After" not in blocked.headers
    assert "X-RateLimit-Limit" not in blocked.headers
    assert blocked.json()["error"]["code"] == "rate_limit_exceeded"


def test_disabled_rate_limit_never_blocks(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.rate_limit, "enabled", False)

    statuses = {client.get("/v1/ping").status_code for _ in range(5)}

    assert statuses == {200}


def test_store_failure_fails_closed_with_503(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit, "get_rate_limiter", _failing_limiter)

    resp = client.get("/v1/ping", headers={"X-Request-ID": "req-503"})

    assert resp.status_code == 503
    error = resp.json()["error"]
    assert error["code"] == "rate_limit_store_unavailable"
    assert error["request_id"] == "req-503"
    assert error["details"]["error_type"] == "ConnectionError"


def test_store_failure_admits_when_fail_open(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit, "get_rate_limiter", _failing_limiter)
    monkeypatch.setattr(settings.rate_limit, "fail_open", True)

    resp = client.get("/v1/ping")

    assert resp.status_code == 200


def test_limiter_rebuilt_when_config_changes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.store, "backend", "memory")
    reset_rate_limiter()

    first = rate_limit.get_rate_limiter()
    assert rate_limit.get_rate_limiter() is first

    monkeypatch.setattr(settings.rate_limit, "max_requests", settings.rate_limit.max_requests + 1)
    second = rate_limit.get_rate_limiter()

    assert second is not first
    assert second.max_requests == first.max_requests + 1
    reset_rate_limiter()


def test_reset_closes_cached_store(monkeypatch: pytest.MonkeyPatch) -> None:
    store = MagicMock()
    monkeypatch.setattr(rate_limit, "_store", store)

    reset_rate_limiter()

    store.close.assert_called_once_with()
    assert rate_limit._store is None


def test_store_rebuilt_on_config_change_closes_previous(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.store, "backend", "memory")
    reset_rate_limiter()
    rate_limit.get_counter_store()

    stale = MagicMock()
    monkeypatch.setattr(rate_limit, "_store", stale)
    monkeypatch.setattr(settings.store, "socket_timeout_seconds", settings.store.socket_timeout_seconds + 1)

    fresh = rate_limit.get_counter_store()

    stale.close.assert_called_once_with()
    assert fresh is not stale
    reset_rate_limiter()


def test_blocked_response_carries_request_id(client: TestClient) -> None:
    for _ in range(2):
        client.get("/v1/ping", headers={"X-API-Key": "key-c"})

    blocked = client.get("/v1/ping", headers={"X-API-Key": "key-c", "X-Request-ID": "req-429"})

    assert blocked.status_code == 429
    assert blocked.headers["X-Request-ID"] == "req-429"
    assert blocked.json()["error"]["request_id"] == "req-429"
