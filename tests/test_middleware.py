"""Middleware tests: request id, rate limiting, CORS, error shape."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from starlette.requests import Request

from quizarena.middleware import rate_limit
from quizarena.middleware.rate_limit import client_key
from quizarena.middleware.request_id import resolve_request_id


class CountingRedis:
    """Just enough of a redis client for the fixed-window counter."""

    def __init__(self):
        self.counts: dict[str, int] = {}

    def pipeline(self):
        return _Pipeline(self)


class _Pipeline:
    def __init__(self, redis: CountingRedis):
        self.redis = redis
        self.ops: list[str] = []

    def incr(self, key: str):
        self.ops.append(key)

    def expire(self, key: str, seconds: int):
        pass

    async def execute(self) -> list[int]:
        results = []
        for key in self.ops:
            self.redis.counts[key] = self.redis.counts.get(key, 0) + 1
            results.append(self.redis.counts[key])
        return [*results, True]


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 32  # uuid4 hex


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_malformed_request_id_replaced(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "bad id; with spaces"})
    assert len(response.headers["x-request-id"]) == 32


def test_resolve_request_id() -> None:
    assert resolve_request_id("bot-42.abc_DEF") == "bot-42.abc_DEF"
    assert resolve_request_id("x" * 65) != "x" * 65
    assert len(resolve_request_id(None)) == 32


@pytest.mark.asyncio
async def test_no_rate_limit_without_redis(client: AsyncClient) -> None:
    for _ in range(5):
        response = await client.get("/nonexistent-path")
        assert response.status_code == 404
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient, settings, monkeypatch) -> None:
    redis = CountingRedis()
    monkeypatch.setattr(rate_limit, "get_redis_optional", lambda: redis)
    limit = settings.rate_limit_requests

    for _ in range(limit):
        response = await client.get("/nonexistent-path")
        assert response.status_code == 404
    assert response.headers["x-ratelimit-remaining"] == "0"

    blocked = await client.get("/nonexistent-path")
    assert blocked.status_code == 429
    assert blocked.headers["retry-after"] == str(settings.rate_limit_window_seconds)


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient, monkeypatch) -> None:
    redis = CountingRedis()
    monkeypatch.setattr(rate_limit, "get_redis_optional", lambda: redis)
    for _ in range(3):
        assert (await client.get("/health")).status_code == 200
    assert redis.counts == {}


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/health",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


@pytest.mark.asyncio
async def test_cors_rejects_unlisted_origin(client: AsyncClient) -> None:
    response = await client.options(
        "/health",
        headers={"Origin": "http://localhost:9999", "Access-Control-Request-Method": "GET"},
    )
    assert "access-control-allow-origin" not in response.headers


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found"}


@pytest.mark.asyncio
async def test_validation_error_shape(authed_client: AsyncClient) -> None:
    response = await authed_client.get("/api/v1/leaderboard", params={"per_page": 0})
    assert response.status_code == 422
    assert response.json()["detail"] == "Validation error"


def _request(headers: list[tuple[bytes, bytes]]) -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": ("10.0.0.7", 5000)})


def test_client_key_prefers_token() -> None:
    key = client_key(_request([(b"authorization", b"Bearer abcdefghijklmnopqrstuvwxyz")]))
    assert key == "token:klmnopqrstuvwxyz"


def test_client_key_falls_back_to_ip() -> None:
    assert client_key(_request([])) == "ip:10.0.0.7"
