"""Shared Redis client for pub/sub events and the rate limiter.

Redis is optional for Quiz Arena: scoring state lives in the database,
so every caller must cope with ``get_redis_optional()`` returning None.
"""

import json
from typing import Any

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

LEVEL_UP_CHANNEL = "pubsub:level_up"

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    logger.info("redis_initialized", max_connections=max_connections)


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis_optional() -> redis.Redis | None:
    return _client


async def publish_event(client: Any, channel: str, payload: dict[str, Any]) -> bool:  # noqa: ANN401
    """Publish a JSON event. Failures are logged and reported as False."""
    if client is None:
        return False
    try:
        await client.publish(channel, json.dumps(payload))
    except Exception:
        logger.warning("redis_publish_failed", channel=channel, exc_info=True)
        return False
    return True
