"""Redis connection helper."""

from __future__ import annotations

import redis.asyncio as redis

from shared.config import get_settings

# One client per URL, shared by every publisher in the process
_redis_clients: dict[str, redis.Redis] = {}


def get_redis(url: str | None = None) -> redis.Redis:
    """Get or create the Redis client for ``url`` (defaults to settings.redis_url)."""
    url = url or get_settings().redis_url
    client = _redis_clients.get(url)
    if client is None:
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        _redis_clients[url] = client
    return client


async def close_redis(client: redis.Redis | None = None) -> None:
    """Close one client, or every cached client when ``client`` is None."""
    if client is None:
        clients = list(_redis_clients.values())
        _redis_clients.clear()
    else:
        clients = [client]
        for url, cached in list(_redis_clients.items()):
            if cached is client:
                del _redis_clients[url]

    for c in clients:
        await c.aclose()
