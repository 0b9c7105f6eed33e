"""Redis client wrapper.

Redis Database Layout:
- DB 0: PubSub (rbac:invalidations)
- DB 1: Caching (rbac:perm:{user_id}:{generation}, rbac:gen:{user_id})
"""

import json
from collections.abc import Awaitable, Callable
from enum import IntEnum
from typing import Any

import redis.asyncio as redis

from shared.observability import get_logger

logger = get_logger(__name__)


class RedisDB(IntEnum):
    """Redis database numbers."""

    PUBSUB = 0
    CACHE = 1


class RedisClient:
    """Async Redis client with connection pooling."""

    def __init__(self, url: str = "redis://localhost:6379"):
        """Initialize Redis client.

        Args:
            url: Redis connection URL
        """
        self._url = url
        self._pools: dict[int, redis.ConnectionPool] = {}
        self._clients: dict[int, redis.Redis] = {}

    async def connect(self) -> None:
        """Initialize connection pools for all databases."""
        for db in RedisDB:
            pool = redis.ConnectionPool.from_url(
                self._url,
                db=db.value,
                decode_responses=True,
            )
            self._pools[db] = pool
            self._clients[db] = redis.Redis(connection_pool=pool)

    async def close(self) -> None:
        """Close all connections."""
        for client in self._clients.values():
            await client.aclose()
        for pool in self._pools.values():
            await pool.disconnect()
        self._clients.clear()
        self._pools.clear()

    def get_client(self, db: RedisDB) -> redis.Redis:
        """Get Redis client for specific database."""
        if db not in self._clients:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._clients[db]

    # =========================================================================
    # PubSub Operations (DB 0)
    # =========================================================================

    async def publish(self, channel: str, payload: dict[str, Any]) -> int:
        """Publish a JSON message.

        Returns:
            Number of subscribers that received the message
        """
        client = self.get_client(RedisDB.PUBSUB)
        return await client.publish(channel, json.dumps(payload, default=str))

    async def subscribe(
        self,
        channels: list[str],
        callback: Callable[[str, dict[str, Any]], Awaitable[None]],
    ) -> redis.client.PubSub:
        """Subscribe to PubSub channels.

        The callback receives the channel name and the decoded JSON payload.
        Messages that are not valid JSON are logged and dropped. The caller
        drives delivery with ``pubsub.get_message()``.
        """
        client = self.get_client(RedisDB.PUBSUB)
        pubsub = client.pubsub()

        async def message_handler(message: dict[str, Any]) -> None:
            if message["type"] != "message":
                return
            try:
                payload = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning("Dropping malformed pubsub message", channel=message["channel"])
                return
            await callback(message["channel"], payload)

        await pubsub.subscribe(**{channel: message_handler for channel in channels})
        return pubsub

    # =========================================================================
    # Health Check
    # =========================================================================

    async def health_check(self) -> dict[str, Any]:
        """Check Redis connectivity."""
        results = {}
        for db in RedisDB:
            try:
                client = self.get_client(db)
                await client.ping()
                results[db.name.lower()] = {"status": "healthy"}
            except (RuntimeError, redis.RedisError) as e:
                results[db.name.lower()] = {"status": "unhealthy", "error": str(e)}

        all_healthy = all(r["status"] == "healthy" for r in results.values())
        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "databases": results,
        }
