"""Permission check cache.

Entries are namespaced per user so one user's invalidation is a single
operation, never a key scan. Every user carries a generation: a reader
captures it on a miss and writes its computed value under that generation,
so a value computed before an invalidation can never be served after it.

Backends:
- LocalPermissionCache: per-process dict with a bounded TTL backstop
- RedisPermissionCache: shared across workers in the Redis cache DB
- BroadcastingPermissionCache: local cache whose invalidations are fanned
  out to every worker over Redis pub/sub
"""

from __future__ import annotations

import asyncio
import itertools
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import redis.asyncio as redis

from shared.config import CacheBackend, Settings
from shared.observability import get_logger
from shared.redis_client import RedisClient, RedisDB

logger = get_logger(__name__)


def permission_key(permission_name: str, resource: str | None = None) -> str:
    return f"perm:{permission_name}|{resource or '*'}"


def role_key(role_names: Iterable[str]) -> str:
    return "role:" + ",".join(sorted(set(role_names)))


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache read; ``generation`` must be passed back to ``set``."""

    value: bool | None
    generation: int

    @property
    def hit(self) -> bool:
        return self.value is not None


class PermissionCache(ABC):
    """Memoizes boolean authorization checks per user."""

    @abstractmethod
    async def get(self, user_id: int, key: str) -> CacheLookup: ...

    @abstractmethod
    async def set(self, user_id: int, key: str, value: bool, generation: int) -> None:
        """Store ``value`` unless the user was invalidated after ``generation``."""

    @abstractmethod
    async def invalidate_users(self, user_ids: Iterable[int]) -> None: ...

    async def invalidate_user(self, user_id: int) -> None:
        await self.invalidate_users([user_id])

    async def close(self) -> None:
        return None


# =============================================================================
# Local backend
# =============================================================================


class LocalPermissionCache(PermissionCache):
    """In-process cache for a single event loop.

    No method awaits between reading and writing its dictionaries, so each
    operation is atomic with respect to other coroutines.
    """

    def __init__(
        self,
        ttl_seconds: int = 30,
        max_users: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_users = max_users
        self._clock = clock
        self._entries: OrderedDict[int, dict[str, tuple[bool, float]]] = OrderedDict()
        self._generations: dict[int, int] = {}
        self._counter = itertools.count(1)
        # Generation of every user not in _generations; raised on a full flush
        self._floor = 0

    def _generation(self, user_id: int) -> int:
        return self._generations.get(user_id, self._floor)

    async def get(self, user_id: int, key: str) -> CacheLookup:
        generation = self._generation(user_id)
        entries = self._entries.get(user_id)
        if not entries or key not in entries:
            return CacheLookup(None, generation)

        value, expires_at = entries[key]
        if expires_at <= self._clock():
            del entries[key]
            return CacheLookup(None, generation)

        self._entries.move_to_end(user_id)
        return CacheLookup(value, generation)

    async def set(self, user_id: int, key: str, value: bool, generation: int) -> None:
        if generation != self._generation(user_id):
            logger.debug("Discarding stale permission result", user_id=user_id, key=key)
            return

        entries = self._entries.get(user_id)
        if entries is None:
            while len(self._entries) >= self.max_users:
                self._entries.popitem(last=False)
            entries = self._entries[user_id] = {}
        else:
            self._entries.move_to_end(user_id)
        entries[key] = (value, self._clock() + self.ttl_seconds)

    async def invalidate_users(self, user_ids: Iterable[int]) -> None:
        for user_id in user_ids:
            self._entries.pop(user_id, None)
            self._generations[user_id] = next(self._counter)

        if len(self._generations) > self.max_users * 4:
            self.clear()

    def clear(self) -> None:
        """Drop every entry and generation."""
        self._entries.clear()
        self._generations.clear()
        self._floor = next(self._counter)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())


# =============================================================================
# Redis backend
# =============================================================================


class RedisPermissionCache(PermissionCache):
    """Cache shared by every worker.

    Key layout (cache DB):
    - rbac:gen:{user_id}                 generation counter
    - rbac:perm:{user_id}:{generation}   hash of check -> "1"/"0", TTL bounded

    Invalidation increments the generation, so readers move to a fresh hash;
    a late write lands in the superseded hash and is never read.
    Redis failures degrade to cache misses and are logged.
    """

    def __init__(self, redis_client: RedisClient, ttl_seconds: int = 30):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _generation_key(user_id: int) -> str:
        return f"rbac:gen:{user_id}"

    @staticmethod
    def _entries_key(user_id: int, generation: int) -> str:
        return f"rbac:perm:{user_id}:{generation}"

    async def get(self, user_id: int, key: str) -> CacheLookup:
        client = self.redis.get_client(RedisDB.CACHE)
        try:
            generation = int(await client.get(self._generation_key(user_id)) or 0)
            raw = await client.hget(self._entries_key(user_id, generation), key)
        except redis.RedisError as e:
            logger.warning("Permission cache read failed", user_id=user_id, error=str(e))
            return CacheLookup(None, -1)

        if raw is None:
            return CacheLookup(None, generation)
        return CacheLookup(raw == "1", generation)

    async def set(self, user_id: int, key: str, value: bool, generation: int) -> None:
        if generation < 0:
            return
        client = self.redis.get_client(RedisDB.CACHE)
        entries_key = self._entries_key(user_id, generation)
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(entries_key, key, "1" if value else "0")
                pipe.expire(entries_key, self.ttl_seconds)
                await pipe.execute()
        except redis.RedisError as e:
            logger.warning("Permission cache write failed", user_id=user_id, error=str(e))

    async def invalidate_users(self, user_ids: Iterable[int]) -> None:
        client = self.redis.get_client(RedisDB.CACHE)
        for user_id in user_ids:
            try:
                generation = await client.incr(self._generation_key(user_id))
                await client.delete(self._entries_key(user_id, generation - 1))
            except redis.RedisError as e:
                # Entries still expire within the TTL backstop
                logger.error(
                    "Permission cache invalidation failed",
                    user_id=user_id,
                    ttl_seconds=self.ttl_seconds,
                    error=str(e),
                )


# =============================================================================
# Local backend with cross-worker invalidation
# =============================================================================


class BroadcastingPermissionCache(PermissionCache):
    """Local cache whose invalidations are published to every worker."""

    def __init__(
        self,
        local: LocalPermissionCache,
        redis_client: RedisClient,
        channel: str,
    ):
        self.local = local
        self.redis = redis_client
        self.channel = channel
        self.origin = uuid4().hex
        self._pubsub: redis.client.PubSub | None = None

    async def get(self, user_id: int, key: str) -> CacheLookup:
        return await self.local.get(user_id, key)

    async def set(self, user_id: int, key: str, value: bool, generation: int) -> None:
        await self.local.set(user_id, key, value, generation)

    async def invalidate_users(self, user_ids: Iterable[int]) -> None:
        user_ids = list(user_ids)
        await self.local.invalidate_users(user_ids)
        if not user_ids:
            return
        try:
            await self.redis.publish(
                self.channel, {"origin": self.origin, "user_ids": user_ids}
            )
        except redis.RedisError as e:
            logger.error(
                "Invalidation broadcast failed",
                user_ids=user_ids,
                ttl_seconds=self.local.ttl_seconds,
                error=str(e),
            )

    async def handle_message(self, channel: str, payload: dict[str, Any]) -> None:
        """Apply an invalidation published by another worker."""
        if not isinstance(payload, dict):
            logger.warning("Dropping malformed invalidation", channel=channel)
            return
        if payload.get("origin") == self.origin:
            return
        try:
            user_ids = [int(u) for u in payload.get("user_ids", [])]
        except (TypeError, ValueError):
            logger.warning("Dropping malformed invalidation", channel=channel)
            return
        await self.local.invalidate_users(user_ids)
        logger.debug("Applied remote invalidation", users=len(user_ids))

    async def start(self) -> redis.client.PubSub:
        """Subscribe to the invalidation channel."""
        self._pubsub = await self.redis.subscribe([self.channel], self.handle_message)
        return self._pubsub

    async def listen(self, poll_timeout: float = 1.0, retry_delay: float = 1.0) -> None:
        """Apply invalidations from other workers until cancelled.

        Errors while reading the channel are logged and the loop keeps
        polling; redis-py reconnects and resubscribes on the next read.
        """
        if self._pubsub is None:
            await self.start()
        logger.info("Listening for invalidations", channel=self.channel)
        while True:
            try:
                await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=poll_timeout,
                )
            except Exception as e:
                logger.error("PubSub error", channel=self.channel, error=str(e))
                await asyncio.sleep(retry_delay)

    async def close(self) -> None:
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            self._pubsub = None


def build_permission_cache(
    settings: Settings,
    redis_client: RedisClient | None = None,
) -> PermissionCache:
    """Select the cache backend from RBAC settings."""
    rbac = settings.rbac
    if rbac.cache_backend == CacheBackend.REDIS:
        if redis_client is None:
            raise RuntimeError("Redis permission cache requires a Redis client")
        return RedisPermissionCache(redis_client, ttl_seconds=rbac.cache_ttl_seconds)

    local = LocalPermissionCache(
        ttl_seconds=rbac.cache_ttl_seconds,
        max_users=rbac.cache_max_users,
    )
    if redis_client is not None:
        return BroadcastingPermissionCache(local, redis_client, rbac.invalidation_channel)

    if settings.workers > 1:
        logger.warning(
            "Local permission cache without invalidation channel",
            workers=settings.workers,
            ttl_seconds=rbac.cache_ttl_seconds,
        )
    return local
