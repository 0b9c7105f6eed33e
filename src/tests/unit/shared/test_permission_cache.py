"""Unit tests for the permission cache backends."""

import asyncio

import pytest
import pytest_asyncio
import redis.asyncio as redis
from fakes import BrokerRedisClient, MockRedisClient, eventually

from shared.config import AdminServiceSettings, CacheBackend, RBACSettings
from shared.rbac import (
    BroadcastingPermissionCache,
    LocalPermissionCache,
    RedisPermissionCache,
    build_permission_cache,
    permission_key,
    role_key,
)

KEY = permission_key("users.read")


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestKeys:
    """Test cache key layout."""

    def test_permission_key_defaults_resource(self) -> None:
        assert permission_key("users.read") == "perm:users.read|*"
        assert permission_key("patients.clinical_read", "assigned") == (
            "perm:patients.clinical_read|assigned"
        )

    def test_role_key_is_order_independent(self) -> None:
        assert role_key(["doctor", "admin"]) == role_key(["admin", "doctor", "admin"])


class TestLocalPermissionCache:
    """Test the in-process backend."""

    async def test_miss_then_hit(self) -> None:
        cache = LocalPermissionCache()
        lookup = await cache.get(7, KEY)
        assert not lookup.hit

        await cache.set(7, KEY, False, lookup.generation)
        cached = await cache.get(7, KEY)
        assert cached.hit
        assert cached.value is False

    async def test_ttl_backstop(self) -> None:
        clock = FakeMonotonic()
        cache = LocalPermissionCache(ttl_seconds=30, clock=clock)
        await cache.set(7, KEY, True, (await cache.get(7, KEY)).generation)

        clock.now += 29
        assert (await cache.get(7, KEY)).hit
        clock.now += 1
        assert not (await cache.get(7, KEY)).hit

    async def test_invalidation_drops_user_entries(self) -> None:
        cache = LocalPermissionCache()
        for user_id in (7, 8):
            await cache.set(user_id, KEY, True, (await cache.get(user_id, KEY)).generation)

        await cache.invalidate_user(7)

        assert not (await cache.get(7, KEY)).hit
        assert (await cache.get(8, KEY)).hit

    async def test_stale_write_discarded(self) -> None:
        """Test a value computed before an invalidation is never stored."""
        cache = LocalPermissionCache()
        lookup = await cache.get(7, KEY)

        await cache.invalidate_user(7)
        await cache.set(7, KEY, True, lookup.generation)

        assert not (await cache.get(7, KEY)).hit

    async def test_lru_bound(self) -> None:
        cache = LocalPermissionCache(max_users=2)
        for user_id in (1, 2):
            await cache.set(user_id, KEY, True, (await cache.get(user_id, KEY)).generation)
        await cache.get(1, KEY)  # 2 is now least recently used

        await cache.set(3, KEY, True, (await cache.get(3, KEY)).generation)

        assert (await cache.get(1, KEY)).hit
        assert not (await cache.get(2, KEY)).hit
        assert (await cache.get(3, KEY)).hit

    async def test_clear_supersedes_pending_writes(self) -> None:
        cache = LocalPermissionCache()
        lookup = await cache.get(7, KEY)

        cache.clear()
        await cache.set(7, KEY, True, lookup.generation)

        assert len(cache) == 0


class TestRedisPermissionCache:
    """Test the shared Redis backend."""

    @pytest.fixture
    def redis_client(self) -> MockRedisClient:
        return MockRedisClient()

    async def test_round_trip(self, redis_client: MockRedisClient) -> None:
        cache = RedisPermissionCache(redis_client, ttl_seconds=30)
        lookup = await cache.get(7, KEY)
        assert not lookup.hit
        assert lookup.generation == 0

        await cache.set(7, KEY, True, lookup.generation)

        assert (await cache.get(7, KEY)).value is True
        assert redis_client.cache.hashes["rbac:perm:7:0"] == {KEY: "1"}
        assert redis_client.cache.ttls["rbac:perm:7:0"] == 30

    async def test_invalidation_moves_generation(self, redis_client) -> None:
        cache = RedisPermissionCache(redis_client)
        stale = await cache.get(7, KEY)
        await cache.set(7, KEY, False, stale.generation)

        await cache.invalidate_user(7)
        # A late writer still holding the old generation
        await cache.set(7, KEY, True, stale.generation)

        lookup = await cache.get(7, KEY)
        assert not lookup.hit
        assert lookup.generation == 1

    async def test_outage_degrades_to_miss(self, redis_client) -> None:
        """Test Redis errors never fail or allow a check."""
        cache = RedisPermissionCache(redis_client)
        redis_client.cache.fail = True

        lookup = await cache.get(7, KEY)
        assert not lookup.hit
        await cache.set(7, KEY, True, lookup.generation)
        await cache.invalidate_user(7)

        redis_client.cache.fail = False
        assert not (await cache.get(7, KEY)).hit


class TestBroadcastingPermissionCache:
    """Test cross-worker invalidation."""

    async def test_invalidation_is_published(self) -> None:
        redis_client = MockRedisClient()
        cache = BroadcastingPermissionCache(LocalPermissionCache(), redis_client, "rbac:inv")

        await cache.invalidate_users([7, 8])

        ((channel, payload),) = redis_client.published
        assert channel == "rbac:inv"
        assert payload == {"origin": cache.origin, "user_ids": [7, 8]}

    async def test_nothing_published_for_no_users(self) -> None:
        redis_client = MockRedisClient()
        cache = BroadcastingPermissionCache(LocalPermissionCache(), redis_client, "rbac:inv")

        await cache.invalidate_users([])

        assert redis_client.published == []

    async def test_remote_message_invalidates(self) -> None:
        redis_client = MockRedisClient()
        worker_a = BroadcastingPermissionCache(LocalPermissionCache(), redis_client, "rbac:inv")
        worker_b = BroadcastingPermissionCache(LocalPermissionCache(), redis_client, "rbac:inv")
        await worker_b.set(7, KEY, True, (await worker_b.get(7, KEY)).generation)

        await worker_a.invalidate_user(7)
        channel, payload = redis_client.published[0]
        await worker_b.handle_message(channel, payload)

        assert not (await worker_b.get(7, KEY)).hit

    async def test_own_message_ignored(self) -> None:
        cache = BroadcastingPermissionCache(LocalPermissionCache(), MockRedisClient(), "c")
        await cache.set(7, KEY, True, (await cache.get(7, KEY)).generation)

        await cache.handle_message("c", {"origin": cache.origin, "user_ids": [7]})

        assert (await cache.get(7, KEY)).hit

    @pytest.mark.parametrize(
        "payload",
        [
            {"origin": "other", "user_ids": ["seven"]},
            {"origin": "other", "user_ids": [None]},
            {"origin": "other", "user_ids": 7},
            ["not", "a", "mapping"],
        ],
    )
    async def test_malformed_message_dropped(self, payload) -> None:
        cache = BroadcastingPermissionCache(LocalPermissionCache(), MockRedisClient(), "c")
        await cache.set(7, KEY, True, (await cache.get(7, KEY)).generation)

        await cache.handle_message("c", payload)

        assert (await cache.get(7, KEY)).hit

    async def test_publish_failure_still_invalidates_locally(self) -> None:
        redis_client = MockRedisClient()
        redis_client.fail_publish = True
        cache = BroadcastingPermissionCache(LocalPermissionCache(), redis_client, "c")
        await cache.set(7, KEY, True, (await cache.get(7, KEY)).generation)

        await cache.invalidate_user(7)

        assert not (await cache.get(7, KEY)).hit


class TestInvalidationListener:
    """Test invalidations travel between workers over the pub/sub channel."""

    @pytest_asyncio.fixture
    async def workers(self):
        redis_a = BrokerRedisClient()
        redis_b = BrokerRedisClient(redis_a.broker)
        await redis_a.connect()
        await redis_b.connect()
        worker_a = BroadcastingPermissionCache(LocalPermissionCache(), redis_a, "rbac:inv")
        worker_b = BroadcastingPermissionCache(LocalPermissionCache(), redis_b, "rbac:inv")
        pubsub = await worker_b.start()
        listener = asyncio.create_task(worker_b.listen(poll_timeout=0.05, retry_delay=0))
        yield worker_a, worker_b, pubsub
        listener.cancel()
        with pytest.raises(asyncio.CancelledError):
            await listener
        await worker_b.close()

    async def test_remote_invalidation_applied(self, workers) -> None:
        worker_a, worker_b, _ = workers
        await worker_b.set(7, KEY, True, (await worker_b.get(7, KEY)).generation)

        await worker_a.invalidate_user(7)

        await eventually(lambda: len(worker_b.local) == 0)

    async def test_listener_survives_malformed_messages(self, workers) -> None:
        worker_a, worker_b, _ = workers
        await worker_b.set(7, KEY, True, (await worker_b.get(7, KEY)).generation)
        broker = worker_b.redis.broker

        broker.send_raw("rbac:inv", "{not json")
        await broker.publish("rbac:inv", '{"origin": "other", "user_ids": ["seven"]}')
        await worker_a.invalidate_user(7)

        await eventually(lambda: len(worker_b.local) == 0)

    async def test_listener_survives_connection_errors(self, workers) -> None:
        worker_a, worker_b, pubsub = workers
        await worker_b.set(7, KEY, True, (await worker_b.get(7, KEY)).generation)
        pubsub.errors.append(redis.ConnectionError("Connection reset by peer"))

        await worker_a.invalidate_user(7)

        await eventually(lambda: len(worker_b.local) == 0)
        assert pubsub.errors == []

    async def test_close_unsubscribes(self) -> None:
        redis_client = BrokerRedisClient()
        await redis_client.connect()
        cache = BroadcastingPermissionCache(LocalPermissionCache(), redis_client, "rbac:inv")
        pubsub = await cache.start()
        assert redis_client.broker.subscribers == [pubsub]

        await cache.close()

        assert pubsub.closed
        assert redis_client.broker.subscribers == []


class TestBuildPermissionCache:
    """Test backend selection."""

    def test_local_by_default(self) -> None:
        cache = build_permission_cache(AdminServiceSettings())
        assert isinstance(cache, LocalPermissionCache)

    def test_local_with_redis_broadcasts(self) -> None:
        cache = build_permission_cache(AdminServiceSettings(), MockRedisClient())
        assert isinstance(cache, BroadcastingPermissionCache)

    def test_redis_backend(self) -> None:
        settings = AdminServiceSettings(rbac=RBACSettings(cache_backend=CacheBackend.REDIS))
        cache = build_permission_cache(settings, MockRedisClient())
        assert isinstance(cache, RedisPermissionCache)

    def test_redis_backend_requires_client(self) -> None:
        settings = AdminServiceSettings(rbac=RBACSettings(cache_backend=CacheBackend.REDIS))
        with pytest.raises(RuntimeError):
            build_permission_cache(settings)

    def test_ttl_bounds(self) -> None:
        with pytest.raises(ValueError):
            RBACSettings(cache_ttl_seconds=0)
