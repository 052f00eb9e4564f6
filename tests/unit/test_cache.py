"""
Unit Tests - Versioned Cache
"""
import fakeredis
import pytest

from shop_analytics.serving.cache import CacheManager, cache_get, cache_set


class Recorder:
    """Async compute function that counts its calls"""

    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


def version_of(token: str):
    async def _version() -> str:
        return token
    return _version


class TestCacheHelpers:
    """Tests for module-level helpers"""

    async def test_json_round_trip(self, redis_client):
        await cache_set("k", {"series": [1, 2]}, ttl=60, client=redis_client)

        assert await cache_get("k", client=redis_client) == {"series": [1, 2]}
        assert 0 < await redis_client.ttl("k") <= 60

    async def test_missing_key(self, redis_client):
        assert await cache_get("absent", client=redis_client) is None


class TestComputeIfStale:
    """Tests for version-keyed caching"""

    async def test_miss_then_hit(self, test_cache):
        compute = Recorder({"series": []})

        first = await test_cache.compute_if_stale("timeseries:x", version_of("3:20250101120000"), compute)
        second = await test_cache.compute_if_stale("timeseries:x", version_of("3:20250101120000"), compute)

        assert first == second == {"series": []}
        assert compute.calls == 1

    async def test_version_change_recomputes(self, test_cache):
        compute = Recorder([1])

        await test_cache.compute_if_stale("timeseries:x", version_of("3:20250101120000"), compute)
        await test_cache.compute_if_stale("timeseries:x", version_of("4:20250101120500"), compute)

        assert compute.calls == 2

    async def test_key_layout_and_ttl(self, test_cache, redis_client):
        await test_cache.compute_if_stale("bootstrap", version_of("none"), Recorder({"a": 1}))

        assert await redis_client.exists("test_analytics:bootstrap:none")
        assert 0 < await redis_client.ttl("test_analytics:bootstrap:none") <= 600

    async def test_explicit_ttl(self, test_cache, redis_client):
        await test_cache.compute_if_stale("k", version_of("v"), Recorder(1), ttl=30)

        assert 0 < await redis_client.ttl("test_analytics:k:v") <= 30

    async def test_namespaces_are_isolated(self, redis_client):
        one = CacheManager("one", client=redis_client)
        two = CacheManager("two", client=redis_client)
        compute = Recorder("x")

        await one.compute_if_stale("k", version_of("v"), compute)
        await two.compute_if_stale("k", version_of("v"), compute)

        assert compute.calls == 2

    async def test_uninitialized_redis_computes_directly(self):
        """Test no global client means every call computes"""
        cache = CacheManager("nowhere")
        compute = Recorder({"ok": True})

        assert await cache.compute_if_stale("k", version_of("v"), compute) == {"ok": True}
        assert await cache.compute_if_stale("k", version_of("v"), compute) == {"ok": True}
        assert compute.calls == 2

    async def test_unreachable_redis_computes_directly(self):
        """Test connection errors fall back to computing"""
        server = fakeredis.FakeServer()
        server.connected = False
        cache = CacheManager("down", client=fakeredis.FakeAsyncRedis(server=server))
        compute = Recorder([42])

        assert await cache.compute_if_stale("k", version_of("v"), compute) == [42]
        assert compute.calls == 1

    async def test_superseded_entry_expires_by_ttl(self, test_cache, redis_client):
        """Test an old version is left to expire rather than deleted"""
        await test_cache.compute_if_stale("k", version_of("1:a"), Recorder(1))
        await test_cache.compute_if_stale("k", version_of("2:b"), Recorder(2))

        assert await redis_client.get("test_analytics:k:1:a") == "1"
        assert 0 < await redis_client.ttl("test_analytics:k:1:a") <= 600
        assert await test_cache.get("k:2:b") == 2


class TestGetOrSet:
    """Tests for plain caching"""

    async def test_caches_lists(self, test_cache):
        compute = Recorder([{"id": 1, "name": "Runner"}])

        await test_cache.get_or_set("category_products:all", compute)
        cached = await test_cache.get_or_set("category_products:all", compute)

        assert cached == [{"id": 1, "name": "Runner"}]
        assert compute.calls == 1

    @pytest.mark.parametrize("value", [[], {}])
    async def test_empty_values_are_cached(self, test_cache, value):
        compute = Recorder(value)

        await test_cache.get_or_set("empty", compute)
        await test_cache.get_or_set("empty", compute)

        assert compute.calls == 1
