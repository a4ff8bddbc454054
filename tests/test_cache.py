import pytest

from newsdesk.cache import CacheKeys, CacheLayer, cached


class BrokenRedis:
    """Every command fails, as if Redis went away mid-request."""

    async def ping(self):
        return True

    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, *args, **kwargs):
        raise ConnectionError("redis down")

    def scan_iter(self, **kwargs):
        raise ConnectionError("redis down")

    async def aclose(self):
        pass


class UnreachableRedis(BrokenRedis):
    async def ping(self):
        raise ConnectionError("connection refused")


async def test_round_trip_and_ttl(cache, redis_client):
    await cache.set("ghanapolitan:articles:all:1:10", {"total": 3}, ttl=300)
    assert await cache.get("ghanapolitan:articles:all:1:10") == {"total": 3}
    assert 0 < await redis_client.ttl("ghanapolitan:articles:all:1:10") <= 300


async def test_no_ttl_means_no_expiry(cache, redis_client):
    await cache.set("ghanapolitan:headline:current", {"id": "x"}, ttl=None)
    assert await redis_client.ttl("ghanapolitan:headline:current") == -1


async def test_invalidate_by_pattern(cache):
    keys = CacheKeys("ghanapolitan")
    await cache.set(keys.articles("all", 1, 10), [1])
    await cache.set(keys.article_slug("a-1"), {"id": 1})
    await cache.set(keys.sections("all", 1, 20), [2])
    await cache.set(CacheKeys("ghanascore").articles("all", 1, 10), [3])

    removed = await cache.invalidate(*keys.article_patterns())

    assert removed == 2
    assert await cache.get(keys.articles("all", 1, 10)) is None
    assert await cache.get(keys.sections("all", 1, 20)) == [2]
    assert await cache.get(CacheKeys("ghanascore").articles("all", 1, 10)) == [3]


async def test_failures_degrade_to_misses():
    layer = CacheLayer(client=BrokenRedis())
    assert await layer.get("k") is None
    assert await layer.set("k", 1) is None
    assert await layer.invalidate("k*") == 0


async def test_unreachable_redis_is_never_marked_connected():
    layer = CacheLayer(client=UnreachableRedis())
    assert await layer.connect() is False
    assert layer.connected is False
    assert await layer.get("k") is None


async def test_cached_loads_once(cache):
    calls = []

    async def loader():
        calls.append(1)
        return {"value": 42}

    first = await cached(cache, "site:x:y", 60, loader)
    second = await cached(cache, "site:x:y", 60, loader)

    assert first == ({"value": 42}, False)
    assert second == ({"value": 42}, True)
    assert len(calls) == 1


async def test_cached_does_not_store_none(cache):
    async def loader():
        return None

    assert await cached(cache, "site:x:none", 60, loader) == (None, False)
    assert await cache.get("site:x:none") is None


async def test_store_still_serves_when_cache_is_down(store, blobs, clock):
    from newsdesk.services.articles import ArticleService
    from newsdesk.services.expiry import ExpiryReconciler
    from newsdesk.sites import SITES

    from conftest import article

    cache = CacheLayer(client=BrokenRedis())
    service = ArticleService(
        SITES["ghanascore"], store, cache, blobs, ExpiryReconciler(store, cache, clock), clock=clock
    )
    created = await service.create(article(title="Black Stars win"))
    data, hit = await service.get_by_slug(created["slug"])
    assert data["id"] == created["id"]
    assert hit is False


def test_keys_are_deterministic():
    keys = CacheKeys("ghanapolitan")
    assert keys.articles("all", 1, 10, None, True) == "ghanapolitan:articles:all:1:10::true"
    assert keys.section("slug", "elections") == "ghanapolitan:section:slug:elections"
    assert keys.section_patterns("elections")[-1] == "ghanapolitan:articles:section:elections:*"


def test_layer_requires_url_or_client():
    with pytest.raises(ValueError):
        CacheLayer()
