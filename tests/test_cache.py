"""Tests for the route cache: fingerprints, TTL, LRU and in-flight coalescing."""

import asyncio

import pytest

from route_intel.cache import RouteCache, fingerprint
from route_intel.models import GeoPoint, RouteAccuracy, RouteMethod, RouteResult


def _result(km=1.0):
    return RouteResult(
        geometry=[GeoPoint(latitude=0, longitude=0), GeoPoint(latitude=0.01, longitude=0)],
        distance_km=km,
        duration_min=km * 2,
        method=RouteMethod.ALGORITHMIC,
        accuracy=RouteAccuracy.ESTIMATED,
    )


class TestFingerprint:
    def test_near_duplicates_share_key(self):
        a = [GeoPoint(latitude=28.6139001, longitude=77.2090001), GeoPoint(latitude=28.6129, longitude=77.2295)]
        b = [GeoPoint(latitude=28.6139, longitude=77.2090), GeoPoint(latitude=28.6129, longitude=77.2295)]
        assert fingerprint(a, "driving") == fingerprint(b, "driving")

    def test_mode_and_order_matter(self):
        pts = [GeoPoint(latitude=28.6139, longitude=77.2090), GeoPoint(latitude=28.6129, longitude=77.2295)]
        assert fingerprint(pts, "driving") != fingerprint(pts, "walking")
        assert fingerprint(pts, "driving") != fingerprint(list(reversed(pts)), "driving")

    def test_distinct_points_differ(self):
        a = [GeoPoint(latitude=28.6139, longitude=77.2090)]
        b = [GeoPoint(latitude=28.6140, longitude=77.2090)]
        assert fingerprint(a, "driving") != fingerprint(b, "driving")


class TestExpiryAndEviction:
    def test_ttl_expiry(self, fake_clock):
        cache = RouteCache(ttl_seconds=60, clock=fake_clock)
        cache.store("k", _result())
        fake_clock.advance(59)
        assert cache.lookup("k") is not None
        fake_clock.advance(2)
        assert cache.lookup("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, fake_clock):
        cache = RouteCache(ttl_seconds=3600, clock=fake_clock)
        cache.store("short", _result(), ttl_seconds=10)
        cache.store("long", _result())
        fake_clock.advance(11)
        assert cache.lookup("short") is None
        assert cache.lookup("long") is not None

    def test_zero_ttl_is_not_stored(self):
        cache = RouteCache()
        cache.store("k", _result(), ttl_seconds=0)
        assert cache.lookup("k") is None

    def test_lru_eviction(self):
        cache = RouteCache(max_entries=2)
        cache.store("a", _result(1))
        cache.store("b", _result(2))
        assert cache.lookup("a") is not None
        cache.store("c", _result(3))
        assert cache.lookup("b") is None
        assert cache.lookup("a").distance_km == 1
        assert cache.lookup("c").distance_km == 3
        assert cache.stats()["evictions"] == 1

    def test_invalidate(self):
        cache = RouteCache()
        cache.store("a", _result())
        cache.store("b", _result())
        cache.invalidate("a")
        assert cache.lookup("a") is None
        assert len(cache) == 1
        cache.invalidate()
        assert len(cache) == 0

    def test_find_returns_most_recent_live_match(self, fake_clock):
        cache = RouteCache(ttl_seconds=60, clock=fake_clock)
        cache.store("old", _result(5), ttl_seconds=10)
        cache.store("a", _result(1))
        cache.store("b", _result(2))
        assert cache.find(lambda r: r.distance_km < 3).distance_km == 2
        assert cache.find(lambda r: r.distance_km > 10) is None
        fake_clock.advance(11)
        assert cache.find(lambda r: r.distance_km == 5) is None
        assert cache.stats()["hits"] == 0
        assert cache.stats()["misses"] == 0

    def test_stats(self):
        cache = RouteCache()
        cache.lookup("missing")
        cache.store("k", _result())
        cache.lookup("k")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["inflight"] == 0


@pytest.mark.asyncio
class TestGetOrCompute:
    async def test_concurrent_callers_share_one_computation(self):
        cache = RouteCache()
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return _result(5)

        results = await asyncio.gather(*(cache.get_or_compute("k", compute) for _ in range(5)))
        assert calls == 1
        assert all(r == results[0] for r in results)
        assert cache.stats()["coalesced"] == 4
        assert cache.stats()["inflight"] == 0
        assert cache.lookup("k") == results[0]

    async def test_live_entry_skips_compute(self):
        cache = RouteCache()
        cache.store("k", _result(7))

        async def compute():
            raise AssertionError("should not compute")

        assert (await cache.get_or_compute("k", compute)).distance_km == 7

    async def test_error_reaches_every_waiter_and_releases_slot(self):
        cache = RouteCache()

        async def compute():
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            *(cache.get_or_compute("k", compute) for _ in range(3)), return_exceptions=True
        )
        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.stats()["inflight"] == 0
        assert cache.lookup("k") is None

    async def test_ttl_policy(self, fake_clock):
        cache = RouteCache(ttl_seconds=3600, clock=fake_clock)

        async def compute():
            return _result()

        await cache.get_or_compute("k", compute, ttl_for=lambda result: 30)
        fake_clock.advance(31)
        assert cache.lookup("k") is None

    async def test_cancelled_waiter_does_not_cancel_computation(self):
        cache = RouteCache()

        async def compute():
            await asyncio.sleep(0.02)
            return _result(3)

        first = asyncio.ensure_future(cache.get_or_compute("k", compute))
        second = asyncio.ensure_future(cache.get_or_compute("k", compute))
        await asyncio.sleep(0)
        first.cancel()
        result = await second
        assert result.distance_km == 3
        assert cache.lookup("k") is not None
