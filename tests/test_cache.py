"""Tests for the tenant metric cache"""

import asyncio

import pytest

from callinsight.cache import TenantCache
from callinsight.errors import CacheMiss


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TenantCache(max_entries=3, default_ttl=60, clock=clock)


class TestTenantCache:
    """Tests for TTL, LRU and scoping"""

    def test_get_after_set(self, cache):
        cache.set(("t1", "live_calls"), {"active_calls": 2})

        assert cache.get(("t1", "live_calls")).value == {"active_calls": 2}

    def test_entry_expires(self, cache, clock):
        cache.set(("t1", "live_calls"), 1, ttl=30)
        clock.advance(31)

        with pytest.raises(CacheMiss):
            cache.get(("t1", "live_calls"))

        # Expired entries are still available for stale reads
        assert cache.peek(("t1", "live_calls")).value == 1

    def test_least_recently_used_evicted(self, cache):
        cache.set(("t1", "a"), 1)
        cache.set(("t1", "b"), 2)
        cache.set(("t1", "c"), 3)
        cache.get(("t1", "a"))

        cache.set(("t1", "d"), 4)

        assert cache.peek(("t1", "b")) is None
        assert cache.get(("t1", "a")).value == 1
        assert cache.stats()["evictions"] == 1

    def test_key_requires_tenant(self, cache):
        with pytest.raises(ValueError):
            cache.set((None, "live_calls"), 1)

        with pytest.raises(ValueError):
            cache.get("live_calls")

    def test_invalidate_scoped_to_tenant_and_metric(self, cache):
        cache.set(("t1", "call_summary", 30), 1)
        cache.set(("t1", "lead_quality", 30), 2)
        cache.set(("t2", "call_summary", 30), 3)

        removed = cache.invalidate("t1", "call_summary")

        assert removed == 1
        assert cache.peek(("t1", "call_summary", 30)) is None
        assert cache.get(("t1", "lead_quality", 30)).value == 2
        assert cache.get(("t2", "call_summary", 30)).value == 3

    def test_invalidate_by_prefix(self):
        cache = TenantCache(max_entries=10)
        cache.set(("t1", "agent_performance", "a1", 7), 1)
        cache.set(("t1", "agent_performance", "a1", 30), 2)
        cache.set(("t1", "agent_performance", "a2", 30), 3)

        removed = cache.invalidate("t1", "agent_performance", "a1")

        assert removed == 2
        assert cache.get(("t1", "agent_performance", "a2", 30)).value == 3

    def test_invalidate_requires_tenant(self, cache):
        with pytest.raises(ValueError):
            cache.invalidate(None, "call_summary")


class TestGetOrCompute:
    """Tests for single-flight computation"""

    async def test_concurrent_misses_compute_once(self, cache):
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return "value"

        entries = await asyncio.gather(
            *(cache.get_or_compute(("t1", "call_summary", 30), compute) for _ in range(10))
        )

        assert calls == 1
        assert {entry.value for entry in entries} == {"value"}
        assert cache.stats()["inflight"] == 0

    async def test_hit_skips_compute(self, cache):
        cache.set(("t1", "agents"), ["a"])

        async def compute():
            raise AssertionError("should not compute")

        entry = await cache.get_or_compute(("t1", "agents"), compute)

        assert entry.value == ["a"]

    async def test_leader_failure_propagates_to_followers(self, cache):
        async def compute():
            await asyncio.sleep(0.02)
            raise RuntimeError("database down")

        results = await asyncio.gather(
            *(cache.get_or_compute(("t1", "live_calls"), compute) for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.peek(("t1", "live_calls")) is None
        assert cache.stats()["inflight"] == 0

    async def test_follower_computes_after_wait_timeout(self, cache):
        calls = 0
        release = asyncio.Event()

        async def slow():
            nonlocal calls
            calls += 1
            await release.wait()
            return "slow"

        async def fast():
            nonlocal calls
            calls += 1
            return "fast"

        leader = asyncio.ensure_future(cache.get_or_compute(("t1", "live_calls"), slow))
        await asyncio.sleep(0)

        entry = await cache.get_or_compute(("t1", "live_calls"), fast, wait_timeout=0.05)

        assert entry.value == "fast"
        assert calls == 2

        release.set()
        assert (await leader).value == "slow"

    async def test_result_discarded_after_invalidation(self, cache):
        started = asyncio.Event()
        release = asyncio.Event()

        async def compute():
            started.set()
            await release.wait()
            return "old"

        task = asyncio.ensure_future(cache.get_or_compute(("t1", "call_summary", 30), compute))
        await started.wait()

        cache.invalidate("t1", "call_summary")
        release.set()
        entry = await task

        # Caller still gets its value, but the cache does not keep it
        assert entry.value == "old"
        assert cache.peek(("t1", "call_summary", 30)) is None

    async def test_invalidation_in_other_scope_keeps_result(self, cache):
        started = asyncio.Event()
        release = asyncio.Event()

        async def compute():
            started.set()
            await release.wait()
            return "fresh"

        task = asyncio.ensure_future(cache.get_or_compute(("t1", "call_summary", 30), compute))
        await started.wait()

        cache.invalidate("t2", "call_summary")
        release.set()
        await task

        assert cache.get(("t1", "call_summary", 30)).value == "fresh"
