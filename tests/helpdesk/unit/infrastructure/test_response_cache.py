"""
Unit tests for the response cache and the background queue.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from src.helpdesk.infrastructure.background import BackgroundQueue
from src.helpdesk.infrastructure.llm_client import MockEmbeddingProvider
from src.helpdesk.infrastructure.response_cache import ResponseCache


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


class TestExactTier:
    def test_normalised_queries_share_an_entry(self, clock):
        cache = ResponseCache(clock=clock)
        cache.put_exact("Reset my password please", "Use the portal", ["[Portal](https://x)"])

        entry = cache.get_exact("  reset MY password ")

        assert entry is not None
        assert entry.answer == "Use the portal"
        assert entry.use_count == 1

    def test_cache_key_is_short_hash(self):
        key = ResponseCache.cache_key("VPN?")
        assert len(key) == 16
        assert key == ResponseCache.cache_key("vpn?")

    def test_entries_expire(self, clock):
        cache = ResponseCache(ttl_seconds=1800, clock=clock)
        cache.put_exact("vpn", "answer")

        clock.advance(1799)
        assert cache.get_exact("vpn") is not None
        clock.advance(2)
        assert cache.get_exact("vpn") is None

    def test_zero_ttl_never_expires(self, clock):
        cache = ResponseCache(ttl_seconds=0, clock=clock)
        cache.put_exact("vpn", "answer")
        clock.advance(10 ** 6)
        assert cache.get_exact("vpn") is not None


class TestSemanticTier:
    @pytest.mark.asyncio
    async def test_identical_query_hits(self, clock):
        cache = ResponseCache(MockEmbeddingProvider(dimension=64), clock=clock)

        assert await cache.put_semantic("la vpn no conecta", "Reinstala Zscaler") is True
        entry = await cache.get_semantic("la vpn no conecta")

        assert entry.answer == "Reinstala Zscaler"
        assert await cache.get_semantic("how do I order a laptop") is None

    @pytest.mark.asyncio
    async def test_near_duplicate_is_not_stored_twice(self, clock):
        cache = ResponseCache(MockEmbeddingProvider(dimension=64), clock=clock)

        await cache.put_semantic("vpn", "a")
        assert await cache.put_semantic("vpn", "b") is False
        assert cache.stats().semantic_entries == 1

    @pytest.mark.asyncio
    async def test_without_embedder(self, clock):
        cache = ResponseCache(None, clock=clock)
        assert await cache.put_semantic("vpn", "a") is False
        assert await cache.get_semantic("vpn") is None

    @pytest.mark.asyncio
    async def test_evicts_least_used_then_oldest(self, clock):
        cache = ResponseCache(MockEmbeddingProvider(dimension=64), max_semantic_entries=2, clock=clock)

        await cache.put_semantic("first question", "1")
        clock.advance(1)
        await cache.put_semantic("second question", "2")
        clock.advance(1)
        assert await cache.get_semantic("first question") is not None
        await cache.put_semantic("third question", "3")

        assert await cache.get_semantic("second question") is None
        assert (await cache.get_semantic("first question")).answer == "1"
        assert (await cache.get_semantic("third question")).answer == "3"
        assert cache.stats().evictions == 1

    @pytest.mark.asyncio
    async def test_expired_semantic_entries_are_ignored(self, clock):
        cache = ResponseCache(MockEmbeddingProvider(dimension=64), ttl_seconds=60, clock=clock)
        await cache.put_semantic("vpn", "a")
        clock.advance(61)
        assert await cache.get_semantic("vpn") is None
        assert cache.purge_expired() == 1


class TestLookupAndStats:
    @pytest.mark.asyncio
    async def test_lookup_counts_hits_and_misses(self, clock):
        cache = ResponseCache(MockEmbeddingProvider(dimension=64), clock=clock)
        cache.put_exact("exact question", "x")
        await cache.put_semantic("semantic question", "y")

        assert (await cache.lookup("exact question")).answer == "x"
        assert (await cache.lookup("semantic question")).answer == "y"
        assert await cache.lookup("unknown question") is None

        stats = cache.stats()
        assert stats.exact_hits == 1
        assert stats.semantic_hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3)

    def test_clear(self, clock):
        cache = ResponseCache(clock=clock)
        cache.put_exact("q", "a")
        cache.clear()
        assert cache.stats().exact_entries == 0


class TestBackgroundQueue:
    @pytest.mark.asyncio
    async def test_drain_waits_for_jobs(self):
        queue = BackgroundQueue()
        done = []

        async def job():
            await asyncio.sleep(0)
            done.append(1)

        queue.submit(job, name="one")
        queue.submit(job, name="two")
        await queue.drain()

        assert done == [1, 1]
        assert queue.stats.processed == 2
        assert queue.pending == 0
        await queue.stop()

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(self):
        queue = BackgroundQueue()

        async def broken():
            raise RuntimeError("boom")

        queue.submit(broken, name="broken")
        await queue.drain()

        assert queue.stats.failed == 1
        await queue.stop()

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        queue = BackgroundQueue(max_size=1)

        async def job():
            return None

        assert queue.submit(job) is True
        assert queue.submit(job) is False
        assert queue.stats.dropped == 1

        await queue.stop()
        assert queue.stats.processed == 1
