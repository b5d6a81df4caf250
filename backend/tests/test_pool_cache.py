"""Tests for the per-topic pool cache."""

import asyncio

import pytest

from question_engine.core.app_exceptions import QuestionStoreError
from question_engine.selection.pool_cache import PoolCache
from tests.helpers.seed import FakeQuestionStore, make_pool


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeQuestionStore:
    return FakeQuestionStore(
        {topic: make_pool(5, topic_id=topic) for topic in ("a", "b", "c")}
    )


class TestPoolCacheHits:
    """Tests for TTL behaviour."""

    @pytest.mark.asyncio
    async def test_second_call_within_ttl_is_cached(self, store, clock):
        cache = PoolCache(store.fetch_topic_pool, ttl_seconds=300, max_entries=50, clock=clock)

        first = await cache.get_pool("a")
        clock.advance(299)
        second = await cache.get_pool("a")

        assert first == second
        assert store.fetch_calls == ["a"]

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, store, clock):
        cache = PoolCache(store.fetch_topic_pool, ttl_seconds=300, max_entries=50, clock=clock)

        await cache.get_pool("a")
        clock.advance(300)
        assert "a" not in cache
        await cache.get_pool("a")

        assert store.fetch_calls == ["a", "a"]

    @pytest.mark.asyncio
    async def test_refetch_sees_new_questions(self, store, clock):
        cache = PoolCache(store.fetch_topic_pool, ttl_seconds=60, max_entries=50, clock=clock)
        await cache.get_pool("a")

        store.pools["a"] = make_pool(8, topic_id="a")
        assert len(await cache.get_pool("a")) == 5
        clock.advance(61)
        assert len(await cache.get_pool("a")) == 8

    @pytest.mark.asyncio
    async def test_returned_list_does_not_alias_cache(self, store, clock):
        cache = PoolCache(store.fetch_topic_pool, clock=clock)

        pool = await cache.get_pool("a")
        pool.clear()

        assert len(await cache.get_pool("a")) == 5

    @pytest.mark.asyncio
    async def test_invalidate(self, store, clock):
        cache = PoolCache(store.fetch_topic_pool, clock=clock)
        await cache.get_pool("a")
        await cache.get_pool("b")

        cache.invalidate("a")
        assert len(cache) == 1
        cache.invalidate()
        assert len(cache) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("topic_id", ["a", None])
    async def test_invalidate_during_fetch_is_not_undone(self, clock, topic_id):
        release = asyncio.Event()
        calls = []

        async def slow_fetch(topic: str):
            calls.append(topic)
            await release.wait()
            return make_pool(3, topic_id=topic)

        cache = PoolCache(slow_fetch, clock=clock)
        pending = asyncio.create_task(cache.get_pool("a"))
        await asyncio.sleep(0)

        cache.invalidate(topic_id)
        release.set()

        assert len(await pending) == 3
        assert "a" not in cache
        assert len(cache) == 0

        assert len(await cache.get_pool("a")) == 3
        assert calls == ["a", "a"]
        assert "a" in cache


class TestPoolCacheCapacity:
    """Tests for bounded capacity."""

    @pytest.mark.asyncio
    async def test_oldest_written_entry_evicted(self, store, clock):
        cache = PoolCache(store.fetch_topic_pool, ttl_seconds=300, max_entries=2, clock=clock)

        await cache.get_pool("a")
        await cache.get_pool("b")
        await cache.get_pool("c")

        assert len(cache) == 2
        assert "a" not in cache
        assert "b" in cache
        assert "c" in cache

    @pytest.mark.asyncio
    async def test_empty_pool_not_cached(self, clock):
        store = FakeQuestionStore({"empty": []})
        cache = PoolCache(store.fetch_topic_pool, clock=clock)

        assert await cache.get_pool("empty") == []
        assert await cache.get_pool("empty") == []

        assert len(cache) == 0
        assert store.fetch_calls == ["empty", "empty"]

    def test_invalid_configuration(self, store):
        with pytest.raises(ValueError):
            PoolCache(store.fetch_topic_pool, ttl_seconds=0)
        with pytest.raises(ValueError):
            PoolCache(store.fetch_topic_pool, max_entries=0)


class TestPoolCacheFailures:
    """Tests for error propagation and concurrent misses."""

    @pytest.mark.asyncio
    async def test_store_error_propagates_and_is_not_cached(self, store, clock):
        cache = PoolCache(store.fetch_topic_pool, clock=clock)
        store.fetch_error = QuestionStoreError("Failed to fetch questions")

        with pytest.raises(QuestionStoreError):
            await cache.get_pool("a")
        assert len(cache) == 0

        store.fetch_error = None
        assert len(await cache.get_pool("a")) == 5

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, clock):
        release = asyncio.Event()
        calls = []

        async def slow_fetch(topic_id: str):
            calls.append(topic_id)
            await release.wait()
            return make_pool(3, topic_id=topic_id)

        cache = PoolCache(slow_fetch, clock=clock)
        waiters = [asyncio.create_task(cache.get_pool("a")) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters)

        assert calls == ["a"]
        assert all(len(result) == 3 for result in results)

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_break_other_waiters(self, clock):
        release = asyncio.Event()

        async def slow_fetch(topic_id: str):
            await release.wait()
            return make_pool(3, topic_id=topic_id)

        cache = PoolCache(slow_fetch, clock=clock)
        first = asyncio.create_task(cache.get_pool("a"))
        second = asyncio.create_task(cache.get_pool("a"))
        await asyncio.sleep(0)

        first.cancel()
        release.set()

        assert len(await second) == 3
        with pytest.raises(asyncio.CancelledError):
            await first
