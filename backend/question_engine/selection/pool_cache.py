"""
Per-topic pool cache.

Bounded, TTL-expiring map from topic id to that topic's published questions.
Entries are evicted in write order once capacity is exceeded. Concurrent
misses for one topic share a single in-flight fetch.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from question_engine.core.config import settings
from question_engine.selection.types import QuestionRecord

logger = logging.getLogger(__name__)

PoolFetcher = Callable[[str], Awaitable[list[QuestionRecord]]]


@dataclass
class CachedPool:
    records: tuple[QuestionRecord, ...]
    fetched_at: float


def _consume_result(task: asyncio.Task) -> None:
    # Retrieve the exception of a fetch whose callers were all cancelled
    if not task.cancelled():
        task.exception()


class PoolCache:
    """TTL cache of topic pools in front of the question store."""

    def __init__(
        self,
        fetcher: PoolFetcher,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetcher = fetcher
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.POOL_CACHE_TTL_SECONDS
        self._max_entries = max_entries if max_entries is not None else settings.POOL_CACHE_MAX_ENTRIES
        if self._ttl <= 0:
            raise ValueError("ttl_seconds must be positive")
        if self._max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._clock = clock
        self._entries: OrderedDict[str, CachedPool] = OrderedDict()
        self._inflight: dict[str, asyncio.Task] = {}
        # Bumped by invalidate so fetches started earlier do not repopulate
        self._epoch = 0
        self._generations: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, topic_id: str) -> bool:
        entry = self._entries.get(topic_id)
        return entry is not None and not self._is_expired(entry)

    def _generation(self, topic_id: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(topic_id, 0)

    def _is_expired(self, entry: CachedPool) -> bool:
        return self._clock() - entry.fetched_at >= self._ttl

    async def get_pool(self, topic_id: str) -> list[QuestionRecord]:
        """
        Get the published questions of a topic.

        Serves a fresh cached entry when present; otherwise fetches from the
        store. Fetch errors propagate and nothing is cached.
        """
        entry = self._entries.get(topic_id)
        if entry is not None:
            if not self._is_expired(entry):
                return list(entry.records)
            del self._entries[topic_id]

        task = self._inflight.get(topic_id)
        if task is None:
            logger.debug(
                f"Pool cache miss for topic {topic_id}",
                extra={"event": "pool_cache_miss", "topic_id": topic_id},
            )
            task = asyncio.ensure_future(self._fetch(topic_id, self._generation(topic_id)))
            self._inflight[topic_id] = task
            task.add_done_callback(lambda t, key=topic_id: self._forget_inflight(key, t))
            task.add_done_callback(_consume_result)

        records = await asyncio.shield(task)
        return list(records)

    def _forget_inflight(self, topic_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(topic_id) is task:
            del self._inflight[topic_id]

    async def _fetch(self, topic_id: str, generation: tuple[int, int]) -> tuple[QuestionRecord, ...]:
        records = tuple(await self._fetcher(topic_id))
        if records and generation == self._generation(topic_id):
            # Empty pools stay uncached so newly published questions show up at once
            self._store(topic_id, records)
        return records

    def _store(self, topic_id: str, records: tuple[QuestionRecord, ...]) -> None:
        self._entries.pop(topic_id, None)
        self._entries[topic_id] = CachedPool(records=records, fetched_at=self._clock())

        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(
                f"Pool cache evicted topic {evicted}",
                extra={"event": "pool_cache_evict", "topic_id": evicted},
            )

    def invalidate(self, topic_id: str | None = None) -> None:
        """
        Drop one topic, or every topic when none is given.

        Fetches already in flight still answer their callers but are not
        cached; the next get_pool fetches again.
        """
        if topic_id is None:
            self._epoch += 1
            self._generations.clear()
            self._entries.clear()
            self._inflight.clear()
        else:
            self._generations[topic_id] = self._generations.get(topic_id, 0) + 1
            self._entries.pop(topic_id, None)
            self._inflight.pop(topic_id, None)
