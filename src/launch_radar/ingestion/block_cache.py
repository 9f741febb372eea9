"""
Bounded block metadata cache.

Purely a performance aid: a miss always falls back to a live fetch, and
concurrent requests for the same block share one in-flight fetch.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class BlockCacheEntry:
    """Block number and its unix timestamp (seconds)."""
    number: int
    timestamp: int


class BlockCache:
    """
    Evict-oldest cache of BlockCacheEntry keyed by block number.

    Usage:
        cache = BlockCache(capacity=100)
        entry = await cache.get_or_fetch(block_number, fetch_block)
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._entries: OrderedDict[int, BlockCacheEntry] = OrderedDict()
        self._inflight: dict[int, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, number: int) -> bool:
        return number in self._entries

    def get(self, number: int) -> Optional[BlockCacheEntry]:
        return self._entries.get(number)

    def put(self, entry: BlockCacheEntry) -> None:
        self._entries[entry.number] = entry
        while len(self._entries) > self._capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted block {evicted} from cache")

    async def get_or_fetch(
        self,
        number: int,
        fetch: Callable[[int], Awaitable[BlockCacheEntry]],
    ) -> BlockCacheEntry:
        """
        Return the cached entry, or fetch it once and cache it.

        Fetch errors propagate to every waiter and nothing is cached.
        """
        cached = self._entries.get(number)
        if cached is not None:
            self.hits += 1
            return cached

        pending = self._inflight.get(number)
        if pending is not None:
            return await asyncio.shield(pending)

        self.misses += 1
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[number] = future
        try:
            entry = await fetch(number)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure does not warn
            future.exception()
            raise
        else:
            self.put(entry)
            future.set_result(entry)
            return entry
        finally:
            self._inflight.pop(number, None)

    def clear(self) -> None:
        self._entries.clear()
