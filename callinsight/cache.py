"""
Tenant-scoped in-process cache for dashboard metrics.

Entries are keyed ``(tenant_id, metric, *sub_key)`` and expire after a TTL;
the least recently used entry is evicted once the cache is full. Concurrent
misses on one key share a single computation. Invalidation is always scoped
to a tenant and metric and bumps a generation counter, so a computation that
started before a write never stores its (older) result after it.
"""

import asyncio
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

import structlog

from callinsight.config import settings
from callinsight.errors import CacheMiss

logger = structlog.get_logger()

CacheKey = Tuple[Hashable, ...]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    computed_at: datetime
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def _mark_retrieved(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class TenantCache:
    """TTL + LRU cache whose keys always start with a tenant id"""

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self._generations: Dict[Tuple[Hashable, Hashable], int] = {}
        self._inflight: Dict[CacheKey, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @staticmethod
    def _check_key(key: CacheKey) -> CacheKey:
        if not isinstance(key, tuple) or len(key) < 2 or key[0] is None:
            raise ValueError("Cache keys must be (tenant_id, metric, ...) tuples")
        return key

    @staticmethod
    def _scope(key: CacheKey) -> Tuple[Hashable, Hashable]:
        return key[0], key[1]

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey) -> CacheEntry:
        """Return the live entry for ``key`` or raise CacheMiss"""
        self._check_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                self.misses += 1
                raise CacheMiss(key)
            self._entries.move_to_end(key)
            self.hits += 1
            return entry

    def peek(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the entry for ``key`` even if expired, without touching LRU order"""
        self._check_key(key)
        with self._lock:
            return self._entries.get(key)

    def set(
        self,
        key: CacheKey,
        value: Any,
        ttl: Optional[float] = None,
        computed_at: Optional[datetime] = None,
    ) -> CacheEntry:
        self._check_key(key)
        entry = CacheEntry(
            value=value,
            computed_at=computed_at or datetime.utcnow(),
            expires_at=self._clock() + (self.default_ttl if ttl is None else ttl),
        )
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1
        return entry

    def generation(self, tenant_id: Hashable, metric: Hashable) -> int:
        with self._lock:
            return self._generations.get((tenant_id, metric), 0)

    def invalidate(self, tenant_id: Hashable, metric: Hashable, *prefix: Hashable) -> int:
        """
        Drop entries of one tenant and metric, optionally narrowed by a sub-key prefix.

        In-flight computations for matching keys are detached so later readers
        start a fresh computation; their results are discarded.
        """
        if tenant_id is None:
            raise ValueError("tenant_id is required for invalidation")

        match = (tenant_id, metric) + tuple(prefix)
        width = len(match)

        with self._lock:
            scope = (tenant_id, metric)
            self._generations[scope] = self._generations.get(scope, 0) + 1

            stale = [key for key in self._entries if key[:width] == match]
            for key in stale:
                del self._entries[key]

            for key in [key for key in self._inflight if key[:width] == match]:
                del self._inflight[key]

        logger.debug(
            "Cache invalidated",
            tenant_id=str(tenant_id),
            metric=str(metric),
            removed=len(stale),
        )
        return len(stale)

    def _store_if_current(
        self,
        key: CacheKey,
        value: Any,
        ttl: Optional[float],
        computed_at: datetime,
        generation: int,
    ) -> CacheEntry:
        with self._lock:
            if self._generations.get(self._scope(key), 0) == generation:
                return self.set(key, value, ttl=ttl, computed_at=computed_at)

        logger.debug("Discarding result computed before invalidation", metric=str(key[1]))
        return CacheEntry(
            value=value,
            computed_at=computed_at,
            expires_at=self._clock() + (self.default_ttl if ttl is None else ttl),
        )

    async def _compute(
        self,
        key: CacheKey,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[float],
        generation: int,
    ) -> CacheEntry:
        computed_at = datetime.utcnow()
        value = await compute()
        return self._store_if_current(key, value, ttl, computed_at, generation)

    async def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        wait_timeout: Optional[float] = None,
    ) -> CacheEntry:
        """
        Return the cached entry or compute it once for all concurrent callers.

        Followers wait up to ``wait_timeout`` seconds for the leading
        computation, then compute on their own.
        """
        try:
            return self.get(key)
        except CacheMiss:
            pass

        loop = asyncio.get_running_loop()
        with self._lock:
            generation = self._generations.get(self._scope(key), 0)
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = loop.create_future()
                future.add_done_callback(_mark_retrieved)
                self._inflight[key] = future

        if not leader:
            try:
                return await asyncio.wait_for(asyncio.shield(future), timeout=wait_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Timed out waiting for in-flight computation",
                    tenant_id=str(key[0]),
                    metric=str(key[1]),
                )
            except asyncio.CancelledError:
                if not future.cancelled():
                    raise
            return await self._compute(key, compute, ttl, self.generation(key[0], key[1]))

        try:
            entry = await self._compute(key, compute, ttl, generation)
        except asyncio.CancelledError:
            self._release(key, future)
            future.cancel()
            raise
        except Exception as e:
            self._release(key, future)
            future.set_exception(e)
            raise

        self._release(key, future)
        future.set_result(entry)
        return entry

    def _release(self, key: CacheKey, future: asyncio.Future) -> None:
        with self._lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "inflight": len(self._inflight),
            }


cache = TenantCache(
    max_entries=settings.cache_max_entries,
    default_ttl=settings.cache_default_ttl_seconds,
)


def get_cache() -> TenantCache:
    """FastAPI dependency returning the process-wide cache"""
    return cache
