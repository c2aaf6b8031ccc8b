"""
Stale-while-revalidate cache over the shared store.

    fresh    age <  ttl                  -> cached payload
    stale    ttl <= age < ttl + window   -> cached payload now, one background refetch
    expired  age >= ttl + window         -> synchronous refetch
    missing / store down                 -> synchronous fetch, best-effort write

Freshness policy is fixed per category so adapters cannot drift apart.
Errors raised by a fetcher are never cached.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Set, TypeVar

from genehub.store import Store, StoreUnavailable

log = logging.getLogger("genehub.cache")

T = TypeVar("T")

HOUR = 3600
DAY = 24 * HOUR


@dataclass(frozen=True)
class CachePolicy:
    ttl_s: float
    stale_window_s: float


CACHE_CATEGORIES: Dict[str, CachePolicy] = {
    "gene-basic": CachePolicy(ttl_s=DAY, stale_window_s=HOUR),
    "gene-structure": CachePolicy(ttl_s=7 * DAY, stale_window_s=DAY),
    "string-interactions": CachePolicy(ttl_s=7 * DAY, stale_window_s=DAY),
    "biocyc-gene": CachePolicy(ttl_s=7 * DAY, stale_window_s=DAY),
    "biocyc-pathway": CachePolicy(ttl_s=7 * DAY, stale_window_s=DAY),
    "biocyc-regulation": CachePolicy(ttl_s=7 * DAY, stale_window_s=DAY),
}


def make_cache_key(*parts: Any) -> str:
    """'uniprot', 'DnaA ', 511145 -> 'uniprot:dnaa:511145'"""
    return ":".join(str(p).strip().lower() for p in parts if p is not None and str(p).strip())


@dataclass
class CacheEntry:
    key: str
    category: str
    payload: Any
    fetched_at: float
    expires_at: float
    stale_window_s: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def freshness(self, now: float) -> str:
        if now < self.expires_at:
            return "fresh"
        if now < self.expires_at + self.stale_window_s:
            return "stale"
        return "expired"


@dataclass
class CacheResult(Generic[T]):
    data: T
    from_cache: bool
    is_stale: bool = False


class CacheManager:
    def __init__(self, store: Store, *, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self._pending: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()

    @staticmethod
    def policy(category: str) -> CachePolicy:
        try:
            return CACHE_CATEGORIES[category]
        except KeyError:
            raise ValueError(f"Unknown cache category: {category}") from None

    async def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            record = await self._store.cache_get(key)
        except StoreUnavailable as e:
            log.debug("cache bypassed for %s (%s)", key, e)
            return None
        if record is None:
            return None
        try:
            return CacheEntry(**record)
        except TypeError:
            log.warning("Ignoring malformed cache entry for %s", key)
            return None

    async def set(self, key: str, category: str, payload: Any) -> None:
        policy = self.policy(category)
        now = self._clock()
        entry = CacheEntry(
            key=key,
            category=category,
            payload=payload,
            fetched_at=now,
            expires_at=now + policy.ttl_s,
            stale_window_s=policy.stale_window_s,
        )
        try:
            await self._store.cache_put(asdict(entry))
        except StoreUnavailable as e:
            log.debug("cache write skipped for %s (%s)", key, e)

    async def get_or_fetch(self, key: str, category: str, fetcher: Callable[[], Awaitable[T]]) -> CacheResult[T]:
        self.policy(category)
        entry = await self._read(key)
        now = self._clock()

        if entry is not None:
            state = entry.freshness(now)
            if state == "fresh":
                return CacheResult(data=entry.payload, from_cache=True, is_stale=False)
            if state == "stale":
                self._schedule_revalidation(key, category, fetcher)
                return CacheResult(data=entry.payload, from_cache=True, is_stale=True)
            log.debug("cache entry %s expired (age %.0fs); refetching", key, entry.age(now))

        data = await fetcher()
        await self.set(key, category, data)
        return CacheResult(data=data, from_cache=False, is_stale=False)

    def _schedule_revalidation(self, key: str, category: str, fetcher: Callable[[], Awaitable[Any]]) -> None:
        if key in self._pending and not self._pending[key].done():
            return
        task = asyncio.create_task(self._revalidate(key, category, fetcher), name=f"revalidate:{key}")
        self._pending[key] = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _revalidate(self, key: str, category: str, fetcher: Callable[[], Awaitable[Any]]) -> None:
        try:
            data = await fetcher()
        except Exception as e:  # noqa: BLE001
            log.warning("Background revalidation of %s failed; keeping stale entry: %s", key, e)
            return
        finally:
            self._pending.pop(key, None)
        await self.set(key, category, data)
        log.debug("revalidated %s", key)

    async def drain(self) -> None:
        """Wait for in-flight background revalidations."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def invalidate(self, key: str) -> bool:
        try:
            return await self._store.cache_delete(key)
        except StoreUnavailable as e:
            log.warning("cache invalidate(%s) skipped: %s", key, e)
            return False

    async def invalidate_category(self, category: str) -> int:
        self.policy(category)
        try:
            return await self._store.cache_delete_category(category)
        except StoreUnavailable as e:
            log.warning("cache invalidate_category(%s) skipped: %s", category, e)
            return 0

    async def age(self, key: str) -> Optional[float]:
        entry = await self._read(key)
        return entry.age(self._clock()) if entry is not None else None

    async def stats(self) -> Dict[str, Any]:
        try:
            counts = await self._store.cache_counts()
            available = True
        except StoreUnavailable:
            counts, available = {}, False
        return {
            "available": available,
            "entries": {cat: counts.get(cat, 0) for cat in CACHE_CATEGORIES},
            "revalidating": len(self._background),
        }
