"""
Shared persistence for limiter state, cache entries, metrics and sessions.

The gateway runs as several stateless workers; anything that should be shared
between them goes through a `Store`. Records travel as plain JSON-able dicts.

Every backend failure (connection refused, missing table, bad payload) is
raised as `StoreUnavailable`. Callers never let it reach a client: the rate
limiter falls back to process memory, the cache bypasses itself, metrics are
dropped and the session manager logs in again.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from redis.asyncio import Redis
from redis.exceptions import RedisError

log = logging.getLogger("genehub.store")

TABLES = ("rate_limit", "cache", "metrics", "session")


class StoreUnavailable(Exception):
    """The backing store (or one of its tables) cannot be used right now."""


class Store(abc.ABC):
    # rate-limit state ---------------------------------------------------------
    @abc.abstractmethod
    async def get_rate_limit(self, api: str) -> Optional[Dict[str, Any]]: ...

    @abc.abstractmethod
    async def put_rate_limit(self, api: str, state: Dict[str, Any]) -> None: ...

    # cache ------------------------------------------------------------------
    @abc.abstractmethod
    async def cache_get(self, key: str) -> Optional[Dict[str, Any]]: ...

    @abc.abstractmethod
    async def cache_put(self, entry: Dict[str, Any]) -> None: ...

    @abc.abstractmethod
    async def cache_delete(self, key: str) -> bool: ...

    @abc.abstractmethod
    async def cache_delete_category(self, category: str) -> int: ...

    @abc.abstractmethod
    async def cache_counts(self) -> Dict[str, int]: ...

    # metrics ----------------------------------------------------------------
    @abc.abstractmethod
    async def metric_insert(self, metric: Dict[str, Any]) -> None: ...

    @abc.abstractmethod
    async def metric_count(self, api: str, statuses: Iterable[str], since: float) -> int: ...

    @abc.abstractmethod
    async def metric_list(self, since: float) -> List[Dict[str, Any]]: ...

    # sessions ---------------------------------------------------------------
    @abc.abstractmethod
    async def session_get(self, session_id: str) -> Optional[Dict[str, Any]]: ...

    @abc.abstractmethod
    async def session_put(self, session_id: str, session: Dict[str, Any]) -> None: ...

    @abc.abstractmethod
    async def session_delete(self, session_id: str) -> None: ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ----------------------------------------------------------------------------
# In-process backend
# ----------------------------------------------------------------------------

class MemoryStore(Store):
    """
    Process-local store. `disabled` names tables that behave as if they were
    never provisioned; `set_available(False)` makes every table fail.
    """

    def __init__(self, disabled: Iterable[str] = ()):
        self._disabled: Set[str] = set(disabled)
        self._available = True
        self._lock = asyncio.Lock()
        self._rate_limits: Dict[str, Dict[str, Any]] = {}
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._metrics: List[Dict[str, Any]] = []
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def set_available(self, available: bool) -> None:
        self._available = available

    def disable(self, table: str) -> None:
        self._disabled.add(table)

    def enable(self, table: str) -> None:
        self._disabled.discard(table)

    def _check(self, table: str) -> None:
        if not self._available:
            raise StoreUnavailable("memory store marked unavailable")
        if table in self._disabled:
            raise StoreUnavailable(f"table '{table}' is not provisioned")

    async def get_rate_limit(self, api):
        self._check("rate_limit")
        state = self._rate_limits.get(api)
        return dict(state) if state is not None else None

    async def put_rate_limit(self, api, state):
        self._check("rate_limit")
        self._rate_limits[api] = dict(state)

    async def cache_get(self, key):
        self._check("cache")
        entry = self._cache.get(key)
        return dict(entry) if entry is not None else None

    async def cache_put(self, entry):
        self._check("cache")
        self._cache[entry["key"]] = dict(entry)

    async def cache_delete(self, key):
        self._check("cache")
        return self._cache.pop(key, None) is not None

    async def cache_delete_category(self, category):
        self._check("cache")
        doomed = [k for k, e in self._cache.items() if e.get("category") == category]
        for k in doomed:
            del self._cache[k]
        return len(doomed)

    async def cache_counts(self):
        self._check("cache")
        out: Dict[str, int] = {}
        for e in self._cache.values():
            out[e["category"]] = out.get(e["category"], 0) + 1
        return out

    async def metric_insert(self, metric):
        self._check("metrics")
        async with self._lock:
            self._metrics.append(dict(metric))

    async def metric_count(self, api, statuses, since):
        self._check("metrics")
        wanted = set(statuses)
        return sum(
            1 for m in self._metrics
            if m["api"] == api and m["status"] in wanted and m["timestamp"] >= since
        )

    async def metric_list(self, since):
        self._check("metrics")
        return [dict(m) for m in self._metrics if m["timestamp"] >= since]

    async def session_get(self, session_id):
        self._check("session")
        s = self._sessions.get(session_id)
        return dict(s) if s is not None else None

    async def session_put(self, session_id, session):
        self._check("session")
        self._sessions[session_id] = dict(session)

    async def session_delete(self, session_id):
        self._check("session")
        self._sessions.pop(session_id, None)

    async def ping(self):
        return self._available


# ----------------------------------------------------------------------------
# Redis backend
# ----------------------------------------------------------------------------

class RedisStore(Store):
    """
    redis.asyncio backed store.

    Keys (all under `namespace`):
      {ns}:rate_limit:{api}            JSON state
      {ns}:cache:{key}                 JSON entry, PX-expired after ttl + stale window
      {ns}:cache_category:{category}   set of cache keys
      {ns}:metrics:{api}               sorted set of JSON metrics scored by timestamp
      {ns}:session:{id}                JSON session, expired with the session
    """

    METRIC_RETENTION_S = 24 * 3600

    def __init__(self, client: Any, namespace: str = "genehub"):
        self._redis = client
        self._ns = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "genehub") -> "RedisStore":
        return cls(Redis.from_url(url, decode_responses=True), namespace=namespace)

    def _k(self, *parts: str) -> str:
        return ":".join((self._ns,) + parts)

    async def _call(self, coro):
        try:
            return await coro
        except RedisError as e:
            raise StoreUnavailable(f"redis: {e}") from e
        except OSError as e:
            raise StoreUnavailable(f"redis socket: {e}") from e

    @staticmethod
    def _loads(raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StoreUnavailable(f"corrupt record: {e}") from e

    async def get_rate_limit(self, api):
        return self._loads(await self._call(self._redis.get(self._k("rate_limit", api))))

    async def put_rate_limit(self, api, state):
        await self._call(self._redis.set(self._k("rate_limit", api), json.dumps(state)))

    async def cache_get(self, key):
        return self._loads(await self._call(self._redis.get(self._k("cache", key))))

    async def cache_put(self, entry):
        ttl_ms = max(1, int((entry["expires_at"] - time.time()) * 1000) + int(entry.get("stale_window_s", 0) * 1000))
        await self._call(self._redis.set(self._k("cache", entry["key"]), json.dumps(entry), px=ttl_ms))
        await self._call(self._redis.sadd(self._k("cache_category", entry["category"]), entry["key"]))
        # members share one ttl, so the newest entry sets the expiry
        await self._call(self._redis.pexpire(self._k("cache_category", entry["category"]), ttl_ms))

    async def cache_delete(self, key):
        raw = await self._call(self._redis.get(self._k("cache", key)))
        entry = self._loads(raw)
        removed = await self._call(self._redis.delete(self._k("cache", key)))
        if entry is not None:
            await self._call(self._redis.srem(self._k("cache_category", entry["category"]), key))
        return bool(removed)

    async def cache_delete_category(self, category):
        members = await self._call(self._redis.smembers(self._k("cache_category", category)))
        keys = [self._k("cache", m) for m in members]
        removed = 0
        if keys:
            removed = await self._call(self._redis.delete(*keys))
        await self._call(self._redis.delete(self._k("cache_category", category)))
        return int(removed)

    async def _scan(self, prefix: str) -> List[str]:
        async def collect():
            return [name async for name in self._redis.scan_iter(match=f"{prefix}*")]

        return await self._call(collect())

    async def _prune_category(self, name: str) -> int:
        """Drop members whose cache entry has expired; returns the live count."""
        members = await self._call(self._redis.smembers(name))
        expired = [m for m in members if not await self._call(self._redis.exists(self._k("cache", m)))]
        if expired:
            await self._call(self._redis.srem(name, *expired))
        return len(members) - len(expired)

    async def cache_counts(self):
        out: Dict[str, int] = {}
        prefix = self._k("cache_category", "")
        for name in await self._scan(prefix):
            out[name[len(prefix):]] = await self._prune_category(name)
        return out

    async def metric_insert(self, metric):
        key = self._k("metrics", metric["api"])
        ts = float(metric["timestamp"])
        # unique member so identical records are not collapsed by the sorted set
        member = json.dumps({**metric, "id": uuid.uuid4().hex})
        await self._call(self._redis.zadd(key, {member: ts}))
        await self._call(self._redis.zremrangebyscore(key, "-inf", ts - self.METRIC_RETENTION_S))

    async def metric_count(self, api, statuses, since):
        wanted = set(statuses)
        rows = await self._call(self._redis.zrangebyscore(self._k("metrics", api), since, "+inf"))
        return sum(1 for raw in rows if (self._loads(raw) or {}).get("status") in wanted)

    async def metric_list(self, since):
        out: List[Dict[str, Any]] = []
        prefix = self._k("metrics", "")
        for name in await self._scan(prefix):
            rows = await self._call(self._redis.zrangebyscore(name, since, "+inf"))
            out.extend(self._loads(raw) for raw in rows)
        return out

    async def session_get(self, session_id):
        return self._loads(await self._call(self._redis.get(self._k("session", session_id))))

    async def session_put(self, session_id, session):
        ttl = max(1, int(session["expires_at"] - time.time()))
        await self._call(self._redis.set(self._k("session", session_id), json.dumps(session), ex=ttl))

    async def session_delete(self, session_id):
        await self._call(self._redis.delete(self._k("session", session_id)))

    async def ping(self):
        try:
            return bool(await self._call(self._redis.ping()))
        except StoreUnavailable:
            return False

    async def close(self):
        await self._redis.aclose()


def build_store(redis_url: Optional[str], namespace: str = "genehub") -> Store:
    if redis_url:
        log.info("Using Redis store (namespace=%s)", namespace)
        return RedisStore.from_url(redis_url, namespace=namespace)
    log.info("REDIS_URL not set; using in-process memory store")
    return MemoryStore()
