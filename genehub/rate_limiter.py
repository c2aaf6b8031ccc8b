"""
Token-bucket rate limiting for every outbound upstream call.

One bucket per api key. Bucket state is read from and written back to the
shared store on every acquisition so several workers draw from roughly the
same budget. The accounting is best-effort: two workers may read the same
state concurrently and both spend a token. When the store is unreachable the
limiter keeps going on process-local state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from genehub.errors import UpstreamTimeout
from genehub.store import Store, StoreUnavailable

log = logging.getLogger("genehub.rate_limiter")

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitConfig:
    requests_per_second: float
    burst_limit: int
    timeout_s: float
    requires_auth: bool = False


API_LIMITS: Dict[str, RateLimitConfig] = {
    "ncbi": RateLimitConfig(requests_per_second=3, burst_limit=10, timeout_s=10),
    "uniprot": RateLimitConfig(requests_per_second=20, burst_limit=50, timeout_s=15),
    "biocyc": RateLimitConfig(requests_per_second=1, burst_limit=1, timeout_s=30, requires_auth=True),
    "string": RateLimitConfig(requests_per_second=1, burst_limit=5, timeout_s=10),
    "pdb": RateLimitConfig(requests_per_second=10, burst_limit=20, timeout_s=10),
    "alphafold": RateLimitConfig(requests_per_second=10, burst_limit=20, timeout_s=10),
    "pubmed": RateLimitConfig(requests_per_second=3, burst_limit=10, timeout_s=10),
}

# Requests per second granted by NCBI to callers presenting an API key.
ELEVATED_LIMITS: Dict[str, float] = {
    "ncbi": 10,
    "pubmed": 10,
}

_FALLBACK_LIMIT = RateLimitConfig(requests_per_second=1, burst_limit=1, timeout_s=10)


def resolve_limits(ncbi_api_key: Optional[str] = None) -> Dict[str, RateLimitConfig]:
    limits = dict(API_LIMITS)
    if ncbi_api_key:
        for api, rps in ELEVATED_LIMITS.items():
            cfg = limits[api]
            limits[api] = RateLimitConfig(
                requests_per_second=rps,
                burst_limit=cfg.burst_limit,
                timeout_s=cfg.timeout_s,
                requires_auth=cfg.requires_auth,
            )
    return limits


@dataclass
class RateLimitState:
    api: str
    tokens: float
    last_refill: float

    @classmethod
    def from_record(cls, api: str, record: Dict[str, Any]) -> "RateLimitState":
        return cls(api=api, tokens=float(record["tokens"]), last_refill=float(record["last_refill"]))


class RateLimiter:
    def __init__(
        self,
        store: Store,
        limits: Optional[Dict[str, RateLimitConfig]] = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._store = store
        self._limits = dict(limits) if limits is not None else dict(API_LIMITS)
        self._clock = clock
        self._sleep = sleep
        self._local: Dict[str, RateLimitState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def config(self, api: str) -> RateLimitConfig:
        cfg = self._limits.get(api)
        if cfg is None:
            log.warning("No rate limit configured for %s; using %s", api, _FALLBACK_LIMIT)
            cfg = self._limits[api] = _FALLBACK_LIMIT
        return cfg

    def _lock(self, api: str) -> asyncio.Lock:
        lock = self._locks.get(api)
        if lock is None:
            lock = self._locks[api] = asyncio.Lock()
        return lock

    async def _load(self, api: str, cfg: RateLimitConfig) -> RateLimitState:
        record = None
        try:
            record = await self._store.get_rate_limit(api)
        except StoreUnavailable as e:
            log.debug("rate-limit state for %s read from memory (%s)", api, e)
        if record is not None:
            try:
                return RateLimitState.from_record(api, record)
            except (KeyError, TypeError, ValueError):
                log.warning("Discarding malformed rate-limit state for %s: %r", api, record)
        local = self._local.get(api)
        if local is not None:
            return RateLimitState(api=api, tokens=local.tokens, last_refill=local.last_refill)
        return RateLimitState(api=api, tokens=float(cfg.burst_limit), last_refill=self._clock())

    async def _save(self, state: RateLimitState) -> None:
        self._local[state.api] = RateLimitState(**asdict(state))
        try:
            await self._store.put_rate_limit(state.api, asdict(state))
        except StoreUnavailable as e:
            log.debug("rate-limit state for %s kept in memory (%s)", state.api, e)

    @staticmethod
    def _refill(state: RateLimitState, cfg: RateLimitConfig, now: float) -> None:
        elapsed = max(0.0, now - state.last_refill)
        state.tokens = min(float(cfg.burst_limit), state.tokens + elapsed * cfg.requests_per_second)
        state.last_refill = now

    async def acquire(self, api: str) -> float:
        """Take one token for `api`, sleeping first if the bucket is empty. Returns seconds waited."""
        cfg = self.config(api)
        async with self._lock(api):
            state = await self._load(api, cfg)
            self._refill(state, cfg, self._clock())
            waited = 0.0
            if state.tokens < 1:
                waited = (1 - state.tokens) / cfg.requests_per_second
                log.debug("%s bucket empty; waiting %.3fs", api, waited)
                await self._sleep(waited)
                state.tokens = 1.0
                state.last_refill = self._clock()
            state.tokens -= 1
            await self._save(state)
            return waited

    async def run(self, api: str, fn: Callable[[], Awaitable[T]]) -> T:
        cfg = self.config(api)
        await self.acquire(api)
        try:
            return await asyncio.wait_for(fn(), timeout=cfg.timeout_s)
        except asyncio.TimeoutError:
            raise UpstreamTimeout(api, cfg.timeout_s) from None

    async def has_capacity(self, api: str) -> bool:
        cfg = self.config(api)
        state = await self._load(api, cfg)
        self._refill(state, cfg, self._clock())
        return state.tokens >= 1

    async def snapshot(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for api, cfg in self._limits.items():
            state = await self._load(api, cfg)
            self._refill(state, cfg, self._clock())
            out[api] = {
                "tokens": round(state.tokens, 3),
                "burst_limit": cfg.burst_limit,
                "requests_per_second": cfg.requests_per_second,
                "timeout_s": cfg.timeout_s,
                "requires_auth": cfg.requires_auth,
            }
        return out
