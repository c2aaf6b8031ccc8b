"""
Shared plumbing for the upstream adapters.

`Upstream` bundles the http client with the rate limiter, metrics monitor and
cache. Each HTTP call made through it is wrapped as

    limiter.run(api, lambda: metrics.with_metrics(api, endpoint, call))

so the bucket is drawn before the call, the deadline covers the call, and the
metric records the outcome including deadline expiry. Adapters cache their
whole fragment with `Upstream.cached`.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from genehub.cache import CacheManager, make_cache_key
from genehub.clients.sources import SOURCES, Source, parse_json, request
from genehub.metrics import ApiMetric, MetricsMonitor
from genehub.rate_limiter import RateLimiter

log = logging.getLogger("genehub.clients")

Fragment = Dict[str, Any]


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def compact(fragment: Fragment) -> Fragment:
    return {k: v for k, v in fragment.items() if not is_empty(v)}


class Upstream:
    def __init__(
        self,
        http: httpx.AsyncClient,
        limiter: RateLimiter,
        metrics: MetricsMonitor,
        cache: CacheManager,
        *,
        sources: Optional[Mapping[str, Source]] = None,
        retries: int = 1,
        backoff: float = 0.25,
        user_agent: Optional[str] = None,
    ):
        self.http = http
        self.limiter = limiter
        self.metrics = metrics
        self.cache = cache
        self.sources = dict(sources or SOURCES)
        self.retries = retries
        self.backoff = backoff
        self.user_agent = user_agent

    async def call(self, source: str, endpoint: str, path: str, **kwargs: Any) -> Optional[httpx.Response]:
        src = self.sources[source]

        async def _do() -> Optional[httpx.Response]:
            return await request(
                self.http, src, path,
                retries=self.retries, backoff=self.backoff, user_agent=self.user_agent,
                **kwargs,
            )

        return await self.limiter.run(src.api, lambda: self.metrics.with_metrics(src.api, endpoint, _do))

    async def get_json(self, source: str, endpoint: str, path: str, **kwargs: Any) -> Any:
        r = await self.call(source, endpoint, path, **kwargs)
        if r is None:
            return None
        if r.status_code == 204 or not r.content:
            return None
        return parse_json(self.sources[source], r)

    async def get_text(self, source: str, endpoint: str, path: str, **kwargs: Any) -> Optional[str]:
        r = await self.call(source, endpoint, path, **kwargs)
        return r.text if r is not None else None

    async def cached(self, api: str, key: str, category: str, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        result = await self.cache.get_or_fetch(key, category, fetcher)
        if result.from_cache:
            await self.metrics.track(
                ApiMetric(api=api, endpoint=f"cache:{category}", status="success", latency_ms=0, cache_hit=True)
            )
        return result.data


class Adapter:
    """
    One upstream's contribution to a gene summary.

    Subclasses implement `_fetch`; `fetch` adds the cache. Adapters keyed by
    the protein accession set `requires_accession` and answer {} without any
    call when it is missing.
    """

    api: str = ""
    category: str = "gene-basic"
    requires_accession: bool = False

    def __init__(self, upstream: Upstream):
        self.upstream = upstream

    def cache_key(self, symbol: str, taxon: int, accession: Optional[str] = None) -> str:
        if self.requires_accession:
            return make_cache_key(self.api, accession)
        return make_cache_key(self.api, symbol, taxon)

    async def fetch(self, symbol: str, taxon: int, accession: Optional[str] = None) -> Fragment:
        if self.requires_accession and not accession:
            return {}
        return await self.upstream.cached(
            self.api,
            self.cache_key(symbol, taxon, accession),
            self.category,
            lambda: self._fetch(symbol, taxon, accession),
        )

    async def _fetch(self, symbol: str, taxon: int, accession: Optional[str]) -> Fragment:
        raise NotImplementedError
