"""
Per-call metrics and the error-rate alarm.

Every upstream call is recorded as one append-only `ApiMetric`. After an
error or timeout the monitor counts that api's failures over the last hour;
more than ALERT_THRESHOLD raises one `[ALERT]` log line, then alerts for the
api stay quiet until an hour has passed. Recording never fails the call it
measures.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from genehub.errors import RateLimitedError, UpstreamTimeout
from genehub.store import Store, StoreUnavailable

log = logging.getLogger("genehub.metrics")

T = TypeVar("T")

ALERT_THRESHOLD = 10
ALERT_WINDOW_S = 3600
FAILURE_STATUSES = ("error", "timeout")


@dataclass
class ApiMetric:
    api: str
    endpoint: str
    status: str                 # "success" | "error" | "timeout" | "rate_limited"
    latency_ms: int
    cache_hit: bool = False
    error_message: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class MetricsMonitor:
    def __init__(self, store: Store, *, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self._last_alert: Dict[str, float] = {}
        self.alerts: List[Dict[str, Any]] = []

    async def track(self, metric: ApiMetric) -> None:
        try:
            await self._store.metric_insert(asdict(metric))
        except StoreUnavailable as e:
            log.debug("metric for %s dropped (%s)", metric.api, e)
            return
        if metric.status in FAILURE_STATUSES:
            await self._check_alarm(metric.api)

    async def _record(self, api: str, endpoint: str, status: str, started: float, error: Optional[str] = None) -> None:
        latency_ms = int((time.perf_counter() - started) * 1000)
        await self.track(
            ApiMetric(
                api=api,
                endpoint=endpoint,
                status=status,
                latency_ms=latency_ms,
                error_message=error,
                timestamp=self._clock(),
            )
        )

    async def with_metrics(self, api: str, endpoint: str, fn: Callable[[], Awaitable[T]]) -> T:
        started = time.perf_counter()
        try:
            result = await fn()
        except asyncio.CancelledError:
            await self._record(api, endpoint, "timeout", started, "deadline exceeded")
            raise
        except (asyncio.TimeoutError, UpstreamTimeout) as e:
            await self._record(api, endpoint, "timeout", started, str(e) or "timeout")
            raise
        except RateLimitedError as e:
            await self._record(api, endpoint, "rate_limited", started, str(e))
            raise
        except Exception as e:
            await self._record(api, endpoint, "error", started, str(e) or e.__class__.__name__)
            raise
        await self._record(api, endpoint, "success", started)
        return result

    async def _check_alarm(self, api: str) -> None:
        now = self._clock()
        try:
            count = await self._store.metric_count(api, FAILURE_STATUSES, now - ALERT_WINDOW_S)
        except StoreUnavailable as e:
            log.debug("alarm check for %s skipped (%s)", api, e)
            return
        if count <= ALERT_THRESHOLD:
            return
        last = self._last_alert.get(api)
        if last is not None and now - last < ALERT_WINDOW_S:
            return
        self._last_alert[api] = now
        self.alerts.append({"api": api, "errors": count, "timestamp": now})
        log.error("[ALERT] %s: %d errors/timeouts in the last hour (threshold %d)", api, count, ALERT_THRESHOLD)

    async def health(self) -> Dict[str, Dict[str, Any]]:
        """Per-api rollup of the last hour."""
        try:
            rows = await self._store.metric_list(self._clock() - ALERT_WINDOW_S)
        except StoreUnavailable:
            return {}
        out: Dict[str, Dict[str, Any]] = {}
        for r in rows:
            roll = out.setdefault(
                r["api"],
                {"total": 0, "success": 0, "error": 0, "timeout": 0, "rate_limited": 0,
                 "cache_hits": 0, "_latency": 0, "_calls": 0},
            )
            roll["total"] += 1
            roll[r["status"]] = roll.get(r["status"], 0) + 1
            if r.get("cache_hit"):
                roll["cache_hits"] += 1
            else:
                roll["_latency"] += int(r.get("latency_ms") or 0)
                roll["_calls"] += 1
        for roll in out.values():
            calls = roll.pop("_calls")
            latency = roll.pop("_latency")
            roll["success_rate"] = round(roll["success"] / roll["total"], 3)
            roll["avg_latency_ms"] = round(latency / calls, 1) if calls else None
            roll["cache_hit_rate"] = round(roll["cache_hits"] / roll["total"], 3)
        return out
