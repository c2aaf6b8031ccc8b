import json
from typing import Any, Callable, List, Optional, Tuple

import httpx
import pytest

from genehub.cache import CacheManager
from genehub.clients.base import Upstream
from genehub.metrics import MetricsMonitor
from genehub.rate_limiter import RateLimiter
from genehub.store import MemoryStore

NCBI = "eutils.ncbi.nlm.nih.gov"
UNIPROT = "rest.uniprot.org"
ALPHAFOLD = "alphafold.ebi.ac.uk"
PDBE = "www.ebi.ac.uk"
RCSB_SEARCH = "search.rcsb.org"
RCSB_DATA = "data.rcsb.org"
STRING = "string-db.org"
BIOCYC = "websvc.biocyc.org"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested waits and moves the fake clock instead of sleeping."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


Responder = Callable[[httpx.Request], httpx.Response]


class FakeUpstreams:
    """httpx.MockTransport handler routing on (host, path prefix)."""

    def __init__(self):
        self.routes: List[Tuple[str, str, Responder]] = []
        self.requests: List[httpx.Request] = []

    def add(self, host: str, prefix: str, responder: Responder) -> "FakeUpstreams":
        # later routes win, so tests can override a default
        self.routes.insert(0, (host, prefix, responder))
        return self

    def json(self, host: str, prefix: str, payload: Any, status: int = 200) -> "FakeUpstreams":
        return self.add(host, prefix, lambda request: httpx.Response(status, json=payload))

    def text(self, host: str, prefix: str, body: str, status: int = 200) -> "FakeUpstreams":
        return self.add(host, prefix, lambda request: httpx.Response(status, text=body))

    def status(self, host: str, prefix: str, status: int) -> "FakeUpstreams":
        return self.add(host, prefix, lambda request: httpx.Response(status))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for host, prefix, responder in self.routes:
            if request.url.host == host and request.url.path.startswith(prefix):
                return responder(request)
        return httpx.Response(404, json={"error": "no route"})

    def calls(self, host: str, prefix: str = "") -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host and r.url.path.startswith(prefix)]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content.decode())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def fake():
    return FakeUpstreams()


@pytest.fixture
def upstream(fake, store):
    http = httpx.AsyncClient(transport=fake.transport)
    limiter = RateLimiter(store, sleep=FakeSleep())
    return Upstream(http, limiter, MetricsMonitor(store), CacheManager(store), retries=0, backoff=0)
