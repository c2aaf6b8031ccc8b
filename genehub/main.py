from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from genehub.cache import CacheManager
from genehub.clients import (
    AlphafoldAdapter,
    BiocycAdapter,
    NcbiAdapter,
    PdbAdapter,
    StringAdapter,
    UniprotAdapter,
    Upstream,
)
from genehub.clients.sources import SOURCES, join_url
from genehub.config import Settings
from genehub.errors import GatewayError, InvalidRequestError, error_response
from genehub.metrics import MetricsMonitor
from genehub.orchestrator import GeneSummaryService
from genehub.rate_limiter import RateLimiter, resolve_limits
from genehub.routers.gene_router import router as gene_router
from genehub.sessions import BiocycSessionManager
from genehub.store import Store, build_store

# ------------------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    stream=sys.stdout,
)
log = logging.getLogger("genehub.main")

# ------------------------------------------------------------------------------
# App metadata / env
# ------------------------------------------------------------------------------
DOCS_URL = os.getenv("DOCS_URL", "/docs")
OPENAPI_URL = os.getenv("OPENAPI_URL", "/openapi.json")
HTTP_TIMEOUT_S = float(os.getenv("HTTP_TIMEOUT", "30"))


# ------------------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------------------
def wire(state, settings: Settings, http: httpx.AsyncClient, store: Store) -> None:
    """Build every component once per process and hang it off app.state."""
    limits = resolve_limits(settings.ncbi_api_key)
    if settings.ncbi_api_key:
        log.info("NCBI_API_KEY set; ncbi/pubmed at %s req/s", limits["ncbi"].requests_per_second)

    limiter = RateLimiter(store, limits)
    cache = CacheManager(store)
    metrics = MetricsMonitor(store)
    sessions = BiocycSessionManager(
        http,
        store,
        email=settings.biocyc_email,
        password=settings.biocyc_password,
        login_url=join_url(SOURCES["biocyc"].base_url, "/credentials/login/"),
    )
    upstream = Upstream(
        http, limiter, metrics, cache,
        retries=settings.http_retries,
        backoff=settings.http_backoff,
        user_agent=settings.user_agent,
    )
    adapters = {
        "ncbi": NcbiAdapter(upstream, api_key=settings.ncbi_api_key),
        "uniprot": UniprotAdapter(upstream),
        "alphafold": AlphafoldAdapter(upstream),
        "pdb": PdbAdapter(upstream),
        "string": StringAdapter(upstream),
    }

    state.http = http
    state.store = store
    state.limiter = limiter
    state.cache = cache
    state.metrics = metrics
    state.sessions = sessions
    state.service = GeneSummaryService(adapters, BiocycAdapter(upstream, sessions))


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    store: Optional[Store] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.getLogger("genehub").setLevel(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(HTTP_TIMEOUT_S, connect=10.0),
            headers={"User-Agent": settings.user_agent},
        )
        backing = store or build_store(settings.redis_url, settings.store_namespace)
        wire(app.state, settings, http, backing)
        log.info("%s %s ready", settings.app_title, settings.app_version)
        try:
            yield
        finally:
            await app.state.cache.drain()
            await http.aclose()
            await backing.close()

    app = FastAPI(
        title=settings.app_title,
        version=settings.app_version,
        docs_url=DOCS_URL,
        openapi_url=OPENAPI_URL,
        root_path=settings.root_path,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS (default permissive; tighten in prod with CORS_ALLOW_ORIGINS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "Retry-After"],
    )

    # --------------------------------------------------------------------------
    # Errors -> envelope
    # --------------------------------------------------------------------------
    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(p) for p in e.get("loc", ())[1:]) for e in exc.errors()})
        return error_response(
            InvalidRequestError("Missing or invalid request fields", details=", ".join(f for f in fields if f) or None)
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        return error_response(exc)

    # Mount router under /v1
    app.include_router(gene_router, prefix="/v1")

    # --------------------------------------------------------------------------
    # Health
    # --------------------------------------------------------------------------
    @app.get("/healthz")
    @app.get("/v1/healthz")
    async def healthz():
        return {"ok": True, "version": settings.app_version}

    @app.get("/livez")
    @app.get("/v1/livez")
    async def livez():
        return {"ok": True}

    @app.get("/readyz")
    @app.get("/v1/readyz")
    async def readyz(request: Request):
        store_ok = await request.app.state.store.ping()
        return {
            "ok": True,
            "store": {"backend": type(request.app.state.store).__name__, "ok": store_ok},
            "env": {
                "REDIS_URL": bool(settings.redis_url),
                "BIOCYC_CREDENTIALS": bool(settings.biocyc_email and settings.biocyc_password),
                "NCBI_API_KEY": bool(settings.ncbi_api_key),
            },
        }

    @app.get("/", include_in_schema=False)
    async def root():
        return {"ok": True, "service": settings.app_title, "docs": DOCS_URL, "api": "/v1"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("genehub.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
