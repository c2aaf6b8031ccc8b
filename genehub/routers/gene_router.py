# genehub/routers/gene_router.py
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from genehub.cache import CacheManager
from genehub.errors import InvalidRequestError
from genehub.models import (
    BiocycRequest,
    BiocycResponse,
    CacheInvalidateRequest,
    GeneSummary,
    GeneSummaryRequest,
)
from genehub.orchestrator import GeneSummaryService
from genehub.utils.validation import validate_cache_category

log = logging.getLogger("genehub.router")

router = APIRouter(prefix="/genes", tags=["Genes"])


def get_service(request: Request) -> GeneSummaryService:
    return request.app.state.service


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


@router.post(
    "/summary",
    response_model=GeneSummary,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def gene_summary(body: GeneSummaryRequest, service: GeneSummaryService = Depends(get_service)):
    return await service.summarize(body.symbol, body.organism)


@router.post(
    "/biocyc",
    response_model=BiocycResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def gene_biocyc(body: BiocycRequest, service: GeneSummaryService = Depends(get_service)):
    return await service.biocyc(body.gene, body.organism)


@router.get("/status")
async def status(request: Request) -> Dict[str, Any]:
    # bucket levels, cache occupancy, last-hour upstream health
    state = request.app.state
    return {
        "store": {"backend": type(state.store).__name__, "ok": await state.store.ping()},
        "rate_limits": await state.limiter.snapshot(),
        "cache": await state.cache.stats(),
        "health": await state.metrics.health(),
        "alerts": state.metrics.alerts[-20:],
        "biocyc": {"configured": state.sessions.configured, "logins": state.sessions.logins},
    }


@router.post("/cache/invalidate")
async def invalidate_cache(body: CacheInvalidateRequest, cache: CacheManager = Depends(get_cache)) -> Dict[str, Any]:
    if not body.key and not body.category:
        raise InvalidRequestError("Provide a cache 'key' or 'category'")
    out: Dict[str, Any] = {"ok": True}
    if body.key:
        out["key"] = body.key
        out["removed"] = await cache.invalidate(body.key)
    if body.category:
        category = validate_cache_category(body.category)
        out["category"] = category
        out["removed_entries"] = await cache.invalidate_category(category)
    log.info("cache invalidation: %s", out)
    return out
