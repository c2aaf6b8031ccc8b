"""
BioCyc pathway/regulation adapter (authenticated).

A name search resolves the gene to a BioCyc object id; pathways, regulators,
regulated genes and transcription units are then fetched concurrently. Each
of those four follow-ups is independent: a failure is logged and becomes an
empty list, including a rejected session (the session is dropped so the
next request logs in again). Only the name search surfaces errors.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from genehub.cache import make_cache_key
from genehub.clients.base import Upstream
from genehub.clients.biocyc_xml import BiocycParser, PtoolsXmlParser
from genehub.clients.sources import parse_json
from genehub.errors import AuthError, ExternalApiError
from genehub.sessions import BiocycSessionManager

log = logging.getLogger("genehub.biocyc")

GENE_URL = "https://biocyc.org/{org}/gene?orgid={org}&id={id}"


def gene_url(org_id: str, object_id: str) -> str:
    return GENE_URL.format(org=org_id, id=object_id)


class BiocycAdapter:
    api = "biocyc"

    def __init__(self, upstream: Upstream, sessions: BiocycSessionManager, parser: Optional[BiocycParser] = None):
        self.upstream = upstream
        self.sessions = sessions
        self.parser: BiocycParser = parser or PtoolsXmlParser()

    async def _call(self, endpoint: str, path: str, params: Dict[str, Any]) -> httpx.Response:
        cookies = await self.sessions.cookies()
        try:
            r = await self.upstream.call("biocyc", endpoint, path, params=params, headers={"Cookie": cookies})
        except ExternalApiError as e:
            if e.status_code in (401, 403):
                await self.sessions.invalidate()
                raise AuthError("BioCyc rejected the session", details=e.message) from e
            raise
        return r

    async def _apixml(self, fn: str, org_id: str, object_id: str, detail: str = "low") -> str:
        r = await self._call(fn, "/apixml", {"fn": fn, "id": f"{org_id}:{object_id}", "detail": detail})
        return r.text

    # ------------------------------------------------------------------
    # lookups, each cached under its own category
    # ------------------------------------------------------------------

    async def search(self, gene: str, org_id: str) -> Optional[Dict[str, str]]:
        async def fetcher() -> Optional[Dict[str, str]]:
            r = await self._call(
                "name-search", f"/{org_id}/name-search", {"object": gene, "class": "Genes", "fmt": "json"}
            )
            data = parse_json(self.upstream.sources["biocyc"], r)
            results = data.get("RESULTS") if isinstance(data, dict) else None
            if not isinstance(results, list) or not results:
                return None
            first = results[0]
            if not isinstance(first, dict) or not first.get("OBJECT-ID"):
                log.warning("BioCyc: malformed name-search result for %s: %r", gene, first)
                return None
            return {"object_id": str(first["OBJECT-ID"]), "common_name": first.get("COMMON-NAME")}

        return await self.upstream.cached(
            self.api, make_cache_key("biocyc", "search", org_id, gene), "biocyc-gene", fetcher
        )

    async def pathways(self, org_id: str, object_id: str) -> List[Dict[str, Any]]:
        async def fetcher():
            return self.parser.pathways(await self._apixml("pathways-of-gene", org_id, object_id))

        return await self.upstream.cached(
            self.api, make_cache_key("biocyc", "pathways", org_id, object_id), "biocyc-pathway", fetcher
        )

    async def regulators(self, org_id: str, object_id: str) -> List[Dict[str, Any]]:
        async def fetcher():
            return self.parser.regulators(await self._apixml("genes-regulating-gene", org_id, object_id))

        return await self.upstream.cached(
            self.api, make_cache_key("biocyc", "regulators", org_id, object_id), "biocyc-regulation", fetcher
        )

    async def regulated_genes(self, org_id: str, object_id: str) -> List[str]:
        async def fetcher():
            return self.parser.gene_ids(
                await self._apixml("genes-regulated-by-gene", org_id, object_id, detail="none")
            )

        return await self.upstream.cached(
            self.api, make_cache_key("biocyc", "regulates", org_id, object_id), "biocyc-regulation", fetcher
        )

    async def transcription_units(self, org_id: str, object_id: str) -> List[Dict[str, Any]]:
        async def fetcher():
            return self.parser.transcription_units(
                await self._apixml("transcription-units-of-gene", org_id, object_id)
            )

        return await self.upstream.cached(
            self.api, make_cache_key("biocyc", "tus", org_id, object_id), "biocyc-gene", fetcher
        )

    # ------------------------------------------------------------------

    async def fetch(self, gene: str, org_id: str) -> Optional[Dict[str, Any]]:
        hit = await self.search(gene, org_id)
        if not hit:
            log.info("BioCyc: %s not found in %s", gene, org_id)
            return None
        object_id = hit["object_id"]

        names = ("pathways", "regulated_by", "regulates", "transcription_units")
        results = await asyncio.gather(
            self.pathways(org_id, object_id),
            self.regulators(org_id, object_id),
            self.regulated_genes(org_id, object_id),
            self.transcription_units(org_id, object_id),
            return_exceptions=True,
        )

        data: Dict[str, Any] = {
            "biocyc_id": object_id,
            "name": gene,
            "common_name": hit.get("common_name"),
            "synonyms": [],
        }
        for name, result in zip(names, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                log.warning("BioCyc %s lookup for %s failed: %s", name, object_id, result)
                result = []
            data[name] = result
        data["links"] = {"biocyc": gene_url(org_id, object_id)}
        return data
