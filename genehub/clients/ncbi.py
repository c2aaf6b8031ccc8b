from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from genehub.clients.base import Adapter, Fragment, Upstream, compact
from genehub.organisms import broad_taxon_for

log = logging.getLogger("genehub.ncbi")

GENE_URL = "https://www.ncbi.nlm.nih.gov/gene/{}"


def search_terms(symbol: str, taxon: int) -> List[str]:
    """Ordered esearch terms, most specific first, duplicates dropped."""
    broad = broad_taxon_for(taxon)
    terms = [
        f"{symbol}[gene] AND txid{taxon}[orgn]",
        f"{symbol}[gene] AND txid{broad}[orgn]",
        f"{symbol}[sym] AND txid{taxon}[orgn]",
        f"{symbol}[Preferred Symbol] AND txid{taxon}[orgn]",
    ]
    return list(dict.fromkeys(terms))


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_summary(gene_id: str, doc: Dict[str, Any]) -> Fragment:
    info = (doc.get("genomicinfo") or [{}])[0] or {}
    start = _as_int(info.get("chrstart"))
    stop = _as_int(info.get("chrstop"))
    strand = None
    if start is not None and stop is not None:
        strand = "plus" if start <= stop else "minus"

    aliases = doc.get("otheraliases") or ""
    return compact({
        "ncbi_gene_id": gene_id,
        "name": doc.get("description") or doc.get("nomenclaturename"),
        "description": doc.get("summary"),
        "synonyms": [a.strip() for a in aliases.split(",") if a.strip()],
        "chromosome": info.get("chrloc"),
        "start": start,
        "stop": stop,
        "strand": strand,
        "links": {"ncbi": GENE_URL.format(gene_id)},
    })


class NcbiAdapter(Adapter):
    api = "ncbi"
    category = "gene-basic"

    def __init__(self, upstream: Upstream, api_key: Optional[str] = None):
        super().__init__(upstream)
        self.api_key = api_key

    def _params(self, **params: Any) -> Dict[str, Any]:
        params["retmode"] = "json"
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def _search(self, symbol: str, taxon: int) -> Optional[str]:
        for term in search_terms(symbol, taxon):
            data = await self.upstream.get_json(
                "ncbi", "esearch", "/esearch.fcgi", params=self._params(db="gene", term=term)
            )
            ids = ((data or {}).get("esearchresult") or {}).get("idlist") or []
            if ids:
                return str(ids[0])
        return None

    async def _fetch(self, symbol: str, taxon: int, accession: Optional[str] = None) -> Fragment:
        gene_id = await self._search(symbol, taxon)
        if not gene_id:
            log.info("NCBI: no gene found for %s in txid%s", symbol, taxon)
            return {}

        data = await self.upstream.get_json(
            "ncbi", "esummary", "/esummary.fcgi", params=self._params(db="gene", id=gene_id)
        )
        doc = ((data or {}).get("result") or {}).get(gene_id)
        if not doc:
            return {"ncbi_gene_id": gene_id, "links": {"ncbi": GENE_URL.format(gene_id)}}
        return parse_summary(gene_id, doc)
