"""
Gene summary orchestration.

    1. organism name -> taxon (unknown names resolve to E. coli K-12)
    2. NCBI + UniProt concurrently
    3. both empty -> NOT_FOUND, nothing else is called
    4. AlphaFold + PDB + STRING concurrently; any failure is an empty fragment
    5. merge ncbi -> uniprot -> alphafold -> pdb -> string, later non-empty
       fields win, links are unioned
    6. sources = upstreams that contributed
    7. stamp fetchedAt

BioCyc is a separate, on-demand path (`biocyc()`): it needs the authenticated
session and costs far more per call.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from genehub.clients.base import Adapter, Fragment, is_empty
from genehub.clients.biocyc import BiocycAdapter
from genehub.errors import GatewayError, NotFoundError, RateLimitedError, UpstreamTimeout
from genehub.models import BiocycGeneData, BiocycResponse, GeneSummary
from genehub.organisms import biocyc_org_for, taxon_for
from genehub.utils.validation import clean_organism, clean_symbol, is_uniprot_accession

log = logging.getLogger("genehub.orchestrator")

PRIMARY = ("ncbi", "uniprot")
SECONDARY = ("alphafold", "pdb", "string")
MERGE_ORDER = PRIMARY + SECONDARY

SOURCE_LABELS = {
    "ncbi": "NCBI",
    "uniprot": "UniProt",
    "alphafold": "AlphaFold",
    "pdb": "PDB",
    "string": "STRING",
}

# field whose presence means the upstream contributed
SOURCE_MARKERS = {
    "ncbi": "ncbi_gene_id",
    "uniprot": "uniprot_id",
    "alphafold": "alphafold_url",
    "pdb": "pdb_ids",
    "string": "interactors",
}


def merge_fragments(fragments: Iterable[Fragment]) -> Fragment:
    merged: Fragment = {}
    links: Dict[str, str] = {}
    for fragment in fragments:
        for key, value in fragment.items():
            if key == "links":
                links.update({k: v for k, v in (value or {}).items() if not is_empty(v)})
            elif not is_empty(value):
                merged[key] = value
    merged["links"] = links
    return merged


def contributing_sources(fragments: Dict[str, Fragment]) -> List[str]:
    return [
        SOURCE_LABELS[name]
        for name in MERGE_ORDER
        if not is_empty(fragments.get(name, {}).get(SOURCE_MARKERS[name]))
    ]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _primary_failure(errors: List[BaseException]) -> BaseException:
    """Pick the error to surface when every primary upstream raised."""
    for kind in (UpstreamTimeout, RateLimitedError, GatewayError):
        for e in errors:
            if isinstance(e, kind):
                return e
    return errors[0]


class GeneSummaryService:
    def __init__(
        self,
        adapters: Dict[str, Adapter],
        biocyc: Optional[BiocycAdapter] = None,
        *,
        now: Callable[[], datetime] = _utc_now,
    ):
        missing = [name for name in MERGE_ORDER if name not in adapters]
        if missing:
            raise ValueError(f"missing adapters: {missing}")
        self.adapters = adapters
        self.biocyc_adapter = biocyc
        self._now = now

    async def _tolerant(self, name: str, call: Awaitable[Fragment]) -> Fragment:
        try:
            return await call
        except Exception as e:  # noqa: BLE001
            log.warning("%s failed; continuing without it: %s", name, e)
            return {}

    async def summarize(self, symbol: str, organism: str) -> GeneSummary:
        symbol = clean_symbol(symbol)
        organism = clean_organism(organism)
        taxon = taxon_for(organism)
        log.info("summary %s / %s (taxon %s)", symbol, organism, taxon)

        results = await asyncio.gather(
            *(self.adapters[name].fetch(symbol, taxon) for name in PRIMARY),
            return_exceptions=True,
        )
        fragments: Dict[str, Fragment] = {}
        errors: List[BaseException] = []
        for name, result in zip(PRIMARY, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.warning("%s failed: %s", name, result)
                errors.append(result)
                fragments[name] = {}
            else:
                fragments[name] = result or {}

        if len(errors) == len(PRIMARY):
            raise _primary_failure(errors)
        if all(is_empty(fragments[name]) for name in PRIMARY):
            raise NotFoundError(f"Gene '{symbol}' not found for {organism}")

        accession = fragments["uniprot"].get("uniprot_id")
        if accession and not is_uniprot_accession(accession):
            log.warning("ignoring malformed UniProt accession %r", accession)
            accession = None
        secondary = await asyncio.gather(
            *(self._tolerant(name, self.adapters[name].fetch(symbol, taxon, accession)) for name in SECONDARY)
        )
        fragments.update(zip(SECONDARY, secondary))

        merged = merge_fragments(fragments[name] for name in MERGE_ORDER)
        display_symbol = merged.pop("canonical_symbol", None) or symbol
        sources = contributing_sources(fragments)
        log.info("summary %s: sources=%s", display_symbol, ",".join(sources) or "none")

        return GeneSummary(
            **merged,
            symbol=display_symbol,
            organism=organism,
            sources=sources,
            fetched_at=self._now().isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        )

    async def biocyc(self, gene: str, organism: str) -> BiocycResponse:
        gene = clean_symbol(gene)
        organism = clean_organism(organism)
        org_id = biocyc_org_for(organism)
        if org_id is None or self.biocyc_adapter is None:
            return BiocycResponse(
                success=False, supported=False, error=f'Organism "{organism}" is not supported by BioCyc'
            )

        data: Optional[Dict[str, Any]] = await self.biocyc_adapter.fetch(gene, org_id)
        if data is None:
            return BiocycResponse(
                success=False, supported=True, error=f'Gene "{gene}" not found in BioCyc for {organism}'
            )
        return BiocycResponse(success=True, supported=True, data=BiocycGeneData(**data))
