from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from genehub.clients.base import Adapter, Fragment, compact
from genehub.errors import GatewayError, RateLimitedError

log = logging.getLogger("genehub.pdb")

STRUCTURE_URL = "https://www.rcsb.org/structure/{}"
MAX_IDS = 10
MAX_ENRICHED = 5

ACCESSION_ATTRIBUTE = "rcsb_polymer_entity_container_identifiers.reference_sequence_identifiers.database_accession"


def rcsb_query(accession: str) -> Dict[str, Any]:
    return {
        "query": {
            "type": "terminal",
            "service": "text",
            "parameters": {
                "attribute": ACCESSION_ATTRIBUTE,
                "operator": "exact_match",
                "value": accession,
            },
        },
        "return_type": "entry",
        "request_options": {"results_content_type": ["experimental"]},
    }


def parse_entry_details(pdb_id: str, detail: Dict[str, Any]) -> Dict[str, Any]:
    method = ((detail.get("exptl") or [{}])[0] or {}).get("method")
    resolutions = (detail.get("rcsb_entry_info") or {}).get("resolution_combined") or []
    resolution = resolutions[0] if resolutions else None
    return compact({
        "id": pdb_id,
        "method": method,
        "resolution": round(float(resolution), 2) if resolution else None,
        "title": (detail.get("struct") or {}).get("title"),
    })


class PdbAdapter(Adapter):
    api = "pdb"
    category = "gene-structure"
    requires_accession = True

    async def _mapped_ids(self, accession: str) -> List[str]:
        acc = accession.upper()
        try:
            data = await self.upstream.get_json("pdbe", "mappings", f"/mappings/uniprot/{acc}", allow_404=True)
        except RateLimitedError:
            raise
        except GatewayError as e:
            log.info("PDB: PDBe mapping for %s unavailable (%s); falling back to RCSB", acc, e)
            return []
        if not isinstance(data, dict):
            return []
        mapping = data.get(accession) or data.get(acc) or {}
        return list((mapping.get("PDB") or {}).keys())[:MAX_IDS]

    async def _searched_ids(self, accession: str) -> List[str]:
        data = await self.upstream.get_json(
            "rcsb_search", "search", "/query", params={"json": json.dumps(rcsb_query(accession))}
        )
        rows = (data or {}).get("result_set") or []
        return [r["identifier"] for r in rows[:MAX_IDS] if r.get("identifier")]

    async def _details(self, pdb_id: str) -> Dict[str, Any]:
        try:
            detail = await self.upstream.get_json("rcsb_data", "entry", f"/core/entry/{pdb_id}", allow_404=True)
        except GatewayError as e:
            log.info("PDB: details for %s unavailable (%s)", pdb_id, e)
            return {"id": pdb_id}
        if not isinstance(detail, dict):
            return {"id": pdb_id}
        return parse_entry_details(pdb_id, detail)

    async def _fetch(self, symbol: str, taxon: int, accession: Optional[str] = None) -> Fragment:
        pdb_ids = await self._mapped_ids(accession)
        if not pdb_ids:
            log.debug("PDB: no PDBe mapping for %s; trying RCSB search", accession)
            pdb_ids = await self._searched_ids(accession)
        if not pdb_ids:
            log.info("PDB: no structures found for %s", accession)
            return {}

        structures = await asyncio.gather(*(self._details(i) for i in pdb_ids[:MAX_ENRICHED]))
        return {
            "pdb_ids": pdb_ids,
            "pdb_structures": list(structures),
            "has_structure": True,
            "links": {"pdb": STRUCTURE_URL.format(pdb_ids[0])},
        }
