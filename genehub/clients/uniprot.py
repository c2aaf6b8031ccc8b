from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from genehub.clients.base import Adapter, Fragment, compact
from genehub.organisms import broad_taxon_for, reference_proteome_for

log = logging.getLogger("genehub.uniprot")

ENTRY_URL = "https://www.uniprot.org/uniprotkb/{}"

FIELDS = ",".join([
    "accession", "id", "protein_name", "gene_names", "cc_function",
    "cc_subcellular_location", "go", "keyword", "sequence", "mass", "organism_name",
])

# Too generic to be worth showing; Cytoplasm/Membrane already appear as locations.
FILTERED_KEYWORDS = frozenset({
    "Reference proteome",
    "Complete proteome",
    "3D-structure",
    "Direct protein sequencing",
    "Cytoplasm",
    "Membrane",
    "Plasmid",
    "Chromosomal rearrangement",
})

GO_CATEGORIES = {
    "F": "Molecular Function",
    "P": "Biological Process",
    "C": "Cellular Component",
}

MAX_GO_TERMS = 15
MAX_KEYWORDS = 10


def build_queries(symbol: str, taxon: int) -> List[str]:
    proteome = reference_proteome_for(taxon)
    broad = broad_taxon_for(taxon)
    if proteome:
        queries = [
            f"(gene_exact:{symbol}) AND (proteome:{proteome})",
            f"(gene:{symbol}) AND (proteome:{proteome})",
            f"(gene:{symbol}) AND (proteome:{proteome}) AND (reviewed:true)",
            f"(gene_exact:{symbol}) AND (taxonomy_id:{taxon})",
            f"(gene:{symbol}) AND (taxonomy_id:{taxon}) AND (reviewed:true)",
        ]
    else:
        queries = [
            f"(gene_exact:{symbol}) AND (taxonomy_id:{taxon})",
            f"(gene:{symbol}) AND (taxonomy_id:{taxon})",
        ]
        if broad != taxon:
            queries += [
                f"(gene:{symbol}) AND (taxonomy_id:{broad}) AND (reviewed:true)",
                f"(gene_names:{symbol}) AND (taxonomy_id:{broad})",
            ]
        else:
            queries.append(f"(gene_names:{symbol}) AND (taxonomy_id:{taxon})")
    return queries


def _canonical_symbol(entry: Dict[str, Any]) -> Optional[str]:
    genes = (entry.get("genes") or [{}])[0] or {}
    for value in (
        (genes.get("geneName") or {}).get("value"),
        ((genes.get("orderedLocusNames") or [{}])[0] or {}).get("value"),
        ((genes.get("orfNames") or [{}])[0] or {}).get("value"),
    ):
        if value:
            return value
    return None


def _comment(entry: Dict[str, Any], kind: str) -> Dict[str, Any]:
    for c in entry.get("comments") or []:
        if c.get("commentType") == kind:
            return c
    return {}


def _go_terms(entry: Dict[str, Any]) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    for xref in entry.get("uniProtKBCrossReferences") or []:
        if xref.get("database") != "GO":
            continue
        raw = ""
        for prop in xref.get("properties") or []:
            if prop.get("key") == "GoTerm":
                raw = prop.get("value") or ""
                break
        code, _, term = raw.partition(":")
        out.append({
            "id": xref.get("id", ""),
            "term": term.strip(),
            "category": GO_CATEGORIES.get(code, code),
        })
    return out[:MAX_GO_TERMS]


def _protein_name(entry: Dict[str, Any]) -> Optional[str]:
    desc = entry.get("proteinDescription") or {}
    rec = ((desc.get("recommendedName") or {}).get("fullName") or {}).get("value")
    if rec:
        return rec
    subs = desc.get("submissionNames") or [{}]
    return ((subs[0] or {}).get("fullName") or {}).get("value")


def parse_entry(entry: Dict[str, Any]) -> Fragment:
    accession = entry.get("primaryAccession")
    function = _comment(entry, "FUNCTION")
    location = _comment(entry, "SUBCELLULAR LOCATION")
    seq = entry.get("sequence") or {}
    mol_weight = seq.get("molWeight")

    keywords = [k.get("name") for k in entry.get("keywords") or [] if k.get("name")]
    keywords = [k for k in keywords if k not in FILTERED_KEYWORDS][:MAX_KEYWORDS]

    return compact({
        "canonical_symbol": _canonical_symbol(entry),
        "uniprot_id": accession,
        "protein_name": _protein_name(entry),
        "function": ((function.get("texts") or [{}])[0] or {}).get("value"),
        "subcellular_location": [
            (loc.get("location") or {}).get("value")
            for loc in location.get("subcellularLocations") or []
            if (loc.get("location") or {}).get("value")
        ],
        "go_terms": _go_terms(entry),
        "keywords": keywords,
        "sequence": seq.get("value"),
        "sequence_length": seq.get("length"),
        # molWeight is in daltons
        "mass": round(mol_weight / 1000, 1) if mol_weight else None,
        "links": {"uniprot": ENTRY_URL.format(accession)} if accession else {},
    })


class UniprotAdapter(Adapter):
    api = "uniprot"
    category = "gene-basic"

    async def _fetch(self, symbol: str, taxon: int, accession: Optional[str] = None) -> Fragment:
        for query in build_queries(symbol, taxon):
            log.debug("UniProt query: %s", query)
            data = await self.upstream.get_json(
                "uniprot", "search", "/uniprotkb/search",
                params={"query": query, "format": "json", "size": 1, "fields": FIELDS},
            )
            results = (data or {}).get("results") or []
            if results:
                entry = results[0]
                log.info("UniProt: %s -> %s", symbol, entry.get("primaryAccession"))
                return parse_entry(entry)
        log.info("UniProt: no entry found for %s in taxon %s", symbol, taxon)
        return {}
