"""
Organism name -> taxonomy / proteome / BioCyc database lookups.

Names are matched after lower-casing and trimming. Unknown names resolve to
E. coli K-12 MG1655 (taxon 511145), the reference organism of the gateway.
"""

from __future__ import annotations

from typing import Dict, Optional

DEFAULT_TAXON = 511145

ORGANISM_TAX_MAP: Dict[str, int] = {
    # E. coli
    "escherichia coli": 511145,
    "escherichia coli k-12": 511145,
    "escherichia coli k12": 511145,
    "escherichia coli mg1655": 511145,
    "e. coli": 511145,
    "e.coli": 511145,
    "ecoli": 511145,
    # B. subtilis
    "bacillus subtilis": 224308,
    "bacillus subtilis 168": 224308,
    "b. subtilis": 224308,
    "b.subtilis": 224308,
    # P. aeruginosa
    "pseudomonas aeruginosa": 208964,
    "pseudomonas aeruginosa pao1": 208964,
    "p. aeruginosa": 208964,
    "p.aeruginosa": 208964,
    # S. aureus
    "staphylococcus aureus": 93061,
    "s. aureus": 93061,
    "s.aureus": 93061,
    # Salmonella
    "salmonella enterica": 99287,
    "salmonella typhimurium": 99287,
    "s. enterica": 99287,
    "s. typhimurium": 99287,
    # M. tuberculosis
    "mycobacterium tuberculosis": 83332,
    "m. tuberculosis": 83332,
    # V. cholerae
    "vibrio cholerae": 243277,
    "v. cholerae": 243277,
    # K. pneumoniae
    "klebsiella pneumoniae": 272620,
    "k. pneumoniae": 272620,
    "bacteria": 2,
}

# Curated UniProt reference proteomes, searched before anything else.
REFERENCE_PROTEOMES: Dict[int, str] = {
    511145: "UP000000625",  # E. coli K-12 MG1655
    224308: "UP000001570",  # B. subtilis 168
    208964: "UP000002438",  # P. aeruginosa PAO1
    93061: "UP000008816",   # S. aureus NCTC 8325
    99287: "UP000001014",   # S. typhimurium LT2
    83332: "UP000001584",   # M. tuberculosis H37Rv
    243277: "UP000000584",  # V. cholerae O1 El Tor
    272620: "UP000000265",  # K. pneumoniae MGH 78578
}

# strain -> species
BROAD_TAXA: Dict[int, int] = {
    511145: 562,
    224308: 1423,
    208964: 287,
    93061: 1280,
}

BIOCYC_ORGANISM_MAP: Dict[str, str] = {
    "escherichia coli": "ECOLI",
    "escherichia coli k-12": "ECOLI",
    "e. coli": "ECOLI",
    "e.coli": "ECOLI",
    "ecoli": "ECOLI",
    "bacillus subtilis": "BSUB",
    "b. subtilis": "BSUB",
    "b.subtilis": "BSUB",
    "pseudomonas aeruginosa": "PAER",
    "p. aeruginosa": "PAER",
    "staphylococcus aureus": "SAUR",
    "s. aureus": "SAUR",
    "salmonella enterica": "STM",
    "salmonella typhimurium": "STM",
    "s. enterica": "STM",
    "mycobacterium tuberculosis": "MTBRV",
    "m. tuberculosis": "MTBRV",
    "vibrio cholerae": "VCHO",
    "v. cholerae": "VCHO",
    "klebsiella pneumoniae": "KPNE",
    "k. pneumoniae": "KPNE",
    "clostridioides difficile": "CDIF",
    "clostridium difficile": "CDIF",
    "c. difficile": "CDIF",
}


def normalize_organism(name: str) -> str:
    return " ".join((name or "").lower().split())


def taxon_for(organism: str) -> int:
    return ORGANISM_TAX_MAP.get(normalize_organism(organism), DEFAULT_TAXON)


def broad_taxon_for(taxon: int) -> int:
    return BROAD_TAXA.get(taxon, taxon)


def reference_proteome_for(taxon: int) -> Optional[str]:
    return REFERENCE_PROTEOMES.get(taxon)


def biocyc_org_for(organism: str) -> Optional[str]:
    return BIOCYC_ORGANISM_MAP.get(normalize_organism(organism))
