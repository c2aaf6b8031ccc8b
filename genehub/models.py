from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ------------------------------------------------------------------------------
# Requests
# ------------------------------------------------------------------------------

class GeneSummaryRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=64, description="Gene symbol, e.g. dnaA")
    organism: str = Field(..., min_length=1, max_length=128, description="Organism name, e.g. Escherichia coli")


class BiocycRequest(BaseModel):
    gene: str = Field(..., min_length=1, max_length=64)
    organism: str = Field(..., min_length=1, max_length=128)


class CacheInvalidateRequest(BaseModel):
    key: Optional[str] = None
    category: Optional[str] = None


# ------------------------------------------------------------------------------
# Gene summary
# ------------------------------------------------------------------------------

class GoTerm(CamelModel):
    id: str
    term: str
    category: str


class PdbStructure(CamelModel):
    id: str
    method: Optional[str] = None
    resolution: Optional[float] = None
    title: Optional[str] = None


class Interactor(CamelModel):
    gene: str
    score: float


class GeneSummary(CamelModel):
    symbol: str
    organism: str
    name: Optional[str] = None
    synonyms: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    ncbi_gene_id: Optional[str] = None
    chromosome: Optional[str] = None
    start: Optional[int] = None
    stop: Optional[int] = None
    strand: Optional[str] = None
    uniprot_id: Optional[str] = None
    protein_name: Optional[str] = None
    function: Optional[str] = None
    subcellular_location: List[str] = Field(default_factory=list)
    go_terms: List[GoTerm] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    sequence: Optional[str] = None
    sequence_length: Optional[int] = None
    mass: Optional[float] = None
    alphafold_url: Optional[str] = None
    has_structure: Optional[bool] = None
    pdb_ids: List[str] = Field(default_factory=list)
    pdb_structures: List[PdbStructure] = Field(default_factory=list)
    interactors: List[Interactor] = Field(default_factory=list)
    links: Dict[str, str] = Field(default_factory=dict)
    sources: List[str] = Field(default_factory=list)
    fetched_at: str


# ------------------------------------------------------------------------------
# BioCyc
# ------------------------------------------------------------------------------

class Pathway(CamelModel):
    id: str
    name: str
    type: Optional[str] = None


class Regulator(CamelModel):
    gene: str
    name: Optional[str] = None
    type: str = "unknown"       # "activator" | "repressor" | "unknown"


class TranscriptionUnit(CamelModel):
    id: str
    name: Optional[str] = None
    promoter: Optional[str] = None
    terminators: List[str] = Field(default_factory=list)
    genes: List[str] = Field(default_factory=list)


class BiocycGeneData(CamelModel):
    biocyc_id: str
    name: str
    common_name: Optional[str] = None
    synonyms: List[str] = Field(default_factory=list)
    transcription_units: List[TranscriptionUnit] = Field(default_factory=list)
    regulated_by: List[Regulator] = Field(default_factory=list)
    regulates: List[str] = Field(default_factory=list)
    pathways: List[Pathway] = Field(default_factory=list)
    links: Dict[str, str] = Field(default_factory=dict)


class BiocycResponse(CamelModel):
    success: bool
    supported: bool
    data: Optional[BiocycGeneData] = None
    error: Optional[str] = None
