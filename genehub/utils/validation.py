"""
GeneHub input validation
========================

No network, no state: every helper either returns a cleaned value or raises
`InvalidRequestError`, which the API layer renders as the VALIDATION envelope.

    clean_symbol(value, field_name="symbol")      -> stripped gene symbol / locus tag
    clean_organism(value, field_name="organism")  -> whitespace-collapsed organism name
    validate_cache_category(value)                -> known cache category
    is_uniprot_accession(value)                   -> bool
"""

from __future__ import annotations

import re
from typing import Optional

from genehub.cache import CACHE_CATEGORIES
from genehub.errors import InvalidRequestError

# symbols (dnaA), locus tags (b3702, PA0001, Rv0001) and dotted/dashed names
_GENE_RE = re.compile(r"^[A-Za-z0-9_.\-']{1,64}$")
_UNIPROT_RE = re.compile(r"^(?:[OPQ][0-9][A-Z0-9]{3}[0-9]|[A-NR-Z][0-9](?:[A-Z][A-Z0-9]{2}[0-9]){1,2})(?:-[0-9]+)?$", re.IGNORECASE)
_ORGANISM_RE = re.compile(r"^[^\x00-\x1f\x7f]{1,128}$")


def _ensure_nonempty(value: Optional[str], field: str) -> str:
    if value is None:
        raise InvalidRequestError(f"Missing required field: {field}")
    v = str(value).strip()
    if not v:
        raise InvalidRequestError(f"Empty '{field}'")
    return v


def clean_symbol(value: Optional[str], field_name: str = "symbol") -> str:
    v = _ensure_nonempty(value, field_name)
    if not _GENE_RE.match(v):
        raise InvalidRequestError(f"Invalid {field_name} '{v}'")
    return v


def clean_organism(value: Optional[str], field_name: str = "organism") -> str:
    v = " ".join(_ensure_nonempty(value, field_name).split())
    if not _ORGANISM_RE.match(v):
        raise InvalidRequestError(f"Invalid {field_name} '{v}'")
    return v


def validate_cache_category(value: Optional[str]) -> str:
    v = _ensure_nonempty(value, "category")
    if v not in CACHE_CATEGORIES:
        raise InvalidRequestError(
            f"Unknown cache category '{v}'",
            details="expected one of: " + ", ".join(sorted(CACHE_CATEGORIES)),
        )
    return v


def is_uniprot_accession(value: str) -> bool:
    return bool(_UNIPROT_RE.match(value or ""))
