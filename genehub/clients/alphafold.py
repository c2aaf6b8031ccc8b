from __future__ import annotations

import logging
from typing import Optional

from genehub.clients.base import Adapter, Fragment

log = logging.getLogger("genehub.alphafold")

ENTRY_URL = "https://alphafold.ebi.ac.uk/entry/{}"


class AlphafoldAdapter(Adapter):
    """Existence check only: a prediction with model files means a link."""

    api = "alphafold"
    category = "gene-structure"
    requires_accession = True

    async def _fetch(self, symbol: str, taxon: int, accession: Optional[str] = None) -> Fragment:
        data = await self.upstream.get_json(
            "alphafold", "prediction", f"/prediction/{accession}", allow_404=True
        )
        entry = data[0] if isinstance(data, list) and data else data
        if not isinstance(entry, dict):
            return {}
        if not (entry.get("pdbUrl") or entry.get("cifUrl")):
            return {}
        url = ENTRY_URL.format(accession)
        return {"alphafold_url": url, "has_structure": True, "links": {"alphafold": url}}
