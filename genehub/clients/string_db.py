from __future__ import annotations

import logging
from typing import Any, Optional

from genehub.clients.base import Adapter, Fragment
from genehub.errors import GatewayError, RateLimitedError
from genehub.organisms import broad_taxon_for

log = logging.getLogger("genehub.string")

NETWORK_URL = "https://string-db.org/network/{}.{}"
LIMIT = 10


def parse_partners(data: Any, symbol: str, taxon: int) -> Fragment:
    if not isinstance(data, list) or not data:
        return {}
    interactors = [
        {"gene": d["preferredName_B"], "score": round(float(d["score"]), 3)}
        for d in data
        if isinstance(d, dict) and d.get("preferredName_B") and d.get("score")
    ][:LIMIT]
    if not interactors:
        return {}
    return {"interactors": interactors, "links": {"string": NETWORK_URL.format(taxon, symbol)}}


class StringAdapter(Adapter):
    api = "string"
    category = "string-interactions"

    async def _partners(self, symbol: str, taxon: int) -> Any:
        return await self.upstream.get_json(
            "string", "interaction_partners", "/json/interaction_partners",
            params={"identifiers": symbol, "species": taxon, "limit": LIMIT},
        )

    async def _fetch(self, symbol: str, taxon: int, accession: Optional[str] = None) -> Fragment:
        try:
            return parse_partners(await self._partners(symbol, taxon), symbol, taxon)
        except RateLimitedError:
            raise
        except GatewayError as e:
            broad = broad_taxon_for(taxon)
            if broad == taxon:
                raise
            log.info("STRING: species %s failed (%s); retrying with %s", taxon, e, broad)
        return parse_partners(await self._partners(symbol, broad), symbol, broad)
