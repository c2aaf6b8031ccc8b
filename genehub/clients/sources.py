# genehub/clients/sources.py
from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from genehub.errors import ExternalApiError, RateLimitedError, UpstreamTimeout

log = logging.getLogger("genehub.sources")

# ------------------------------------------------------------------------------------
# Model
# ------------------------------------------------------------------------------------
@dataclass(frozen=True)
class Source:
    name: str
    api: str                                   # rate-limit / metrics key
    base_url: str
    accept: str = "application/json"
    default_headers: Dict[str, str] = field(default_factory=dict)


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default) or default


def _json_env(name: str) -> Dict[str, str]:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        val = json.loads(raw)
        return {str(k): str(v) for k, v in val.items()} if isinstance(val, dict) else {}
    except ValueError:
        log.warning("%s is not a JSON object; ignoring", name)
        return {}


def join_url(base: str, path: str) -> str:
    if not base:
        return path
    if path.startswith("http://") or path.startswith("https://"):
        return path
    if not base.endswith("/") and not path.startswith("/"):
        return f"{base}/{path}"
    if base.endswith("/") and path.startswith("/"):
        return f"{base}{path[1:]}"
    return f"{base}{path}"


def _make_headers(src: Source, user_agent: Optional[str] = None) -> Dict[str, str]:
    headers = {
        "Accept": src.accept,
        "User-Agent": user_agent or f"genehub-gateway/{_env('GIT_SHA', 'dev')}",
        **src.default_headers,
    }
    return headers


# ------------------------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------------------------
SOURCES: Dict[str, Source] = {
    "ncbi": Source(
        name="ncbi",
        api="ncbi",
        base_url=_env("NCBI_BASE_URL", "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"),
        default_headers=_json_env("NCBI_EXTRA_HEADERS"),
    ),
    "uniprot": Source(
        name="uniprot",
        api="uniprot",
        base_url=_env("UNIPROT_BASE_URL", "https://rest.uniprot.org"),
        default_headers=_json_env("UNIPROT_EXTRA_HEADERS"),
    ),
    "alphafold": Source(
        name="alphafold",
        api="alphafold",
        base_url=_env("ALPHAFOLD_BASE_URL", "https://alphafold.ebi.ac.uk/api"),
    ),
    "pdbe": Source(
        name="pdbe",
        api="pdb",
        base_url=_env("PDBE_BASE_URL", "https://www.ebi.ac.uk/pdbe/api"),
    ),
    "rcsb_search": Source(
        name="rcsb_search",
        api="pdb",
        base_url=_env("RCSB_SEARCH_URL", "https://search.rcsb.org/rcsbsearch/v2"),
    ),
    "rcsb_data": Source(
        name="rcsb_data",
        api="pdb",
        base_url=_env("RCSB_DATA_URL", "https://data.rcsb.org/rest/v1"),
    ),
    "string": Source(
        name="string",
        api="string",
        base_url=_env("STRING_BASE_URL", "https://string-db.org/api"),
    ),
    "biocyc": Source(
        name="biocyc",
        api="biocyc",
        base_url=_env("BIOCYC_BASE_URL", "https://websvc.biocyc.org"),
        accept="application/json, application/xml, text/plain",
        # gzip'd ptools-xml responses are occasionally truncated upstream
        default_headers={"Accept-Encoding": "identity"},
    ),
}


# ------------------------------------------------------------------------------------
# HTTP + retries/backoff
# ------------------------------------------------------------------------------------
_RETRIES = int(os.getenv("HTTP_RETRIES", "1"))
_BACKOFF = float(os.getenv("HTTP_BACKOFF", "0.25"))  # seconds

_RETRYABLE = (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError, httpx.HTTPStatusError)


async def _request_with_retries(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, Any]] = None,
    data: Optional[Mapping[str, Any]] = None,
    json_body: Optional[Any] = None,
    retries: int = _RETRIES,
    backoff: float = _BACKOFF,
) -> httpx.Response:
    last_exc: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            r = await http.request(method, url, headers=headers, params=params, data=data, json=json_body)
            if r.status_code >= 500:
                # retry 5xx
                last_exc = httpx.HTTPStatusError(f"server error {r.status_code}", request=r.request, response=r)
                raise last_exc
            return r
        except _RETRYABLE as e:
            last_exc = e
            if attempt >= retries:
                break
            await asyncio.sleep(backoff * (2**attempt))
    assert last_exc is not None
    raise last_exc


def _retry_after(r: httpx.Response, default: int = 60) -> int:
    raw = r.headers.get("retry-after")
    try:
        return max(1, int(float(raw))) if raw else default
    except ValueError:
        return default


async def request(
    http: httpx.AsyncClient,
    src: Source,
    path: str,
    *,
    method: str = "GET",
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    data: Optional[Mapping[str, Any]] = None,
    json_body: Optional[Any] = None,
    allow_404: bool = False,
    retries: int = _RETRIES,
    backoff: float = _BACKOFF,
    user_agent: Optional[str] = None,
) -> Optional[httpx.Response]:
    """
    One call against a registered source. Returns the response for 2xx/3xx,
    None for 404 when `allow_404` is set, and otherwise raises a tagged
    gateway error: UpstreamTimeout, RateLimitedError or ExternalApiError.
    """
    url = join_url(src.base_url, path)
    hdrs = _make_headers(src, user_agent)
    if headers:
        hdrs.update(headers)

    try:
        r = await _request_with_retries(
            http, method, url,
            headers=hdrs, params=params, data=data, json_body=json_body,
            retries=retries, backoff=backoff,
        )
    except httpx.TimeoutException as e:
        raise UpstreamTimeout(src.api) from e
    except httpx.HTTPStatusError as e:
        raise ExternalApiError(
            src.api, f"{src.name} API error: {e.response.status_code}", status_code=e.response.status_code
        ) from e
    except httpx.HTTPError as e:
        raise ExternalApiError(src.api, f"{src.name} unreachable: {e.__class__.__name__}") from e

    if r.status_code == 404 and allow_404:
        return None
    if r.status_code == 429:
        raise RateLimitedError(src.api, retry_after=_retry_after(r))
    if r.status_code >= 400:
        log.debug("%s %s %s -> %s", src.name, method, url, r.status_code)
        raise ExternalApiError(src.api, f"{src.name} API error: {r.status_code}", status_code=r.status_code)
    return r


def parse_json(src: Source, r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError as e:
        raise ExternalApiError(src.api, f"{src.name} returned malformed JSON") from e
