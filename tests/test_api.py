import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import NCBI, UNIPROT, FakeUpstreams
from genehub.config import Settings
from genehub.main import create_app
from genehub.store import MemoryStore
from test_adapters import DNAA_ESUMMARY, DNAA_UNIPROT, esearch


@pytest.fixture
def upstreams():
    return FakeUpstreams()


@pytest.fixture
def client(upstreams):
    app = create_app(Settings(http_retries=0), transport=upstreams.transport, store=MemoryStore())
    with TestClient(app) as c:
        yield c


def dnaa_routes(upstreams):
    upstreams.json(NCBI, "/entrez/eutils/esearch.fcgi", esearch("948217"))
    upstreams.json(NCBI, "/entrez/eutils/esummary.fcgi", DNAA_ESUMMARY)
    upstreams.json(UNIPROT, "/uniprotkb/search", {"results": [DNAA_UNIPROT]})


class TestHealth:
    def test_probes(self, client):
        assert client.get("/healthz").json()["ok"] is True
        assert client.get("/v1/livez").json() == {"ok": True}
        ready = client.get("/readyz").json()
        assert ready["store"] == {"backend": "MemoryStore", "ok": True}


class TestGeneSummary:
    def test_summary(self, client, upstreams):
        dnaa_routes(upstreams)
        r = client.post("/v1/genes/summary", json={"symbol": "dnaA", "organism": "Escherichia coli"})
        assert r.status_code == 200
        body = r.json()
        assert body["symbol"] == "dnaA"
        assert body["ncbiGeneId"] == "948217"
        assert body["uniprotId"] == "P03004"
        assert body["sources"] == ["NCBI", "UniProt"]
        assert body["interactors"] == []
        assert body["fetchedAt"].endswith("Z")

    def test_unknown_gene(self, client, upstreams):
        upstreams.json(NCBI, "/entrez/eutils/esearch.fcgi", esearch())
        upstreams.json(UNIPROT, "/uniprotkb/search", {"results": []})
        r = client.post("/v1/genes/summary", json={"symbol": "doesnotexist123", "organism": "E. coli"})
        assert r.status_code == 404
        error = r.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["retryable"] is False
        assert r.headers["x-request-id"] == error["requestId"]

    def test_both_primaries_down(self, client, upstreams):
        upstreams.status(NCBI, "/", 500)
        upstreams.status(UNIPROT, "/", 503)
        r = client.post("/v1/genes/summary", json={"symbol": "dnaA", "organism": "E. coli"})
        assert r.status_code == 502
        assert r.json()["error"]["code"] == "EXTERNAL_API"
        assert r.json()["error"]["retryable"] is True

    def test_rate_limited_primaries(self, client, upstreams):
        upstreams.add(NCBI, "/", lambda req: httpx.Response(429, headers={"Retry-After": "12"}))
        upstreams.add(UNIPROT, "/", lambda req: httpx.Response(429, headers={"Retry-After": "12"}))
        r = client.post("/v1/genes/summary", json={"symbol": "dnaA", "organism": "E. coli"})
        assert r.status_code == 429
        assert r.headers["retry-after"] == "12"
        assert r.json()["error"]["retryAfter"] == 12

    @pytest.mark.parametrize("payload", [{"symbol": "dnaA"}, {"organism": "E. coli"}, {"symbol": "", "organism": "x"}])
    def test_validation(self, client, payload):
        r = client.post("/v1/genes/summary", json=payload)
        assert r.status_code == 400
        assert r.json()["error"]["code"] == "VALIDATION"

    def test_second_request_served_from_cache(self, client, upstreams):
        dnaa_routes(upstreams)
        client.post("/v1/genes/summary", json={"symbol": "dnaA", "organism": "E. coli"})
        before = len(upstreams.calls(NCBI)) + len(upstreams.calls(UNIPROT))
        client.post("/v1/genes/summary", json={"symbol": "dnaA", "organism": "E. coli"})
        assert len(upstreams.calls(NCBI)) + len(upstreams.calls(UNIPROT)) == before


class TestBiocycEndpoint:
    def test_unsupported_organism(self, client):
        r = client.post("/v1/genes/biocyc", json={"gene": "dnaA", "organism": "Homo sapiens"})
        assert r.status_code == 200
        assert r.json() == {"success": False, "supported": False,
                            "error": 'Organism "Homo sapiens" is not supported by BioCyc'}

    def test_missing_credentials_is_auth_error(self, client):
        r = client.post("/v1/genes/biocyc", json={"gene": "dnaA", "organism": "E. coli"})
        assert r.status_code == 401
        assert r.json()["error"]["code"] == "AUTH"


class TestOperations:
    def test_status(self, client, upstreams):
        dnaa_routes(upstreams)
        client.post("/v1/genes/summary", json={"symbol": "dnaA", "organism": "E. coli"})
        status = client.get("/v1/genes/status").json()
        assert status["store"]["ok"] is True
        assert set(status["rate_limits"]) >= {"ncbi", "uniprot", "biocyc", "string", "pdb", "alphafold"}
        assert status["cache"]["entries"]["gene-basic"] == 2
        assert status["health"]["ncbi"]["success"] >= 2
        assert status["biocyc"] == {"configured": False, "logins": 0}

    def test_invalidate_category(self, client, upstreams):
        dnaa_routes(upstreams)
        client.post("/v1/genes/summary", json={"symbol": "dnaA", "organism": "E. coli"})
        r = client.post("/v1/genes/cache/invalidate", json={"category": "gene-basic"})
        assert r.json()["removed_entries"] == 2

    def test_invalidate_key(self, client):
        r = client.post("/v1/genes/cache/invalidate", json={"key": "ncbi:dnaa:511145"})
        assert r.json() == {"ok": True, "key": "ncbi:dnaa:511145", "removed": False}

    @pytest.mark.parametrize("payload", [{}, {"category": "everything"}])
    def test_invalidate_rejects_bad_input(self, client, payload):
        r = client.post("/v1/genes/cache/invalidate", json=payload)
        assert r.status_code == 400
