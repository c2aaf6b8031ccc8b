import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from genehub.store import MemoryStore, RedisStore, StoreUnavailable, build_store


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_disabled_table_raises(self):
        store = MemoryStore(disabled={"cache"})
        with pytest.raises(StoreUnavailable):
            await store.cache_get("k")
        await store.put_rate_limit("ncbi", {"tokens": 1})
        store.enable("cache")
        assert await store.cache_get("k") is None

    @pytest.mark.asyncio
    async def test_unavailable_store(self):
        store = MemoryStore()
        store.set_available(False)
        assert await store.ping() is False
        with pytest.raises(StoreUnavailable):
            await store.session_get("biocyc")

    @pytest.mark.asyncio
    async def test_metric_count_filters(self):
        store = MemoryStore()
        await store.metric_insert({"api": "pdb", "status": "error", "timestamp": 100})
        await store.metric_insert({"api": "pdb", "status": "timeout", "timestamp": 200})
        await store.metric_insert({"api": "pdb", "status": "success", "timestamp": 200})
        await store.metric_insert({"api": "ncbi", "status": "error", "timestamp": 200})
        assert await store.metric_count("pdb", ("error", "timeout"), since=150) == 1
        assert await store.metric_count("pdb", ("error", "timeout"), since=0) == 2

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self):
        store = MemoryStore()
        await store.cache_put({"key": "k", "category": "gene-basic", "payload": 1})
        record = await store.cache_get("k")
        record["payload"] = 2
        assert (await store.cache_get("k"))["payload"] == 1


class TestRedisStore:
    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        for name in ("get", "set", "delete", "sadd", "srem", "smembers", "exists", "pexpire",
                     "zadd", "zremrangebyscore", "zrangebyscore", "ping", "aclose"):
            setattr(client, name, AsyncMock())
        return client

    @pytest.fixture
    def store(self, redis_client):
        return RedisStore(redis_client, namespace="test")

    @pytest.mark.asyncio
    async def test_rate_limit_round_trip_keys(self, store, redis_client):
        redis_client.get.return_value = json.dumps({"api": "ncbi", "tokens": 3.0, "last_refill": 1.0})
        state = await store.get_rate_limit("ncbi")
        assert state["tokens"] == 3.0
        redis_client.get.assert_awaited_with("test:rate_limit:ncbi")

    @pytest.mark.asyncio
    async def test_cache_put_sets_expiry_and_category(self, store, redis_client):
        entry = {"key": "ncbi:dnaa:511145", "category": "gene-basic", "payload": {},
                 "fetched_at": 0, "expires_at": 10**12, "stale_window_s": 3600}
        await store.cache_put(entry)
        args, kwargs = redis_client.set.call_args
        assert args[0] == "test:cache:ncbi:dnaa:511145"
        assert kwargs["px"] > 3600 * 1000
        redis_client.sadd.assert_awaited_with("test:cache_category:gene-basic", "ncbi:dnaa:511145")

    @pytest.mark.asyncio
    async def test_delete_category(self, store, redis_client):
        redis_client.smembers.return_value = {"a", "b"}
        redis_client.delete.return_value = 2
        assert await store.cache_delete_category("gene-basic") == 2

    @pytest.mark.asyncio
    async def test_cache_counts_scans_category_sets(self, store, redis_client):
        async def scan_iter(match):
            assert match == "test:cache_category:*"
            for name in ("test:cache_category:gene-basic", "test:cache_category:gene-structure"):
                yield name

        redis_client.scan_iter = scan_iter
        redis_client.smembers.side_effect = [{"a", "b", "c"}, {"d"}]
        redis_client.exists.return_value = 1
        assert await store.cache_counts() == {"gene-basic": 3, "gene-structure": 1}
        redis_client.srem.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_entries_pruned_from_category_sets(self, store, redis_client):
        async def scan_iter(match):
            yield "test:cache_category:gene-basic"

        live = {"test:cache:ncbi:dnaa:511145"}
        redis_client.scan_iter = scan_iter
        redis_client.smembers.return_value = {"ncbi:dnaa:511145", "ncbi:gone:511145"}
        redis_client.exists.side_effect = lambda key: int(key in live)

        assert await store.cache_counts() == {"gene-basic": 1}
        redis_client.srem.assert_awaited_once_with("test:cache_category:gene-basic", "ncbi:gone:511145")

    @pytest.mark.asyncio
    async def test_category_set_expires_with_its_entries(self, store, redis_client):
        entry = {"key": "k", "category": "gene-basic", "payload": {},
                 "fetched_at": 0, "expires_at": 10**12, "stale_window_s": 3600}
        await store.cache_put(entry)
        set_ttl = redis_client.pexpire.call_args.args
        assert set_ttl[0] == "test:cache_category:gene-basic"
        assert set_ttl[1] == redis_client.set.call_args.kwargs["px"]

    @pytest.mark.asyncio
    async def test_identical_metrics_are_both_kept(self, store, redis_client):
        members = {}

        async def zadd(key, mapping):
            members.update(mapping)
            return len(mapping)

        redis_client.zadd.side_effect = zadd
        metric = {"api": "string", "endpoint": "partners", "status": "error", "latency_ms": 5,
                  "cache_hit": False, "error_message": "boom", "timestamp": 1700000000.0}
        await store.metric_insert(dict(metric))
        await store.metric_insert(dict(metric))
        assert len(members) == 2
        assert all(json.loads(m)["status"] == "error" for m in members)

    @pytest.mark.asyncio
    async def test_metric_count_by_status(self, store, redis_client):
        redis_client.zrangebyscore.return_value = [
            json.dumps({"status": "error"}), json.dumps({"status": "success"}), json.dumps({"status": "timeout"}),
        ]
        assert await store.metric_count("string", ("error", "timeout"), since=0) == 2

    @pytest.mark.asyncio
    async def test_redis_errors_become_store_unavailable(self, store, redis_client):
        redis_client.get.side_effect = RedisConnectionError("refused")
        with pytest.raises(StoreUnavailable):
            await store.cache_get("k")

    @pytest.mark.asyncio
    async def test_corrupt_record(self, store, redis_client):
        redis_client.get.return_value = "{not json"
        with pytest.raises(StoreUnavailable):
            await store.session_get("biocyc")

    @pytest.mark.asyncio
    async def test_ping_failure_is_false(self, store, redis_client):
        redis_client.ping.side_effect = RedisConnectionError("refused")
        assert await store.ping() is False


class TestBuildStore:
    def test_memory_without_url(self):
        assert isinstance(build_store(None), MemoryStore)

    def test_redis_with_url(self):
        with patch("genehub.store.Redis.from_url") as from_url:
            store = build_store("redis://localhost:6379/0", namespace="ns")
        assert isinstance(store, RedisStore)
        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)
