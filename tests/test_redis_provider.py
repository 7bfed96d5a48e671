"""
Tests for RedisStorageProvider.

Uses fakeredis for in-memory Redis emulation; no live Redis server required.
"""

from decimal import Decimal

import pytest

try:
    import fakeredis
except ImportError:
    pytest.skip("fakeredis not installed", allow_module_level=True)

from knowledgedist.config import EngineConfig
from knowledgedist.distribution import ExecutionStatus
from knowledgedist.engine import DistributionEngine
from knowledgedist.storage import (
    BalanceLedger,
    DomainStore,
    LeaseManager,
    RedisStorageProvider,
    StorageConfig,
)

from conftest import DOMAIN_ID, NOW, make_domain, make_rule, make_schedule


@pytest.fixture
async def redis_provider():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    provider = RedisStorageProvider(StorageConfig(backend="redis"), client=client)
    await provider.connect()
    yield provider
    await provider.disconnect()


class TestRedisStorageProvider:
    @pytest.mark.asyncio
    async def test_health_check(self, redis_provider):
        assert await redis_provider.health_check()

    @pytest.mark.asyncio
    async def test_key_value_and_nx(self, redis_provider):
        assert await redis_provider.set("k", "v")
        assert await redis_provider.get("k") == "v"
        assert not await redis_provider.set("k", "w", only_if_absent=True)
        assert await redis_provider.exists("k")
        assert await redis_provider.delete("k")
        assert not await redis_provider.exists("k")

    @pytest.mark.asyncio
    async def test_ttl(self, redis_provider):
        await redis_provider.set("lease", "me", ttl_seconds=30)
        assert 0 < await redis_provider._client.ttl("lease") <= 30

    @pytest.mark.asyncio
    async def test_compare_and_set(self, redis_provider):
        assert await redis_provider.compare_and_set("k", None, "v1")
        assert not await redis_provider.compare_and_set("k", "stale", "v2")
        assert await redis_provider.compare_and_set("k", "v1", "v2")
        assert await redis_provider.get("k") == "v2"

    @pytest.mark.asyncio
    async def test_compare_and_delete(self, redis_provider):
        await redis_provider.set("k", "owner-a")
        assert not await redis_provider.compare_and_delete("k", "owner-b")
        assert await redis_provider.compare_and_delete("k", "owner-a")

    @pytest.mark.asyncio
    async def test_hashes(self, redis_provider):
        await redis_provider.hset("h", "a", "1")
        assert await redis_provider.hgetall("h") == {"a": "1"}
        assert await redis_provider.hincrby("h", "a", 9) == 10
        assert await redis_provider.hdel("h", "a")

    @pytest.mark.asyncio
    async def test_hincrby_once(self, redis_provider):
        assert await redis_provider.hincrby_once("bal", "ann", 100, "tok:e1", "ann")
        assert not await redis_provider.hincrby_once("bal", "ann", 100, "tok:e1", "ann")
        assert await redis_provider.hget("bal", "ann") == "100"
        assert await redis_provider.hget("tok:e1", "ann") == "100"

    @pytest.mark.asyncio
    async def test_sets_and_keys(self, redis_provider):
        assert await redis_provider.sadd("kdist:s", "a")
        assert await redis_provider.smembers("kdist:s") == {"a"}
        await redis_provider.set("kdist:k", "1")
        assert await redis_provider.keys("kdist:*") == ["kdist:k", "kdist:s"]
        assert await redis_provider.srem("kdist:s", "a")


class TestStoresOnRedis:
    @pytest.mark.asyncio
    async def test_domain_round_trip_and_finalize(self, redis_provider):
        store = DomainStore(redis_provider)
        schedule = make_schedule()
        await store.save(make_domain(schedule=schedule))
        assert await store.scheduled_ids() == [DOMAIN_ID]

        done = await store.finalize(
            DOMAIN_ID, schedule.event_id, lambda d: d.model_copy(update={"scheduled": None})
        )
        assert done
        assert (await store.get(DOMAIN_ID)).scheduled is None
        assert await store.scheduled_ids() == []

    @pytest.mark.asyncio
    async def test_ledger_and_leases(self, redis_provider):
        ledger = BalanceLedger(redis_provider)
        assert await ledger.credit_once("ann", 250, "e1")
        assert not await ledger.credit_once("ann", 250, "e1")
        assert await ledger.balance("ann") == Decimal("2.50")

        leases = LeaseManager(redis_provider)
        assert await leases.acquire("domain:keep", "node-a", 60)
        assert not await leases.acquire("domain:keep", "node-b", 60)
        assert await leases.release("domain:keep", "node-a")

    @pytest.mark.asyncio
    async def test_end_to_end_settlement(self, redis_provider, directory, presence):
        engine = DistributionEngine.build(
            redis_provider, EngineConfig(instance_id="node-a"), directory=directory, presence=presence
        )
        rule = make_rule(admin_percents={"steward": 5}, no_alliance_percent=20)
        await engine.domains.save(make_domain("100.00", make_schedule(rule)))

        report = await engine.scheduler.tick(NOW)
        replay = await engine.executor.execute(DOMAIN_ID, NOW)

        assert report.settled == [DOMAIN_ID]
        assert replay.status is ExecutionStatus.NOTHING_SCHEDULED
        assert await engine.balances.balance("ann") == Decimal("6.67")
        assert await engine.balances.balance("cid") == Decimal("6.66")
        assert (await engine.domains.get(DOMAIN_ID)).carryover_balance == Decimal("65.00")
