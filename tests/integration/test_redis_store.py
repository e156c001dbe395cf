"""
Integration Tests for RedisStore
================================

Purpose
-------
Exercise the key-value contract against a real Redis server started with
testcontainers.

Test Coverage
-------------
- JSON values, TTLs and deletes
- SCAN prefix listing
- MULTI/EXEC batches and INCRBY counters
- Failure mapping to StorageUnavailableError

Testing Strategy
----------------
- Session-scoped Redis container, database flushed before every test
- Skipped when Docker is not available
"""

import pytest
import pytest_asyncio

from src.core.exceptions import StorageUnavailableError
from src.core.storage.base import ReadStatus, WriteBatch
from src.core.storage.redis_store import RedisStore


@pytest_asyncio.fixture
async def redis_store(redis_url):
    store = RedisStore(redis_url)
    await store.initialize()
    await store.client.flushdb()
    yield store
    await store.close()


# ============================================================================
# KEY-VALUE CONTRACT
# ============================================================================


@pytest.mark.integration
@pytest.mark.redis
@pytest.mark.asyncio
class TestRedisStore:
    """Basic operations on a live server."""

    async def test_json_values(self, redis_store):
        # Arrange
        account = {"username": "dachsfan", "has_disclaimer": True, "duel_opt_out": False}

        # Act
        await redis_store.put("account:dachsfan", account)
        await redis_store.put("user:dachsfan", 100)

        # Assert
        assert await redis_store.get("account:dachsfan") == account
        assert await redis_store.get("user:dachsfan") == 100
        assert await redis_store.get("user:nobody") is None

    async def test_ttl_and_delete(self, redis_store):
        await redis_store.put("cooldown:slots:bob", 1_791_979_260.0, ttl_seconds=30)
        await redis_store.put("user:bob", 50)

        ttl = await redis_store.client.ttl("cooldown:slots:bob")
        await redis_store.delete("user:bob")

        assert 0 < ttl <= 30
        assert await redis_store.get("user:bob") is None

    async def test_list_keys_by_prefix(self, redis_store):
        for name in ("carol", "alice", "bob"):
            await redis_store.put(f"user:{name}", 100)
        await redis_store.put("account:alice", {})

        assert await redis_store.list_keys("user:") == ["user:alice", "user:bob", "user:carol"]
        assert len(await redis_store.list_keys("user:", limit=2)) == 2

    async def test_batch_applies_puts_and_deletes(self, redis_store):
        # Arrange
        await redis_store.put("duel:alice", {"target": "bob", "amount": 200})
        batch = WriteBatch()
        batch.put("user:alice", 700)
        batch.put("duelstreak:alice", {"wins": 1}, ttl_seconds=60)
        batch.delete("duel:alice")

        # Act
        await redis_store.put_many(batch)

        # Assert
        assert await redis_store.get("user:alice") == 700
        assert await redis_store.get("duel:alice") is None
        assert await redis_store.client.ttl("duelstreak:alice") > 0

    async def test_increment(self, redis_store):
        assert await redis_store.increment("user:dachsbank", 10) == 10
        assert await redis_store.increment("user:dachsbank", -3) == 7
        assert await redis_store.get("user:dachsbank") == 7

    async def test_read_reports_status(self, redis_store):
        await redis_store.put("user:bob", 42)

        found = await redis_store.read("user:bob", 0)
        missing = await redis_store.read("user:ghost", 0)

        assert (found.value, found.status) == (42, ReadStatus.SUCCESS)
        assert (missing.value, missing.status) == (0, ReadStatus.DEFAULT)
        assert await redis_store.ping() is True


# ============================================================================
# FAILURES
# ============================================================================


@pytest.mark.integration
@pytest.mark.redis
@pytest.mark.asyncio
class TestRedisFailures:
    async def test_unreachable_server(self):
        store = RedisStore("redis://127.0.0.1:1/0", socket_timeout=1)

        with pytest.raises(StorageUnavailableError):
            await store.initialize()

    async def test_closed_store_reads_fail_soft(self, redis_url):
        # Arrange
        store = RedisStore(redis_url)
        await store.initialize()
        await store.close()

        # Act
        result = await store.read("user:bob", 0)

        # Assert
        assert result.failed
        assert result.value == 0
        with pytest.raises(StorageUnavailableError):
            result.require()
