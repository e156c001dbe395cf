"""
RedisStore: async Redis implementation of the key-value contract.

Purpose
-------
Back the primary store with Redis through the redis-py asyncio client:

- Singleton-per-instance client with connection pooling
- JSON encoding of values
- SCAN-based prefix listing (never KEYS)
- MULTI/EXEC pipeline for batched writes
- INCRBY for counters (bank balance, purchase counters)
- Structured logs with latency for every operation

Every client error is converted to `StorageUnavailableError` so the engine
never sees redis-specific exceptions.

Configuration
-------------
- Config.REDIS_URL
- Config.REDIS_SOCKET_TIMEOUT
- Config.REDIS_MAX_CONNECTIONS
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from src.core.exceptions import StorageUnavailableError
from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore, WriteBatch

logger = get_logger(__name__)

R = TypeVar("R")


class RedisStore(KeyValueStore):
    name = "redis"

    def __init__(
        self,
        url: str,
        *,
        socket_timeout: int = 5,
        max_connections: int = 50,
        client: Optional[AsyncRedis] = None,
    ) -> None:
        self._url = url
        self._socket_timeout = socket_timeout
        self._max_connections = max_connections
        self._client: Optional[AsyncRedis] = client
        self._init_lock = asyncio.Lock()

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Create the client and verify the connection. Idempotent."""
        if self._client is not None:
            return

        async with self._init_lock:
            if self._client is not None:
                return

            start_time = time.monotonic()
            client: AsyncRedis = AsyncRedis.from_url(
                self._url,
                socket_timeout=self._socket_timeout,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self._max_connections,
                health_check_interval=30,
            )
            try:
                await client.ping()  # type: ignore[misc]
            except (RedisError, OSError) as exc:
                await client.aclose()
                logger.critical(
                    "Failed to initialize RedisStore",
                    extra={
                        "url_scheme": self._url.split("://")[0],
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                raise StorageUnavailableError("INIT", self._url.split("@")[-1], exc) from exc

            self._client = client
            logger.info(
                "RedisStore initialized",
                extra={
                    "url_scheme": self._url.split("://")[0],
                    "socket_timeout_seconds": self._socket_timeout,
                    "max_connections": self._max_connections,
                    "initialization_time_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        logger.info("RedisStore closed")

    @property
    def client(self) -> AsyncRedis:
        if self._client is None:
            raise StorageUnavailableError("CLIENT", "<uninitialized>")
        return self._client

    # ═══════════════════════════════════════════════════════════════════════
    # EXECUTION
    # ═══════════════════════════════════════════════════════════════════════

    async def _execute(
        self,
        operation: str,
        key: str,
        call: Callable[[], Awaitable[R]],
    ) -> R:
        start_time = time.monotonic()
        try:
            result = await call()
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                f"Redis {operation} operation failed",
                extra={
                    "key": key,
                    "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            raise StorageUnavailableError(operation, key, exc) from exc

        logger.debug(
            f"Redis {operation} operation",
            extra={
                "key": key,
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return result

    # ═══════════════════════════════════════════════════════════════════════
    # KEY-VALUE CONTRACT
    # ═══════════════════════════════════════════════════════════════════════

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._execute("GET", key, lambda: self.client.get(key))
        return None if raw is None else json.loads(raw)

    async def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        payload = json.dumps(value)
        await self._execute("SET", key, lambda: self.client.set(key, payload, ex=ttl_seconds))

    async def delete(self, key: str) -> None:
        await self._execute("DEL", key, lambda: self.client.delete(key))

    async def list_keys(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        async def _scan() -> List[str]:
            keys: List[str] = []
            async for key in self.client.scan_iter(match=f"{prefix}*", count=500):
                keys.append(key)
                if limit is not None and len(keys) >= limit:
                    break
            return sorted(keys)

        return await self._execute("SCAN", prefix, _scan)

    async def put_many(self, batch: WriteBatch) -> None:
        if not len(batch):
            return

        async def _pipeline() -> None:
            async with self.client.pipeline(transaction=True) as pipe:
                for write in batch.writes:
                    pipe.set(write.key, json.dumps(write.value), ex=write.ttl_seconds)
                if batch.deletes:
                    pipe.delete(*batch.deletes)
                await pipe.execute()

        await self._execute("MULTI", ",".join(batch.keys()[:5]), _pipeline)

    async def increment(self, key: str, amount: int = 1) -> int:
        result = await self._execute("INCRBY", key, lambda: self.client.incrby(key, amount))
        return int(result)

    async def ping(self) -> bool:
        try:
            return bool(await self._execute("PING", "-", lambda: self.client.ping()))
        except StorageUnavailableError:
            return False
