"""
Primary key-value storage.

Exports the store contract, its two implementations and `create_store`,
which picks the implementation from Config.STORAGE_BACKEND.
"""

from __future__ import annotations

from src.core.config.config import Config, StorageBackend
from src.core.storage.base import (
    KeyValueStore,
    KeyWrite,
    ReadStatus,
    StoreResult,
    WriteBatch,
)
from src.core.storage.memory_store import InMemoryStore
from src.core.storage.redis_store import RedisStore


async def create_store() -> KeyValueStore:
    """Build and initialize the configured primary store."""
    if Config.STORAGE_BACKEND == StorageBackend.MEMORY.value:
        return InMemoryStore()

    store = RedisStore(
        Config.REDIS_URL,
        socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
        max_connections=Config.REDIS_MAX_CONNECTIONS,
    )
    await store.initialize()
    return store


__all__ = [
    "KeyValueStore",
    "KeyWrite",
    "ReadStatus",
    "StoreResult",
    "WriteBatch",
    "InMemoryStore",
    "RedisStore",
    "create_store",
]
