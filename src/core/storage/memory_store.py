"""
Process-local key-value store.

Used by the test suite and by `STORAGE_BACKEND=memory` for local runs. Values
are kept JSON-encoded so callers observe the same copy semantics as with
Redis, and TTLs are expired lazily on access against an injectable clock.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore, WriteBatch

logger = get_logger(__name__)


class InMemoryStore(KeyValueStore):
    name = "memory"

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.time
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return raw

    async def get(self, key: str) -> Optional[Any]:
        raw = self._live(key)
        return None if raw is None else json.loads(raw)

    async def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        self._data[key] = (json.dumps(value), self._expiry(ttl_seconds))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        keys = [k for k in sorted(self._data) if k.startswith(prefix) and self._live(k)]
        return keys if limit is None else keys[:limit]

    async def put_many(self, batch: WriteBatch) -> None:
        for write in batch.writes:
            self._data[write.key] = (
                json.dumps(write.value),
                self._expiry(write.ttl_seconds),
            )
        for key in batch.deletes:
            self._data.pop(key, None)
        logger.debug("Memory batch applied", extra={"keys": len(batch)})

    async def increment(self, key: str, amount: int = 1) -> int:
        raw = self._live(key)
        expires_at = self._data[key][1] if raw is not None else None
        value = (int(json.loads(raw)) if raw is not None else 0) + amount
        self._data[key] = (json.dumps(value), expires_at)
        return value

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
