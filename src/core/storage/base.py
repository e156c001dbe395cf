"""
Key-value store contract.

Purpose
-------
Define the narrow read/write contract every engine component consumes:
point get/put/delete, prefix listing, a batched multi-key write and an
integer counter. Implementations exist for Redis (production) and for
process memory (tests, local runs).

Design
------
- Values are JSON documents; implementations serialize transparently.
- Every implementation failure surfaces as `StorageUnavailableError`.
- `read()` converts that failure into an explicit `StoreResult` so each
  caller decides between "safe default" and "abort" on purpose:

    >>> buffs = (await store.read(key, default={})).value        # non-critical
    >>> balance = (await store.read(key, default=0)).require()   # balance path
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from src.core.exceptions import StorageUnavailableError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ReadStatus(Enum):
    SUCCESS = "success"
    DEFAULT = "default"  # key absent or expired
    FAILED = "failed"  # store unreachable, value is the fallback


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Outcome of a read: the usable value plus how it was obtained."""

    value: T
    status: ReadStatus
    error: Optional[StorageUnavailableError] = None

    @property
    def found(self) -> bool:
        return self.status is ReadStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status is ReadStatus.FAILED

    def require(self) -> T:
        """Return the value, or re-raise the storage failure."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass(frozen=True)
class KeyWrite:
    key: str
    value: Any
    ttl_seconds: Optional[int] = None


@dataclass
class WriteBatch:
    """Puts and deletes applied by one `put_many` call."""

    writes: List[KeyWrite] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        self.writes.append(KeyWrite(key, value, ttl_seconds))

    def delete(self, key: str) -> None:
        self.deletes.append(key)

    def keys(self) -> List[str]:
        return [w.key for w in self.writes] + list(self.deletes)

    def __len__(self) -> int:
        return len(self.writes) + len(self.deletes)


class KeyValueStore(ABC):
    """Eventually-consistent per-key store without cross-key transactions."""

    name: str = "store"

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the decoded value or None when absent."""

    @abstractmethod
    async def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def list_keys(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        ...

    @abstractmethod
    async def put_many(self, batch: WriteBatch) -> None:
        """Apply every put and delete of the batch as one write."""

    @abstractmethod
    async def increment(self, key: str, amount: int = 1) -> int:
        """Add to an integer counter (created at 0) and return the new value."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def read(self, key: str, default: T) -> StoreResult[T]:
        try:
            raw = await self.get(key)
        except StorageUnavailableError as exc:
            logger.warning(
                "Store read failed, falling back to default",
                extra={"key": key, "store": self.name, "error": str(exc)},
            )
            return StoreResult(default, ReadStatus.FAILED, exc)

        if raw is None:
            return StoreResult(default, ReadStatus.DEFAULT)
        return StoreResult(raw, ReadStatus.SUCCESS)

    async def read_many(self, keys: Sequence[str], default: Any) -> List[StoreResult]:
        return [await self.read(key, default) for key in keys]
