"""
AchievementRepository - unlock records and global unlock counters.
"""

from __future__ import annotations

from typing import Dict, Iterable

from src.core.exceptions import StorageUnavailableError
from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore, StoreResult
from src.modules.achievements.engine import AchievementRecord
from src.modules.shared import keys

logger = get_logger(__name__)


class AchievementRepository:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def read(self, username: str) -> StoreResult:
        """Raw read; callers pick `.value` for display or `.require()` before unlocking."""
        return await self._store.read(keys.achievements_key(username), None)

    async def load(self, username: str) -> AchievementRecord:
        """
        Raises:
            StorageUnavailableError: If the record cannot be read
        """
        return AchievementRecord.from_document((await self.read(username)).require())

    async def save(self, username: str, record: AchievementRecord) -> None:
        await self._store.put(keys.achievements_key(username), record.to_document())

    async def increment_counters(self, ids: Iterable[str], amount: int = 1) -> None:
        for achievement_id in ids:
            try:
                await self._store.increment(keys.achievement_count_key(achievement_id), amount)
            except StorageUnavailableError:
                logger.warning(
                    "Achievement counter update skipped",
                    extra={"achievement_id": achievement_id},
                    exc_info=True,
                )

    async def unlock_counts(self, ids: Iterable[str]) -> Dict[str, int]:
        ids = list(ids)
        results = await self._store.read_many([keys.achievement_count_key(i) for i in ids], 0)
        return {i: int(r.value or 0) for i, r in zip(ids, results)}
