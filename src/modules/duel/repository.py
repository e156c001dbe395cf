"""
DuelRepository - open challenges, duel cooldowns and duel win streaks.

Challenges are keyed by challenger, so "one open challenge per challenger"
is a property of the key layout. Finding the challenges addressed to a
target needs a prefix scan over `duel:`.
"""

from __future__ import annotations

from typing import List, Optional

from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore, StoreResult
from src.modules.duel.models import DuelChallenge
from src.modules.shared import keys

logger = get_logger(__name__)


class DuelRepository:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def get(self, challenger: str) -> Optional[DuelChallenge]:
        """
        Raises:
            StorageUnavailableError: If the challenge key cannot be read
        """
        result = await self._store.read(keys.duel_key(challenger), None)
        return DuelChallenge.from_document(result.require())

    async def incoming(self, target: str) -> List[DuelChallenge]:
        """
        Open challenges addressed to `target`, oldest first.

        Stale entries are included; the caller decides what to do with them.

        Raises:
            StorageUnavailableError: If the scan or a read fails
        """
        name = keys.normalize(target)
        duel_keys = await self._store.list_keys(keys.DUEL_PREFIX)
        results = await self._store.read_many(duel_keys, None)
        found = []
        for key, result in zip(duel_keys, results):
            challenge = DuelChallenge.from_document(result.require())
            if challenge is None:
                if result.found:
                    logger.warning("Unreadable duel challenge ignored", extra={"key": key})
                continue
            if challenge.target == name:
                found.append(challenge)
        return sorted(found, key=lambda c: c.created_at)

    async def delete(self, challenger: str) -> None:
        await self._store.delete(keys.duel_key(challenger))

    async def read_cooldown(self, username: str) -> StoreResult:
        return await self._store.read(keys.duel_cooldown_key(username), None)

    async def read_streak(self, username: str) -> int:
        """Consecutive duel wins; 0 when absent or unreadable."""
        result = await self._store.read(keys.duel_streak_key(username), 0)
        try:
            return int(result.value or 0)
        except (TypeError, ValueError):
            return 0
