"""
BuffService - read side of a player's buff set.

Purpose
-------
Load a player's `BuffSet` from the primary store and describe which buffs
are active right now. Writing buffs is never done here: the slot and shop
services put the next set into their ledger write intent.

Design Notes
------------
- Buff reads are non-critical. An unreachable store yields an empty set
  and play continues without modifiers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore
from src.modules.buffs.models import BuffSet, OneShotBuff, StackBuff, UsesBuff, kind_of
from src.modules.shared import keys
from src.modules.shared.base_service import BaseService
from src.modules.shared.timeutils import Clock, remaining_seconds, system_clock

if TYPE_CHECKING:
    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus


@dataclass(frozen=True)
class BuffStatus:
    key: str
    kind: str
    remaining_seconds: Optional[int] = None
    uses: Optional[int] = None
    stack: Optional[int] = None


class BuffService(BaseService):
    def __init__(
        self,
        store: KeyValueStore,
        game_config: GameConfig,
        event_bus: EventBus,
        *,
        clock: Clock = system_clock,
    ) -> None:
        super().__init__(game_config, event_bus, get_logger(__name__))
        self._store = store
        self._clock = clock

    async def load(self, username: str) -> BuffSet:
        result = await self._store.read(keys.buffs_key(username), {})
        if result.failed:
            self.log.warning(
                "Buff set unavailable, continuing without buffs",
                extra={"username": username},
            )
        return BuffSet.from_document(result.value)

    async def active_buffs(self, username: str) -> List[BuffStatus]:
        now = self._clock()
        buffs = await self.load(username)
        statuses = []
        for key in buffs.active_keys(now):
            buff = buffs[key]
            expires_at = getattr(buff, "expires_at", None)
            statuses.append(
                BuffStatus(
                    key=key,
                    kind=kind_of(buff).value,
                    remaining_seconds=(
                        int(remaining_seconds(expires_at, now)) if expires_at is not None else None
                    ),
                    uses=buff.uses if isinstance(buff, UsesBuff) else None,
                    stack=buff.stack if isinstance(buff, StackBuff) else None,
                )
            )
        return statuses

    async def peek_grid(self, username: str) -> Optional[List[str]]:
        """The stored preview grid, if an unused peek is active."""
        buffs = await self.load(username)
        peek = buffs.active("peek", self._clock())
        if isinstance(peek, OneShotBuff) and peek.data.get("grid"):
            return list(peek.data["grid"])
        return None
