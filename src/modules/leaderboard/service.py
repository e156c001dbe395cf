"""
Leaderboard Service
===================

Purpose
-------
Materialise a ranked balance snapshot of all qualifying players and serve
it stale-while-revalidate.

Domain
------
- Qualifying players: disclaimer accepted, not self-banned, not hidden,
  balance above zero
- Snapshot: top entries for display plus a flat rank index of every
  qualifying player, stamped with the computation time
- Cache: one document under `leaderboard:cache`

Design Notes
------------
- Read-only with respect to game state; the snapshot is advisory.
- A snapshot older than `cache_ttl_seconds` is still served while a
  background task recomputes it. Only a missing (or unreadable) cache is
  recomputed synchronously.
- Concurrent recomputations are tolerated: the last writer wins.
- The background task is fire-and-forget for the caller; failures are
  logged and the stale snapshot stays in place.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from src.core.exceptions import StorageUnavailableError
from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore
from src.modules.player.repository import AccountRepository
from src.modules.shared import keys
from src.modules.shared.base_service import BaseService
from src.modules.shared.timeutils import Clock, system_clock

if TYPE_CHECKING:
    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus

CACHE_TTL_FACTOR = 5
ADMIN_ROLE = "admin"


# ============================================================================
# Snapshot
# ============================================================================


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    username: str
    balance: int
    prestige_rank: Optional[str] = None
    role: Optional[str] = None
    avatar: Optional[str] = None


@dataclass(frozen=True)
class LeaderboardSnapshot:
    entries: Tuple[LeaderboardEntry, ...]
    ranks: Mapping[str, Tuple[int, int]] = field(default_factory=dict)
    computed_at: float = 0.0

    def age(self, now: float) -> float:
        return max(0.0, now - self.computed_at)

    def rank_of(self, username: str) -> Optional[Tuple[int, int]]:
        """(rank, balance) of any qualifying player, on the page or not."""
        return self.ranks.get(keys.normalize(username))

    @property
    def size(self) -> int:
        return len(self.ranks)

    def to_document(self) -> Dict[str, Any]:
        return {
            "entries": [vars(e) for e in self.entries],
            "ranks": [[u, r, b] for u, (r, b) in self.ranks.items()],
            "computed_at": self.computed_at,
        }

    @classmethod
    def from_document(cls, doc: Any) -> Optional["LeaderboardSnapshot"]:
        if not isinstance(doc, Mapping):
            return None
        try:
            entries = tuple(LeaderboardEntry(**e) for e in doc.get("entries", ()))
            ranks = {str(u): (int(r), int(b)) for u, r, b in doc.get("ranks", ())}
            return cls(entries, ranks, float(doc["computed_at"]))
        except (KeyError, TypeError, ValueError):
            return None


# ============================================================================
# LeaderboardService
# ============================================================================


class LeaderboardService(BaseService):
    """
    Public Methods
    --------------
    - get_snapshot() -> cached snapshot, refreshed in the background when stale
    - get_rank() -> a player's rank from the current snapshot
    - refresh() -> recompute and store synchronously
    - wait_for_refresh() -> await a running background refresh
    """

    def __init__(
        self,
        store: KeyValueStore,
        accounts: AccountRepository,
        game_config: GameConfig,
        event_bus: EventBus,
        *,
        clock: Clock = system_clock,
    ) -> None:
        super().__init__(game_config, event_bus, get_logger(__name__))
        self._store = store
        self._accounts = accounts
        self._clock = clock
        self._refresh_task: Optional[asyncio.Task] = None

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_snapshot(self) -> LeaderboardSnapshot:
        cached = await self._store.read(keys.LEADERBOARD_CACHE_KEY, None)
        snapshot = LeaderboardSnapshot.from_document(cached.value)
        if snapshot is None:
            return await self.refresh()

        if snapshot.age(self._clock()) > self._config.leaderboard.cache_ttl_seconds:
            self._schedule_refresh()
        return snapshot

    async def get_rank(self, username: str) -> Optional[Tuple[int, int]]:
        snapshot = await self.get_snapshot()
        return snapshot.rank_of(username)

    # ========================================================================
    # PUBLIC API - Refresh
    # ========================================================================

    async def refresh(self) -> LeaderboardSnapshot:
        """
        Recompute the snapshot and store it.

        Raises:
            StorageUnavailableError: If the player scan fails
        """
        start = time.perf_counter()
        snapshot = await self._compute()
        try:
            await self._store.put(
                keys.LEADERBOARD_CACHE_KEY,
                snapshot.to_document(),
                self._config.leaderboard.cache_ttl_seconds * CACHE_TTL_FACTOR,
            )
        except StorageUnavailableError:
            self.log.warning("Leaderboard cache write failed", exc_info=True)

        self.log.info(
            "Leaderboard refreshed",
            extra={
                "players": snapshot.size,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        await self.emit_event(
            "leaderboard.refreshed",
            {"players": snapshot.size, "computed_at": snapshot.computed_at},
        )
        return snapshot

    async def wait_for_refresh(self) -> None:
        task = self._refresh_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(self._background_refresh())

    async def _background_refresh(self) -> None:
        try:
            await self.refresh()
        except StorageUnavailableError as exc:
            self.log_error("leaderboard_revalidate", exc)

    async def _compute(self) -> LeaderboardSnapshot:
        cfg = self._config.leaderboard
        usernames = await self._accounts.list_usernames(cfg.scan_limit)
        balances = await self._store.read_many([keys.balance_key(n) for n in usernames], 0)
        accounts = await self._accounts.load_accounts(usernames)

        qualifying: List[Tuple[str, int]] = []
        for name, result in zip(usernames, balances):
            account = accounts[name]
            balance = int(result.value or 0)
            if not account.playable or account.leaderboard_hidden or balance <= 0:
                continue
            qualifying.append((name, balance))
        qualifying.sort(key=lambda pair: (-pair[1], pair[0]))

        ranks = {name: (i + 1, balance) for i, (name, balance) in enumerate(qualifying)}
        entries = tuple(
            LeaderboardEntry(
                rank=i + 1,
                username=name,
                balance=balance,
                prestige_rank=accounts[name].prestige_rank,
                role=ADMIN_ROLE if self._config.is_admin(name) else None,
                avatar=accounts[name].avatar,
            )
            for i, (name, balance) in enumerate(qualifying[: cfg.display_limit])
        )
        return LeaderboardSnapshot(entries, ranks, self._clock())
