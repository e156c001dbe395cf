"""
Game Engine
===========

Purpose
-------
Wire every domain service around one primary store, one event bus and one
validated `GameConfig`, and expose the action surface used by the chat and
web collaborators.

Responsibilities
----------------
- Build the services with their dependencies (constructor injection)
- Validate the shape of every action input before any storage access
- Own the infrastructure lifecycle when built through `GameEngine.create()`

Non-Responsibilities
--------------------
- Game rules (delegated to the services)
- Rendering results into messages

Architecture Notes
------------------
- All services share one `random.Random`; production uses
  `random.SystemRandom()`, tests inject a seeded instance.
- The durable mirror is optional. Without it the ledger only writes the
  primary store and weekly limits rely on the primary counters.
"""

from __future__ import annotations

import random
import time
from typing import Any, Dict, List, Optional, Union

from src.core.config.config import Config
from src.core.config.game_config import GameConfig, load_game_config
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus
from src.core.logging.logger import LogContext, get_logger
from src.core.storage import KeyValueStore, create_store
from src.core.validation.input_validator import InputValidator
from src.modules.achievements import AchievementRepository, AchievementService
from src.modules.achievements.engine import AchievementProgress
from src.modules.buffs import BuffService, BuffStatus
from src.modules.duel import DuelChallenge, DuelCoordinator, DuelOutcome
from src.modules.economy import DurableMirror, EconomyLedger
from src.modules.leaderboard import LeaderboardService, LeaderboardSnapshot
from src.modules.player import AccountRepository, PlayerProfile, PlayerService
from src.modules.shared.timeutils import Clock, system_clock
from src.modules.shop import PurchaseResult, ShopService
from src.modules.slots.service import SlotService, SpinResult
from src.modules.slots.symbols import SymbolGenerator

logger = get_logger(__name__)


class GameEngine:
    """
    Usage:
        engine = await GameEngine.create()
        result = await engine.spin("dachsfan", "20")
        await engine.close()
    """

    def __init__(
        self,
        store: KeyValueStore,
        game_config: GameConfig,
        event_bus: EventBus,
        *,
        mirror: Optional[DurableMirror] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = system_clock,
    ) -> None:
        start = time.perf_counter()
        self._store = store
        self._config = game_config
        self._event_bus = event_bus
        self._mirror = mirror
        self._owns_infrastructure = False
        rng = rng or random.SystemRandom()

        self.ledger = EconomyLedger(
            store, game_config.economy, event_bus, mirror=mirror, clock=clock
        )
        self.accounts = AccountRepository(store)
        self.players = PlayerService(self.accounts, self.ledger, game_config, event_bus, clock=clock)
        self.achievement_service = AchievementService(
            AchievementRepository(store), self.ledger, game_config, event_bus, clock=clock
        )
        self.buffs = BuffService(store, game_config, event_bus, clock=clock)
        self.slots = SlotService(
            store, self.ledger, self.players, self.achievement_service, game_config, event_bus,
            rng=rng, clock=clock,
        )
        self.shop = ShopService(
            store, self.ledger, self.players, self.achievement_service,
            self.slots.resolver, self.slots.evaluator, game_config, event_bus,
            rng=rng, clock=clock,
        )
        self.duels = DuelCoordinator(
            store, self.ledger, self.players, self.achievement_service,
            SymbolGenerator(game_config.symbols, rng), game_config, event_bus,
            clock=clock,
        )
        self.leaderboard_service = LeaderboardService(
            store, self.accounts, game_config, event_bus, clock=clock
        )

        logger.info(
            "Game engine wired",
            extra={
                "store": store.name,
                "mirror": mirror is not None,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @classmethod
    async def create(
        cls,
        *,
        game_config: Optional[GameConfig] = None,
        event_bus: Optional[EventBus] = None,
    ) -> "GameEngine":
        """Build infrastructure from `Config` and return an engine that owns it."""
        Config.validate()
        logger.info("Configuration loaded", extra=Config.summary())
        store = await create_store()
        mirror = None
        if Config.DURABLE_MIRROR_ENABLED:
            await DatabaseService.initialize()
            await DatabaseService.create_schema()
            mirror = DurableMirror()
        engine = cls(
            store,
            game_config or load_game_config(),
            event_bus or EventBus(),
            mirror=mirror,
        )
        engine._owns_infrastructure = True
        return engine

    async def close(self) -> None:
        await self.leaderboard_service.wait_for_refresh()
        await self._event_bus.drain()
        if not self._owns_infrastructure:
            return
        await self._store.close()
        if self._mirror is not None:
            await DatabaseService.shutdown()
        logger.info("Game engine closed")

    async def health_check(self) -> Dict[str, bool]:
        health = {"store": await self._store.ping()}
        if self._mirror is not None:
            health["database"] = await DatabaseService.health_check()
        return health

    @property
    def game_config(self) -> GameConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    # ========================================================================
    # Actions - Player
    # ========================================================================

    async def accept_disclaimer(self, username: Any) -> PlayerProfile:
        name = InputValidator.validate_username(username)
        return await self.players.accept_disclaimer(name)

    async def balance(self, username: Any) -> int:
        name = InputValidator.validate_username(username)
        return await self.ledger.get_balance(name)

    async def profile(self, username: Any) -> PlayerProfile:
        name = InputValidator.validate_username(username)
        return await self.players.get_profile(name)

    async def active_buffs(self, username: Any) -> List[BuffStatus]:
        name = InputValidator.validate_username(username)
        return await self.buffs.active_buffs(name)

    async def self_ban(self, username: Any) -> None:
        name = InputValidator.validate_username(username)
        await self.players.set_self_ban(name, True)

    # ========================================================================
    # Actions - Play
    # ========================================================================

    async def spin(self, username: Any, amount: Union[None, int, str] = None) -> SpinResult:
        name = InputValidator.validate_username(username)
        InputValidator.validate_spin_amount(amount)
        async with LogContext(player=name, action="spin"):
            return await self.slots.spin(name, amount)

    async def purchase(self, username: Any, item_id: Any) -> PurchaseResult:
        name = InputValidator.validate_username(username)
        item = InputValidator.validate_item_id(item_id, self._config.shop.max_item_id)
        async with LogContext(player=name, action="purchase"):
            return await self.shop.purchase(name, item)

    async def duel_create(self, challenger: Any, target: Any, amount: Any) -> DuelChallenge:
        name = InputValidator.validate_username(challenger, "challenger")
        other = InputValidator.validate_username(target, "target")
        stake = InputValidator.validate_positive_integer(amount, "amount")
        async with LogContext(player=name, action="duel_create"):
            return await self.duels.create(name, other, stake)

    async def duel_accept(self, username: Any) -> DuelOutcome:
        name = InputValidator.validate_username(username)
        async with LogContext(player=name, action="duel_accept"):
            return await self.duels.accept(name)

    async def duel_decline(self, username: Any) -> DuelChallenge:
        name = InputValidator.validate_username(username)
        return await self.duels.decline(name)

    async def duel_cancel(self, username: Any) -> DuelChallenge:
        name = InputValidator.validate_username(username)
        return await self.duels.cancel(name)

    async def duel_opt_out(self, username: Any, opted_out: bool = True) -> None:
        name = InputValidator.validate_username(username)
        await self.duels.set_opt_out(name, opted_out)

    # ========================================================================
    # Actions - Queries
    # ========================================================================

    async def achievements(self, username: Any) -> List[AchievementProgress]:
        name = InputValidator.validate_username(username)
        return await self.achievement_service.overview(name)

    async def leaderboard(self) -> LeaderboardSnapshot:
        return await self.leaderboard_service.get_snapshot()
