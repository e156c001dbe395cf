"""
Shop Service
============

Purpose
-------
Sell catalog items: check prerequisites and weekly limits, debit the price
and grant the item in one ledger write.

Responsibilities
----------------
- Prerequisites: unlock chain, no duplicate unlock, prestige rank order, at
  most one active dachs boost
- Weekly limits: claimed through the write intent, so the counter and the
  debit land together (and the durable mirror slot is claimed first)
- Grants: buffs, free spins, unlocks, prestige ranks, peek grids
- Instant items: chaos spin, wheel, mystery box, reverse chaos, diamond
  mine, guaranteed pair, wild card
- Statistics and purchase events for the achievement engine

Design Notes
------------
- Item handling is a table keyed by `ItemType`; instant items dispatch a
  second time on `action`.
- The buff set and free-spin pool are read critically here. The purchase
  writes them back, and writing a default over an unreadable document would
  destroy the player's existing buffs.
- A mystery box whose drawn item cannot be activated refunds its price in
  the same write; the player never pays for nothing.
- Chaos spin losses are clamped to what is left after the price, so an
  instant item can never push a balance below zero.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Tuple

from src.core.config.game_config import ItemType, ShopItem
from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore
from src.modules.achievements.service import AchievementService
from src.modules.buffs.models import BuffSet, durable_changes, symbol_boost_key
from src.modules.buffs.resolver import (
    GUARANTEED_PAIR,
    PEEK,
    WILD_CARD,
    WIN_MULTIPLIER,
    BuffResolver,
)
from src.modules.economy.free_spins import FreeSpinPool
from src.modules.economy.ledger import EconomyLedger, WriteIntent
from src.modules.player.models import AccountRecord
from src.modules.player.service import PlayerService
from src.modules.shared import keys
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import InvalidOperationError, NotFoundError
from src.modules.shared.timeutils import Clock, system_clock
from src.modules.shared.validators import validate_sufficient_funds
from src.modules.shop.models import PurchaseResult, WheelOutcome, spin_wheel
from src.modules.slots.payout import PayoutEvaluator

if TYPE_CHECKING:
    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus

PURCHASE_ACTION = "purchase"
PURCHASED_EVENT = "shop.purchased"
INSURANCE = "insurance"

# Per-item purchase counters, keyed by instant action or item type.
ITEM_STATS: Dict[str, str] = {
    "peek": "peekTokens",
    "chaos_spin": "chaosSpins",
    "wheel": "wheelSpins",
    "mystery_box": "mysteryBoxes",
    "reverse_chaos": "reverseChaosSpins",
    "diamond_mine": "diamondMines",
    "guaranteed_pair": "guaranteedPairs",
    "wild_card": "wildCards",
}


@dataclass
class _Cart:
    """Mutable purchase state handed through the item handlers."""

    item: ShopItem
    account: AccountRecord
    balance: int
    buffs: BuffSet
    free_spins: FreeSpinPool
    credited: int = 0
    free_spins_awarded: int = 0
    granted: Optional[ShopItem] = None
    wheel: Optional[WheelOutcome] = None
    peek_wins: Optional[bool] = None
    refunded: bool = False
    events: List[str] = field(default_factory=list)


class ShopService(BaseService):
    def __init__(
        self,
        store: KeyValueStore,
        ledger: EconomyLedger,
        players: PlayerService,
        achievements: AchievementService,
        resolver: BuffResolver,
        evaluator: PayoutEvaluator,
        game_config: GameConfig,
        event_bus: EventBus,
        *,
        rng: Optional[random.Random] = None,
        clock: Clock = system_clock,
    ) -> None:
        super().__init__(game_config, event_bus, get_logger(__name__))
        self._store = store
        self._ledger = ledger
        self._players = players
        self._achievements = achievements
        self._resolver = resolver
        self._evaluator = evaluator
        self._rng = rng or random.SystemRandom()
        self._clock = clock
        self._handlers: Dict[ItemType, Callable[[_Cart, float], Awaitable[None]]] = {
            ItemType.TIMED: self._grant_buff_item,
            ItemType.BOOST: self._grant_buff_item,
            ItemType.INSURANCE: self._grant_buff_item,
            ItemType.WINMULTI: self._grant_buff_item,
            ItemType.BUNDLE: self._grant_bundle,
            ItemType.PEEK: self._grant_peek,
            ItemType.INSTANT: self._run_instant,
            ItemType.PRESTIGE: self._grant_prestige,
            ItemType.UNLOCK: self._grant_unlock,
        }
        self._instant: Dict[str, Callable[[_Cart, float], None]] = {
            "chaos_spin": self._chaos_spin,
            "wheel": self._wheel,
            "mystery_box": self._mystery_box,
            "reverse_chaos": self._reverse_chaos,
            "diamond_mine": self._diamond_mine,
            "guaranteed_pair": self._one_shot(GUARANTEED_PAIR),
            "wild_card": self._one_shot(WILD_CARD),
        }

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    def catalog(self) -> List[ShopItem]:
        return [self._config.shop.items[i] for i in sorted(self._config.shop.items)]

    def get_item(self, item_id: int) -> ShopItem:
        """
        Raises:
            NotFoundError: If the id is not in the catalog
        """
        item = self._config.shop.items.get(item_id)
        if item is None:
            raise NotFoundError("ShopItem", item_id)
        return item

    # ========================================================================
    # PUBLIC API - Purchase
    # ========================================================================

    async def purchase(self, username: str, item_id: int) -> PurchaseResult:
        """
        Buy one item.

        Raises:
            NotFoundError: Unknown item id
            AccountRequiredError: Player cannot play
            InvalidOperationError: Prerequisite missing, duplicate unlock,
                rank out of order, or a dachs boost already active
            InsufficientFundsError: Balance below the price
            LimitExceededError: Weekly cap of the item reached
            StorageUnavailableError: Balance, buffs or free spins unreadable,
                or the commit failed
        """
        start = time.perf_counter()
        item = self.get_item(item_id)
        name = keys.normalize(username)
        now = self._clock()

        # Step 1: Gate and state
        account = await self._players.require_playable(name)
        balance, buffs, free_spins = await asyncio.gather(
            self._store.read(keys.balance_key(name), 0),
            self._store.read(keys.buffs_key(name), {}),
            self._store.read(keys.free_spins_key(name), {}),
        )
        cart = _Cart(
            item=item,
            account=account,
            balance=int(balance.require()),
            buffs=BuffSet.from_document(buffs.require()),
            free_spins=FreeSpinPool.from_document(free_spins.require()),
        )
        original_buffs, original_pool = cart.buffs, cart.free_spins

        # Step 2: Prerequisites and price
        self._check_prerequisites(cart, now)
        validate_sufficient_funds(name, item.price, cart.balance)

        # Step 3: Grant
        await self._handlers[item.type](cart, now)

        # Step 4: One intent for price, grant, limits and stats
        intent = WriteIntent(reason=f"purchase:{item.id}")
        intent.add_delta(name, cart.credited - item.price)
        if item.weekly_limit:
            intent.claim_limit(name, item.limit_key or item.type.value, item.weekly_limit)
        if cart.buffs is not original_buffs:
            next_buffs = cart.buffs.pruned(now)
            intent.put(keys.buffs_key(name), next_buffs.to_document())
            changes = durable_changes(original_buffs, next_buffs, self._config.buffs)
            for item_key, value in changes.items():
                intent.mirror_item(name, item_key, value)
        if cart.free_spins != original_pool:
            intent.put(keys.free_spins_key(name), cart.free_spins.to_document())
            intent.mirror_item(name, "free_spins", cart.free_spins.to_document())
        intent.put(keys.account_key(name), cart.account.touched(now).to_document())
        self._record_stats(intent, name, cart)
        receipt = await self._ledger.commit(intent)
        new_balance = receipt.balance(name)

        # Step 5: Achievements
        unlocked: Tuple[str, ...] = ()
        if not cart.refunded:
            unlocked = await self._achievements.process(
                name, receipt.stats_for(name), cart.events, balance=new_balance
            )

        result = PurchaseResult(
            username=name,
            item=item,
            balance=new_balance,
            price=item.price,
            credited=cart.credited,
            free_spins=cart.free_spins_awarded,
            granted=cart.granted,
            wheel=cart.wheel,
            peek_wins=cart.peek_wins,
            refunded=cart.refunded,
            achievements=unlocked,
        )
        self.log.info(
            "Item purchased",
            extra={
                "username": name,
                "item_id": item.id,
                "item_type": item.type.value,
                "price": item.price,
                "credited": cart.credited,
                "refunded": cart.refunded,
                "balance": new_balance,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        await self.emit_event(
            PURCHASED_EVENT,
            {
                "username": name,
                "item_id": item.id,
                "price": item.price,
                "net": result.net,
                "balance": new_balance,
                "refunded": cart.refunded,
            },
        )
        return result

    # ------------------------------------------------------------------ #
    # Prerequisites
    # ------------------------------------------------------------------ #

    def _check_prerequisites(self, cart: _Cart, now: float) -> None:
        item, account = cart.item, cart.account

        if item.type is ItemType.UNLOCK:
            if item.requires and not account.has_unlock(item.requires):
                raise InvalidOperationError(
                    PURCHASE_ACTION, f"{item.unlock_key} requires {item.requires}"
                )
            if account.has_unlock(item.unlock_key or ""):
                raise InvalidOperationError(PURCHASE_ACTION, f"{item.unlock_key} already unlocked")

        elif item.type is ItemType.PRESTIGE:
            ranks = self._config.shop.prestige_ranks
            current = ranks.index(account.prestige_rank) if account.prestige_rank in ranks else -1
            wanted = ranks.index(item.rank)
            if current >= wanted:
                raise InvalidOperationError(
                    PURCHASE_ACTION, f"rank {account.prestige_rank} or higher already owned"
                )
            if item.requires_rank and current < ranks.index(item.requires_rank):
                raise InvalidOperationError(PURCHASE_ACTION, f"requires rank {item.requires_rank}")

        elif item.type is ItemType.BOOST and item.symbol == self._config.symbols.jackpot_symbol:
            if cart.buffs.has(symbol_boost_key(item.symbol), now):
                raise InvalidOperationError(PURCHASE_ACTION, "a dachs boost is already active")

    # ------------------------------------------------------------------ #
    # Grants by item type
    # ------------------------------------------------------------------ #

    def _activate(self, item: ShopItem, buffs: BuffSet, now: float) -> BuffSet:
        """
        Raises:
            KeyError: The item's buff is missing from the catalog
            ValueError: The item does not grant a buff
        """
        catalog = self._config.buffs
        if item.type is ItemType.BOOST:
            return buffs.activate(
                catalog["symbol_boost"], now, key=symbol_boost_key(item.symbol or "")
            )
        if item.type is ItemType.INSURANCE:
            return buffs.activate(
                catalog[INSURANCE], now, uses=self._config.shop.insurance_pack_size
            )
        if item.type is ItemType.WINMULTI:
            return buffs.activate(catalog[WIN_MULTIPLIER], now)
        if item.type is ItemType.TIMED and item.buff_key:
            return buffs.activate(catalog[item.buff_key], now)
        raise ValueError(f"item {item.id} ({item.type.value}) does not grant a buff")

    async def _grant_buff_item(self, cart: _Cart, now: float) -> None:
        cart.buffs = self._activate(cart.item, cart.buffs, now)

    async def _grant_bundle(self, cart: _Cart, now: float) -> None:
        shop = self._config.shop
        cart.free_spins = cart.free_spins.added(shop.bundle_spins, shop.bundle_multiplier)
        cart.free_spins_awarded = shop.bundle_spins

    async def _grant_peek(self, cart: _Cart, now: float) -> None:
        grid = self._resolver.preview(cart.buffs, now)
        cart.buffs = cart.buffs.activate(self._config.buffs[PEEK], now, data={"grid": grid})
        cart.peek_wins = self._evaluator.evaluate(grid).is_win

    async def _grant_prestige(self, cart: _Cart, now: float) -> None:
        cart.account = replace(cart.account, prestige_rank=cart.item.rank)

    async def _grant_unlock(self, cart: _Cart, now: float) -> None:
        cart.account = cart.account.with_unlock(cart.item.unlock_key or "")
        spin = self._config.spin
        slot_unlocks = set(spin.unlock_keys.values()) | {spin.free_amount_unlock}
        if slot_unlocks <= cart.account.unlocks:
            cart.events.append("unlock_all_slots")

    async def _run_instant(self, cart: _Cart, now: float) -> None:
        action = cart.item.action or ""
        handler = self._instant.get(action)
        if handler is None:
            raise NotFoundError("InstantAction", action)
        handler(cart, now)

    # ------------------------------------------------------------------ #
    # Instant items
    # ------------------------------------------------------------------ #

    def _chaos_spin(self, cart: _Cart, now: float) -> None:
        low, high = self._config.shop.chaos_range
        result = self._rng.randint(low, high)
        cart.credited = max(result, -(cart.balance - cart.item.price))
        if cart.credited >= self._config.shop.chaos_big_threshold:
            cart.events.append("chaos_spin_big")

    def _wheel(self, cart: _Cart, now: float) -> None:
        cart.wheel = spin_wheel(self._config.shop.wheel, self._rng)
        cart.credited = cart.wheel.prize
        if cart.wheel.jackpot:
            cart.events.append("wheel_jackpot")

    def _reverse_chaos(self, cart: _Cart, now: float) -> None:
        low, high = self._config.shop.reverse_chaos_range
        cart.credited = self._rng.randint(low, high)

    def _diamond_mine(self, cart: _Cart, now: float) -> None:
        low, high = self._config.shop.diamond_mine_range
        count = self._rng.randint(low, high)
        cart.free_spins = cart.free_spins.added(count, 1)
        cart.free_spins_awarded = count

    def _mystery_box(self, cart: _Cart, now: float) -> None:
        shop = self._config.shop
        drawn = shop.items.get(self._rng.choice(shop.mystery_box_pool))
        try:
            if drawn is None:
                raise KeyError("mystery box pool references an unknown item")
            cart.buffs = self._activate(drawn, cart.buffs, now)
        except (KeyError, ValueError) as exc:
            self.log_error(
                "mystery_box",
                exc,
                username=cart.account.username,
                drawn_item=getattr(drawn, "id", None),
            )
            cart.credited = cart.item.price
            cart.refunded = True
            return
        cart.granted = drawn

    def _one_shot(self, buff_key: str) -> Callable[[_Cart, float], None]:
        def grant(cart: _Cart, now: float) -> None:
            cart.buffs = cart.buffs.activate(self._config.buffs[buff_key], now)

        return grant

    # ------------------------------------------------------------------ #
    # Statistics
    # ------------------------------------------------------------------ #

    def _record_stats(self, intent: WriteIntent, name: str, cart: _Cart) -> None:
        item = cart.item
        if cart.refunded:
            return
        intent.increment_stat(name, "shopPurchases")
        cart.events.append("first_purchase")

        counter = ITEM_STATS.get(item.action or item.type.value)
        if counter:
            intent.increment_stat(name, counter)

        if item.type is ItemType.UNLOCK:
            intent.mirror_item(name, f"unlock:{item.unlock_key}", True)
        elif item.type is ItemType.PRESTIGE:
            intent.mirror_item(name, "prestige_rank", item.rank)
