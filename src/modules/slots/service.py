"""
Slot Service
============

Purpose
-------
Run one spin end to end: gate the player, pick the stake, roll and evaluate
the grid, layer boosts, streak and buff effects on the payout, and commit
every resulting change as a single ledger write.

Pipeline
--------
1. Gate       disclaimer / self-ban, 30 s spin cooldown
2. Stake      a stored free spin (cost 0, its own multiplier) or the parsed
              amount; happy hour scales the cost; balance check
3. Roll       peek grid, or a draw shaped by probability buffs
4. Grid       guaranteed pair, wild card
5. Payout     base table x bet (+ hourly jackpot x bet) -> symbol boost ->
              streak multiplier -> flat streak bonuses -> buff multipliers
6. Outcome    rage stacks on a loss, insurance refund on a paid total loss
7. Commit     balance, buffs, streak, free spins, cooldown, statistics,
              jackpot claim and play-day marker in one `WriteIntent`; paid
              buff and free-spin changes are mirrored durably
8. Unlock     achievements from the statistics the ledger wrote

Design Notes
------------
- Flat streak bonuses (combo, hot streak, comeback) are never scaled by the
  buff multipliers; only the spin payout is.
- The grid before substitution is kept for dachs statistics so a wild card
  or guaranteed pair cannot hide (or fabricate) a dachs sighting.
"""

from __future__ import annotations

import asyncio
import math
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, FrozenSet, List, Optional, Tuple, Union

from src.core.config.game_config import SpinConfig
from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore
from src.core.validation.input_validator import ALL_IN_TOKEN, InputValidator
from src.modules.achievements.service import AchievementService
from src.modules.buffs.models import BuffSet, durable_changes
from src.modules.buffs.resolver import BuffConsumption, BuffResolver
from src.modules.economy.free_spins import FreeSpinPool
from src.modules.economy.ledger import EconomyLedger, WriteIntent
from src.modules.player.models import AccountRecord
from src.modules.player.service import PlayerService
from src.modules.shared import keys
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import InvalidOperationError, ValidationError
from src.modules.shared.timeutils import Clock, system_clock, to_utc, utc_day
from src.modules.shared.validators import validate_cooldown, validate_sufficient_funds
from src.modules.slots import jackpot
from src.modules.slots.payout import PayoutEvaluator, is_triple
from src.modules.slots.streak import StreakState, StreakTracker, StreakUpdate
from src.modules.slots.symbols import SymbolGenerator

if TYPE_CHECKING:
    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus

SPIN_ACTION = "slots"
SPIN_COMPLETED_EVENT = "spin.completed"


# ============================================================================
# Stake parsing
# ============================================================================


@dataclass(frozen=True)
class SpinBet:
    cost: int
    multiplier: int
    all_in: bool = False


def parse_spin_amount(
    amount: Union[None, int, str],
    balance: int,
    unlocks: FrozenSet[str],
    config: SpinConfig,
    username: str = "",
) -> SpinBet:
    """
    Turn a requested amount into stake and bet multiplier.

    - None or the base cost: base cost at x1
    - fixed amounts (20/30/50/100) need their unlock and use the table
      multiplier
    - with the free-amount unlock any amount from 1 to the balance, or
      ``"all"``, is allowed at ``max(1, amount // base_cost)``

    Raises:
        ValidationError: Malformed or out-of-range amount
        InvalidOperationError: Amount needs an unlock the player lacks
        InsufficientFundsError: Free amount above the balance
    """
    token = InputValidator.validate_spin_amount(amount)
    base = config.base_cost
    free_amounts = config.free_amount_unlock in unlocks

    if token is None:
        return SpinBet(base, 1)

    if token == ALL_IN_TOKEN:
        if not free_amounts:
            raise InvalidOperationError(SPIN_ACTION, f"'all' requires {config.free_amount_unlock}")
        validate_sufficient_funds(username, 1, balance)
        return SpinBet(balance, max(1, balance // base), all_in=True)

    if free_amounts:
        validate_sufficient_funds(username, token, balance)
        return SpinBet(token, max(1, token // base))

    if token < base:
        raise ValidationError("amount", f"minimum stake is {base}")
    if token > config.max_fixed_amount:
        raise ValidationError(
            "amount", f"maximum stake is {config.max_fixed_amount} without {config.free_amount_unlock}"
        )
    if token == base:
        return SpinBet(base, 1)

    unlock = config.unlock_keys.get(token)
    if unlock is None:
        raise ValidationError("amount", f"{token} is not an available stake")
    if unlock not in unlocks:
        raise InvalidOperationError(SPIN_ACTION, f"stake {token} requires {unlock}")
    return SpinBet(token, config.bet_multipliers[token])


# ============================================================================
# Result
# ============================================================================


@dataclass(frozen=True)
class SpinResult:
    username: str
    grid: Tuple[str, ...]
    original_grid: Tuple[str, ...]
    points: int
    message_key: str
    free_spins_awarded: int
    balance: int
    cost: int
    multiplier: int
    streak_multiplier: float
    bonuses: Tuple[Tuple[str, int], ...] = ()
    buff_labels: Tuple[str, ...] = ()
    achievements: Tuple[str, ...] = ()
    free_spin_used: bool = False
    free_spins_remaining: int = 0
    insurance_refund: int = 0
    hourly_jackpot: bool = False
    loss_warning: bool = False
    low_balance: bool = False

    @property
    def total_win(self) -> int:
        return self.points + sum(amount for _, amount in self.bonuses)

    @property
    def won(self) -> bool:
        return self.points > 0 or self.free_spins_awarded > 0


@dataclass
class _SpinState:
    balance: int
    buffs: BuffSet
    streak: StreakState
    free_spins: FreeSpinPool
    play_day_seen: bool
    jackpot_claimed: bool


# ============================================================================
# SlotService
# ============================================================================


class SlotService(BaseService):
    def __init__(
        self,
        store: KeyValueStore,
        ledger: EconomyLedger,
        players: PlayerService,
        achievements: AchievementService,
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
        self._clock = clock
        self._generator = SymbolGenerator(game_config.symbols, rng)
        self._evaluator = PayoutEvaluator(game_config.payouts, game_config.symbols)
        self._resolver = BuffResolver(
            game_config.buffs,
            game_config.symbols,
            self._generator,
            happy_hour_threshold=game_config.spin.happy_hour_threshold,
        )
        self._tracker = StreakTracker(game_config.streak)

    @property
    def resolver(self) -> BuffResolver:
        return self._resolver

    @property
    def evaluator(self) -> PayoutEvaluator:
        return self._evaluator

    async def spin(self, username: str, amount: Union[None, int, str] = None) -> SpinResult:
        """
        Play one spin.

        Raises:
            AccountRequiredError: Disclaimer missing or player self-banned
            CooldownActiveError: Previous spin less than the cooldown ago
            ValidationError / InvalidOperationError: Unusable stake
            InsufficientFundsError: Balance below the stake
            StorageUnavailableError: Balance read or the commit failed
        """
        start = time.perf_counter()
        name = keys.normalize(username)
        now = self._clock()
        spin_cfg = self._config.spin

        # Step 1: Gate
        account = await self._players.require_playable(name)
        cooldown = await self._store.read(keys.cooldown_key(SPIN_ACTION, name), None)
        validate_cooldown(SPIN_ACTION, cooldown.value, now)

        state = await self._load_state(name, now)

        # Step 2: Stake
        consumption = BuffConsumption()
        pool_after, free_multiplier = state.free_spins.taken()
        free_spin_used = free_multiplier is not None
        if free_spin_used:
            bet = SpinBet(0, free_multiplier)
        else:
            bet = parse_spin_amount(amount, state.balance, account.unlocks, spin_cfg, name)
            bet = SpinBet(
                self._resolver.spin_cost(bet.cost, state.buffs, now, consumption),
                bet.multiplier,
                bet.all_in,
            )
            validate_sufficient_funds(name, bet.cost, state.balance)
        cost, multiplier = bet.cost, bet.multiplier

        # Step 3: Roll
        plan = self._resolver.plan_roll(state.buffs, now, consumption)
        original = tuple(self._resolver.roll(plan))

        # Step 4: Grid substitution
        substitution = self._resolver.substitute(original, state.buffs, now, consumption)
        grid = substitution.grid

        # Step 5: Payout
        evaluation = self._evaluator.evaluate(grid, multiplier)
        points = evaluation.points
        hourly = self._hourly_jackpot_due(now, state)
        if hourly:
            points += spin_cfg.hourly_jackpot_amount * multiplier
        points = self._resolver.symbol_boost(points, grid, state.buffs, now, consumption)

        won = points > 0 or evaluation.free_spins > 0
        streak = self._tracker.record(state.streak, won)
        if points > 0 and streak.multiplier > 1.0:
            points = math.floor(points * streak.multiplier)
        bonuses = streak.bonuses if won else ()
        points = self._resolver.payout_multipliers(points, evaluation, state.buffs, now, consumption)

        # Step 6: Outcome buffs
        self._resolver.record_outcome(won, state.buffs, now, consumption)
        refund = 0
        if not won and not free_spin_used:
            refund = self._resolver.insurance_refund(
                cost, state.buffs, now, consumption, spin_cfg.insurance_refund_rate
            )

        total_win = points + sum(amount for _, amount in bonuses)
        pool_after = pool_after.added(evaluation.free_spins, multiplier)

        # Step 7: Commit
        intent = self._build_intent(
            name, now, state, account, consumption, streak, pool_after,
            delta=total_win + refund - cost,
        )
        dachs_seen = sum(1 for s in original if s == self._config.symbols.jackpot_symbol)
        self._record_stats(
            intent, name, state, won=won, cost=cost, refund=refund, total_win=total_win,
            free_spin_used=free_spin_used, hourly=hourly, dachs_seen=dachs_seen,
            all_in=bet.all_in, wild_card=substitution.wild_card, losses=streak.state.losses,
        )
        if hourly:
            intent.put(
                keys.jackpot_key(jackpot.hour_id(now)),
                {"username": name, "claimed_at": now},
                spin_cfg.hourly_jackpot_claim_ttl_seconds,
            )
        receipt = await self._ledger.commit(intent)
        balance = receipt.balance(name)

        # Step 8: Achievements
        events = self._events_for(
            original, grid, now, won=won, points=points, free_spin_used=free_spin_used,
            all_in=bet.all_in, wild_card=substitution.wild_card, refund=refund,
            hourly=hourly, zero_hero=won and points > 0 and state.balance - cost == 0,
            streak_bonuses=streak.bonuses,
        )
        unlocked = await self._achievements.process(
            name,
            receipt.stats_for(name),
            events,
            balance=balance,
            triple_symbol=grid[0] if is_triple(grid) else None,
        )

        result = SpinResult(
            username=name,
            grid=grid,
            original_grid=original,
            points=points,
            message_key=evaluation.message_key,
            free_spins_awarded=evaluation.free_spins,
            balance=balance,
            cost=cost,
            multiplier=multiplier,
            streak_multiplier=streak.multiplier if won else 1.0,
            bonuses=tuple(bonuses),
            buff_labels=tuple(consumption.labels),
            achievements=unlocked,
            free_spin_used=free_spin_used,
            free_spins_remaining=pool_after.total,
            insurance_refund=refund,
            hourly_jackpot=hourly,
            loss_warning=streak.loss_warning,
            low_balance=balance < spin_cfg.low_balance_warning,
        )

        self.log.info(
            "Spin completed",
            extra={
                "username": name,
                "grid": list(grid),
                "cost": cost,
                "points": points,
                "bonus": total_win - points,
                "refund": refund,
                "balance": balance,
                "free_spin": free_spin_used,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        await self.emit_event(
            SPIN_COMPLETED_EVENT,
            {
                "username": name,
                "grid": list(grid),
                "points": points,
                "total_win": total_win,
                "cost": cost,
                "balance": balance,
                "achievements": list(unlocked),
            },
        )
        return result

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _load_state(self, name: str, now: float) -> _SpinState:
        balance, buffs, streak, free_spins, play_day, claim = await asyncio.gather(
            self._store.read(keys.balance_key(name), 0),
            self._store.read(keys.buffs_key(name), {}),
            self._store.read(keys.streak_key(name), {}),
            self._store.read(keys.free_spins_key(name), {}),
            self._store.read(keys.playday_key(name, utc_day(now)), None),
            self._store.read(keys.jackpot_key(jackpot.hour_id(now)), None),
        )
        for label, result in (("buffs", buffs), ("streak", streak), ("free_spins", free_spins)):
            if result.failed:
                self.log.warning(
                    "Spin state read failed, using default",
                    extra={"username": name, "part": label},
                )
        return _SpinState(
            balance=int(balance.require()),
            buffs=BuffSet.from_document(buffs.value),
            streak=StreakState.from_document(streak.value),
            free_spins=FreeSpinPool.from_document(free_spins.value),
            play_day_seen=play_day.found or play_day.failed,
            # An unreadable claim key counts as claimed; the jackpot is never paid twice.
            jackpot_claimed=claim.found or claim.failed,
        )

    def _hourly_jackpot_due(self, now: float, state: _SpinState) -> bool:
        if state.jackpot_claimed:
            return False
        return jackpot.is_lucky_second(now, self._config.spin.hourly_jackpot_divisor)

    def _build_intent(
        self,
        name: str,
        now: float,
        state: _SpinState,
        account: AccountRecord,
        consumption: BuffConsumption,
        streak: StreakUpdate,
        pool_after: FreeSpinPool,
        *,
        delta: int,
    ) -> WriteIntent:
        cfg = self._config
        intent = WriteIntent(reason="spin").add_delta(name, delta)

        next_buffs = consumption.apply(state.buffs, now, cfg.buffs)
        if not consumption.is_empty or len(next_buffs) != len(state.buffs):
            intent.put(keys.buffs_key(name), next_buffs.to_document())
            changes = durable_changes(state.buffs, next_buffs, cfg.buffs)
            for item_key, value in changes.items():
                intent.mirror_item(name, item_key, value)

        intent.put(keys.streak_key(name), streak.state.to_document(), cfg.streak.ttl_seconds)
        intent.mirror_streak(
            name, {**streak.state.to_document(), "multiplier": streak.multiplier}
        )
        if pool_after != state.free_spins:
            intent.put(keys.free_spins_key(name), pool_after.to_document())
            intent.mirror_item(name, "free_spins", pool_after.to_document())

        intent.put(
            keys.cooldown_key(SPIN_ACTION, name),
            now + cfg.spin.cooldown_seconds,
            cfg.spin.cooldown_seconds,
        )
        intent.put(keys.account_key(name), account.touched(now).to_document())
        if not state.play_day_seen:
            intent.put(keys.playday_key(name, utc_day(now)), 1, cfg.spin.play_day_ttl_seconds)
        return intent

    def _record_stats(
        self,
        intent: WriteIntent,
        name: str,
        state: _SpinState,
        *,
        won: bool,
        cost: int,
        refund: int,
        total_win: int,
        free_spin_used: bool,
        hourly: bool,
        dachs_seen: int,
        all_in: bool,
        wild_card: bool,
        losses: int,
    ) -> None:
        intent.increment_stat(name, "totalSpins")
        if won:
            intent.increment_stat(name, "wins")
            intent.increment_stat(name, "totalWon", total_win)
            intent.max_stat(name, "biggestWin", total_win)
        else:
            intent.increment_stat(name, "losses")
            intent.increment_stat(name, "totalLost", cost - refund)
            intent.max_stat(name, "maxLossStreak", losses)
        if free_spin_used:
            intent.increment_stat(name, "freeSpinsUsed")
        if refund:
            intent.increment_stat(name, "insuranceTriggers")
        if hourly:
            intent.increment_stat(name, "hourlyJackpots")
        intent.increment_stat(name, "totalDachsSeen", dachs_seen)
        if all_in:
            intent.increment_stat(name, "allInSpins")
        if cost >= self._config.spin.high_bet_threshold:
            intent.increment_stat(name, "highBetSpins")
        if wild_card:
            intent.increment_stat(name, "wildCardsUsed")
        if not state.play_day_seen:
            intent.increment_stat(name, "playDays")

    def _events_for(
        self,
        original: Tuple[str, ...],
        grid: Tuple[str, ...],
        now: float,
        *,
        won: bool,
        points: int,
        free_spin_used: bool,
        all_in: bool,
        wild_card: bool,
        refund: int,
        hourly: bool,
        zero_hero: bool,
        streak_bonuses: Tuple[Tuple[str, int], ...],
    ) -> List[str]:
        events = ["first_spin"]
        if won:
            events.append("first_win")
            if free_spin_used:
                events.append("free_spin_win")
            if all_in and points > 0:
                events.append("slots_all_win")
            if wild_card:
                events.append("wild_card_win")
            if zero_hero:
                events.append("zero_hero")

        dachs = self._config.symbols.jackpot_symbol
        dachs_count = sum(1 for s in original if s == dachs)
        if dachs_count:
            events.append("first_dachs")
        if dachs_count == 2:
            events.append("dachs_pair")

        if refund:
            events.append("insurance_save")
        if hourly:
            events.append("hourly_jackpot")
        bonus_keys = {key for key, _ in streak_bonuses}
        if "hot_streak" in bonus_keys:
            events.append("hot_streak")
        if "comeback" in bonus_keys:
            events.append("comeback_king")

        moment = to_utc(now)
        if moment.hour == 0 and moment.minute == 0:
            events.append("perfect_timing")
        return events
