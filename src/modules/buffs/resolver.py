"""
Buff Resolver.

Purpose
-------
Apply a player's active buffs to one pending spin in a fixed precedence and
collect what they consumed, so the consumption can be persisted in the same
ledger write as the balance change.

Precedence
----------
1. Cost      happy hour scales the stake of paid spins below a threshold.
2. Pre-roll  a stored peek grid replaces the draw entirely; otherwise lucky
             charm, dachs locator and rage mode scale the jackpot chance,
             star magnet and diamond rush attract their symbols.
3. Grid      guaranteed pair, then wild card, rewrite the drawn grid before
             evaluation. Neither ever places the jackpot symbol.
4. Payout    symbol boosts act on the base payout; win multiplier, jackpot
             booster, golden hour and profit doubler act after the streak
             stage.
5. Outcome   rage mode stacks on a loss; insurance refunds a total loss.

Design Notes
------------
- The resolver never writes. Every method that uses something up records it
  on the `BuffConsumption` passed in; `BuffConsumption.apply` produces the
  next `BuffSet`.
- Timed buffs are never consumed; they simply expire.
- Every activity check goes through `BuffSet.active`, i.e. an expiry
  comparison at read time.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Set, Tuple

from src.core.config.game_config import BuffCatalog, SymbolConfig
from src.modules.buffs.models import (
    BuffSet,
    OneShotBuff,
    StackBuff,
    UsesBuff,
    symbol_boost_key,
)
from src.modules.slots.payout import GridEvaluation, Tier, any_pair
from src.modules.slots.symbols import SymbolGenerator

HAPPY_HOUR = "happy_hour"
LUCKY_CHARM = "lucky_charm"
GOLDEN_HOUR = "golden_hour"
STAR_MAGNET = "star_magnet"
DIAMOND_RUSH = "diamond_rush"
PROFIT_DOUBLER = "profit_doubler"
JACKPOT_BOOSTER = "jackpot_booster"
DACHS_LOCATOR = "dachs_locator"
RAGE_MODE = "rage_mode"
INSURANCE = "insurance"
WIN_MULTIPLIER = "win_multiplier"
GUARANTEED_PAIR = "guaranteed_pair"
WILD_CARD = "wild_card"
PEEK = "peek"

MAGNET_PRECEDENCE = (STAR_MAGNET, DIAMOND_RUSH)


@dataclass
class BuffConsumption:
    """What one action used up; applied to the BuffSet at write time."""

    one_shots: Set[str] = field(default_factory=set)
    uses: Dict[str, int] = field(default_factory=dict)
    stack_increments: Dict[str, int] = field(default_factory=dict)
    labels: List[str] = field(default_factory=list)

    def consume_one_shot(self, key: str) -> None:
        self.one_shots.add(key)

    def use(self, key: str, amount: int = 1) -> None:
        self.uses[key] = self.uses.get(key, 0) + amount

    def add_stack(self, key: str, amount: int) -> None:
        self.stack_increments[key] = self.stack_increments.get(key, 0) + amount

    @property
    def is_empty(self) -> bool:
        return not (self.one_shots or self.uses or self.stack_increments)

    def apply(self, buffs: BuffSet, now: float, catalog: BuffCatalog) -> BuffSet:
        """Next buff set: consumption applied, expired entries dropped."""
        result = buffs
        for key in self.one_shots:
            result = result.without(key)

        for key, amount in self.uses.items():
            buff = result.active(key, now)
            if not isinstance(buff, UsesBuff):
                continue
            remaining = buff.uses - amount
            result = result.with_buff(replace(buff, uses=remaining)) if remaining > 0 else result.without(key)

        for key, amount in self.stack_increments.items():
            buff = result.active(key, now)
            if not isinstance(buff, StackBuff):
                continue
            cap = catalog[key].stack_cap or buff.stack + amount
            result = result.with_buff(replace(buff, stack=min(buff.stack + amount, cap)))

        return result.pruned(now)


@dataclass(frozen=True)
class RollPlan:
    jackpot_chance: float
    magnets: Tuple[str, ...] = ()
    peek_grid: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class GridSubstitution:
    grid: Tuple[str, ...]
    guaranteed_pair: bool = False
    wild_card: bool = False


class BuffResolver:
    def __init__(
        self,
        catalog: BuffCatalog,
        symbols: SymbolConfig,
        generator: SymbolGenerator,
        *,
        happy_hour_threshold: int = 1000,
    ) -> None:
        self._catalog = catalog
        self._symbols = symbols
        self._generator = generator
        self._happy_hour_threshold = happy_hour_threshold

    @property
    def catalog(self) -> BuffCatalog:
        return self._catalog

    # ------------------------------------------------------------------ #
    # 1. Cost
    # ------------------------------------------------------------------ #

    def spin_cost(self, cost: int, buffs: BuffSet, now: float, consumption: BuffConsumption) -> int:
        if cost < self._happy_hour_threshold and buffs.has(HAPPY_HOUR, now):
            factor = float(self._catalog[HAPPY_HOUR].param("cost_factor", 0.5))
            consumption.labels.append("happy_hour")
            return max(1, math.floor(cost * factor))
        return cost

    # ------------------------------------------------------------------ #
    # 2. Pre-roll
    # ------------------------------------------------------------------ #

    def jackpot_chance(self, buffs: BuffSet, now: float) -> float:
        chance = self._symbols.jackpot_chance
        if buffs.has(LUCKY_CHARM, now):
            chance *= float(self._catalog[LUCKY_CHARM].param("jackpot_chance_factor", 2))
        if buffs.has(DACHS_LOCATOR, now):
            chance *= float(self._catalog[DACHS_LOCATOR].param("jackpot_chance_factor", 3))
        rage = buffs.active(RAGE_MODE, now)
        if isinstance(rage, StackBuff):
            chance *= 1 + rage.stack / 100
        return chance

    def magnets(self, buffs: BuffSet, now: float) -> Tuple[str, ...]:
        return tuple(
            str(self._catalog[key].param("target_symbol"))
            for key in MAGNET_PRECEDENCE
            if buffs.has(key, now)
        )

    def plan_roll(self, buffs: BuffSet, now: float, consumption: BuffConsumption) -> RollPlan:
        """
        Decide how the next grid is drawn.

        A dachs locator loses one use per spin while active, whether or not
        the spin is served from a peek grid.
        """
        if buffs.has(DACHS_LOCATOR, now):
            consumption.use(DACHS_LOCATOR)

        peek = buffs.active(PEEK, now)
        if isinstance(peek, OneShotBuff):
            consumption.consume_one_shot(PEEK)
            grid = peek.data.get("grid")
            if isinstance(grid, (list, tuple)) and len(grid) == self._symbols.grid_size:
                return RollPlan(jackpot_chance=0.0, peek_grid=tuple(grid))

        return RollPlan(
            jackpot_chance=self.jackpot_chance(buffs, now),
            magnets=self.magnets(buffs, now),
        )

    def roll(self, plan: RollPlan) -> List[str]:
        if plan.peek_grid is not None:
            return list(plan.peek_grid)
        return self._generator.draw_grid(
            plan.jackpot_chance,
            plan.magnets,
            self._catalog.reroll_chance,
            self._catalog.boost_chance,
        )

    def preview(self, buffs: BuffSet, now: float) -> List[str]:
        """Draw a grid with the player's probability buffs, consuming nothing."""
        return self._generator.draw_grid(
            self.jackpot_chance(buffs, now),
            self.magnets(buffs, now),
            self._catalog.reroll_chance,
            self._catalog.boost_chance,
        )

    # ------------------------------------------------------------------ #
    # 3. Grid substitution
    # ------------------------------------------------------------------ #

    def substitute(
        self,
        grid: Sequence[str],
        buffs: BuffSet,
        now: float,
        consumption: BuffConsumption,
    ) -> GridSubstitution:
        cells = list(grid)
        guaranteed = False
        wild = False

        if buffs.has(GUARANTEED_PAIR, now) and any_pair(cells) is None:
            symbol = self._generator.rng.choice(self._catalog.guaranteed_pair_symbols)
            cells[0] = cells[1] = symbol
            consumption.consume_one_shot(GUARANTEED_PAIR)
            guaranteed = True

        if buffs.has(WILD_CARD, now) and self._apply_wild_card(cells):
            consumption.consume_one_shot(WILD_CARD)
            wild = True

        return GridSubstitution(tuple(cells), guaranteed, wild)

    def _apply_wild_card(self, cells: List[str]) -> bool:
        """
        Turn the grid into the best achievable match without the jackpot
        symbol. Returns False when the card has nothing to do.
        """
        jackpot = self._symbols.jackpot_symbol
        if cells[0] == cells[1] == cells[2]:
            return False

        pair = any_pair(cells)
        if pair is not None:
            symbol = cells[pair[0]]
            if symbol == jackpot:
                return False
            missing = ({0, 1, 2} - set(pair)).pop()
            cells[missing] = symbol
            return True

        values = self._catalog.wild_values
        candidates = [(values.get(s, 0), -i, s) for i, s in enumerate(cells) if s != jackpot]
        if not candidates:
            return False
        _, neg_index, best = max(candidates)
        index = -neg_index
        if index == 1:
            cells[0] = best
        else:
            cells[1] = best
        return True

    # ------------------------------------------------------------------ #
    # 4. Payout
    # ------------------------------------------------------------------ #

    def symbol_boost(
        self,
        points: int,
        grid: Sequence[str],
        buffs: BuffSet,
        now: float,
        consumption: BuffConsumption,
    ) -> int:
        """Double a paying grid once if any matched symbol has a boost; every matched boost is used."""
        if points <= 0:
            return points
        matched = set()
        if grid[0] == grid[1]:
            matched.add(grid[0])
        if grid[1] == grid[2]:
            matched.add(grid[1])
        if grid[0] == grid[2]:
            matched.add(grid[0])

        boosted = False
        for symbol in matched:
            key = symbol_boost_key(symbol)
            if buffs.has(key, now):
                consumption.consume_one_shot(key)
                boosted = True
        if not boosted:
            return points
        consumption.labels.append("symbol_boost")
        factor = float(self._catalog["symbol_boost"].param("payout_factor", 2))
        return math.floor(points * factor)

    def payout_multipliers(
        self,
        points: int,
        evaluation: GridEvaluation,
        buffs: BuffSet,
        now: float,
        consumption: BuffConsumption,
    ) -> int:
        if points <= 0:
            return points

        if buffs.has(WIN_MULTIPLIER, now):
            points = math.floor(points * float(self._catalog[WIN_MULTIPLIER].param("payout_factor", 2)))
            consumption.consume_one_shot(WIN_MULTIPLIER)
            consumption.labels.append("win_multiplier")

        if evaluation.tier is Tier.TRIPLE and buffs.has(JACKPOT_BOOSTER, now):
            points = math.floor(points * float(self._catalog[JACKPOT_BOOSTER].param("payout_factor", 1.25)))
            consumption.labels.append("jackpot_booster")

        if buffs.has(GOLDEN_HOUR, now):
            points = math.floor(points * float(self._catalog[GOLDEN_HOUR].param("payout_factor", 1.3)))
            consumption.labels.append("golden_hour")

        doubler = self._catalog[PROFIT_DOUBLER]
        if buffs.has(PROFIT_DOUBLER, now) and points > int(doubler.param("min_points", 50)):
            points = math.floor(points * float(doubler.param("payout_factor", 2)))
            consumption.labels.append("profit_doubler")

        return points

    # ------------------------------------------------------------------ #
    # 5. Outcome
    # ------------------------------------------------------------------ #

    def record_outcome(self, won: bool, buffs: BuffSet, now: float, consumption: BuffConsumption) -> None:
        """Rage mode gains stacks on every loss; wins leave them untouched."""
        if not won and buffs.has(RAGE_MODE, now):
            consumption.add_stack(RAGE_MODE, int(self._catalog[RAGE_MODE].param("stack_per_loss", 5)))

    def insurance_refund(
        self,
        cost: int,
        buffs: BuffSet,
        now: float,
        consumption: BuffConsumption,
        default_rate: float = 0.5,
    ) -> int:
        """Refund part of the stake of a total loss if insurance uses remain."""
        if cost <= 0 or not buffs.has(INSURANCE, now):
            return 0
        rate = float(self._catalog[INSURANCE].param("refund_rate", default_rate))
        consumption.use(INSURANCE)
        consumption.labels.append("insurance")
        return math.floor(cost * rate)
