"""
Payout Evaluator.

Classifies a 3-symbol grid and computes its base payout and free-spin award.

Evaluation order
----------------
1. Free-spin symbol: a triple awards `free_spins_triple`, an adjacent pair
   awards `free_spins_pair`. Free spins are recorded even when a jackpot
   outcome below also pays.
2. Jackpot symbol by count anywhere on the grid: 3 / 2 / 1 pay the
   triple / pair / single jackpot tier.
3. Free spins without a jackpot pay no currency.
4. Triple of any other symbol: the triple table.
5. Adjacent pair (positions 0-1 or 1-2, third symbol different): the pair
   table. Matching outer symbols (0 and 2) do not form a pair.
6. Anything else is a loss.

Points are multiplied by the bet multiplier; free spins are not (they are
stored with the multiplier of the spin that earned them).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Sequence, Tuple

from src.core.config.game_config import PayoutConfig, SymbolConfig


class Tier(IntEnum):
    NONE = 0
    SINGLE = 1
    PAIR = 2
    TRIPLE = 3


@dataclass(frozen=True)
class GridEvaluation:
    tier: Tier
    symbol: Optional[str]
    points: int
    free_spins: int
    message_key: str
    jackpot_count: int = 0

    @property
    def is_win(self) -> bool:
        return self.points > 0 or self.free_spins > 0


def is_triple(grid: Sequence[str]) -> bool:
    return grid[0] == grid[1] == grid[2]


def adjacent_pair(grid: Sequence[str]) -> Optional[str]:
    """Symbol of an adjacent (0-1 or 1-2) pair that is not a triple."""
    if is_triple(grid):
        return None
    if grid[0] == grid[1]:
        return grid[0]
    if grid[1] == grid[2]:
        return grid[1]
    return None


def any_pair(grid: Sequence[str]) -> Optional[Tuple[int, int]]:
    """Positions of any matching pair, including the outer 0-2 pair."""
    for first, second in ((0, 1), (1, 2), (0, 2)):
        if grid[first] == grid[second]:
            return first, second
    return None


def classify(grid: Sequence[str], jackpot_symbol: str) -> Tuple[Tier, Optional[str]]:
    """
    Tier and deciding symbol of a grid, independent of payout tables.

    Triple beats adjacent pair beats a lone jackpot symbol beats nothing.
    """
    if is_triple(grid):
        return Tier.TRIPLE, grid[0]
    pair = adjacent_pair(grid)
    if pair is not None:
        return Tier.PAIR, pair
    if jackpot_symbol in grid:
        return Tier.SINGLE, jackpot_symbol
    return Tier.NONE, None


class PayoutEvaluator:
    def __init__(self, payouts: PayoutConfig, symbols: SymbolConfig) -> None:
        self._payouts = payouts
        self._symbols = symbols

    def free_spins_for(self, grid: Sequence[str]) -> int:
        free_symbol = self._symbols.free_spin_symbol
        if is_triple(grid) and grid[0] == free_symbol:
            return self._payouts.free_spins_triple
        if adjacent_pair(grid) == free_symbol:
            return self._payouts.free_spins_pair
        return 0

    def evaluate(self, grid: Sequence[str], multiplier: int = 1) -> GridEvaluation:
        if len(grid) != self._symbols.grid_size:
            raise ValueError(f"expected {self._symbols.grid_size} symbols, got {len(grid)}")
        if multiplier < 1:
            raise ValueError(f"bet multiplier must be >= 1, got {multiplier}")

        p = self._payouts
        jackpot = self._symbols.jackpot_symbol
        free_spins = self.free_spins_for(grid)
        jackpot_count = sum(1 for symbol in grid if symbol == jackpot)

        if jackpot_count:
            tier, base, key = {
                3: (Tier.TRIPLE, p.jackpot_triple, "jackpot_triple"),
                2: (Tier.PAIR, p.jackpot_pair, "jackpot_pair"),
                1: (Tier.SINGLE, p.jackpot_single, "jackpot_single"),
            }[jackpot_count]
            return GridEvaluation(tier, jackpot, base * multiplier, free_spins, key, jackpot_count)

        if free_spins:
            tier = Tier.TRIPLE if is_triple(grid) else Tier.PAIR
            key = "free_spins_triple" if tier is Tier.TRIPLE else "free_spins_pair"
            return GridEvaluation(tier, self._symbols.free_spin_symbol, 0, free_spins, key)

        if is_triple(grid):
            base = p.triple.get(grid[0], p.default_triple)
            return GridEvaluation(Tier.TRIPLE, grid[0], base * multiplier, 0, "triple")

        pair = adjacent_pair(grid)
        if pair is not None:
            base = p.pair.get(pair, p.default_pair)
            return GridEvaluation(Tier.PAIR, pair, base * multiplier, 0, "pair")

        return GridEvaluation(Tier.NONE, None, 0, 0, "loss")
