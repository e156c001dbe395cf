"""
Symbol Generator.

Weighted symbol draws from the configured weight table plus the separately
gated jackpot symbol.

The cumulative weight table is built once; a draw takes one integer in
[0, total) and resolves it with a binary search, so each symbol is drawn with
probability weight/total. The jackpot symbol is not part of the table: every
grid position first runs an independent Bernoulli check against the jackpot
chance and only falls through to the weighted draw when that check fails.

Randomness comes from an injected `random.Random`; production passes
`random.SystemRandom()`, tests pass a seeded instance.
"""

from __future__ import annotations

import bisect
import random
from itertools import accumulate
from typing import List, Optional, Sequence, Tuple

from src.core.config.game_config import SymbolConfig


class SymbolGenerator:
    def __init__(self, symbols: SymbolConfig, rng: Optional[random.Random] = None) -> None:
        self._config = symbols
        self._rng = rng or random.SystemRandom()
        self._symbols: Tuple[str, ...] = tuple(symbols.weights)
        self._cumulative: Tuple[int, ...] = tuple(accumulate(symbols.weights.values()))
        self._total = self._cumulative[-1]

    @property
    def rng(self) -> random.Random:
        return self._rng

    @property
    def symbols(self) -> Tuple[str, ...]:
        return self._symbols

    @property
    def total_weight(self) -> int:
        return self._total

    def draw(self) -> str:
        """One weighted draw (never the jackpot symbol)."""
        roll = self._rng.randrange(self._total)
        return self._symbols[bisect.bisect_right(self._cumulative, roll)]

    def draw_grid(
        self,
        jackpot_chance: float,
        magnets: Sequence[str] = (),
        reroll_chance: float = 0.0,
        boost_chance: float = 0.0,
    ) -> List[str]:
        """
        Draw a full grid.

        `magnets` are symbol-attracting buffs in precedence order. When any is
        active, each weighted position makes two extra rolls; if both pass,
        the symbol becomes the first magnet target it is not already equal to.
        """
        grid: List[str] = []
        for _ in range(self._config.grid_size):
            if self._rng.random() < jackpot_chance:
                grid.append(self._config.jackpot_symbol)
                continue

            symbol = self.draw()
            if magnets:
                buff_roll = self._rng.random()
                boost_roll = self._rng.random()
                if buff_roll < reroll_chance and boost_roll < boost_chance:
                    for target in magnets:
                        if symbol != target:
                            symbol = target
                            break
            grid.append(symbol)
        return grid
