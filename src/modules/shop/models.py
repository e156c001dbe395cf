"""
Shop results and the wheel of fortune.

`spin_wheel` is a pure function of the injected random source so that the
prize table can be tested with a seeded generator.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Tuple

from src.core.config.game_config import ShopItem, WheelConfig


@dataclass(frozen=True)
class WheelOutcome:
    label: str
    prize: int
    jackpot: bool = False


def spin_wheel(config: WheelConfig, rng: random.Random) -> WheelOutcome:
    """
    One wheel spin. A percentage roll picks the band; inside the lowest band
    a second roll decides between the 5x dachs jackpot and the dachs prize.
    """
    roll = rng.random() * 100
    if roll < config.jackpot_threshold:
        if rng.random() < config.jackpot_chance:
            return WheelOutcome("dachs_jackpot", config.jackpot_prize, jackpot=True)
        return WheelOutcome("dachs", config.dachs_prize)
    if roll < config.diamond_threshold:
        return WheelOutcome("diamond", config.diamond_prize)
    if roll < config.gold_threshold:
        return WheelOutcome("gold", config.gold_prize)
    if roll < config.star_threshold:
        return WheelOutcome("star", config.star_prize)
    return WheelOutcome("nothing", 0)


@dataclass(frozen=True)
class PurchaseResult:
    username: str
    item: ShopItem
    balance: int
    price: int
    credited: int = 0
    free_spins: int = 0
    granted: Optional[ShopItem] = None
    wheel: Optional[WheelOutcome] = None
    peek_wins: Optional[bool] = None
    refunded: bool = False
    achievements: Tuple[str, ...] = ()

    @property
    def net(self) -> int:
        """Balance change of the purchase as a whole."""
        if self.refunded:
            return 0
        return self.credited - self.price
