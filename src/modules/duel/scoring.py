"""
Duel scoring.

Both grids are classified with the slot tiers (triple > adjacent pair >
lone jackpot symbol > nothing). An equal tier falls back to the sum of the
fixed per-symbol tiebreak values over the whole grid; equal sums are a tie.
Pure and deterministic: the same two grids always give the same result.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from src.modules.duel.models import DuelScore
from src.modules.slots.payout import classify

CHALLENGER = 0
TARGET = 1


def score_grid(grid: Sequence[str], tiebreak: Mapping[str, int], jackpot_symbol: str) -> DuelScore:
    tier, _ = classify(grid, jackpot_symbol)
    return DuelScore(tier=tier, tiebreak_sum=sum(int(tiebreak.get(s, 0)) for s in grid))


def decide_winner(challenger: DuelScore, target: DuelScore) -> Optional[int]:
    """`CHALLENGER`, `TARGET`, or None on an exact tie."""
    if challenger > target:
        return CHALLENGER
    if target > challenger:
        return TARGET
    return None
