"""
Duel Module
===========

Two-player, buff-free spin contests for a shared stake.

Exports:
- DuelCoordinator: create / accept / decline / cancel with lazy expiry
- DuelChallenge / DuelOutcome / DuelScore / DuelStatus: value objects
- score_grid / decide_winner: deterministic scoring
"""

from .coordinator import DuelCoordinator
from .models import DuelChallenge, DuelOutcome, DuelScore, DuelStatus
from .repository import DuelRepository
from .scoring import decide_winner, score_grid

__all__ = [
    "DuelChallenge",
    "DuelCoordinator",
    "DuelOutcome",
    "DuelRepository",
    "DuelScore",
    "DuelStatus",
    "decide_winner",
    "score_grid",
]
