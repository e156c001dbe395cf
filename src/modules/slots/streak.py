"""
Streak & Combo Tracker.

Pure state machine over consecutive wins and losses.

On a win
    losses reset, wins increment, the multiplier streak increments.
    New win counts listed in `combo_bonuses` (2/3/4) pay a flat combo bonus.
    Reaching exactly the hot-streak threshold pays the hot-streak bonus;
    otherwise a win after at least `comeback_threshold` losses pays the
    comeback bonus. Either of the two resets both counters.
On a loss
    wins and the multiplier streak reset, losses increment.

The payout multiplier for the n-th consecutive win is
``1.0 + increment * min(n - 1, cap_steps)``, clamped to `ceiling`. It is kept
on its own counter so the hot-streak reset does not also drop the
multiplier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from src.core.config.game_config import StreakConfig


@dataclass(frozen=True)
class StreakState:
    wins: int = 0
    losses: int = 0
    multiplier_streak: int = 0

    @classmethod
    def from_document(cls, doc: Optional[Mapping[str, Any]]) -> "StreakState":
        if not isinstance(doc, Mapping):
            return cls()
        return cls(
            wins=max(0, int(doc.get("wins", 0))),
            losses=max(0, int(doc.get("losses", 0))),
            multiplier_streak=max(0, int(doc.get("multiplier_streak", 0))),
        )

    def to_document(self) -> Dict[str, int]:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "multiplier_streak": self.multiplier_streak,
        }


@dataclass(frozen=True)
class StreakUpdate:
    previous: StreakState
    state: StreakState
    multiplier: float
    bonuses: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    loss_warning: bool = False

    @property
    def bonus_total(self) -> int:
        return sum(amount for _, amount in self.bonuses)

    def has_bonus(self, key: str) -> bool:
        return any(name == key for name, _ in self.bonuses)


class StreakTracker:
    def __init__(self, config: StreakConfig) -> None:
        self._config = config

    def multiplier_for(self, win_streak: int) -> float:
        if win_streak <= 1:
            return 1.0
        steps = min(win_streak - 1, self._config.cap_steps)
        return round(min(self._config.ceiling, 1.0 + self._config.increment * steps), 2)

    def record(self, state: StreakState, won: bool) -> StreakUpdate:
        c = self._config
        if not won:
            losses = state.losses + 1
            return StreakUpdate(
                previous=state,
                state=StreakState(wins=0, losses=losses, multiplier_streak=0),
                multiplier=1.0,
                loss_warning=losses >= c.loss_warning_threshold,
            )

        new_wins = state.wins + 1
        multiplier_streak = state.multiplier_streak + 1
        bonuses: List[Tuple[str, int]] = []

        combo = c.combo_bonuses.get(new_wins)
        if combo:
            bonuses.append(("combo", combo))

        if new_wins == c.hot_streak_threshold:
            bonuses.append(("hot_streak", c.hot_streak_bonus))
            next_state = StreakState(0, 0, multiplier_streak)
        elif state.losses >= c.comeback_threshold:
            bonuses.append(("comeback", c.comeback_bonus))
            next_state = StreakState(0, 0, multiplier_streak)
        else:
            next_state = StreakState(new_wins, 0, multiplier_streak)

        return StreakUpdate(
            previous=state,
            state=next_state,
            multiplier=self.multiplier_for(multiplier_streak),
            bonuses=tuple(bonuses),
        )
