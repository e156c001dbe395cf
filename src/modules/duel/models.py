"""
Duel value objects.

A challenge lives under `duel:{challenger}` from creation until it is
accepted, declined, cancelled or observed stale. Expiry is decided by
comparing `created_at` with the response window whenever a duel command
reads the challenge; nothing times challenges out in the background.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from src.modules.shared import keys
from src.modules.slots.payout import Tier


class DuelStatus(str, Enum):
    CREATED = "created"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DuelChallenge:
    challenger: str
    target: str
    amount: int
    created_at: float

    def age(self, now: float) -> float:
        return max(0.0, now - self.created_at)

    def is_expired(self, now: float, window_seconds: int) -> bool:
        return self.age(now) > window_seconds

    @property
    def idempotency_key(self) -> str:
        """Resolution key; one challenge can only ever be resolved once."""
        return f"duel:{self.challenger}:{int(self.created_at * 1000)}"

    def to_document(self) -> Dict[str, Any]:
        return {
            "challenger": self.challenger,
            "target": self.target,
            "amount": self.amount,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: Optional[Mapping[str, Any]]) -> Optional["DuelChallenge"]:
        if not isinstance(doc, Mapping):
            return None
        try:
            return cls(
                challenger=keys.normalize(str(doc["challenger"])),
                target=keys.normalize(str(doc["target"])),
                amount=int(doc["amount"]),
                created_at=float(doc["created_at"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True, order=True)
class DuelScore:
    """Tier first, tiebreak sum second; comparison follows that order."""

    tier: Tier
    tiebreak_sum: int

    @property
    def value(self) -> int:
        """Single integer for logs and the durable duel record."""
        return int(self.tier) * 10_000 + self.tiebreak_sum


@dataclass(frozen=True)
class DuelOutcome:
    challenge: DuelChallenge
    challenger_grid: Tuple[str, ...]
    target_grid: Tuple[str, ...]
    challenger_score: DuelScore
    target_score: DuelScore
    winner: Optional[str]
    challenger_balance: int
    target_balance: int
    achievements: Mapping[str, Tuple[str, ...]]
    status: DuelStatus = DuelStatus.RESOLVED

    @property
    def is_tie(self) -> bool:
        return self.winner is None

    @property
    def loser(self) -> Optional[str]:
        if self.winner is None:
            return None
        c = self.challenge
        return c.target if self.winner == c.challenger else c.challenger

    @property
    def pot(self) -> int:
        return self.challenge.amount * 2
