"""
Player account record.

The account document (`account:{name}`) holds everything about a player
except the balance, which lives under its own key and is only written by
the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Mapping, Optional


@dataclass(frozen=True)
class AccountRecord:
    username: str
    disclaimer_accepted_at: Optional[float] = None
    self_banned_at: Optional[float] = None
    leaderboard_hidden: bool = False
    duel_opt_out: bool = False
    prestige_rank: Optional[str] = None
    avatar: Optional[str] = None
    unlocks: FrozenSet[str] = field(default_factory=frozenset)
    created_at: Optional[float] = None
    last_active: Optional[float] = None

    @property
    def disclaimer_accepted(self) -> bool:
        return self.disclaimer_accepted_at is not None

    @property
    def self_banned(self) -> bool:
        return self.self_banned_at is not None

    @property
    def playable(self) -> bool:
        return self.disclaimer_accepted and not self.self_banned

    def has_unlock(self, key: str) -> bool:
        return key in self.unlocks

    def with_unlock(self, key: str) -> "AccountRecord":
        return replace(self, unlocks=self.unlocks | {key})

    def touched(self, now: float) -> "AccountRecord":
        return replace(self, last_active=now)

    def to_document(self) -> Dict[str, Any]:
        return {
            "disclaimer_accepted_at": self.disclaimer_accepted_at,
            "self_banned_at": self.self_banned_at,
            "leaderboard_hidden": self.leaderboard_hidden,
            "duel_opt_out": self.duel_opt_out,
            "prestige_rank": self.prestige_rank,
            "avatar": self.avatar,
            "unlocks": sorted(self.unlocks),
            "created_at": self.created_at,
            "last_active": self.last_active,
        }

    @classmethod
    def from_document(cls, username: str, doc: Optional[Mapping[str, Any]]) -> "AccountRecord":
        if not isinstance(doc, Mapping):
            return cls(username=username)
        return cls(
            username=username,
            disclaimer_accepted_at=doc.get("disclaimer_accepted_at"),
            self_banned_at=doc.get("self_banned_at"),
            leaderboard_hidden=bool(doc.get("leaderboard_hidden", False)),
            duel_opt_out=bool(doc.get("duel_opt_out", False)),
            prestige_rank=doc.get("prestige_rank"),
            avatar=doc.get("avatar"),
            unlocks=frozenset(doc.get("unlocks") or ()),
            created_at=doc.get("created_at"),
            last_active=doc.get("last_active"),
        )


@dataclass(frozen=True)
class PlayerProfile:
    account: AccountRecord
    balance: int
    exists: bool
    stats: Mapping[str, int] = field(default_factory=dict)

    @property
    def username(self) -> str:
        return self.account.username
