"""
Achievement detection.

Pure functions over (statistics after the action, unlock set before it).
Nothing here reads storage, pays rewards or looks at the clock, so the
same inputs always produce the same unlocks.

Two kinds of catalog entries exist:

- progressive: `requirement` + `stat`; unlocked once the counter reaches
  the requirement
- event: no requirement; unlocked when the component that observed the
  event (a first spin, a dachs triple, ...) reports its id

Triple collection is tracked as a set of symbol keys. Collecting a triple
reports its own event where the catalog has one (`dachs_triple`,
`diamond_triple`, `star_triple`) plus the set-completion events
`fruit_collector` and `all_triples`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from src.core.config.game_config import AchievementConfig

FRUIT_COLLECTOR = "fruit_collector"
ALL_TRIPLES = "all_triples"


@dataclass(frozen=True)
class AchievementRecord:
    """Per-player unlock state (`achievements:{name}`)."""

    unlocked_at: Mapping[str, float] = field(default_factory=dict)
    triples: FrozenSet[str] = field(default_factory=frozenset)
    pending_rewards: int = 0

    def is_unlocked(self, achievement_id: str) -> bool:
        return achievement_id in self.unlocked_at

    def with_unlocks(self, ids: Iterable[str], now: float, pending: int = 0) -> "AchievementRecord":
        unlocked = dict(self.unlocked_at)
        for achievement_id in ids:
            unlocked.setdefault(achievement_id, now)
        return replace(self, unlocked_at=unlocked, pending_rewards=self.pending_rewards + pending)

    def to_document(self) -> Dict[str, Any]:
        return {
            "unlocked_at": dict(self.unlocked_at),
            "triples": sorted(self.triples),
            "pending_rewards": self.pending_rewards,
        }

    @classmethod
    def from_document(cls, doc: Optional[Mapping[str, Any]]) -> "AchievementRecord":
        if not isinstance(doc, Mapping):
            return cls()
        unlocked = doc.get("unlocked_at") or {}
        return cls(
            unlocked_at={str(k): float(v) for k, v in unlocked.items() if v is not None},
            triples=frozenset(doc.get("triples") or ()),
            pending_rewards=int(doc.get("pending_rewards", 0)),
        )


def collect_triple(
    record: AchievementRecord, symbol: str, config: AchievementConfig
) -> Tuple[AchievementRecord, List[str]]:
    """Mark a triple as collected and return the events it triggers."""
    symbol_key = config.triple_keys.get(symbol)
    if symbol_key is None:
        return record, []

    events: List[str] = []
    triple_event = f"{symbol_key}_triple"
    if triple_event in config.catalog:
        events.append(triple_event)

    triples = record.triples | {symbol_key}
    if all(key in triples for key in config.fruit_keys):
        events.append(FRUIT_COLLECTOR)
    if all(key in triples for key in config.triple_keys.values()):
        events.append(ALL_TRIPLES)
    return replace(record, triples=triples), events


def detect_unlocks(
    stats: Mapping[str, int],
    unlocked: Iterable[str],
    config: AchievementConfig,
    events: Iterable[str] = (),
) -> Tuple[str, ...]:
    """
    Achievement ids newly earned by this state, in catalog order.

    Already-unlocked ids and ids missing from the catalog are ignored, so
    calling this twice with the same inputs is harmless.
    """
    already = set(unlocked)
    reported = set(events)
    earned = []
    for achievement_id, definition in config.catalog.items():
        if achievement_id in already:
            continue
        if definition.is_progressive:
            if int(stats.get(definition.stat, 0)) >= int(definition.requirement):
                earned.append(achievement_id)
        elif achievement_id in reported:
            earned.append(achievement_id)
    return tuple(earned)


def total_reward(ids: Iterable[str], config: AchievementConfig) -> int:
    return sum(config.catalog[i].reward for i in ids if i in config.catalog)


@dataclass(frozen=True)
class AchievementProgress:
    id: str
    name: str
    category: str
    reward: int
    unlocked_at: Optional[float]
    current: Optional[int] = None
    requirement: Optional[int] = None
    hidden: bool = False

    @property
    def unlocked(self) -> bool:
        return self.unlocked_at is not None


def progress_overview(
    record: AchievementRecord, stats: Mapping[str, int], config: AchievementConfig
) -> List[AchievementProgress]:
    """Catalog view for display; locked hidden entries are left out."""
    overview = []
    for achievement_id, definition in config.catalog.items():
        unlocked_at = record.unlocked_at.get(achievement_id)
        if definition.hidden and unlocked_at is None:
            continue
        current = None
        if definition.is_progressive:
            current = min(int(stats.get(definition.stat, 0)), int(definition.requirement))
        overview.append(
            AchievementProgress(
                id=achievement_id,
                name=definition.name,
                category=definition.category,
                reward=definition.reward,
                unlocked_at=unlocked_at,
                current=current,
                requirement=definition.requirement,
                hidden=definition.hidden,
            )
        )
    return overview
