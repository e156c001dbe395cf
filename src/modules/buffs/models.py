"""
Buff instances and the per-player buff set.

Purpose
-------
Model the four buff kinds as a closed tagged union:

- `TimedBuff`   active until `expires_at`
- `UsesBuff`    active while `uses > 0` (and before `expires_at` if set)
- `StackBuff`   timed, carries a `stack` counter clamped to the definition cap
- `OneShotBuff` active until consumed by a qualifying spin, optional payload

Every function that branches on the kind (`is_active`, `buff_to_document`,
`buff_from_document`, `BuffSet.activate`) handles all four variants and
raises on anything else, so adding a kind means touching each of them.

Design Notes
------------
- A player's buffs are one JSON document (`buffs:{name}`), so consuming a buff
  is part of the same ledger write as the balance change it belongs to.
- Expiry is decided at read time by `timeutils.is_expired`; expired entries
  may linger in storage until the next write prunes them but are never
  reported as active.
- `BuffSet` is immutable; every mutation returns a new set.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from src.core.config.game_config import BuffCatalog, BuffDefinition, BuffKind
from src.modules.shared.timeutils import is_expired

SYMBOL_BOOST = "symbol_boost"


@dataclass(frozen=True)
class TimedBuff:
    key: str
    expires_at: float


@dataclass(frozen=True)
class UsesBuff:
    key: str
    uses: int
    expires_at: Optional[float] = None


@dataclass(frozen=True)
class StackBuff:
    key: str
    stack: int
    expires_at: float


@dataclass(frozen=True)
class OneShotBuff:
    key: str
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    expires_at: Optional[float] = None


Buff = Union[TimedBuff, UsesBuff, StackBuff, OneShotBuff]


def symbol_boost_key(symbol: str) -> str:
    return f"{SYMBOL_BOOST}:{symbol}"


def definition_key(buff_key: str) -> str:
    """Catalog key of a buff instance key (`symbol_boost:🍒` -> `symbol_boost`)."""
    return buff_key.split(":", 1)[0]


def kind_of(buff: Buff) -> BuffKind:
    if isinstance(buff, TimedBuff):
        return BuffKind.TIMED
    if isinstance(buff, UsesBuff):
        return BuffKind.USES
    if isinstance(buff, StackBuff):
        return BuffKind.STACK
    if isinstance(buff, OneShotBuff):
        return BuffKind.ONE_SHOT
    raise TypeError(f"unknown buff variant: {type(buff).__name__}")


def is_active(buff: Buff, now: float) -> bool:
    if isinstance(buff, TimedBuff):
        return not is_expired(buff.expires_at, now)
    if isinstance(buff, UsesBuff):
        return buff.uses > 0 and not is_expired(buff.expires_at, now)
    if isinstance(buff, StackBuff):
        return not is_expired(buff.expires_at, now)
    if isinstance(buff, OneShotBuff):
        return not is_expired(buff.expires_at, now)
    raise TypeError(f"unknown buff variant: {type(buff).__name__}")


def buff_to_document(buff: Buff) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"kind": kind_of(buff).value}
    if isinstance(buff, TimedBuff):
        doc["expires_at"] = buff.expires_at
    elif isinstance(buff, UsesBuff):
        doc.update(uses=buff.uses, expires_at=buff.expires_at)
    elif isinstance(buff, StackBuff):
        doc.update(stack=buff.stack, expires_at=buff.expires_at)
    elif isinstance(buff, OneShotBuff):
        doc.update(data=dict(buff.data), expires_at=buff.expires_at)
    return doc


def buff_from_document(key: str, doc: Mapping[str, Any]) -> Buff:
    """
    Raises:
        ValueError: If the document has an unknown kind or missing fields
    """
    try:
        kind = BuffKind(doc.get("kind"))
    except ValueError as exc:
        raise ValueError(f"buff {key!r}: unknown kind {doc.get('kind')!r}") from exc

    expires_at = doc.get("expires_at")
    expires = float(expires_at) if expires_at is not None else None

    if kind is BuffKind.TIMED:
        if expires is None:
            raise ValueError(f"buff {key!r}: timed buff without expiry")
        return TimedBuff(key, expires)
    if kind is BuffKind.USES:
        return UsesBuff(key, int(doc.get("uses", 0)), expires)
    if kind is BuffKind.STACK:
        if expires is None:
            raise ValueError(f"buff {key!r}: stack buff without expiry")
        return StackBuff(key, int(doc.get("stack", 0)), expires)
    if kind is BuffKind.ONE_SHOT:
        return OneShotBuff(key, MappingProxyType(dict(doc.get("data") or {})), expires)
    raise ValueError(f"buff {key!r}: unhandled kind {kind}")


class BuffSet(Mapping[str, Buff]):
    """Immutable mapping of buff key to buff instance for one player."""

    def __init__(self, buffs: Optional[Mapping[str, Buff]] = None) -> None:
        self._buffs: Dict[str, Buff] = dict(buffs or {})

    # Mapping protocol
    def __getitem__(self, key: str) -> Buff:
        return self._buffs[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._buffs)

    def __len__(self) -> int:
        return len(self._buffs)

    def __repr__(self) -> str:
        return f"BuffSet({sorted(self._buffs)})"

    # ------------------------------------------------------------------ #
    # Serialization
    # ------------------------------------------------------------------ #

    @classmethod
    def from_document(cls, doc: Optional[Mapping[str, Any]]) -> "BuffSet":
        """Build a set from storage, skipping entries that do not parse."""
        buffs: Dict[str, Buff] = {}
        if isinstance(doc, Mapping):
            for key, entry in doc.items():
                if not isinstance(entry, Mapping):
                    continue
                try:
                    buffs[key] = buff_from_document(key, entry)
                except (TypeError, ValueError):
                    continue
        return cls(buffs)

    def to_document(self) -> Dict[str, Any]:
        return {key: buff_to_document(buff) for key, buff in self._buffs.items()}

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def active(self, key: str, now: float) -> Optional[Buff]:
        buff = self._buffs.get(key)
        if buff is None or not is_active(buff, now):
            return None
        return buff

    def has(self, key: str, now: float) -> bool:
        return self.active(key, now) is not None

    def active_keys(self, now: float) -> list[str]:
        return sorted(key for key, buff in self._buffs.items() if is_active(buff, now))

    # ------------------------------------------------------------------ #
    # Mutations (return new sets)
    # ------------------------------------------------------------------ #

    def with_buff(self, buff: Buff) -> "BuffSet":
        buffs = dict(self._buffs)
        buffs[buff.key] = buff
        return BuffSet(buffs)

    def without(self, key: str) -> "BuffSet":
        buffs = dict(self._buffs)
        buffs.pop(key, None)
        return BuffSet(buffs)

    def pruned(self, now: float) -> "BuffSet":
        return BuffSet({k: b for k, b in self._buffs.items() if is_active(b, now)})

    def activate(
        self,
        definition: BuffDefinition,
        now: float,
        *,
        key: Optional[str] = None,
        uses: Optional[int] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> "BuffSet":
        """
        Create or refresh a buff from its catalog definition.

        Timed, stack and one-shot buffs replace an existing instance. Uses
        buffs replace too, unless the definition is `additive`, in which case
        the new uses are added to the remaining ones.
        """
        buff_key = key or definition.key
        expires_at = now + definition.duration_seconds if definition.duration_seconds else None
        kind = definition.kind

        if kind is BuffKind.TIMED:
            buff: Buff = TimedBuff(buff_key, expires_at)  # type: ignore[arg-type]
        elif kind is BuffKind.USES:
            granted = uses if uses is not None else int(definition.uses or 0)
            current = self.active(buff_key, now)
            if definition.param("additive", False) and isinstance(current, UsesBuff):
                buff = replace(current, uses=current.uses + granted)
            else:
                buff = UsesBuff(buff_key, granted, expires_at)
        elif kind is BuffKind.STACK:
            buff = StackBuff(buff_key, 0, expires_at)  # type: ignore[arg-type]
        elif kind is BuffKind.ONE_SHOT:
            buff = OneShotBuff(buff_key, MappingProxyType(dict(data or {})), expires_at)
        else:
            raise ValueError(f"unhandled buff kind {kind}")
        return self.with_buff(buff)


def durable_changes(
    before: BuffSet, after: BuffSet, catalog: BuffCatalog
) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    Mirror entries for every durable buff that differs between two sets.

    Keys are `buff:{buff key}`; a buff that is gone maps to None.
    """
    changes: Dict[str, Optional[Dict[str, Any]]] = {}
    for key in sorted(set(before) | set(after)):
        definition = catalog.definitions.get(definition_key(key))
        if definition is None or not definition.durable:
            continue
        old = buff_to_document(before[key]) if key in before else None
        new = buff_to_document(after[key]) if key in after else None
        if old != new:
            changes[f"buff:{key}"] = new
    return changes
