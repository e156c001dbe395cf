"""
Free-spin pool.

Free spins are stored per player as ``{multiplier: count}`` (JSON object keys
are strings). They are spent lowest multiplier first and each spent spin
plays at the multiplier it was earned with.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple


class FreeSpinPool:
    def __init__(self, entries: Optional[Mapping[int, int]] = None) -> None:
        self._entries: Dict[int, int] = {
            int(m): int(c) for m, c in (entries or {}).items() if int(m) > 0 and int(c) > 0
        }

    @classmethod
    def from_document(cls, doc: Any) -> "FreeSpinPool":
        """Accepts the mapping form and the older ``[{multiplier, count}]`` list form."""
        entries: Dict[int, int] = {}
        try:
            if isinstance(doc, Mapping):
                for multiplier, count in doc.items():
                    entries[int(multiplier)] = entries.get(int(multiplier), 0) + int(count)
            elif isinstance(doc, list):
                for entry in doc:
                    if isinstance(entry, Mapping):
                        multiplier = int(entry.get("multiplier", 0))
                        entries[multiplier] = entries.get(multiplier, 0) + int(entry.get("count", 0))
        except (TypeError, ValueError):
            return cls()
        return cls(entries)

    def to_document(self) -> Dict[str, int]:
        return {str(m): c for m, c in sorted(self._entries.items())}

    @property
    def total(self) -> int:
        return sum(self._entries.values())

    def __bool__(self) -> bool:
        return self.total > 0

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FreeSpinPool) and other._entries == self._entries

    def __repr__(self) -> str:
        return f"FreeSpinPool({self.to_document()})"

    def added(self, count: int, multiplier: int) -> "FreeSpinPool":
        if count <= 0 or multiplier <= 0:
            return self
        entries = dict(self._entries)
        entries[multiplier] = entries.get(multiplier, 0) + count
        return FreeSpinPool(entries)

    def taken(self) -> Tuple["FreeSpinPool", Optional[int]]:
        """Spend one spin; returns the new pool and its multiplier (None if empty)."""
        if not self._entries:
            return self, None
        multiplier = min(self._entries)
        entries = dict(self._entries)
        entries[multiplier] -= 1
        if entries[multiplier] <= 0:
            del entries[multiplier]
        return FreeSpinPool(entries), multiplier
