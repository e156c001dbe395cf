"""
Economy Module
==============

Balance ledger, free-spin pool and the durable SQL mirror.

Exports:
- EconomyLedger / WriteIntent / LedgerReceipt: the single balance writer
- DurableMirror / MirrorRecord: relational copy of double-spend fields
- FreeSpinPool: per-player free spins by multiplier
"""

from .free_spins import FreeSpinPool
from .ledger import EconomyLedger, LedgerReceipt, LimitClaim, StatChanges, WriteIntent
from .mirror import DurableMirror, LimitSnapshot, MirrorRecord

__all__ = [
    "DurableMirror",
    "EconomyLedger",
    "FreeSpinPool",
    "LedgerReceipt",
    "LimitClaim",
    "LimitSnapshot",
    "MirrorRecord",
    "StatChanges",
    "WriteIntent",
]
