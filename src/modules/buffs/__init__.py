"""
Buffs Module
============

Buff kinds, the per-player buff set, the spin-time resolver and the read
service.
"""

from .models import (
    Buff,
    BuffSet,
    OneShotBuff,
    StackBuff,
    TimedBuff,
    UsesBuff,
    durable_changes,
    is_active,
    symbol_boost_key,
)
from .resolver import BuffConsumption, BuffResolver, GridSubstitution, RollPlan
from .service import BuffService, BuffStatus

__all__ = [
    "Buff",
    "BuffConsumption",
    "BuffResolver",
    "BuffService",
    "BuffSet",
    "BuffStatus",
    "GridSubstitution",
    "OneShotBuff",
    "RollPlan",
    "StackBuff",
    "TimedBuff",
    "UsesBuff",
    "durable_changes",
    "is_active",
    "symbol_boost_key",
]
