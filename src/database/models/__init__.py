"""
Database Models Package
========================

SQLAlchemy ORM models for the durable mirror, organized by domain.

- Schema-only, no business logic
- Mapped[] syntax with mapped_column()
- Generic JSON columns so the same schema runs on SQLite and PostgreSQL

Domain Organization:
--------------------
- economy: paid items, weekly purchase counters, streak snapshots
- duel: resolved duel history
"""

from .duel import DuelLog
from .economy import PlayerItem, PlayerStreak, PurchaseLimit

__all__ = [
    "DuelLog",
    "PlayerItem",
    "PlayerStreak",
    "PurchaseLimit",
]
