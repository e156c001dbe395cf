"""Durable mirror of economy fields: paid items, weekly counters, streaks."""

from .player_item import PlayerItem
from .player_streak import PlayerStreak
from .purchase_limit import PurchaseLimit

__all__ = ["PlayerItem", "PlayerStreak", "PurchaseLimit"]
