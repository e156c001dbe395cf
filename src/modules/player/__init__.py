"""
Player Module
=============

Account lifecycle and the playability gate.

Services
--------
- PlayerService: disclaimer, self-ban, visibility and duel opt-out flags
- AccountRepository: account and balance reads without ghost creation
"""

from .models import AccountRecord, PlayerProfile
from .repository import AccountRepository
from .service import PlayerService

__all__ = [
    "AccountRecord",
    "AccountRepository",
    "PlayerProfile",
    "PlayerService",
]
