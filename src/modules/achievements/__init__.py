"""
Achievements Module
===================

Pure unlock detection plus the service that records unlocks and pays
rewards.
"""

from .engine import (
    AchievementProgress,
    AchievementRecord,
    collect_triple,
    detect_unlocks,
    progress_overview,
    total_reward,
)
from .repository import AchievementRepository
from .service import AchievementService

__all__ = [
    "AchievementProgress",
    "AchievementRecord",
    "AchievementRepository",
    "AchievementService",
    "collect_triple",
    "detect_unlocks",
    "progress_overview",
    "total_reward",
]
