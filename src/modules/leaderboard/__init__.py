"""
Leaderboard Module
==================

Domain: ranked balance snapshot with stale-while-revalidate caching

Services:
- LeaderboardService: snapshot reads, rank lookup, refresh
"""

from .service import LeaderboardEntry, LeaderboardService, LeaderboardSnapshot

__all__ = [
    "LeaderboardEntry",
    "LeaderboardService",
    "LeaderboardSnapshot",
]
