"""
Leaderboard Module
==================

Services:
- RankingService: All-time, weekly, achievement and community-scoped boards
"""

from .service import RankingService, assign_competition_ranks

__all__ = ["RankingService", "assign_competition_ranks"]
