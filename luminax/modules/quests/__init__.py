"""
Quests Module
=============

Services:
- QuestTrackerService: Expiring per-user goals with one-time XP rewards
"""

from .service import ActivityRule, QuestRepository, QuestTrackerService, QuestUpdate

__all__ = ["ActivityRule", "QuestRepository", "QuestTrackerService", "QuestUpdate"]
