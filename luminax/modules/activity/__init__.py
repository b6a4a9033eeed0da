"""
Activity Module
===============

Services:
- ActivityRecorderService: Study sessions, quiz results and achievements,
  each recorded with its XP, streak and quest effects in one transaction
"""

from .recorder_service import ActivityEventRepository, ActivityRecorderService, serialize_event

__all__ = ["ActivityEventRepository", "ActivityRecorderService", "serialize_event"]
