"""
Progress Module
===============

Services:
- ProgressLedgerService: XP, level and streak for each user (sole writer of
  user_progress)
"""

from .ledger_service import ProgressLedgerService, UserProgressRepository

__all__ = ["ProgressLedgerService", "UserProgressRepository"]
