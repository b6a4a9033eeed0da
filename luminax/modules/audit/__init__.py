"""
Audit Module
============

Consumers:
- ProgressAuditConsumer: audit log lines for level-ups, quest completions,
  achievements and account deletions
"""

from .consumer import ProgressAuditConsumer

__all__ = ["ProgressAuditConsumer"]
