"""
Account Module
==============

Services:
- AccountService: Data export and account deletion
"""

from .service import AccountService

__all__ = ["AccountService"]
