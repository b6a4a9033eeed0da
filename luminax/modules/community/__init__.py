"""
Community Module
================

Services:
- CommunityService: Communities and memberships (leaderboard scopes)
"""

from .service import CommunityService

__all__ = ["CommunityService"]
