"""
Database models for Luminax.

Importing this package registers every table on `Base.metadata`.

- progress: UserProgress (ledger-owned)
- activity: ActivityEvent (append-only history)
- quest: Quest
- community: Community, CommunityMember
- enums: ActivityKind, QuestMetric
"""

from luminax.core.database.base import Base

from .activity import ActivityEvent
from .community import Community, CommunityMember
from .enums import ActivityKind, QuestMetric
from .progress import UserProgress
from .quest import Quest

__all__ = [
    "Base",
    "ActivityEvent",
    "ActivityKind",
    "Community",
    "CommunityMember",
    "Quest",
    "QuestMetric",
    "UserProgress",
]
