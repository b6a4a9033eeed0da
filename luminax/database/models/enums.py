"""
Database model enums.

Declarative schema helpers; services reference them for filtering.
"""

from __future__ import annotations

import enum


class ActivityKind(str, enum.Enum):
    """Kinds of append-only activity events."""

    STUDY_SESSION = "study_session"
    QUIZ_RESULT = "quiz_result"
    ACHIEVEMENT = "achievement"
    QUEST_COMPLETION = "quest_completion"


class QuestMetric(str, enum.Enum):
    """How an activity event advances a matching quest."""

    COUNT = "count"
    DURATION_MINUTES = "duration_minutes"
    XP_GRANTED = "xp_granted"
    SCORE = "score"
