"""
Request bodies for the HTTP API.

Only shapes and types are checked here; ranges and lengths are enforced by
the services so every caller gets the same rules.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class StudySessionCreate(_RequestModel):
    subject: str = Field(..., description="What was studied")
    duration_minutes: int = Field(..., description="Session length; 1 XP per minute")
    notes: Optional[str] = None
    occurred_at: Optional[datetime] = Field(
        None, description="When the session happened (timezone-aware), defaults to now"
    )


class QuizResultCreate(_RequestModel):
    topic: str
    score: float = Field(..., description="Percentage in [0, 100]")
    total_questions: int
    xp_earned: Optional[int] = Field(
        None, description="Explicit XP grant; defaults to floor(score / 10) * 10"
    )
    quiz_id: Optional[str] = None
    occurred_at: Optional[datetime] = None


class AchievementCreate(_RequestModel):
    achievement_type: str = Field(..., description="Awarded at most once per user")
    title: str
    xp_reward: int = 0
    description: Optional[str] = None


class QuestCreate(_RequestModel):
    quest_type: str
    title: str
    target_value: int
    xp_reward: int = 0
    expires_at: Optional[datetime] = Field(
        None, description="Defaults to the next UTC midnight"
    )
    description: Optional[str] = None


class QuestProgressUpdate(_RequestModel):
    increment: int = Field(1, description="Positive amount to add")


class CommunityCreate(_RequestModel):
    name: str
    description: Optional[str] = None
