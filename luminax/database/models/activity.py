"""
ActivityEvent: append-only history of everything that granted XP.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from luminax.core.database.base import Base, BigIntPK, IdMixin, UTCDateTime, utcnow
from luminax.database.models.enums import ActivityKind


class ActivityEvent(Base, IdMixin):
    """
    One recorded activity.

    Kind-specific columns:
    - study_session: subject, duration_minutes, notes
    - quiz_result: subject (topic), score, total_questions, quiz_id
    - achievement: achievement_type, title, description
    - quest_completion: quest_id, title

    `(user_id, achievement_type)` is unique so an achievement milestone can
    only be awarded once; other kinds leave achievement_type NULL.
    """

    __tablename__ = "activity_events"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_type", name="uq_activity_events_user_achievement"),
        CheckConstraint("xp_granted >= 0", name="xp_granted_non_negative"),
        Index("ix_activity_events_user_kind_time", "user_id", "kind", "occurred_at"),
        Index("ix_activity_events_occurred_at", "occurred_at"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("user_progress.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    kind: Mapped[ActivityKind] = mapped_column(
        Enum(
            ActivityKind,
            native_enum=False,
            length=32,
            values_callable=lambda kinds: [k.value for k in kinds],
            validate_strings=True,
        ),
        nullable=False,
    )

    xp_granted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    subject: Mapped[Optional[str]] = mapped_column(String(100), doc="Study subject or quiz topic")
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    quiz_id: Mapped[Optional[str]] = mapped_column(String(64))
    score: Mapped[Optional[float]] = mapped_column(Float)
    total_questions: Mapped[Optional[int]] = mapped_column(Integer)

    achievement_type: Mapped[Optional[str]] = mapped_column(String(64))
    title: Mapped[Optional[str]] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text)

    quest_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ActivityEvent id={self.id} user_id={self.user_id!r} "
            f"kind={self.kind.value if self.kind else None} xp={self.xp_granted}>"
        )
