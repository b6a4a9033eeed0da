"""
Quest: per-user expiring goal with a one-time XP reward.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from luminax.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime


class Quest(Base, IdMixin, TimestampMixin):
    """
    Once `completed` is true, `current_value` and `completed` are frozen.
    Quests are kept after expiry for history.
    """

    __tablename__ = "quests"
    __table_args__ = (
        CheckConstraint("target_value > 0", name="target_positive"),
        CheckConstraint("current_value >= 0", name="current_non_negative"),
        CheckConstraint("xp_reward >= 0", name="reward_non_negative"),
        Index("ix_quests_user_active", "user_id", "completed", "expires_at"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("user_progress.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quest_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Quest id={self.id} user_id={self.user_id!r} type={self.quest_type!r} "
            f"{self.current_value}/{self.target_value} completed={self.completed}>"
        )
