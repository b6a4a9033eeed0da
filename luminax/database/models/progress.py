"""
UserProgress: one row per learner, owned by the progress ledger.
Schema only.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from luminax.core.database.base import Base, TimestampMixin


class UserProgress(Base, TimestampMixin):
    """
    Cumulative XP, derived level and streak for one user.

    - `xp` only grows; every change is an atomic increment
    - `level` is always derived from `xp` by the level curve
    - `streak` counts consecutive calendar days with qualifying activity
    """

    __tablename__ = "user_progress"
    __table_args__ = (
        CheckConstraint("xp >= 0", name="xp_non_negative"),
        CheckConstraint("level >= 1", name="level_positive"),
        CheckConstraint("streak >= 0", name="streak_non_negative"),
        Index("ix_user_progress_xp_user", "xp", "user_id"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        doc="Opaque identity from the identity provider",
    )

    username: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Display name, refreshed from identity on writes",
    )

    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<UserProgress user_id={self.user_id!r} xp={self.xp} "
            f"level={self.level} streak={self.streak}>"
        )
