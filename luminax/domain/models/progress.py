"""
Progression rules: level curve, streak state machine and XP grants.

These are the only places the level formula and the streak rules live.
The ledger's atomic SQL update calls `LevelCurve.level_for` with a column
expression, so SQL and Python can never disagree about a level.

Streak transitions (one per activity date)
------------------------------------------
- first ever activity        -> 1
- same day as last activity  -> unchanged
- day after last activity    -> n + 1
- gap of two days or more    -> 1
- date before last activity  -> no-op (backdated activity never rewinds)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Optional

from luminax.domain.models.base import (
    DomainValidationError,
    validate_non_negative,
    validate_positive,
)

DEFAULT_XP_PER_LEVEL = 1000


@dataclass(frozen=True)
class LevelCurve:
    """
    Linear level curve: `level = xp // xp_per_level + 1`.

    >>> LevelCurve().level_for(2500)
    3
    >>> LevelCurve().xp_to_next_level(2500)
    500
    """

    xp_per_level: int = DEFAULT_XP_PER_LEVEL

    def __post_init__(self) -> None:
        validate_positive(self.xp_per_level, "xp_per_level")

    def level_for(self, xp: Any) -> Any:
        """
        Level for an XP total.

        Accepts a plain int or a SQL expression; for expressions the result
        is the equivalent SQL expression.
        """
        if isinstance(xp, int) and not isinstance(xp, bool):
            validate_non_negative(xp, "xp")
        return xp // self.xp_per_level + 1

    def xp_to_next_level(self, xp: int) -> int:
        return self.level_for(xp) * self.xp_per_level - xp

    def level_floor_xp(self, level: int) -> int:
        validate_positive(level, "level")
        return (level - 1) * self.xp_per_level


class StreakChange(str, Enum):
    STARTED = "started"
    CONTINUED = "continued"
    SAME_DAY = "same_day"
    RESET = "reset"
    BACKDATED = "backdated"


@dataclass(frozen=True)
class StreakTransition:
    previous_streak: int
    streak: int
    last_activity_date: date
    change: StreakChange

    @property
    def changed(self) -> bool:
        return self.change not in (StreakChange.SAME_DAY, StreakChange.BACKDATED)


@dataclass(frozen=True)
class StreakState:
    streak: int = 0
    last_activity_date: Optional[date] = None

    def __post_init__(self) -> None:
        validate_non_negative(self.streak, "streak")

    def advance(self, activity_date: date) -> StreakTransition:
        if not isinstance(activity_date, date):
            raise DomainValidationError("activity_date must be a date", field="activity_date")

        last = self.last_activity_date
        if last is None:
            return StreakTransition(self.streak, 1, activity_date, StreakChange.STARTED)

        if activity_date == last:
            return StreakTransition(self.streak, self.streak, last, StreakChange.SAME_DAY)

        if activity_date < last:
            return StreakTransition(self.streak, self.streak, last, StreakChange.BACKDATED)

        if activity_date == last + timedelta(days=1):
            return StreakTransition(
                self.streak, self.streak + 1, activity_date, StreakChange.CONTINUED
            )

        return StreakTransition(self.streak, 1, activity_date, StreakChange.RESET)


def xp_for_study_session(duration_minutes: int) -> int:
    """One XP per minute studied."""
    validate_positive(duration_minutes, "duration_minutes")
    return duration_minutes


def xp_for_quiz(score: float) -> int:
    """
    Default quiz XP: the score rounded down to a multiple of ten.

    >>> xp_for_quiz(85)
    80
    """
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
        raise DomainValidationError(
            f"score must be between 0 and 100, got {score!r}", field="score"
        )
    return int(math.floor(score / 10) * 10)
