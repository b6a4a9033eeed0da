"""Pure progression rules (no I/O)."""

from .base import (
    DomainEvent,
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
    validate_range,
)
from .progress import (
    DEFAULT_XP_PER_LEVEL,
    LevelCurve,
    StreakChange,
    StreakState,
    StreakTransition,
    xp_for_quiz,
    xp_for_study_session,
)
from .quest import (
    QuestAdvance,
    QuestAlreadyCompletedError,
    QuestProgress,
    is_expired,
    next_utc_midnight,
)

__all__ = [
    "DomainEvent",
    "DomainValidationError",
    "validate_positive",
    "validate_non_negative",
    "validate_range",
    "validate_not_empty",
    "DEFAULT_XP_PER_LEVEL",
    "LevelCurve",
    "StreakChange",
    "StreakState",
    "StreakTransition",
    "xp_for_quiz",
    "xp_for_study_session",
    "QuestAdvance",
    "QuestAlreadyCompletedError",
    "QuestProgress",
    "is_expired",
    "next_utc_midnight",
]
