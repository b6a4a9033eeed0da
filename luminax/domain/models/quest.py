"""
Quest progress rules.

A quest completes exactly once: the transition from incomplete to complete
happens on the advance that brings `current_value` to `target_value`, and a
completed quest rejects further progress. Stored progress is clamped at the
target.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from luminax.domain.models.base import (
    DomainValidationError,
    validate_non_negative,
    validate_positive,
)


class QuestAlreadyCompletedError(DomainValidationError):
    def __init__(self) -> None:
        super().__init__("quest is already completed", field="quest")


@dataclass(frozen=True)
class QuestAdvance:
    new_value: int
    completed_now: bool


@dataclass(frozen=True)
class QuestProgress:
    current_value: int
    target_value: int
    completed: bool = False

    def __post_init__(self) -> None:
        validate_non_negative(self.current_value, "current_value")
        validate_positive(self.target_value, "target_value")

    def advance(self, increment: int) -> QuestAdvance:
        validate_positive(increment, "increment")
        if self.completed:
            raise QuestAlreadyCompletedError()

        new_value = min(self.current_value + increment, self.target_value)
        return QuestAdvance(new_value=new_value, completed_now=new_value >= self.target_value)


def is_expired(expires_at: datetime, now: datetime) -> bool:
    """A quest is usable up to and including `expires_at`."""
    return now > expires_at


def next_utc_midnight(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    now = now.astimezone(timezone.utc)
    tomorrow = (now + timedelta(days=1)).date()
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=timezone.utc)
