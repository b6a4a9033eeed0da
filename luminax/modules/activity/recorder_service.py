"""
Activity Recorder Service
=========================

Purpose
-------
Entry point for everything a learner does that earns XP: study sessions,
quiz results and achievements. Each call is one unit of work:

    ensure progress row -> append ActivityEvent -> apply XP (ledger)
      -> touch streak (qualifying kinds) -> auto-advance quests -> commit

If any step fails the whole unit rolls back: no event without its XP, no XP
without its event. Store failures surface as PersistenceError (retryable).

Domain
------
- Study session XP: 1 per minute, sessions capped at
  `activity.max_session_minutes`.
- Quiz XP: `xp_earned` if supplied, else the score rounded down to a
  multiple of ten.
- Achievements: one award per (user, achievement_type). Repeats raise
  ConflictError and apply nothing.
- Streak-qualifying kinds come from `streak.qualifying_kinds` (study
  sessions and quiz results share one streak).

Events (after commit)
---------------------
activity.recorded, achievement.awarded, progress.xp_applied,
progress.leveled_up, progress.streak_changed, quest.completed
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError

from luminax.core.database.base import utcnow
from luminax.core.event.types import EventNames
from luminax.core.logging.logger import get_logger
from luminax.core.validation.input_validator import InputValidator
from luminax.database.models import ActivityEvent, ActivityKind
from luminax.domain.models import DomainEvent, xp_for_quiz, xp_for_study_session
from luminax.modules.shared.base_repository import BaseRepository
from luminax.modules.shared.base_service import BaseService
from luminax.modules.shared.exceptions import ConflictError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus
    from luminax.modules.progress.ledger_service import ProgressLedgerService
    from luminax.modules.quests.service import QuestTrackerService, QuestUpdate


MAX_TOPIC_LENGTH = 100
MAX_ACHIEVEMENT_TYPE_LENGTH = 64
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_QUIZ_ID_LENGTH = 64
MAX_TOTAL_QUESTIONS = 1000
# Client clocks drift; activity stamped slightly ahead of the server is accepted.
FUTURE_SKEW = timedelta(minutes=5)


class ActivityEventRepository(BaseRepository[ActivityEvent]):
    async def achievement_exists(
        self, session: AsyncSession, user_id: str, achievement_type: str
    ) -> bool:
        return await self.exists(
            session,
            ActivityEvent.user_id == user_id,
            ActivityEvent.achievement_type == achievement_type,
        )


class ActivityRecorderService(BaseService):
    """
    Public Methods
    --------------
    - record_study_session()
    - record_quiz_result()
    - record_achievement()
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        ledger: ProgressLedgerService,
        quests: QuestTrackerService,
    ) -> None:
        super().__init__(database, config_manager, event_bus, logger)
        self._ledger = ledger
        self._quests = quests
        self._repo = ActivityEventRepository(
            model_class=ActivityEvent,
            logger=get_logger(f"{__name__}.ActivityEventRepository"),
        )

        self._max_session_minutes = self.get_config_int("activity.max_session_minutes", 1440)
        self._max_subject_length = self.get_config_int("activity.max_subject_length", 100)
        self._max_notes_length = self.get_config_int("activity.max_notes_length", 2000)
        self._max_xp_grant = self.get_config_int("activity.max_xp_grant", 100_000)
        self._qualifying_kinds = {
            ActivityKind(kind)
            for kind in self.get_config("streak.qualifying_kinds", ["study_session", "quiz_result"])
        }

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def record_study_session(
        self,
        user_id: str,
        subject: str,
        duration_minutes: int,
        notes: Optional[str] = None,
        *,
        username: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Record a study session and grant one XP per minute.

        Returns:
            {"xp", "level", "streak", "xp_granted", "event_id",
             "quests_completed", "leveled_up"}
        """
        user_id = InputValidator.validate_user_id(user_id)
        subject = InputValidator.validate_string(
            subject, "subject", max_length=self._max_subject_length
        )
        duration_minutes = InputValidator.validate_integer(
            duration_minutes,
            "duration_minutes",
            min_value=1,
            max_value=self._max_session_minutes,
        )
        notes = InputValidator.validate_optional_string(
            notes, "notes", max_length=self._max_notes_length
        )
        occurred_at = self._validate_occurred_at(occurred_at)

        event = ActivityEvent(
            user_id=user_id,
            kind=ActivityKind.STUDY_SESSION,
            xp_granted=xp_for_study_session(duration_minutes),
            occurred_at=occurred_at,
            subject=subject,
            duration_minutes=duration_minutes,
            notes=notes,
        )
        return await self._record(event, username=username)

    async def record_quiz_result(
        self,
        user_id: str,
        topic: str,
        score: Union[int, float],
        total_questions: int,
        xp_earned: Optional[int] = None,
        *,
        quiz_id: Optional[str] = None,
        username: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Record a quiz result.

        `score` is a percentage in [0, 100]. Without `xp_earned` the grant is
        `floor(score / 10) * 10`, so a score of 85 earns 80 XP.
        """
        user_id = InputValidator.validate_user_id(user_id)
        topic = InputValidator.validate_string(topic, "topic", max_length=MAX_TOPIC_LENGTH)
        score = InputValidator.validate_number(score, "score", min_value=0, max_value=100)
        total_questions = InputValidator.validate_positive_integer(
            total_questions, "total_questions", max_value=MAX_TOTAL_QUESTIONS
        )
        if xp_earned is None:
            xp_granted = xp_for_quiz(score)
        else:
            xp_granted = InputValidator.validate_non_negative_integer(
                xp_earned, "xp_earned", max_value=self._max_xp_grant
            )
        quiz_id = InputValidator.validate_optional_string(
            quiz_id, "quiz_id", max_length=MAX_QUIZ_ID_LENGTH
        )
        occurred_at = self._validate_occurred_at(occurred_at)

        event = ActivityEvent(
            user_id=user_id,
            kind=ActivityKind.QUIZ_RESULT,
            xp_granted=xp_granted,
            occurred_at=occurred_at,
            subject=topic,
            score=score,
            total_questions=total_questions,
            quiz_id=quiz_id,
        )
        return await self._record(event, username=username)

    async def record_achievement(
        self,
        user_id: str,
        achievement_type: str,
        title: str,
        xp_reward: int = 0,
        description: Optional[str] = None,
        *,
        username: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Award an achievement once per (user, achievement_type).

        Raises:
            ConflictError: the achievement was already awarded
        """
        user_id = InputValidator.validate_user_id(user_id)
        achievement_type = InputValidator.validate_string(
            achievement_type, "achievement_type", max_length=MAX_ACHIEVEMENT_TYPE_LENGTH
        )
        title = InputValidator.validate_string(title, "title", max_length=MAX_TITLE_LENGTH)
        xp_reward = InputValidator.validate_non_negative_integer(
            xp_reward, "xp_reward", max_value=self._max_xp_grant
        )
        description = InputValidator.validate_optional_string(
            description, "description", max_length=MAX_DESCRIPTION_LENGTH
        )

        event = ActivityEvent(
            user_id=user_id,
            kind=ActivityKind.ACHIEVEMENT,
            xp_granted=xp_reward,
            occurred_at=utcnow(),
            achievement_type=achievement_type,
            title=title,
            description=description,
        )
        return await self._record(event, username=username)

    # ========================================================================
    # Unit of work
    # ========================================================================

    async def _record(self, event: ActivityEvent, *, username: Optional[str]) -> Dict[str, Any]:
        user_id = event.user_id
        kind = event.kind
        operation = f"activity.record_{kind.value}"
        self.log_operation(operation, user_id=user_id, xp_granted=event.xp_granted)

        events: List[DomainEvent] = []
        streak_value: Optional[int] = None

        async with self._db.get_transaction(operation) as session:
            await self._ledger.ensure_progress(user_id, session, username)

            if kind is ActivityKind.ACHIEVEMENT:
                progress = await self._ledger.lock_progress(user_id, session)
                streak_value = progress.streak
                if await self._repo.achievement_exists(session, user_id, event.achievement_type):
                    raise ConflictError(
                        "Achievement",
                        "already awarded",
                        achievement_type=event.achievement_type,
                    )

            await self._add_event(session, event)

            xp_result = await self._ledger.apply_xp_delta(
                user_id, event.xp_granted, session=session
            )
            events.extend(self._ledger.xp_events(xp_result))

            if kind in self._qualifying_kinds:
                streak = await self._ledger.touch_streak(
                    user_id, event.occurred_at.astimezone(timezone.utc).date(), session=session
                )
                streak_value = streak["streak"]
                events.extend(self._ledger.streak_events(streak))

            quest_updates = await self._quests.on_activity(
                user_id, kind, self._quest_payload(event), session
            )

        final = self._final_progress(xp_result, quest_updates)
        if streak_value is None:
            streak_value = (await self._ledger.get_progress(user_id))["streak"]

        result = {
            "event_id": event.id,
            "kind": kind.value,
            "xp_granted": event.xp_granted,
            "xp": final["xp"],
            "level": final["level"],
            "leveled_up": final["level"] > xp_result["previous_level"],
            "streak": streak_value,
            "quests_completed": [
                u.result["quest_id"] for u in quest_updates if u.result["completed_now"]
            ],
        }

        published = [
            DomainEvent(
                EventNames.ACTIVITY_RECORDED,
                {
                    "user_id": user_id,
                    "event_id": event.id,
                    "kind": kind.value,
                    "xp_granted": event.xp_granted,
                },
                occurred_at=event.occurred_at,
            )
        ]
        if kind is ActivityKind.ACHIEVEMENT:
            published.append(
                DomainEvent(
                    EventNames.ACHIEVEMENT_AWARDED,
                    {
                        "user_id": user_id,
                        "achievement_type": event.achievement_type,
                        "xp_reward": event.xp_granted,
                    },
                )
            )
        published.extend(events)
        for update in quest_updates:
            published.extend(update.events)

        self.log.info(
            f"Activity recorded: {kind.value} +{event.xp_granted} XP",
            extra={
                "user_id": user_id,
                "event_id": event.id,
                "xp": result["xp"],
                "level": result["level"],
                "streak": result["streak"],
                "quests_completed": result["quests_completed"],
            },
        )

        await self.publish_events(published)
        return result

    async def _add_event(self, session: AsyncSession, event: ActivityEvent) -> None:
        try:
            await self._repo.add(session, event)
        except IntegrityError as exc:
            if event.kind is ActivityKind.ACHIEVEMENT:
                raise ConflictError(
                    "Achievement",
                    "already awarded",
                    achievement_type=event.achievement_type,
                ) from exc
            raise

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _final_progress(
        xp_result: Dict[str, Any], quest_updates: List[QuestUpdate]
    ) -> Dict[str, Any]:
        """Quest rewards are applied after the activity's own XP; the last wins."""
        final = {"xp": xp_result["xp"], "level": xp_result["level"]}
        for update in quest_updates:
            if update.result["xp"] is not None:
                final = {"xp": update.result["xp"], "level": update.result["level"]}
        return final

    @staticmethod
    def _quest_payload(event: ActivityEvent) -> Dict[str, Any]:
        return {
            "xp_granted": event.xp_granted,
            "duration_minutes": event.duration_minutes,
            "score": event.score,
            "subject": event.subject,
        }

    @staticmethod
    def _validate_occurred_at(occurred_at: Optional[datetime]) -> datetime:
        now = utcnow()
        if occurred_at is None:
            return now
        if occurred_at.tzinfo is None:
            raise ValidationError("occurred_at", "must include a timezone offset")
        if occurred_at > now + FUTURE_SKEW:
            raise ValidationError("occurred_at", "cannot be in the future")
        return occurred_at


def serialize_event(event: ActivityEvent) -> Dict[str, Any]:
    """JSON-ready view of an activity event; kind-specific fields only."""
    data: Dict[str, Any] = {
        "event_id": event.id,
        "kind": event.kind.value,
        "xp_granted": event.xp_granted,
        "occurred_at": event.occurred_at,
    }
    if event.kind is ActivityKind.STUDY_SESSION:
        data.update(
            subject=event.subject,
            duration_minutes=event.duration_minutes,
            notes=event.notes,
        )
    elif event.kind is ActivityKind.QUIZ_RESULT:
        data.update(
            topic=event.subject,
            score=event.score,
            total_questions=event.total_questions,
            quiz_id=event.quiz_id,
        )
    elif event.kind is ActivityKind.ACHIEVEMENT:
        data.update(
            achievement_type=event.achievement_type,
            title=event.title,
            description=event.description,
        )
    elif event.kind is ActivityKind.QUEST_COMPLETION:
        data.update(quest_id=event.quest_id, title=event.title)
    return data
