"""
Quest Tracker Service
=====================

Purpose
-------
Per-user expiring goals ("daily quests") with a one-time XP reward.

Domain
------
- A quest completes exactly once. The advance that reaches `target_value`
  flips `completed`, clamps `current_value` at the target and applies
  `xp_reward` through the progress ledger in the same transaction, together
  with a `quest_completion` activity event.
- A completed quest is frozen: advancing it raises ConflictError.
- Expired quests (`now > expires_at`) behave as missing: NotFoundError. They
  are kept for history.
- Activity recorded by the ActivityRecorder auto-advances active quests whose
  `quest_type` has a rule in `quests.activity_rules`:

      quests:
        activity_rules:
          study_minutes: {kind: study_session, metric: duration_minutes}
          perfect_quizzes: {kind: quiz_result, metric: count, min_score: 100}

  `metric` is one of count, duration_minutes, xp_granted, score.

Locking
-------
Advances first lock the owner's progress row, then the quest row, so every
advance for one user is serialized and a reward can never be applied twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import select

from luminax.core.database.base import utcnow
from luminax.core.event.types import EventNames
from luminax.core.logging.logger import get_logger
from luminax.core.validation.input_validator import InputValidator
from luminax.database.models import ActivityEvent, ActivityKind, Quest, QuestMetric
from luminax.domain.models import (
    DomainEvent,
    DomainValidationError,
    QuestAlreadyCompletedError,
    QuestProgress,
    is_expired,
    next_utc_midnight,
)
from luminax.modules.shared.base_repository import BaseRepository
from luminax.modules.shared.base_service import BaseService
from luminax.modules.shared.exceptions import ConflictError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus
    from luminax.modules.progress.ledger_service import ProgressLedgerService


MAX_QUEST_TYPE_LENGTH = 64
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000


# ============================================================================
# Repository
# ============================================================================


class QuestRepository(BaseRepository[Quest]):
    async def lock(self, session: AsyncSession, quest_id: int) -> Optional[Quest]:
        stmt = (
            select(Quest)
            .where(Quest.id == quest_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def active_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        now: datetime,
        *,
        for_update: bool = False,
    ) -> List[Quest]:
        return await self.find_many_where(
            session,
            Quest.user_id == user_id,
            Quest.completed.is_(False),
            Quest.expires_at >= now,
            order_by=(Quest.created_at.desc(), Quest.id.desc()),
            for_update=for_update,
        )


@dataclass(frozen=True)
class ActivityRule:
    quest_type: str
    kind: ActivityKind
    metric: QuestMetric
    min_score: Optional[float] = None

    def increment_for(self, payload: Mapping[str, Any]) -> int:
        """How far one activity moves a matching quest (0 = not at all)."""
        if self.min_score is not None:
            score = payload.get("score")
            if score is None or score < self.min_score:
                return 0

        if self.metric is QuestMetric.COUNT:
            return 1
        if self.metric is QuestMetric.DURATION_MINUTES:
            return int(payload.get("duration_minutes") or 0)
        if self.metric is QuestMetric.XP_GRANTED:
            return int(payload.get("xp_granted") or 0)
        if self.metric is QuestMetric.SCORE:
            return int(payload.get("score") or 0)
        return 0


@dataclass
class QuestUpdate:
    """Outcome of one advance, plus the events to publish after commit."""

    result: Dict[str, Any]
    events: List[DomainEvent] = field(default_factory=list)


# ============================================================================
# QuestTrackerService
# ============================================================================


class QuestTrackerService(BaseService):
    """
    Public Methods
    --------------
    - create_quest() -> Create a quest (defaults to expiring at next UTC midnight)
    - advance()      -> Manually progress a quest
    - on_activity()  -> Auto-progress quests from a recorded activity
    - list_active()  -> Active quests, newest first
    - list_quests()  -> Quest history
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        ledger: ProgressLedgerService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(database, config_manager, event_bus, logger)
        self._ledger = ledger
        self._clock = clock
        self._repo = QuestRepository(
            model_class=Quest,
            logger=get_logger(f"{__name__}.QuestRepository"),
        )
        self._activity_repo = BaseRepository(
            model_class=ActivityEvent,
            logger=get_logger(f"{__name__}.ActivityEventRepository"),
        )
        self._rules = self._load_rules(self.get_config("quests.activity_rules", {}) or {})
        self._max_target_value = self.get_config_int("quests.max_target_value", 1_000_000)
        self._max_xp_reward = self.get_config_int("activity.max_xp_grant", 100_000)

    def _load_rules(self, raw_rules: Mapping[str, Any]) -> Dict[str, ActivityRule]:
        rules: Dict[str, ActivityRule] = {}
        for quest_type, raw_rule in raw_rules.items():
            try:
                rules[quest_type] = ActivityRule(
                    quest_type=quest_type,
                    kind=ActivityKind(raw_rule["kind"]),
                    metric=QuestMetric(raw_rule.get("metric", QuestMetric.COUNT.value)),
                    min_score=raw_rule.get("min_score"),
                )
            except (KeyError, TypeError, ValueError) as exc:
                self.log.warning(
                    "Ignoring invalid quest activity rule",
                    extra={"quest_type": quest_type, "rule": repr(raw_rule), "error": str(exc)},
                )
        return rules

    @property
    def activity_rules(self) -> Dict[str, ActivityRule]:
        return dict(self._rules)

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def list_active(self, user_id: str) -> List[Dict[str, Any]]:
        user_id = InputValidator.validate_user_id(user_id)
        async with self.read_session() as session:
            quests = await self._repo.active_for_user(session, user_id, self._clock())
        return [self.serialize(q) for q in quests]

    async def list_quests(
        self,
        user_id: str,
        include_completed: bool = True,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        user_id = InputValidator.validate_user_id(user_id)
        limit = InputValidator.validate_integer(limit, "limit", min_value=1, max_value=500)

        conditions = [Quest.user_id == user_id]
        if not include_completed:
            conditions.append(Quest.completed.is_(False))

        async with self.read_session() as session:
            quests = await self._repo.find_many_where(
                session,
                *conditions,
                order_by=(Quest.created_at.desc(), Quest.id.desc()),
                limit=limit,
            )
        return [self.serialize(q) for q in quests]

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def create_quest(
        self,
        user_id: str,
        quest_type: str,
        title: str,
        target_value: int,
        xp_reward: int = 0,
        expires_at: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a quest for `user_id`.

        Raises:
            ValidationError: bad target/reward, or expires_at not in the future
        """
        user_id = InputValidator.validate_user_id(user_id)
        quest_type = InputValidator.validate_string(
            quest_type, "quest_type", max_length=MAX_QUEST_TYPE_LENGTH
        )
        title = InputValidator.validate_string(title, "title", max_length=MAX_TITLE_LENGTH)
        description = InputValidator.validate_optional_string(
            description, "description", max_length=MAX_DESCRIPTION_LENGTH
        )
        self.validate_positive_int(target_value, "target_value", max_value=self._max_target_value)
        self.validate_non_negative_int(xp_reward, "xp_reward", max_value=self._max_xp_reward)

        now = self._clock()
        if expires_at is None:
            expires_at = self._default_expiry(now)
        elif expires_at.tzinfo is None:
            raise ValidationError("expires_at", "must include a timezone offset")
        if expires_at <= now:
            raise ValidationError("expires_at", "must be in the future")

        self.log_operation("create_quest", user_id=user_id, quest_type=quest_type)

        async with self._db.get_transaction("quests.create") as session:
            await self._ledger.ensure_progress(user_id, session)
            quest = await self._repo.add(
                session,
                Quest(
                    user_id=user_id,
                    quest_type=quest_type,
                    title=title,
                    description=description,
                    target_value=target_value,
                    current_value=0,
                    xp_reward=xp_reward,
                    completed=False,
                    expires_at=expires_at,
                ),
            )
            data = self.serialize(quest)

        await self.emit_event(
            EventNames.QUEST_CREATED,
            {"user_id": user_id, "quest_id": data["quest_id"], "quest_type": quest_type},
        )
        return data

    async def advance(
        self,
        user_id: str,
        quest_id: int,
        increment: int,
        *,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Progress a quest by `increment`.

        Returns:
            {"quest_id", "current_value", "target_value", "completed",
             "completed_now", "xp_granted", "xp", "level"}

        Raises:
            ValidationError: increment is not a positive int
            NotFoundError: missing, owned by someone else, or expired
            ConflictError: already completed
        """
        user_id = InputValidator.validate_user_id(user_id)
        self.validate_positive_int(quest_id, "quest_id")
        self.validate_positive_int(increment, "increment", max_value=self._max_target_value)

        self.log_operation("advance_quest", user_id=user_id, quest_id=quest_id, increment=increment)

        async with self.unit_of_work(session, "quests.advance") as uow:
            await self._ledger.lock_progress(user_id, uow)
            quest = await self._repo.lock(uow, quest_id)

            if quest is None or quest.user_id != user_id:
                raise NotFoundError("Quest", quest_id)
            now = self._clock()
            if is_expired(quest.expires_at, now):
                raise NotFoundError("Quest", quest_id, reason="expired")

            update = await self._apply_progress(uow, quest, increment, now)

        if session is None:
            await self.publish_events(update.events)
        return update.result

    async def on_activity(
        self,
        user_id: str,
        kind: ActivityKind,
        payload: Mapping[str, Any],
        session: AsyncSession,
    ) -> List[QuestUpdate]:
        """
        Advance the user's active quests that a recorded activity counts towards.

        Runs inside the recorder's unit of work; the caller publishes the
        returned events after commit.
        """
        matching = {
            quest_type: rule for quest_type, rule in self._rules.items() if rule.kind is kind
        }
        if not matching:
            return []

        now = self._clock()
        quests = await self._repo.active_for_user(session, user_id, now, for_update=True)

        updates: List[QuestUpdate] = []
        for quest in quests:
            rule = matching.get(quest.quest_type)
            if rule is None:
                continue
            increment = rule.increment_for(payload)
            if increment <= 0:
                continue
            updates.append(await self._apply_progress(session, quest, increment, now))

        if updates:
            self.log.debug(
                "Quests advanced by activity",
                extra={
                    "user_id": user_id,
                    "kind": kind.value,
                    "quest_ids": [u.result["quest_id"] for u in updates],
                },
            )
        return updates

    # ========================================================================
    # Internals
    # ========================================================================

    async def _apply_progress(
        self,
        session: AsyncSession,
        quest: Quest,
        increment: int,
        now: datetime,
    ) -> QuestUpdate:
        try:
            advance = QuestProgress(
                quest.current_value, quest.target_value, quest.completed
            ).advance(increment)
        except QuestAlreadyCompletedError as exc:
            raise ConflictError("Quest", "already completed", quest_id=quest.id) from exc
        except DomainValidationError as exc:
            raise self.to_validation_error(exc) from exc

        quest.current_value = advance.new_value
        events: List[DomainEvent] = []
        xp_result: Optional[Dict[str, Any]] = None

        if advance.completed_now:
            quest.completed = True
            quest.completed_at = now
            await session.flush()

            await self._activity_repo.add(
                session,
                ActivityEvent(
                    user_id=quest.user_id,
                    kind=ActivityKind.QUEST_COMPLETION,
                    xp_granted=quest.xp_reward,
                    occurred_at=now,
                    quest_id=quest.id,
                    title=quest.title,
                ),
            )
            xp_result = await self._ledger.apply_xp_delta(
                quest.user_id, quest.xp_reward, session=session
            )

            events.append(
                DomainEvent(
                    EventNames.QUEST_COMPLETED,
                    {
                        "user_id": quest.user_id,
                        "quest_id": quest.id,
                        "quest_type": quest.quest_type,
                        "xp_reward": quest.xp_reward,
                    },
                )
            )
            events.extend(self._ledger.xp_events(xp_result))

            self.log.info(
                "Quest completed",
                extra={
                    "user_id": quest.user_id,
                    "quest_id": quest.id,
                    "xp_reward": quest.xp_reward,
                },
            )
        else:
            await session.flush()

        result = {
            "quest_id": quest.id,
            "current_value": quest.current_value,
            "target_value": quest.target_value,
            "completed": quest.completed,
            "completed_now": advance.completed_now,
            "xp_granted": quest.xp_reward if advance.completed_now else 0,
            "xp": xp_result["xp"] if xp_result else None,
            "level": xp_result["level"] if xp_result else None,
        }
        return QuestUpdate(result=result, events=events)

    def _default_expiry(self, now: datetime) -> datetime:
        ttl_hours = self.get_config_int("quests.default_ttl_hours", 24)
        if ttl_hours == 24:
            return next_utc_midnight(now)
        return now + timedelta(hours=ttl_hours)

    @staticmethod
    def serialize(quest: Quest) -> Dict[str, Any]:
        return {
            "quest_id": quest.id,
            "user_id": quest.user_id,
            "quest_type": quest.quest_type,
            "title": quest.title,
            "description": quest.description,
            "target_value": quest.target_value,
            "current_value": quest.current_value,
            "xp_reward": quest.xp_reward,
            "completed": quest.completed,
            "completed_at": quest.completed_at,
            "expires_at": quest.expires_at,
            "created_at": quest.created_at,
        }
