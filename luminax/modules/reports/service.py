"""
Progress Report Service
=======================

Read-only views over a learner's activity history: the dashboard summary,
a per-day chart, a per-subject breakdown, study totals and history listings.
Dates are UTC calendar days.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from sqlalchemy import func, select

from luminax.core.database.base import utcnow
from luminax.core.logging.logger import get_logger
from luminax.core.validation.input_validator import InputValidator
from luminax.database.models import ActivityEvent, ActivityKind
from luminax.modules.activity.recorder_service import serialize_event
from luminax.modules.shared.base_repository import BaseRepository
from luminax.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus
    from luminax.modules.progress.ledger_service import ProgressLedgerService
    from luminax.modules.quests.service import QuestTrackerService


def _average(total: float, count: int) -> int:
    return round(total / count) if count else 0


class ProgressReportService(BaseService):
    """
    Public Methods
    --------------
    - summary()     -> Dashboard: profile, totals, weekly stats, recent activity
    - chart()       -> One row per day over the last `days` days
    - subjects()    -> Per subject/topic breakdown, highest XP first
    - study_stats() -> Study session totals with current level and streak
    - list_events() -> History listing for one activity kind
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        ledger: ProgressLedgerService,
        quests: QuestTrackerService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(database, config_manager, event_bus, logger)
        self._ledger = ledger
        self._quests = quests
        self._clock = clock
        self._repo = BaseRepository(
            model_class=ActivityEvent,
            logger=get_logger(f"{__name__}.ActivityEventRepository"),
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def summary(self, user_id: str) -> Dict[str, Any]:
        user_id = InputValidator.validate_user_id(user_id)
        self.log_operation("reports.summary", user_id=user_id)

        progress = await self._ledger.get_progress(user_id)
        week_ago = self._clock() - timedelta(days=7)
        recent_limit = self.get_config_int("reports.recent_activity_limit", 5)

        totals = await self._totals_by_kind(user_id)
        weekly = await self._totals_by_kind(user_id, since=week_ago)

        recent: Dict[str, List[Dict[str, Any]]] = {}
        for key, kind in (
            ("sessions", ActivityKind.STUDY_SESSION),
            ("quiz_results", ActivityKind.QUIZ_RESULT),
            ("achievements", ActivityKind.ACHIEVEMENT),
        ):
            recent[key] = await self.list_events(user_id, kind, limit=recent_limit)

        sessions = totals[ActivityKind.STUDY_SESSION]
        quizzes = totals[ActivityKind.QUIZ_RESULT]
        weekly_sessions = weekly[ActivityKind.STUDY_SESSION]
        weekly_quizzes = weekly[ActivityKind.QUIZ_RESULT]

        return {
            "profile": {
                "xp": progress["xp"],
                "level": progress["level"],
                "streak": progress["streak"],
                "last_activity_date": progress["last_activity_date"],
            },
            "statistics": {
                "total_sessions": sessions["count"],
                "total_minutes": sessions["minutes"],
                "total_xp": sum(entry["xp"] for entry in totals.values()),
                "xp_by_source": {kind.value: entry["xp"] for kind, entry in totals.items()},
                "average_quiz_score": _average(quizzes["score_total"], quizzes["count"]),
                "total_achievements": totals[ActivityKind.ACHIEVEMENT]["count"],
            },
            "weekly_stats": {
                "sessions": weekly_sessions["count"],
                "minutes": weekly_sessions["minutes"],
                "xp": sum(entry["xp"] for entry in weekly.values()),
                "quizzes": weekly_quizzes["count"],
            },
            "recent_activity": recent,
            "active_quests": await self._quests.list_active(user_id),
            "next_level_xp": progress["xp_to_next_level"],
        }

    async def chart(self, user_id: str, days: Optional[int] = None) -> List[Dict[str, Any]]:
        """One row per UTC day, oldest first, including days with no activity."""
        user_id = InputValidator.validate_user_id(user_id)
        days = InputValidator.validate_integer(
            days if days is not None else self.get_config_int("reports.chart_default_days", 30),
            "days",
            min_value=1,
            max_value=self.get_config_int("reports.chart_max_days", 365),
        )

        today = self._clock().astimezone(timezone.utc).date()
        first_day = today - timedelta(days=days - 1)
        since = datetime(first_day.year, first_day.month, first_day.day, tzinfo=timezone.utc)

        rows: Dict[date, Dict[str, Any]] = {}
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            rows[day] = {
                "date": day,
                "study_minutes": 0,
                "study_xp": 0,
                "quiz_xp": 0,
                "quiz_count": 0,
                "average_quiz_score": 0,
                "_score_total": 0.0,
            }

        async with self.read_session() as session:
            events = await self._repo.find_many_where(
                session,
                ActivityEvent.user_id == user_id,
                ActivityEvent.kind.in_([ActivityKind.STUDY_SESSION, ActivityKind.QUIZ_RESULT]),
                ActivityEvent.occurred_at >= since,
                order_by=(ActivityEvent.occurred_at.asc(),),
            )

        for event in events:
            row = rows.get(event.occurred_at.astimezone(timezone.utc).date())
            if row is None:
                continue
            if event.kind is ActivityKind.STUDY_SESSION:
                row["study_minutes"] += event.duration_minutes or 0
                row["study_xp"] += event.xp_granted
            else:
                row["quiz_xp"] += event.xp_granted
                row["quiz_count"] += 1
                row["_score_total"] += event.score or 0

        chart = []
        for row in rows.values():
            score_total = row.pop("_score_total")
            row["average_quiz_score"] = _average(score_total, row["quiz_count"])
            chart.append(row)
        return chart

    async def subjects(self, user_id: str) -> List[Dict[str, Any]]:
        """Sessions and quizzes grouped by subject (quiz topic), highest XP first."""
        user_id = InputValidator.validate_user_id(user_id)

        stmt = (
            select(
                ActivityEvent.subject,
                ActivityEvent.kind,
                func.count(ActivityEvent.id).label("event_count"),
                func.coalesce(func.sum(ActivityEvent.duration_minutes), 0).label("minutes"),
                func.coalesce(func.sum(ActivityEvent.xp_granted), 0).label("xp"),
                func.coalesce(func.sum(ActivityEvent.score), 0).label("score_total"),
            )
            .where(
                ActivityEvent.user_id == user_id,
                ActivityEvent.kind.in_([ActivityKind.STUDY_SESSION, ActivityKind.QUIZ_RESULT]),
            )
            .group_by(ActivityEvent.subject, ActivityEvent.kind)
        )

        async with self.read_session() as session:
            result = (await session.execute(stmt)).all()

        subjects: Dict[str, Dict[str, Any]] = {}
        for row in result:
            entry = subjects.setdefault(
                row.subject,
                {
                    "subject": row.subject,
                    "total_minutes": 0,
                    "total_xp": 0,
                    "session_count": 0,
                    "quiz_count": 0,
                    "average_score": 0,
                },
            )
            entry["total_xp"] += int(row.xp)
            if row.kind is ActivityKind.STUDY_SESSION:
                entry["total_minutes"] += int(row.minutes)
                entry["session_count"] += int(row.event_count)
            else:
                entry["quiz_count"] += int(row.event_count)
                entry["average_score"] = _average(float(row.score_total), int(row.event_count))

        return sorted(subjects.values(), key=lambda s: (-s["total_xp"], s["subject"]))

    async def study_stats(self, user_id: str) -> Dict[str, Any]:
        user_id = InputValidator.validate_user_id(user_id)
        progress = await self._ledger.get_progress(user_id)
        sessions = (await self._totals_by_kind(user_id))[ActivityKind.STUDY_SESSION]
        return {
            "total_sessions": sessions["count"],
            "total_minutes": sessions["minutes"],
            "total_xp": sessions["xp"],
            "streak": progress["streak"],
            "level": progress["level"],
            "current_xp": progress["xp"],
        }

    async def list_events(
        self,
        user_id: str,
        kind: ActivityKind,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Most recent events of one kind, newest first."""
        user_id = InputValidator.validate_user_id(user_id)
        limit = InputValidator.validate_integer(
            limit,
            "limit",
            min_value=1,
            max_value=self.get_config_int("reports.history_max_limit", 200),
        )

        async with self.read_session() as session:
            events = await self._repo.find_many_where(
                session,
                ActivityEvent.user_id == user_id,
                ActivityEvent.kind == kind,
                order_by=(ActivityEvent.occurred_at.desc(), ActivityEvent.id.desc()),
                limit=limit,
            )
        return [serialize_event(event) for event in events]

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _totals_by_kind(
        self, user_id: str, since: Optional[datetime] = None
    ) -> Dict[ActivityKind, Dict[str, Any]]:
        conditions = [ActivityEvent.user_id == user_id]
        if since is not None:
            conditions.append(ActivityEvent.occurred_at >= since)

        stmt = (
            select(
                ActivityEvent.kind,
                func.count(ActivityEvent.id).label("event_count"),
                func.coalesce(func.sum(ActivityEvent.duration_minutes), 0).label("minutes"),
                func.coalesce(func.sum(ActivityEvent.xp_granted), 0).label("xp"),
                func.coalesce(func.sum(ActivityEvent.score), 0).label("score_total"),
            )
            .where(*conditions)
            .group_by(ActivityEvent.kind)
        )

        totals: Dict[ActivityKind, Dict[str, Any]] = {
            kind: {"count": 0, "minutes": 0, "xp": 0, "score_total": 0.0} for kind in ActivityKind
        }

        async with self.read_session() as session:
            for row in (await session.execute(stmt)).all():
                totals[row.kind] = {
                    "count": int(row.event_count),
                    "minutes": int(row.minutes),
                    "xp": int(row.xp),
                    "score_total": float(row.score_total),
                }
        return totals
