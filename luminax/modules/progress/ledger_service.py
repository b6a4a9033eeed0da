"""
Progress Ledger Service
=======================

Purpose
-------
Sole writer of `user_progress`. Applies XP deltas, keeps the derived level
in step with XP, and runs the daily streak state machine.

Domain
------
- XP only grows; every delta is a single atomic `UPDATE ... SET xp = xp + n`
  with the level recomputed in the same statement. Concurrent deltas commute
  and none is lost.
- The row is created lazily (`xp=0, level=1, streak=0`) by an
  insert-if-absent on the first write. Reads of an unknown user return the
  zero state without writing.
- Streak updates lock the row (`SELECT ... FOR UPDATE`) before applying the
  transition.

Units of work
-------------
Every write method accepts `session=`. Passed in, the call joins the
caller's transaction (the activity recorder does this so an event, its XP
and its streak commit together). Omitted, the ledger opens and commits its
own transaction and publishes its events afterwards.

Events (after commit)
---------------------
- progress.xp_applied      : every non-zero delta
- progress.leveled_up      : when the delta crossed a level boundary
- progress.streak_changed  : when the streak value moved
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects import postgresql, sqlite

from luminax.core.database.base import utcnow
from luminax.core.exceptions import PersistenceError
from luminax.core.event.types import EventNames
from luminax.core.logging.logger import get_logger
from luminax.core.validation.input_validator import InputValidator
from luminax.database.models import UserProgress
from luminax.domain.models import DomainEvent, DomainValidationError, LevelCurve, StreakState
from luminax.modules.shared.base_repository import BaseRepository
from luminax.modules.shared.base_service import BaseService
from luminax.modules.shared.exceptions import InvalidAmountError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus


# ============================================================================
# Repository
# ============================================================================


class UserProgressRepository(BaseRepository[UserProgress]):
    """Row access for `user_progress`. The ledger is its only writer."""

    async def insert_if_absent(
        self,
        session: AsyncSession,
        user_id: str,
        username: Optional[str] = None,
    ) -> None:
        """`INSERT ... ON CONFLICT DO NOTHING` for the zero-state row."""
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise NotImplementedError(f"insert_if_absent not supported for dialect {dialect!r}")

        now = utcnow()
        stmt = (
            insert(UserProgress)
            .values(
                user_id=user_id,
                username=username,
                xp=0,
                level=1,
                streak=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[UserProgress.user_id])
        )
        await session.execute(stmt)

    async def lock(self, session: AsyncSession, user_id: str) -> Optional[UserProgress]:
        """Fetch with a row lock, refreshing any copy already in the session."""
        stmt = (
            select(UserProgress)
            .where(UserProgress.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()


# ============================================================================
# ProgressLedgerService
# ============================================================================


class ProgressLedgerService(BaseService):
    """
    Public Methods
    --------------
    - apply_xp_delta() -> Atomically add XP, recompute level
    - touch_streak()   -> Apply one activity date to the streak
    - get_progress()   -> Current state (zero state for unknown users)
    - ensure_progress()-> Create the row if absent
    - lock_progress()  -> Ensure and lock the row for per-user serialization
    - sync_username()  -> Refresh the display name
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(database, config_manager, event_bus, logger)
        self.curve = LevelCurve(self.get_config_int("progression.xp_per_level", 1000))
        self._max_delta = self.get_config_int("activity.max_xp_grant", 100_000)
        self._repo = UserProgressRepository(
            model_class=UserProgress,
            logger=get_logger(f"{__name__}.UserProgressRepository"),
        )

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_progress(self, user_id: str) -> Dict[str, Any]:
        """
        Current progression snapshot.

        Never raises NotFound: a user with no recorded activity gets
        `xp=0, level=1, streak=0` and no row is created.
        """
        user_id = InputValidator.validate_user_id(user_id)

        async with self.read_session() as session:
            progress = await self._repo.get(session, user_id)

        if progress is None:
            return self._snapshot(user_id, None, 0, 1, 0, None)
        return self._snapshot(
            progress.user_id,
            progress.username,
            progress.xp,
            progress.level,
            progress.streak,
            progress.last_activity_date,
        )

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def apply_xp_delta(
        self,
        user_id: str,
        amount: int,
        *,
        session: Optional[AsyncSession] = None,
        username: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Add `amount` XP and recompute the level in one statement.

        Returns:
            {"user_id", "xp", "level", "previous_level", "xp_applied",
             "leveled_up"}

        Raises:
            InvalidAmountError: amount is negative, over activity.max_xp_grant,
                or not an int
            PersistenceError: the store failed; nothing was applied
        """
        user_id = InputValidator.validate_user_id(user_id)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmountError(amount)
        if amount > self._max_delta:
            raise InvalidAmountError(
                amount, reason=f"cannot exceed {self._max_delta}, got {amount}"
            )

        async with self.unit_of_work(session, "ledger.apply_xp_delta") as uow:
            await self._repo.insert_if_absent(uow, user_id, username)

            new_xp = UserProgress.xp + amount
            stmt = (
                update(UserProgress)
                .where(UserProgress.user_id == user_id)
                .values(xp=new_xp, level=self.curve.level_for(new_xp), updated_at=utcnow())
                .returning(UserProgress.xp, UserProgress.level)
                .execution_options(synchronize_session=False)
            )
            xp, level = (await uow.execute(stmt)).one()

        previous_level = self.curve.level_for(xp - amount)
        result = {
            "user_id": user_id,
            "xp": int(xp),
            "level": int(level),
            "previous_level": previous_level,
            "xp_applied": amount,
            "leveled_up": level > previous_level,
        }

        self.log.debug(
            "XP applied",
            extra={
                "user_id": user_id,
                "amount": amount,
                "xp": result["xp"],
                "level": result["level"],
                "previous_level": previous_level,
            },
        )

        if session is None:
            await self.publish_events(self.xp_events(result))
        return result

    async def touch_streak(
        self,
        user_id: str,
        activity_date: date,
        *,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Apply one qualifying activity date to the user's streak.

        Returns:
            {"user_id", "streak", "previous_streak", "last_activity_date",
             "change", "changed"}
        """
        user_id = InputValidator.validate_user_id(user_id)

        async with self.unit_of_work(session, "ledger.touch_streak") as uow:
            progress = await self.lock_progress(user_id, uow)

            try:
                transition = StreakState(
                    progress.streak, progress.last_activity_date
                ).advance(activity_date)
            except DomainValidationError as exc:
                raise self.to_validation_error(exc) from exc

            if transition.changed:
                progress.streak = transition.streak
                progress.last_activity_date = transition.last_activity_date
                progress.updated_at = utcnow()
                await uow.flush()

        result = {
            "user_id": user_id,
            "streak": transition.streak,
            "previous_streak": transition.previous_streak,
            "last_activity_date": transition.last_activity_date,
            "change": transition.change.value,
            "changed": transition.changed,
        }

        if session is None:
            await self.publish_events(self.streak_events(result))
        return result

    async def ensure_progress(
        self,
        user_id: str,
        session: AsyncSession,
        username: Optional[str] = None,
    ) -> None:
        """
        Create the zero-state row if absent.

        Rows that reference a user (events, quests, memberships) call this
        first; on SQLite it also makes the write the first statement of the
        transaction so concurrent writers queue instead of deadlocking.
        """
        await self._repo.insert_if_absent(session, user_id, username)
        if username:
            await self.sync_username(user_id, username, session)

    async def lock_progress(self, user_id: str, session: AsyncSession) -> UserProgress:
        """Ensure the row exists and hold its lock until the caller commits."""
        await self._repo.insert_if_absent(session, user_id)
        progress = await self._repo.lock(session, user_id)
        if progress is None:
            # Inserted or already present a statement ago; only a concurrent
            # account deletion can remove it in between.
            raise PersistenceError("ledger.lock_progress")
        return progress

    async def sync_username(self, user_id: str, username: str, session: AsyncSession) -> bool:
        """Refresh the display name when it changed. Returns True if updated."""
        username = username.strip()[:100]
        if not username:
            return False

        stmt = (
            update(UserProgress)
            .where(
                UserProgress.user_id == user_id,
                or_(UserProgress.username.is_(None), UserProgress.username != username),
            )
            .values(username=username)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return bool(result.rowcount)

    # ========================================================================
    # Events
    # ========================================================================

    @staticmethod
    def xp_events(result: Dict[str, Any]) -> List[DomainEvent]:
        events: List[DomainEvent] = []
        if result["xp_applied"] > 0:
            events.append(
                DomainEvent(
                    EventNames.PROGRESS_XP_APPLIED,
                    {
                        "user_id": result["user_id"],
                        "amount": result["xp_applied"],
                        "xp": result["xp"],
                        "level": result["level"],
                    },
                )
            )
        if result["leveled_up"]:
            events.append(
                DomainEvent(
                    EventNames.PROGRESS_LEVELED_UP,
                    {
                        "user_id": result["user_id"],
                        "old_level": result["previous_level"],
                        "new_level": result["level"],
                        "xp": result["xp"],
                    },
                )
            )
        return events

    @staticmethod
    def streak_events(result: Dict[str, Any]) -> List[DomainEvent]:
        if result["streak"] == result["previous_streak"]:
            return []
        return [
            DomainEvent(
                EventNames.PROGRESS_STREAK_CHANGED,
                {
                    "user_id": result["user_id"],
                    "previous_streak": result["previous_streak"],
                    "streak": result["streak"],
                    "change": result["change"],
                },
            )
        ]

    # ========================================================================
    # Helpers
    # ========================================================================

    def _snapshot(
        self,
        user_id: str,
        username: Optional[str],
        xp: int,
        level: int,
        streak: int,
        last_activity_date: Optional[date],
    ) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "username": username,
            "xp": xp,
            "level": level,
            "streak": streak,
            "last_activity_date": last_activity_date,
            "xp_to_next_level": self.curve.xp_to_next_level(xp),
        }
