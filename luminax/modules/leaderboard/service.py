"""
Ranking Service
===============

Purpose
-------
Read-only leaderboards computed on demand from the progress ledger and the
activity history.

Domain
------
- All-time board: users ordered by XP descending, ties by user_id ascending.
- Ranks use standard competition ranking: `rank = 1 + number of users with
  strictly more XP`. Equal XP shares a rank, so `rank_of()` and `top_n()`
  always agree.
- A board can be scoped to a community's members.
- Weekly board: sum of `xp_granted` over the trailing window.
- Achievements board: number of achievements awarded.

Never writes; every query runs in a read session.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import func, select

from luminax.core.database.base import utcnow
from luminax.core.logging.logger import get_logger
from luminax.core.validation.input_validator import InputValidator
from luminax.database.models import (
    ActivityEvent,
    ActivityKind,
    Community,
    CommunityMember,
    UserProgress,
)
from luminax.modules.shared.base_repository import BaseRepository
from luminax.modules.shared.base_service import BaseService
from luminax.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus


def assign_competition_ranks(values: Sequence[int]) -> List[int]:
    """
    Ranks for values already sorted descending.

    >>> assign_competition_ranks([1500, 1000, 1000, 500])
    [1, 2, 2, 4]
    """
    ranks: List[int] = []
    for index, value in enumerate(values):
        if index > 0 and value == values[index - 1]:
            ranks.append(ranks[-1])
        else:
            ranks.append(index + 1)
    return ranks


class RankingService(BaseService):
    """
    Public Methods
    --------------
    - top_n()              -> All-time XP board, optionally community-scoped
    - rank_of()            -> One user's rank
    - weekly_top_n()       -> XP earned in the trailing window
    - achievements_top_n() -> Achievement counts
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(database, config_manager, event_bus, logger)
        self._clock = clock
        self._community_repo = BaseRepository(
            model_class=Community,
            logger=get_logger(f"{__name__}.CommunityRepository"),
        )
        self._member_repo = BaseRepository(
            model_class=CommunityMember,
            logger=get_logger(f"{__name__}.CommunityMemberRepository"),
        )
        self._max_limit = self.get_config_int("leaderboard.max_limit", 100)

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def top_n(
        self,
        n: Optional[int] = None,
        scope: Optional[int] = None,
        current_user_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Top `n` users by XP.

        Args:
            n: Board size in [1, leaderboard.max_limit]
            scope: Community id restricting the board to its members
            current_user_id: Marks the caller's entry with is_current_user

        Raises:
            ValidationError: n out of range
            NotFoundError: scope names a community that does not exist
        """
        n = self._validate_limit(n, "leaderboard.default_limit", 50)
        self.log_operation("leaderboard.top_n", n=n, scope=scope)

        async with self.read_session() as session:
            stmt = select(
                UserProgress.user_id,
                UserProgress.username,
                UserProgress.xp,
                UserProgress.level,
                UserProgress.streak,
            )
            if scope is not None:
                await self._require_community(session, scope)
                stmt = stmt.where(UserProgress.user_id.in_(self._members_of(scope)))
            stmt = stmt.order_by(UserProgress.xp.desc(), UserProgress.user_id.asc()).limit(n)
            rows = (await session.execute(stmt)).all()

        ranks = assign_competition_ranks([row.xp for row in rows])
        return [
            {
                "rank": rank,
                "user_id": row.user_id,
                "username": row.username,
                "xp": row.xp,
                "level": row.level,
                "streak": row.streak,
                "is_current_user": row.user_id == current_user_id,
            }
            for rank, row in zip(ranks, rows)
        ]

    async def rank_of(self, user_id: str, scope: Optional[int] = None) -> Dict[str, Any]:
        """
        The user's rank. Users with no recorded activity rank as XP 0.

        Raises:
            NotFoundError: scope names a missing community, or one the user
                is not a member of
        """
        user_id = InputValidator.validate_user_id(user_id)

        async with self.read_session() as session:
            if scope is not None:
                await self._require_community(session, scope)
                is_member = await self._member_repo.exists(
                    session,
                    CommunityMember.community_id == scope,
                    CommunityMember.user_id == user_id,
                )
                if not is_member:
                    raise NotFoundError(
                        "CommunityMember", user_id, reason=f"not in community {scope}"
                    )

            progress = await session.get(UserProgress, user_id)
            xp = progress.xp if progress is not None else 0

            ahead = select(func.count()).select_from(UserProgress).where(UserProgress.xp > xp)
            total = select(func.count()).select_from(UserProgress)
            if scope is not None:
                members = self._members_of(scope)
                ahead = ahead.where(UserProgress.user_id.in_(members))
                total = total.where(UserProgress.user_id.in_(members))

            users_ahead = int((await session.execute(ahead)).scalar_one())
            total_users = int((await session.execute(total)).scalar_one())

        return {
            "rank": users_ahead + 1,
            "user_id": user_id,
            "username": progress.username if progress is not None else None,
            "xp": xp,
            "level": progress.level if progress is not None else 1,
            "streak": progress.streak if progress is not None else 0,
            "total_users": total_users,
        }

    async def weekly_top_n(
        self,
        n: Optional[int] = None,
        days: Optional[int] = None,
        current_user_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Top `n` users by XP granted in the last `days` days."""
        n = self._validate_limit(n, "leaderboard.weekly_limit", 20)
        days = InputValidator.validate_integer(
            days if days is not None else self.get_config_int("leaderboard.weekly_days", 7),
            "days",
            min_value=1,
            max_value=365,
        )
        since = self._clock() - timedelta(days=days)

        weekly_xp = func.sum(ActivityEvent.xp_granted).label("weekly_xp")
        stmt = (
            select(
                ActivityEvent.user_id,
                weekly_xp,
                UserProgress.username,
                UserProgress.level,
            )
            .join(UserProgress, UserProgress.user_id == ActivityEvent.user_id)
            .where(ActivityEvent.occurred_at >= since)
            .group_by(ActivityEvent.user_id, UserProgress.username, UserProgress.level)
            .order_by(weekly_xp.desc(), ActivityEvent.user_id.asc())
            .limit(n)
        )

        async with self.read_session() as session:
            rows = (await session.execute(stmt)).all()

        ranks = assign_competition_ranks([int(row.weekly_xp) for row in rows])
        return [
            {
                "rank": rank,
                "user_id": row.user_id,
                "username": row.username,
                "weekly_xp": int(row.weekly_xp),
                "level": row.level,
                "is_current_user": row.user_id == current_user_id,
            }
            for rank, row in zip(ranks, rows)
        ]

    async def achievements_top_n(
        self,
        n: Optional[int] = None,
        current_user_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Top `n` users by number of achievements."""
        n = self._validate_limit(n, "leaderboard.achievements_limit", 20)

        achievement_count = func.count(ActivityEvent.id).label("achievement_count")
        stmt = (
            select(
                ActivityEvent.user_id,
                achievement_count,
                UserProgress.username,
                UserProgress.level,
            )
            .join(UserProgress, UserProgress.user_id == ActivityEvent.user_id)
            .where(ActivityEvent.kind == ActivityKind.ACHIEVEMENT)
            .group_by(ActivityEvent.user_id, UserProgress.username, UserProgress.level)
            .order_by(achievement_count.desc(), ActivityEvent.user_id.asc())
            .limit(n)
        )

        async with self.read_session() as session:
            rows = (await session.execute(stmt)).all()

        ranks = assign_competition_ranks([int(row.achievement_count) for row in rows])
        return [
            {
                "rank": rank,
                "user_id": row.user_id,
                "username": row.username,
                "achievement_count": int(row.achievement_count),
                "level": row.level,
                "is_current_user": row.user_id == current_user_id,
            }
            for rank, row in zip(ranks, rows)
        ]

    # ========================================================================
    # Helpers
    # ========================================================================

    def _validate_limit(self, n: Optional[int], default_key: str, default: int) -> int:
        if n is None:
            n = self.get_config_int(default_key, default)
        return InputValidator.validate_integer(n, "limit", min_value=1, max_value=self._max_limit)

    async def _require_community(self, session: AsyncSession, community_id: int) -> None:
        self.validate_positive_int(community_id, "community_id")
        if not await self._community_repo.exists(session, Community.id == community_id):
            raise NotFoundError("Community", community_id)

    @staticmethod
    def _members_of(community_id: int):
        return select(CommunityMember.user_id).where(
            CommunityMember.community_id == community_id
        )
