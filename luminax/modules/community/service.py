"""
Community Service
=================

Study communities: named groups learners join so they can compare progress
on a community-scoped leaderboard. Joining is idempotent; leaving a
community the user is not in is an invalid operation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from luminax.core.event.types import EventNames
from luminax.core.logging.logger import get_logger
from luminax.core.validation.input_validator import InputValidator
from luminax.database.models import Community, CommunityMember
from luminax.modules.shared.base_repository import BaseRepository
from luminax.modules.shared.base_service import BaseService
from luminax.modules.shared.exceptions import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus
    from luminax.modules.progress.ledger_service import ProgressLedgerService


MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 2000


class CommunityService(BaseService):
    """
    Public Methods
    --------------
    - create_community()
    - list_communities() -> With member counts
    - join() / leave()
    - member_ids()
    - my_communities()
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        ledger: ProgressLedgerService,
    ) -> None:
        super().__init__(database, config_manager, event_bus, logger)
        self._ledger = ledger
        self._community_repo = BaseRepository(
            model_class=Community,
            logger=get_logger(f"{__name__}.CommunityRepository"),
        )
        self._member_repo = BaseRepository(
            model_class=CommunityMember,
            logger=get_logger(f"{__name__}.CommunityMemberRepository"),
        )

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def list_communities(self) -> List[Dict[str, Any]]:
        member_count = func.count(CommunityMember.id).label("member_count")
        stmt = (
            select(Community, member_count)
            .outerjoin(CommunityMember, CommunityMember.community_id == Community.id)
            .group_by(Community.id)
            .order_by(Community.name.asc())
        )
        async with self.read_session() as session:
            rows = (await session.execute(stmt)).all()
        return [self._serialize(community, int(count)) for community, count in rows]

    async def member_ids(self, community_id: int) -> List[str]:
        async with self.read_session() as session:
            await self._require_community(session, community_id)
            members = await self._member_repo.find_many_where(
                session,
                CommunityMember.community_id == community_id,
                order_by=(CommunityMember.joined_at.asc(), CommunityMember.id.asc()),
            )
        return [member.user_id for member in members]

    async def my_communities(self, user_id: str) -> List[Dict[str, Any]]:
        user_id = InputValidator.validate_user_id(user_id)
        stmt = (
            select(Community, CommunityMember.joined_at)
            .join(CommunityMember, CommunityMember.community_id == Community.id)
            .where(CommunityMember.user_id == user_id)
            .order_by(CommunityMember.joined_at.desc())
        )
        async with self.read_session() as session:
            rows = (await session.execute(stmt)).all()
        return [
            {**self._serialize(community), "joined_at": joined_at}
            for community, joined_at in rows
        ]

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def create_community(
        self, name: str, description: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Raises:
            ConflictError: a community with this name already exists
        """
        name = InputValidator.validate_string(name, "name", max_length=MAX_NAME_LENGTH)
        description = InputValidator.validate_optional_string(
            description, "description", max_length=MAX_DESCRIPTION_LENGTH
        )
        self.log_operation("create_community", name=name)

        async with self._db.get_transaction("community.create") as session:
            if await self._community_repo.exists(session, Community.name == name):
                raise ConflictError("Community", "name already taken", name=name)
            try:
                community = await self._community_repo.add(
                    session, Community(name=name, description=description)
                )
            except IntegrityError as exc:
                raise ConflictError("Community", "name already taken", name=name) from exc
            data = self._serialize(community, 0)

        return data

    async def join(self, community_id: int, user_id: str) -> Dict[str, Any]:
        """Add the user to the community. Joining twice is a no-op."""
        user_id = InputValidator.validate_user_id(user_id)

        async with self._db.get_transaction("community.join") as session:
            await self._ledger.ensure_progress(user_id, session)
            await self._require_community(session, community_id)

            existing = await self._member_repo.find_one_where(
                session,
                CommunityMember.community_id == community_id,
                CommunityMember.user_id == user_id,
            )
            joined_now = existing is None
            if joined_now:
                existing = await self._member_repo.add(
                    session, CommunityMember(community_id=community_id, user_id=user_id)
                )
            joined_at = existing.joined_at

        if joined_now:
            self.log.info(
                "User joined community",
                extra={"user_id": user_id, "community_id": community_id},
            )
            await self.emit_event(
                EventNames.COMMUNITY_JOINED,
                {"user_id": user_id, "community_id": community_id},
            )
        return {"community_id": community_id, "joined": joined_now, "joined_at": joined_at}

    async def leave(self, community_id: int, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: community does not exist
            InvalidOperationError: user is not a member
        """
        user_id = InputValidator.validate_user_id(user_id)

        async with self._db.get_transaction("community.leave") as session:
            await self._require_community(session, community_id)
            deleted = await self._member_repo.delete_where(
                session,
                CommunityMember.community_id == community_id,
                CommunityMember.user_id == user_id,
            )
            if not deleted:
                raise InvalidOperationError("leave_community", "not a member")

        return {"community_id": community_id, "left": True}

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _require_community(self, session: AsyncSession, community_id: int) -> None:
        self.validate_positive_int(community_id, "community_id")
        if not await self._community_repo.exists(session, Community.id == community_id):
            raise NotFoundError("Community", community_id)

    @staticmethod
    def _serialize(community: Community, member_count: Optional[int] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "community_id": community.id,
            "name": community.name,
            "description": community.description,
            "created_at": community.created_at,
        }
        if member_count is not None:
            data["member_count"] = member_count
        return data
