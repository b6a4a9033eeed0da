"""
Account Service
===============

Everything the system stores about one user, exported as JSON or deleted in
a single transaction. Deletion removes dependants explicitly before the
progress row, so it does not rely on the store enforcing ON DELETE CASCADE.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from sqlalchemy import select

from luminax.core.database.base import utcnow
from luminax.core.event.types import EventNames
from luminax.core.logging.logger import get_logger
from luminax.core.validation.input_validator import InputValidator
from luminax.database.models import (
    ActivityEvent,
    Community,
    CommunityMember,
    Quest,
    UserProgress,
)
from luminax.modules.activity.recorder_service import serialize_event
from luminax.modules.quests.service import QuestTrackerService
from luminax.modules.shared.base_repository import BaseRepository
from luminax.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from luminax.core.config.manager import ConfigManager
    from luminax.core.database.service import DatabaseService
    from luminax.core.event.bus import EventBus
    from luminax.modules.progress.ledger_service import ProgressLedgerService


class AccountService(BaseService):
    """
    Public Methods
    --------------
    - export()         -> Progress, activity, quests and memberships
    - delete_account() -> Remove every row owned by the user
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
        self._events_repo = BaseRepository(
            model_class=ActivityEvent,
            logger=get_logger(f"{__name__}.ActivityEventRepository"),
        )
        self._quest_repo = BaseRepository(
            model_class=Quest,
            logger=get_logger(f"{__name__}.QuestRepository"),
        )
        self._member_repo = BaseRepository(
            model_class=CommunityMember,
            logger=get_logger(f"{__name__}.CommunityMemberRepository"),
        )
        self._progress_repo = BaseRepository(
            model_class=UserProgress,
            logger=get_logger(f"{__name__}.UserProgressRepository"),
        )

    async def export(self, user_id: str) -> Dict[str, Any]:
        user_id = InputValidator.validate_user_id(user_id)
        self.log_operation("account.export", user_id=user_id)

        progress = await self._ledger.get_progress(user_id)

        async with self.read_session() as session:
            events = await self._events_repo.find_many_where(
                session,
                ActivityEvent.user_id == user_id,
                order_by=(ActivityEvent.occurred_at.asc(), ActivityEvent.id.asc()),
            )
            quests = await self._quest_repo.find_many_where(
                session,
                Quest.user_id == user_id,
                order_by=(Quest.created_at.asc(), Quest.id.asc()),
            )
            memberships = (
                await session.execute(
                    select(Community.id, Community.name, CommunityMember.joined_at)
                    .join(CommunityMember, CommunityMember.community_id == Community.id)
                    .where(CommunityMember.user_id == user_id)
                    .order_by(CommunityMember.joined_at.asc())
                )
            ).all()

        return {
            "progress": progress,
            "activity": [serialize_event(event) for event in events],
            "quests": [QuestTrackerService.serialize(quest) for quest in quests],
            "communities": [
                {"community_id": community_id, "name": name, "joined_at": joined_at}
                for community_id, name, joined_at in memberships
            ],
            "exported_at": utcnow(),
        }

    async def delete_account(self, user_id: str) -> Dict[str, Any]:
        """
        Delete all rows owned by `user_id`. Deleting an unknown user is a
        no-op that reports zero counts.
        """
        user_id = InputValidator.validate_user_id(user_id)
        self.log_operation("account.delete", user_id=user_id)

        async with self._db.get_transaction("account.delete") as session:
            deleted = {
                "community_memberships": await self._member_repo.delete_where(
                    session, CommunityMember.user_id == user_id
                ),
                "quests": await self._quest_repo.delete_where(session, Quest.user_id == user_id),
                "activity_events": await self._events_repo.delete_where(
                    session, ActivityEvent.user_id == user_id
                ),
                "progress": await self._progress_repo.delete_where(
                    session, UserProgress.user_id == user_id
                ),
            }

        self.log.warning(
            "Account deleted",
            extra={"user_id": user_id, "deleted": deleted},
        )
        await self.emit_event(EventNames.ACCOUNT_DELETED, {"user_id": user_id})
        return {"user_id": user_id, "deleted": deleted}
