"""
Generic data access for one mapped model.

Repositories run inside the session a service hands them and never commit;
the unit of work belongs to `DatabaseService.get_transaction()`.

    class QuestRepository(BaseRepository[Quest]):
        async def active_for_user(self, session, user_id, now):
            return await self.find_many_where(
                session,
                Quest.user_id == user_id,
                Quest.completed.is_(False),
                Quest.expires_at > now,
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, delete, inspect, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    def __init__(self, model_class: Type[ModelT], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger
        self._pk = inspect(model_class).primary_key[0]

    def _trace(self, action: str, **fields: Any) -> None:
        self.log.debug(
            f"{self.model_class.__name__}.{action}",
            extra={"model": self.model_class.__name__, **fields},
        )

    def _select(
        self,
        conditions: Sequence[ColumnElement[bool]],
        *,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        for_update: bool = False,
    ) -> Select:
        stmt = select(self.model_class).where(*conditions).order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        # FOR UPDATE is dropped by SQLite and honoured by PostgreSQL
        return stmt.with_for_update() if for_update else stmt

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[ModelT]:
        """Primary-key lookup through the identity map, no lock."""
        return await session.get(self.model_class, id_value)

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[ModelT]:
        result = await session.execute(self._select(conditions, for_update=for_update))
        return result.scalars().first()

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        for_update: bool = False,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        stmt = self._select(conditions, order_by=order_by, limit=limit, for_update=for_update)
        rows = list((await session.execute(stmt)).scalars())
        self._trace("find_many", count=len(rows), limit=limit, locked=for_update)
        return rows

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        result = await session.execute(select(self._pk).where(*conditions).limit(1))
        return result.first() is not None

    async def add(self, session: AsyncSession, instance: ModelT) -> ModelT:
        """Add and flush, so generated keys are set when this returns."""
        session.add(instance)
        await session.flush()
        self._trace("add", id=getattr(instance, self._pk.key, None))
        return instance

    async def delete_where(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        result = await session.execute(delete(self.model_class).where(*conditions))
        deleted = result.rowcount or 0
        self._trace("delete", deleted=deleted)
        return deleted
