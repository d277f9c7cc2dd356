from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from counter_queue.models import Counter
from counter_queue.repositories.base import BaseRepository


class CounterRepository(BaseRepository[Counter]):
    def __init__(self, session: AsyncSession):
        super().__init__(Counter, session)

    async def get_by_id(self, counter_id: int, for_update: bool = False) -> Counter | None:
        """Non-deleted counter by id."""
        query = select(self.model).where(
            self.model.id == counter_id,
            self.model.deleted_at.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_by_name(self, name: str, exclude_id: Optional[int] = None) -> Counter | None:
        conditions = [
            self.model.name == name,
            self.model.deleted_at.is_(None),
        ]
        if exclude_id is not None:
            conditions.append(self.model.id != exclude_id)
        result = await self.session.execute(select(self.model).where(*conditions))
        return result.scalars().first()

    async def get_least_busy_active(self) -> Counter | None:
        """
        Active counter with the lowest serving number. Ties go to the lowest id
        so the choice is deterministic.
        """
        result = await self.session.execute(
            select(self.model)
            .where(self.model.is_active.is_(True), self.model.deleted_at.is_(None))
            .order_by(self.model.current_queue.asc(), self.model.id.asc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_counters(self, include_inactive: bool = False, newest_first: bool = False) -> List[Counter]:
        query = select(self.model).where(self.model.deleted_at.is_(None))
        if not include_inactive:
            query = query.where(self.model.is_active.is_(True))
        if newest_first:
            query = query.order_by(self.model.created_at.desc(), self.model.id.desc())
        else:
            query = query.order_by(self.model.name.asc())
        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_active_ids(self) -> List[int]:
        result = await self.session.execute(
            select(self.model.id)
            .where(self.model.is_active.is_(True), self.model.deleted_at.is_(None))
            .order_by(self.model.id.asc())
        )
        return list(result.scalars().all())

    async def clear_serving_numbers(self, counter_ids: List[int]) -> int:
        """Bulk-set the serving number of the given counters back to 0."""
        if not counter_ids:
            return 0
        result = await self.session.execute(
            update(self.model)
            .where(self.model.id.in_(counter_ids))
            .values(current_queue=0)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
