from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from counter_queue.models import Counter, QueueTicket, TicketStatus
from counter_queue.models.queue_ticket import IN_PROGRESS_STATUSES
from counter_queue.repositories.base import BaseRepository

# Ticket numbers never exceed the largest allowed max queue.
MAX_TICKET_NUMBER = 999


class QueueTicketRepository(BaseRepository[QueueTicket]):
    def __init__(self, session: AsyncSession):
        super().__init__(QueueTicket, session)

    async def get_called(self, counter_id: int, for_update: bool = False) -> QueueTicket | None:
        query = (
            select(self.model)
            .where(
                self.model.counter_id == counter_id,
                self.model.status == TicketStatus.CALLED,
            )
            .order_by(self.model.created_at.asc(), self.model.id.asc())
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_earliest_claimed(self, counter_id: int, for_update: bool = False) -> QueueTicket | None:
        query = (
            select(self.model)
            .where(
                self.model.counter_id == counter_id,
                self.model.status == TicketStatus.CLAIMED,
            )
            .order_by(self.model.created_at.asc(), self.model.id.asc())
            .limit(1)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_claimed_by_number(self, counter_id: int, number: int) -> QueueTicket | None:
        result = await self.session.execute(
            select(self.model)
            .where(
                self.model.counter_id == counter_id,
                self.model.number == number,
                self.model.status == TicketStatus.CLAIMED,
            )
            .order_by(self.model.created_at.asc(), self.model.id.asc())
        )
        return result.scalars().first()

    async def get_latest_in_progress(self, counter_id: int) -> QueueTicket | None:
        """Most recently issued ticket that is still claimed or called."""
        result = await self.session.execute(
            select(self.model)
            .where(
                self.model.counter_id == counter_id,
                self.model.status.in_(IN_PROGRESS_STATUSES),
            )
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def count_for_counter(self, counter_id: int, statuses: list) -> int:
        result = await self.session.execute(
            select(func.count(self.model.id)).where(
                self.model.counter_id == counter_id,
                self.model.status.in_(statuses),
            )
        )
        return result.scalar_one()

    async def mark_reset(self, counter_ids: List[int]) -> int:
        """Move every claimed/called ticket of the given counters to `reset`."""
        if not counter_ids:
            return 0
        result = await self.session.execute(
            update(self.model)
            .where(
                self.model.counter_id.in_(counter_ids),
                self.model.status.in_(IN_PROGRESS_STATUSES),
            )
            .values(status=TicketStatus.RESET, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def count_grouped_by_status(self) -> Dict[TicketStatus, int]:
        result = await self.session.execute(
            select(self.model.status, func.count(self.model.id)).group_by(self.model.status)
        )
        return {TicketStatus(status): count for status, count in result.all()}

    async def get_called_by_counter(self, counter_ids: List[int]) -> Dict[int, QueueTicket]:
        if not counter_ids:
            return {}
        result = await self.session.execute(
            select(self.model).where(
                self.model.counter_id.in_(counter_ids),
                self.model.status == TicketStatus.CALLED,
            )
        )
        return {ticket.counter_id: ticket for ticket in result.scalars().all()}

    async def search(self, query: Optional[str], limit: int = 20) -> List[Tuple[QueueTicket, Counter]]:
        """
        Tickets of active, non-deleted counters, most recent first. A numeric
        query in ticket range matches the ticket number as well as counter
        names; name matching is a literal substring match.
        """
        statement = (
            select(self.model, Counter)
            .join(Counter, Counter.id == self.model.counter_id)
            .where(Counter.is_active.is_(True), Counter.deleted_at.is_(None))
        )
        if query:
            escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            name_match = Counter.name.ilike(f"%{escaped}%", escape="\\")
            number = self._parse_ticket_number(query)
            if number is not None:
                statement = statement.where(or_(self.model.number == number, name_match))
            else:
                statement = statement.where(name_match)
        statement = statement.order_by(self.model.created_at.desc(), self.model.id.desc()).limit(limit)
        result = await self.session.execute(statement)
        return [(ticket, counter) for ticket, counter in result.all()]

    @staticmethod
    def _parse_ticket_number(query: str) -> Optional[int]:
        if not query.isdecimal():
            return None
        try:
            number = int(query)
        except ValueError:
            return None
        if 1 <= number <= MAX_TICKET_NUMBER:
            return number
        return None
