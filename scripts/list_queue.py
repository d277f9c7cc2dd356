import asyncio
import os
import sys
from sqlalchemy import select

sys.path.append(os.path.join(os.getcwd(), 'backend'))

from counter_queue.db.database import AsyncSessionLocal
from counter_queue.models import Counter, QueueTicket
from counter_queue.models.queue_ticket import IN_PROGRESS_STATUSES

async def list_queue():
    async with AsyncSessionLocal() as session:
        counters = (await session.execute(
            select(Counter).where(Counter.deleted_at.is_(None)).order_by(Counter.name)
        )).scalars().all()
        tickets = (await session.execute(
            select(QueueTicket)
            .where(QueueTicket.status.in_(IN_PROGRESS_STATUSES))
            .order_by(QueueTicket.created_at, QueueTicket.id)
        )).scalars().all()

        print(f"Total In-Progress Tickets: {len(tickets)}")
        for c in counters:
            state = "active" if c.is_active else "inactive"
            print(f"Counter {c.id}: {c.name} ({state})")
            print(f"  Serving: {c.current_queue or '-'} / max {c.max_queue}")
            for t in tickets:
                if t.counter_id == c.id:
                    print(f"  #{t.number:<4} {t.status.value:<8} since {t.created_at}")
            print("-" * 20)

if __name__ == "__main__":
    asyncio.run(list_queue())
