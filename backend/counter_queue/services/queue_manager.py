import logging
from typing import Any, Callable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from counter_queue.core.counter_lock import CounterLockManager
from counter_queue.exceptions import BadRequestError, NotFoundError
from counter_queue.models.counter import Counter
from counter_queue.models.queue_ticket import QueueTicket, TicketStatus
from counter_queue.repositories.counter import CounterRepository
from counter_queue.repositories.queue_ticket import QueueTicketRepository
from counter_queue.schemas.events import QueueEvent, QueueEventType
from counter_queue.schemas.queue import (
    CalledTicket,
    ClaimResult,
    CounterSnapshot,
    QueueMetrics,
    SearchResult,
)
from counter_queue.schemas.response import ApiResponse
from counter_queue.services.notifier import QueueNotifier

logger = logging.getLogger(__name__)


def validate_positive_id(value: Any, field: str, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise BadRequestError(f"Invalid {label}", field=field)
    return value


class QueueManagerService:
    """
    Ticket lifecycle for every counter: claim, release, next, skip and reset,
    plus the read-only current/metrics/search projections.

    Each mutating operation runs read -> decide -> write inside the counter's
    lock and a single transaction, then publishes its events before the lock
    is released so observers see one counter's events in commit order.
    """

    SEARCH_LIMIT = 20

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        notifier: QueueNotifier,
        lock_manager: CounterLockManager,
        counter_repository_class=CounterRepository,
        ticket_repository_class=QueueTicketRepository,
        service_minutes_per_ticket: int = 5,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.lock_manager = lock_manager
        self.counter_repository_class = counter_repository_class
        self.ticket_repository_class = ticket_repository_class
        self.service_minutes_per_ticket = service_minutes_per_ticket

    # -------------------- mutations --------------------

    async def claim_queue(self) -> ApiResponse:
        """
        Issue a ticket on the least busy active counter. An idle counter calls
        the new ticket straight away; otherwise it waits as `claimed`. When the
        chosen counter is deactivated or deleted before its lock is taken, the
        choice is made again.
        """
        while True:
            async with self.session_factory() as session:
                candidate = await self.counter_repository_class(session).get_least_busy_active()
            if candidate is None:
                raise NotFoundError("No active counters found")

            claimed = await self._claim_on(candidate.id)
            if claimed is not None:
                break
            logger.info(f"Counter {candidate.id} became unavailable before claim, choosing again")

        ticket, counter, status, position = claimed
        logger.info(f"Claimed ticket #{ticket.number} on counter {counter.id} ({status.value}, position {position})")
        result = ClaimResult(
            queue_number=ticket.number,
            counter_id=counter.id,
            counter_name=counter.name,
            status=status,
            position=position,
            estimated_wait_minutes=position * self.service_minutes_per_ticket,
        )
        return ApiResponse(
            status=True,
            message="Queue claimed successfully",
            data=result.model_dump(by_alias=True, mode="json"),
        )

    async def _claim_on(self, counter_id: int) -> Optional[Tuple[QueueTicket, Counter, TicketStatus, int]]:
        """Issue a ticket on one counter, or None if it is no longer active."""
        async with self.lock_manager.lock(counter_id):
            async with self.session_factory() as session:
                counter_repo = self.counter_repository_class(session)
                ticket_repo = self.ticket_repository_class(session)

                counter = await counter_repo.get_by_id(counter_id, for_update=True)
                if counter is None or not counter.is_active:
                    return None

                number = await self._next_ticket_number(counter, ticket_repo)

                if counter.current_queue == 0:
                    status = TicketStatus.CALLED
                    position = 0
                else:
                    status = TicketStatus.CLAIMED
                    position = await ticket_repo.count_for_counter(counter.id, [TicketStatus.CLAIMED]) + 1

                ticket = await ticket_repo.create(
                    QueueTicket(number=number, counter_id=counter.id, status=status)
                )
                if status == TicketStatus.CALLED:
                    counter.current_queue = number
                    await counter_repo.update(counter)

                await session.commit()

            event_type = QueueEventType.QUEUE_CALLED if status == TicketStatus.CALLED else QueueEventType.QUEUE_CLAIMED
            await self.notifier.notify(
                QueueEvent(event=event_type, counter_id=counter.id, counter_name=counter.name, queue_number=number)
            )
        return ticket, counter, status, position

    async def release_queue(self, queue_number: Any, counter_id: Any) -> ApiResponse:
        """Withdraw a waiting ticket. The counter's serving number is untouched."""
        queue_number = validate_positive_id(queue_number, "queueNumber", "queue number")
        counter_id = validate_positive_id(counter_id, "counterId", "counter ID")

        async with self.lock_manager.lock(counter_id):
            async with self.session_factory() as session:
                counter_repo = self.counter_repository_class(session)
                ticket_repo = self.ticket_repository_class(session)

                counter = await self._get_operable_counter(counter_repo, counter_id)
                ticket = await ticket_repo.get_claimed_by_number(counter_id, queue_number)
                if ticket is None:
                    raise NotFoundError("Queue not found or already processed")

                ticket.status = TicketStatus.RELEASED
                await ticket_repo.update(ticket)
                await session.commit()

            await self.notifier.notify(
                QueueEvent(
                    event=QueueEventType.QUEUE_RELEASED,
                    counter_id=counter_id,
                    counter_name=counter.name,
                    queue_number=queue_number,
                )
            )

        logger.info(f"Released ticket #{queue_number} on counter {counter_id}")
        data = CalledTicket(queue_number=queue_number, counter_id=counter_id, counter_name=counter.name)
        return ApiResponse(
            status=True,
            message="Queue released successfully",
            data=data.model_dump(by_alias=True, mode="json"),
        )

    async def next_queue(self, counter_id: Any) -> ApiResponse:
        """Serve the called ticket (if any) and call the earliest waiting one."""
        counter_id = validate_positive_id(counter_id, "counterId", "counter ID")
        events: List[QueueEvent] = []

        async with self.lock_manager.lock(counter_id):
            async with self.session_factory() as session:
                counter_repo = self.counter_repository_class(session)
                ticket_repo = self.ticket_repository_class(session)

                counter = await self._get_operable_counter(counter_repo, counter_id)

                called = await ticket_repo.get_called(counter_id, for_update=True)
                if called is not None:
                    called.status = TicketStatus.SERVED
                    await ticket_repo.update(called)
                    events.append(
                        QueueEvent(
                            event=QueueEventType.QUEUE_SERVED,
                            counter_id=counter_id,
                            counter_name=counter.name,
                            queue_number=called.number,
                        )
                    )

                promoted = await self._promote_next(counter, counter_repo, ticket_repo, events)
                await session.commit()

            await self.notifier.notify_all(events)

        if promoted is None:
            logger.info(f"Counter {counter_id} has no more queues to call")
            message = "No more queues to call"
        else:
            logger.info(f"Counter {counter_id} called ticket #{promoted.number}")
            message = "Next queue called successfully"

        data = CalledTicket(
            queue_number=promoted.number if promoted else None,
            counter_id=counter_id,
            counter_name=counter.name,
        )
        return ApiResponse(status=True, message=message, data=data.model_dump(by_alias=True, mode="json"))

    async def skip_queue(self, counter_id: Any) -> ApiResponse:
        """Skip the called ticket, then call the earliest waiting one if there is one."""
        counter_id = validate_positive_id(counter_id, "counterId", "counter ID")
        events: List[QueueEvent] = []

        async with self.lock_manager.lock(counter_id):
            async with self.session_factory() as session:
                counter_repo = self.counter_repository_class(session)
                ticket_repo = self.ticket_repository_class(session)

                counter = await self._get_operable_counter(counter_repo, counter_id)

                called = await ticket_repo.get_called(counter_id, for_update=True)
                if called is None:
                    raise NotFoundError("No called queue found for this counter")

                called.status = TicketStatus.SKIPPED
                await ticket_repo.update(called)
                events.append(
                    QueueEvent(
                        event=QueueEventType.QUEUE_SKIPPED,
                        counter_id=counter_id,
                        counter_name=counter.name,
                        queue_number=called.number,
                    )
                )

                promoted = await self._promote_next(counter, counter_repo, ticket_repo, events)
                await session.commit()

            await self.notifier.notify_all(events)

        logger.info(f"Counter {counter_id} skipped ticket #{called.number}")
        if promoted is None:
            message = "Queue skipped successfully, no more queues to call"
        else:
            message = "Queue skipped successfully and next queue called"

        data = CalledTicket(
            queue_number=promoted.number if promoted else None,
            counter_id=counter_id,
            counter_name=counter.name,
        )
        return ApiResponse(status=True, message=message, data=data.model_dump(by_alias=True, mode="json"))

    async def reset_queues(self, counter_id: Optional[Any] = None) -> ApiResponse:
        """
        Resolve every claimed/called ticket as `reset` and clear the serving
        number, for one counter or for all active counters. Served, skipped
        and released history is left alone.
        """
        if counter_id is not None:
            return await self._reset_counter(validate_positive_id(counter_id, "counterId", "counter ID"))

        async with self.session_factory() as session:
            counter_ids = await self.counter_repository_class(session).get_active_ids()

        async with self.lock_manager.lock_many(counter_ids):
            async with self.session_factory() as session:
                counter_repo = self.counter_repository_class(session)
                ticket_repo = self.ticket_repository_class(session)

                # Counters activated after the lock set was taken are left for the next reset
                locked = set(counter_ids)
                active_ids = [cid for cid in await counter_repo.get_active_ids() if cid in locked]

                reset_count = await ticket_repo.mark_reset(active_ids)
                await counter_repo.clear_serving_numbers(active_ids)
                await session.commit()

            await self.notifier.notify(QueueEvent(event=QueueEventType.ALL_QUEUES_RESET))

        logger.info(f"Reset {reset_count} ticket(s) across {len(active_ids)} active counter(s)")
        return ApiResponse(
            status=True,
            message="All active queues reset successfully",
            data={"counterIds": active_ids, "resetCount": reset_count},
        )

    async def _reset_counter(self, counter_id: int) -> ApiResponse:
        async with self.lock_manager.lock(counter_id):
            async with self.session_factory() as session:
                counter_repo = self.counter_repository_class(session)
                ticket_repo = self.ticket_repository_class(session)

                counter = await self._get_operable_counter(counter_repo, counter_id)
                reset_count = await ticket_repo.mark_reset([counter_id])
                counter.current_queue = 0
                await counter_repo.update(counter)
                await session.commit()

            await self.notifier.notify(
                QueueEvent(event=QueueEventType.QUEUE_RESET, counter_id=counter_id, counter_name=counter.name)
            )

        logger.info(f"Reset {reset_count} ticket(s) on counter {counter_id}")
        return ApiResponse(
            status=True,
            message=f"Queue for counter {counter.name} reset successfully",
            data={"counterId": counter_id, "resetCount": reset_count},
        )

    # -------------------- read-only projections --------------------

    async def get_current_queues(self, include_inactive: bool = False) -> ApiResponse:
        async with self.session_factory() as session:
            counters = await self.counter_repository_class(session).list_counters(include_inactive=include_inactive)
            called = await self.ticket_repository_class(session).get_called_by_counter([c.id for c in counters])

        data = [self._snapshot(counter, called.get(counter.id)).model_dump(by_alias=True, mode="json") for counter in counters]
        return ApiResponse(status=True, message="Current queues retrieved successfully", data=data)

    async def get_metrics(self) -> ApiResponse:
        async with self.session_factory() as session:
            ticket_repo = self.ticket_repository_class(session)
            counts = await ticket_repo.count_grouped_by_status()
            counters = await self.counter_repository_class(session).list_counters(include_inactive=True)
            called = await ticket_repo.get_called_by_counter([c.id for c in counters])

        metrics = QueueMetrics(
            total=sum(counts.values()),
            **{status.value: counts.get(status, 0) for status in TicketStatus},
            counters=[self._snapshot(counter, called.get(counter.id)) for counter in counters],
        )
        return ApiResponse(
            status=True,
            message="Queue metrics retrieved successfully",
            data=metrics.model_dump(by_alias=True, mode="json"),
        )

    async def search_queues(self, query: Optional[str] = None) -> ApiResponse:
        normalized = query.strip() if query else None
        async with self.session_factory() as session:
            rows = await self.ticket_repository_class(session).search(normalized or None, limit=self.SEARCH_LIMIT)

        data = [
            SearchResult(
                id=ticket.id,
                queue_number=ticket.number,
                status=ticket.status,
                counter_id=counter.id,
                counter_name=counter.name,
                created_at=ticket.created_at,
                updated_at=ticket.updated_at,
            ).model_dump(by_alias=True, mode="json")
            for ticket, counter in rows
        ]
        return ApiResponse(status=True, message="Search results retrieved successfully", data=data)

    # -------------------- helpers --------------------

    async def _get_operable_counter(self, counter_repo: CounterRepository, counter_id: int) -> Counter:
        counter = await counter_repo.get_by_id(counter_id, for_update=True)
        if counter is None:
            raise NotFoundError("Counter not found", field="counterId")
        if not counter.is_active:
            raise BadRequestError("Counter is not active", field="counterId")
        return counter

    async def _next_ticket_number(self, counter: Counter, ticket_repo: QueueTicketRepository) -> int:
        """
        Continue from the newest ticket still in progress so waiting tickets
        never share a number; with none in progress continue from the serving
        number. Wraps to 1 past max_queue.
        """
        latest = await ticket_repo.get_latest_in_progress(counter.id)
        base = latest.number if latest is not None else counter.current_queue
        number = base + 1
        if number > counter.max_queue:
            number = 1
        return number

    async def _promote_next(
        self,
        counter: Counter,
        counter_repo: CounterRepository,
        ticket_repo: QueueTicketRepository,
        events: List[QueueEvent],
    ) -> Optional[QueueTicket]:
        """
        Call the earliest claimed ticket and make it the serving number, or
        clear the serving number when nobody is waiting. Shared by next and skip.
        """
        claimed = await ticket_repo.get_earliest_claimed(counter.id, for_update=True)
        if claimed is None:
            counter.current_queue = 0
            await counter_repo.update(counter)
            return None

        claimed.status = TicketStatus.CALLED
        await ticket_repo.update(claimed)
        counter.current_queue = claimed.number
        await counter_repo.update(counter)
        events.append(
            QueueEvent(
                event=QueueEventType.QUEUE_CALLED,
                counter_id=counter.id,
                counter_name=counter.name,
                queue_number=claimed.number,
            )
        )
        return claimed

    def _snapshot(self, counter: Counter, called: Optional[QueueTicket]) -> CounterSnapshot:
        return CounterSnapshot(
            id=counter.id,
            name=counter.name,
            current_queue=counter.current_queue,
            max_queue=counter.max_queue,
            is_active=counter.is_active,
            called_number=called.number if called else None,
            called_status=called.status if called else None,
        )
