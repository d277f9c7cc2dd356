import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from counter_queue.core.counter_lock import CounterLockManager
from counter_queue.exceptions import BadRequestError, ConflictError, NotFoundError
from counter_queue.models.counter import Counter
from counter_queue.models.queue_ticket import IN_PROGRESS_STATUSES
from counter_queue.repositories.counter import CounterRepository
from counter_queue.repositories.queue_ticket import QueueTicketRepository
from counter_queue.schemas.counter import CounterCreate, CounterSchema, CounterUpdate
from counter_queue.schemas.response import ApiResponse

logger = logging.getLogger(__name__)

MIN_MAX_QUEUE = 1
MAX_MAX_QUEUE = 999


def _normalize_name(name: Optional[str]) -> str:
    normalized = (name or "").strip()
    if not normalized:
        raise BadRequestError("Counter name is required", field="name")
    return normalized


def _validate_max_queue(max_queue: Any) -> int:
    if isinstance(max_queue, bool) or not isinstance(max_queue, int) or not MIN_MAX_QUEUE <= max_queue <= MAX_MAX_QUEUE:
        raise BadRequestError(f"Max queue must be between {MIN_MAX_QUEUE} and {MAX_MAX_QUEUE}", field="maxQueue")
    return max_queue


def _serialize(counter: Counter) -> dict:
    return CounterSchema.model_validate(counter).model_dump(by_alias=True, mode="json")


class CounterService:
    """
    Admin CRUD over counters. Deletion is soft and refused while the counter
    still has claimed or called tickets.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        lock_manager: CounterLockManager,
        counter_repository_class=CounterRepository,
        ticket_repository_class=QueueTicketRepository,
    ):
        self.session_factory = session_factory
        self.lock_manager = lock_manager
        self.counter_repository_class = counter_repository_class
        self.ticket_repository_class = ticket_repository_class

    async def list_counters(self, include_inactive: bool = False) -> ApiResponse:
        async with self.session_factory() as session:
            counters = await self.counter_repository_class(session).list_counters(
                include_inactive=include_inactive, newest_first=True
            )
        return ApiResponse(
            status=True,
            message="Counters retrieved successfully",
            data=[_serialize(counter) for counter in counters],
        )

    async def get_counter(self, counter_id: int) -> ApiResponse:
        async with self.session_factory() as session:
            counter = await self.counter_repository_class(session).get_by_id(counter_id)
        if counter is None:
            raise NotFoundError("Counter not found")
        return ApiResponse(status=True, message="Counter retrieved successfully", data=_serialize(counter))

    async def create_counter(self, payload: CounterCreate) -> ApiResponse:
        name = _normalize_name(payload.name)
        max_queue = _validate_max_queue(payload.max_queue)

        async with self.session_factory() as session:
            repo = self.counter_repository_class(session)
            if await repo.get_by_name(name) is not None:
                raise ConflictError("Counter with this name already exists", field="name")
            try:
                counter = await repo.create(Counter(name=name, max_queue=max_queue, current_queue=0, is_active=True))
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictError("Counter with this name already exists", field="name")

        logger.info(f"Created counter {counter.id} ({counter.name})")
        return ApiResponse(status=True, message="Counter created successfully", data=_serialize(counter))

    async def update_counter(self, counter_id: int, payload: CounterUpdate) -> ApiResponse:
        changes = payload.model_dump(exclude_unset=True)

        async with self.session_factory() as session:
            repo = self.counter_repository_class(session)
            counter = await repo.get_by_id(counter_id, for_update=True)
            if counter is None:
                raise NotFoundError("Counter not found")

            if "name" in changes:
                name = _normalize_name(changes["name"])
                if await repo.get_by_name(name, exclude_id=counter_id) is not None:
                    raise ConflictError("Counter with this name already exists", field="name")
                counter.name = name
            if "max_queue" in changes:
                counter.max_queue = _validate_max_queue(changes["max_queue"])
            if changes.get("is_active") is not None:
                counter.is_active = changes["is_active"]

            try:
                counter = await repo.update(counter)
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictError("Counter with this name already exists", field="name")

        logger.info(f"Updated counter {counter_id}: {sorted(changes)}")
        return ApiResponse(status=True, message="Counter updated successfully", data=_serialize(counter))

    async def delete_counter(self, counter_id: int) -> ApiResponse:
        async with self.lock_manager.lock(counter_id):
            async with self.session_factory() as session:
                repo = self.counter_repository_class(session)
                counter = await repo.get_by_id(counter_id, for_update=True)
                if counter is None:
                    raise NotFoundError("Counter not found")

                in_progress = await self.ticket_repository_class(session).count_for_counter(
                    counter_id, IN_PROGRESS_STATUSES
                )
                if in_progress:
                    raise ConflictError("Cannot delete counter with active queues")

                counter.deleted_at = datetime.utcnow()
                counter.is_active = False
                await repo.update(counter)
                await session.commit()

        logger.info(f"Soft-deleted counter {counter_id} ({counter.name})")
        return ApiResponse(status=True, message="Counter deleted successfully")

    async def toggle_counter(self, counter_id: int) -> ApiResponse:
        async with self.session_factory() as session:
            repo = self.counter_repository_class(session)
            counter = await repo.get_by_id(counter_id, for_update=True)
            if counter is None:
                raise NotFoundError("Counter not found")
            counter.is_active = not counter.is_active
            counter = await repo.update(counter)
            await session.commit()

        state = "activated" if counter.is_active else "deactivated"
        logger.info(f"Counter {counter_id} {state}")
        return ApiResponse(status=True, message=f"Counter {state} successfully", data=_serialize(counter))
