from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status

from counter_queue.api.dependencies.admin import get_current_admin
from counter_queue.core.config import settings
from counter_queue.models.admin import Admin
from counter_queue.rate_limiter import limiter
from counter_queue.schemas.queue import CounterActionRequest, ReleaseQueueRequest, ResetQueueRequest
from counter_queue.schemas.response import ApiResponse
from counter_queue.services.queue_manager import QueueManagerService

router = APIRouter()


def get_queue_manager_service(request: Request) -> QueueManagerService:
    return request.app.state.queue_manager_service


@router.post(
    "/claim",
    response_model=ApiResponse,
    response_model_exclude_unset=True,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.CLAIM_RATE_LIMIT)
async def claim_queue(
    request: Request,
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
):
    """
    Issues a ticket on the least busy active counter.
    """
    return await queue_manager_service.claim_queue()


@router.post("/release", response_model=ApiResponse, response_model_exclude_unset=True)
async def release_queue(
    payload: ReleaseQueueRequest,
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
):
    """
    Withdraws a waiting ticket from its counter.
    """
    return await queue_manager_service.release_queue(payload.queue_number, payload.counter_id)


@router.get("/current", response_model=ApiResponse, response_model_exclude_unset=True)
async def get_current_queues(
    include_inactive: bool = Query(False, alias="includeInactive"),
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
):
    return await queue_manager_service.get_current_queues(include_inactive=include_inactive)


@router.get("/metrics", response_model=ApiResponse, response_model_exclude_unset=True)
async def get_queue_metrics(
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
):
    return await queue_manager_service.get_metrics()


@router.get("/search", response_model=ApiResponse, response_model_exclude_unset=True)
async def search_queues(
    q: Optional[str] = Query(None, max_length=100),
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
):
    return await queue_manager_service.search_queues(q)


@router.post("/next", response_model=ApiResponse, response_model_exclude_unset=True)
async def next_queue(
    payload: CounterActionRequest,
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
    current_admin: Admin = Depends(get_current_admin),
):
    """
    Serves the called ticket and calls the next waiting one.
    """
    return await queue_manager_service.next_queue(payload.counter_id)


@router.post("/skip", response_model=ApiResponse, response_model_exclude_unset=True)
async def skip_queue(
    payload: CounterActionRequest,
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
    current_admin: Admin = Depends(get_current_admin),
):
    """
    Skips the called ticket and calls the next waiting one, if any.
    """
    return await queue_manager_service.skip_queue(payload.counter_id)


@router.post("/reset", response_model=ApiResponse, response_model_exclude_unset=True)
async def reset_queues(
    payload: Optional[ResetQueueRequest] = Body(None),
    queue_manager_service: QueueManagerService = Depends(get_queue_manager_service),
    current_admin: Admin = Depends(get_current_admin),
):
    """
    Resets one counter's queue, or every active counter's when no counterId is given.
    """
    counter_id = payload.counter_id if payload is not None else None
    return await queue_manager_service.reset_queues(counter_id)
