from fastapi import APIRouter, Depends, Query, Request, status

from counter_queue.api.dependencies.admin import get_current_admin
from counter_queue.models.admin import Admin
from counter_queue.schemas.counter import CounterCreate, CounterUpdate
from counter_queue.schemas.response import ApiResponse
from counter_queue.services.counter_service import CounterService

router = APIRouter()


def get_counter_service(request: Request) -> CounterService:
    return request.app.state.counter_service


@router.get("/", response_model=ApiResponse, response_model_exclude_unset=True)
async def list_counters(
    include_inactive: bool = Query(False, alias="includeInactive"),
    counter_service: CounterService = Depends(get_counter_service),
    current_admin: Admin = Depends(get_current_admin),
):
    return await counter_service.list_counters(include_inactive=include_inactive)


@router.post(
    "/",
    response_model=ApiResponse,
    response_model_exclude_unset=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_counter(
    payload: CounterCreate,
    counter_service: CounterService = Depends(get_counter_service),
    current_admin: Admin = Depends(get_current_admin),
):
    return await counter_service.create_counter(payload)


@router.get("/{counter_id}", response_model=ApiResponse, response_model_exclude_unset=True)
async def get_counter(
    counter_id: int,
    counter_service: CounterService = Depends(get_counter_service),
    current_admin: Admin = Depends(get_current_admin),
):
    return await counter_service.get_counter(counter_id)


@router.put("/{counter_id}", response_model=ApiResponse, response_model_exclude_unset=True)
async def update_counter(
    counter_id: int,
    payload: CounterUpdate,
    counter_service: CounterService = Depends(get_counter_service),
    current_admin: Admin = Depends(get_current_admin),
):
    return await counter_service.update_counter(counter_id, payload)


@router.delete("/{counter_id}", response_model=ApiResponse, response_model_exclude_unset=True)
async def delete_counter(
    counter_id: int,
    counter_service: CounterService = Depends(get_counter_service),
    current_admin: Admin = Depends(get_current_admin),
):
    """
    Soft-deletes a counter. Refused while it still has claimed or called tickets.
    """
    return await counter_service.delete_counter(counter_id)


@router.patch("/{counter_id}/toggle", response_model=ApiResponse, response_model_exclude_unset=True)
async def toggle_counter(
    counter_id: int,
    counter_service: CounterService = Depends(get_counter_service),
    current_admin: Admin = Depends(get_current_admin),
):
    return await counter_service.toggle_counter(counter_id)
