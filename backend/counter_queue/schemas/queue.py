from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from counter_queue.models.queue_ticket import TicketStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ReleaseQueueRequest(_CamelModel):
    # Range checks live in the service so they surface as BadRequest with a field name
    queue_number: int
    counter_id: int


class CounterActionRequest(_CamelModel):
    counter_id: int


class ResetQueueRequest(_CamelModel):
    counter_id: Optional[int] = None


class ClaimResult(_CamelModel):
    queue_number: int
    counter_id: int
    counter_name: str
    status: TicketStatus
    position: int
    estimated_wait_minutes: int


class CalledTicket(_CamelModel):
    queue_number: Optional[int] = None
    counter_id: int
    counter_name: str


class CounterSnapshot(_CamelModel):
    id: int
    name: str
    current_queue: int
    max_queue: int
    is_active: bool
    called_number: Optional[int] = None
    called_status: Optional[TicketStatus] = None


class QueueMetrics(_CamelModel):
    total: int = 0
    claimed: int = 0
    called: int = 0
    served: int = 0
    skipped: int = 0
    released: int = 0
    reset: int = 0
    counters: List[CounterSnapshot] = Field(default_factory=list)


class SearchResult(_CamelModel):
    id: int
    queue_number: int
    status: TicketStatus
    counter_id: int
    counter_name: str
    created_at: datetime
    updated_at: Optional[datetime] = None
