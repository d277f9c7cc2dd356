import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class QueueEventType(str, Enum):
    QUEUE_CLAIMED = "queue_claimed"
    QUEUE_CALLED = "queue_called"
    QUEUE_SERVED = "queue_served"
    QUEUE_SKIPPED = "queue_skipped"
    QUEUE_RELEASED = "queue_released"
    QUEUE_RESET = "queue_reset"
    ALL_QUEUES_RESET = "all_queues_reset"


class QueueEvent(BaseModel):
    """
    One committed state transition as seen by observers. `counter_id` is
    always present (None for all_queues_reset); name and number are
    omitted when they do not apply.
    """
    event: QueueEventType
    counter_id: Optional[int] = None
    counter_name: Optional[str] = None
    queue_number: Optional[int] = None

    def to_payload(self) -> dict:
        payload = {"event": self.event.value, "counter_id": self.counter_id}
        if self.counter_name is not None:
            payload["counter_name"] = self.counter_name
        if self.queue_number is not None:
            payload["queue_number"] = self.queue_number
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), separators=(",", ":"))
