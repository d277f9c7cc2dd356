import logging
from typing import Iterable

from counter_queue.core.pubsub import QueueEventBroker
from counter_queue.schemas.events import QueueEvent

logger = logging.getLogger(__name__)


class QueueNotifier:
    """
    Publishes queue events after their transaction has committed.
    Delivery is best-effort: a failed publish is logged and dropped, the
    committed state change stands and observers resync via current/metrics.
    """

    def __init__(self, broker: QueueEventBroker, channel: str):
        self.broker = broker
        self.channel = channel

    async def notify(self, event: QueueEvent) -> bool:
        payload = event.to_json()
        try:
            receivers = await self.broker.publish(self.channel, payload)
        except Exception as e:
            logger.warning(f"Failed to publish {event.event.value} for counter {event.counter_id}: {e}")
            return False
        logger.debug(f"Published {payload} to {self.channel} ({receivers} receivers)")
        return True

    async def notify_all(self, events: Iterable[QueueEvent]) -> int:
        """Publish in order; returns how many were delivered to the channel."""
        delivered = 0
        for event in events:
            if await self.notify(event):
                delivered += 1
        return delivered
