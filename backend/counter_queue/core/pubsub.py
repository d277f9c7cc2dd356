"""
Publish/subscribe channel for queue state changes.

`QueueEventBroker` publishes raw JSON payloads on a channel and hands out
`Subscription` objects that yield those payloads in publish order. With a
connected Redis it uses Redis pub/sub, so every API worker sees every event;
otherwise it fans out in-process to one bounded asyncio.Queue per subscriber;
a subscriber that falls too far behind is dropped and its stream closed.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from counter_queue.core.redis_client import RedisConnection

logger = logging.getLogger(__name__)


class Subscription:
    """A live stream of payloads from one channel. Close it to tear it down."""

    def __init__(self, channel: str):
        self.channel = channel
        self.closed = False

    async def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next payload, or None if nothing arrived within `timeout` seconds."""
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class InMemorySubscription(Subscription):
    def __init__(self, channel: str, broker: "QueueEventBroker", max_pending: int = 0):
        super().__init__(channel)
        self._broker = broker
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)

    async def get(self, timeout: Optional[float] = None) -> Optional[str]:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._broker._detach(self)


class RedisSubscription(Subscription):
    def __init__(self, channel: str, pubsub):
        super().__init__(channel)
        self._pubsub = pubsub

    async def get(self, timeout: Optional[float] = None) -> Optional[str]:
        message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        if message is None or message.get("type") != "message":
            return None
        return message["data"]

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._pubsub.unsubscribe(self.channel)
        finally:
            await self._pubsub.aclose()


class QueueEventBroker:
    MAX_PENDING = 1000

    def __init__(self, connection: Optional[RedisConnection] = None, max_pending: int = MAX_PENDING):
        self.connection = connection
        self.max_pending = max_pending
        self._local_subscribers: Dict[str, List[InMemorySubscription]] = {}

    @property
    def uses_redis(self) -> bool:
        return self.connection is not None and self.connection.connected

    async def publish(self, channel: str, payload: str) -> int:
        """
        Fire-and-forget publish. Returns the number of subscribers reached.
        Errors propagate; QueueNotifier decides whether to swallow them.
        """
        if self.uses_redis:
            return await self.connection.client.publish(channel, payload)

        delivered = 0
        for subscription in list(self._local_subscribers.get(channel, ())):
            try:
                subscription.queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning(
                    f"Dropping in-process subscriber on {channel}: {subscription.queue.qsize()} payloads pending"
                )
                subscription.closed = True
                self._detach(subscription)
                continue
            delivered += 1
        return delivered

    async def subscribe(self, channel: str) -> Subscription:
        if self.uses_redis:
            pubsub = self.connection.client.pubsub()
            await pubsub.subscribe(channel)
            logger.debug(f"Opened Redis subscription on {channel}")
            return RedisSubscription(channel, pubsub)

        subscription = InMemorySubscription(channel, self, self.max_pending)
        self._local_subscribers.setdefault(channel, []).append(subscription)
        logger.debug(f"Opened in-process subscription on {channel}")
        return subscription

    def subscriber_count(self, channel: str) -> int:
        """Local subscribers only; Redis subscribers live in other processes too."""
        return len(self._local_subscribers.get(channel, ()))

    def _detach(self, subscription: InMemorySubscription) -> None:
        subscribers = self._local_subscribers.get(subscription.channel, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._local_subscribers.pop(subscription.channel, None)
        logger.debug(f"Closed in-process subscription on {subscription.channel}")
