import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from counter_queue.core.pubsub import QueueEventBroker
from counter_queue.schemas.events import QueueEvent, QueueEventType
from counter_queue.services.notifier import QueueNotifier


def test_event_payload_omits_missing_fields():
    event = QueueEvent(event=QueueEventType.ALL_QUEUES_RESET)
    assert event.to_payload() == {"event": "all_queues_reset", "counter_id": None}

    event = QueueEvent(event=QueueEventType.QUEUE_RESET, counter_id=3, counter_name="Teller")
    assert event.to_payload() == {"event": "queue_reset", "counter_id": 3, "counter_name": "Teller"}


def test_event_json_is_compact():
    event = QueueEvent(event=QueueEventType.QUEUE_CALLED, counter_id=1, counter_name="A", queue_number=7)
    assert event.to_json() == '{"event":"queue_called","counter_id":1,"counter_name":"A","queue_number":7}'


@pytest.mark.asyncio
async def test_notify_publishes_on_channel():
    broker = QueueEventBroker()
    subscription = await broker.subscribe("queue_updates")
    notifier = QueueNotifier(broker, "queue_updates")

    delivered = await notifier.notify(
        QueueEvent(event=QueueEventType.QUEUE_CLAIMED, counter_id=1, counter_name="A", queue_number=2)
    )

    assert delivered is True
    assert json.loads(await subscription.get(timeout=0.1))["event"] == "queue_claimed"


@pytest.mark.asyncio
async def test_notify_swallows_publish_failure(caplog):
    broker = MagicMock()
    broker.publish = AsyncMock(side_effect=ConnectionError("redis down"))
    notifier = QueueNotifier(broker, "queue_updates")

    delivered = await notifier.notify(QueueEvent(event=QueueEventType.QUEUE_SERVED, counter_id=4, queue_number=1))

    assert delivered is False
    assert "Failed to publish queue_served for counter 4" in caplog.text


@pytest.mark.asyncio
async def test_notify_all_keeps_order_and_continues_after_failure():
    published = []

    async def publish(channel, payload):
        if "queue_served" in payload:
            raise ConnectionError("flaky")
        published.append(json.loads(payload)["event"])
        return 1

    broker = MagicMock()
    broker.publish = publish
    notifier = QueueNotifier(broker, "queue_updates")

    delivered = await notifier.notify_all([
        QueueEvent(event=QueueEventType.QUEUE_SKIPPED, counter_id=1, queue_number=2),
        QueueEvent(event=QueueEventType.QUEUE_SERVED, counter_id=1, queue_number=2),
        QueueEvent(event=QueueEventType.QUEUE_CALLED, counter_id=1, queue_number=3),
    ])

    assert delivered == 2
    assert published == ["queue_skipped", "queue_called"]


@pytest.mark.asyncio
async def test_committed_state_survives_publish_failure(queue_service, make_counter, session_factory, notifier):
    from counter_queue.models import Counter

    counter = await make_counter()
    notifier.broker.publish = AsyncMock(side_effect=ConnectionError("redis down"))

    response = await queue_service.claim_queue()

    assert response.status is True
    async with session_factory() as session:
        assert (await session.get(Counter, counter.id)).current_queue == 1
