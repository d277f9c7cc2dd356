import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from counter_queue.core.config import settings
from counter_queue.core.pubsub import Subscription

logger = logging.getLogger(__name__)

router = APIRouter()

CONNECTED_FRAME = f"data: {json.dumps({'event': 'connected'}, separators=(',', ':'))}\n\n"
KEEPALIVE_FRAME = ": keep-alive\n\n"


async def event_stream(request: Request, subscription: Subscription, keepalive_seconds: float) -> AsyncIterator[str]:
    """
    Server-Sent Events framing over one subscription. Sends the connected
    frame first, then every payload as it arrives, with a comment line on
    idle intervals. The subscription is closed when the client goes away,
    and the stream ends if the broker drops a subscriber that fell behind.
    """
    try:
        yield CONNECTED_FRAME
        while not subscription.closed and not await request.is_disconnected():
            message = await subscription.get(timeout=keepalive_seconds)
            if message is None:
                yield KEEPALIVE_FRAME
                continue
            yield f"data: {message}\n\n"
    finally:
        await subscription.close()
        logger.debug(f"SSE client disconnected from {subscription.channel}")


@router.get("")
async def stream_queue_events(request: Request):
    """
    Live queue updates for displays and kiosks.
    """
    broker = request.app.state.event_broker
    subscription = await broker.subscribe(settings.QUEUE_CHANNEL)
    logger.debug(f"SSE client connected to {settings.QUEUE_CHANNEL}")
    return StreamingResponse(
        event_stream(request, subscription, settings.SSE_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
