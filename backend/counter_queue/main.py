from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware
from typing import Optional
import os
import logging
import sys

from counter_queue.api import auth, counters, events, health, queue
from counter_queue.core.config import settings
from counter_queue.core.counter_lock import CounterLockManager
from counter_queue.core.logging_config import setup_logging
from counter_queue.core.pubsub import QueueEventBroker
from counter_queue.core.redis_client import RedisConnection
from counter_queue.db.database import AsyncSessionLocal
from counter_queue.exceptions import register_exception_handlers
from counter_queue.rate_limiter import limiter
from counter_queue.services.counter_service import CounterService
from counter_queue.services.notifier import QueueNotifier
from counter_queue.services.queue_manager import QueueManagerService

logger = logging.getLogger(__name__)

# Validate CORS for production
if settings.ENVIRONMENT == "production":
    if settings.CORS_ORIGINS == ["http://localhost:3000"]:
        logger.error("Production environment detected but CORS_ORIGINS is still the localhost default.")
        sys.exit(1)

app = FastAPI(title="Counter Queue")
app.state.limiter = limiter
# RateLimitExceeded is a Starlette HTTPException, rendered in the standard envelope
register_exception_handlers(app)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if os.getenv("TESTING") != "true":
    app.add_middleware(SlowAPIMiddleware)


def build_services(target: FastAPI, session_factory, redis_connection: Optional[RedisConnection] = None) -> None:
    """
    Attach the broker, lock manager and services to `target.state`. Without a
    connected Redis both the broker and the locks run in-process.
    """
    target.state.redis_connection = redis_connection
    target.state.event_broker = QueueEventBroker(redis_connection)
    target.state.lock_manager = CounterLockManager(redis_connection)
    target.state.notifier = QueueNotifier(target.state.event_broker, settings.QUEUE_CHANNEL)

    target.state.queue_manager_service = QueueManagerService(
        session_factory=session_factory,
        notifier=target.state.notifier,
        lock_manager=target.state.lock_manager,
        service_minutes_per_ticket=settings.SERVICE_MINUTES_PER_TICKET,
    )
    target.state.counter_service = CounterService(
        session_factory=session_factory,
        lock_manager=target.state.lock_manager,
    )


@app.on_event("startup")
async def startup_event():
    # Setup Logging
    setup_logging(settings.LOG_FILE_PATH)

    logger.info(f"Starting up in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS Allowed Origins: {settings.CORS_ORIGINS}")

    redis_connection = RedisConnection(settings.REDIS_URL)
    await redis_connection.connect()

    build_services(app, AsyncSessionLocal, redis_connection)
    mode = "redis" if app.state.event_broker.uses_redis else "in-process"
    logger.info(f"Queue events on channel '{settings.QUEUE_CHANNEL}' ({mode})")


@app.on_event("shutdown")
async def shutdown_event():
    connection = getattr(app.state, "redis_connection", None)
    if connection is not None:
        await connection.close()


app.include_router(health.router, prefix="/api/v1/health", tags=["Health Check"])
app.include_router(queue.router, prefix="/api/v1/queues", tags=["Queues"])
app.include_router(counters.router, prefix="/api/v1/counters", tags=["Counters"])
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Auth"])
app.include_router(events.router, prefix="/api/v1/sse", tags=["Events"])
