import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from counter_queue.db.database import get_db_session
from counter_queue.exceptions import ServiceBusyError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def root_health_check():
    return {"status": "ok"}


@router.get("/db")
async def db_health_check(session: AsyncSession = Depends(get_db_session)):
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise ServiceBusyError(f"Database connection failed: {e}")


@router.get("/redis")
async def redis_health_check(request: Request):
    """
    Redis is optional: without it events fan out in-process and locks are
    local, so an unavailable Redis reports degraded rather than failing.
    """
    connection = getattr(request.app.state, "redis_connection", None)
    if connection is None or not connection.connected:
        return {"status": "unavailable", "redis": "not connected", "fallback": "in-process"}

    if await connection.ping():
        return {"status": "ok", "redis": "connected"}
    return {"status": "degraded", "redis": "connected but ping failed"}
