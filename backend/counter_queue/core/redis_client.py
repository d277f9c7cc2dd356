"""
Shared Redis connection used by the event broker and the counter locks.
Falls back gracefully if Redis is unavailable: callers check `connected`
and switch to their in-process implementations.
"""
import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisConnection:
    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._redis: Optional[redis.Redis] = None
        self._connected = False
        self._connection_attempted = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._redis

    async def connect(self) -> bool:
        """
        Initialize Redis connection.
        Returns True if connected, False otherwise.
        """
        if self._connection_attempted:
            return self._connected

        self._connection_attempted = True

        try:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await self._redis.ping()
            self._connected = True
            logger.info(f"Connected to Redis at {self.redis_url}")
            return True
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}. Using in-process fan-out and locks.")
            self._connected = False
            self._redis = None
            return False

    async def ping(self) -> bool:
        if not self._connected:
            return False
        try:
            return bool(await self._redis.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._connected = False
            self._redis = None
