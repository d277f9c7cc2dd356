"""
Per-counter critical sections for the queue state machine.
Uses Redis locks when a Redis connection is available so several API workers
serialize on the same counter; falls back to in-process asyncio locks.
"""
import asyncio
import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Iterable, Optional

from counter_queue.core.redis_client import RedisConnection
from counter_queue.exceptions import ServiceBusyError

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class CounterLockManager:
    """
    Context manager interface for acquiring and releasing a counter lock.
    """

    # Auto-release after this many seconds if the holder dies mid-operation
    DEFAULT_LOCK_TTL = 30

    # Maximum time to wait for lock acquisition (in seconds)
    DEFAULT_ACQUIRE_TIMEOUT = 10

    # Retry interval when waiting for a Redis lock (in seconds)
    RETRY_INTERVAL = 0.05

    KEY_PREFIX = "lock:counter"

    def __init__(self, connection: Optional[RedisConnection] = None):
        self.connection = connection
        self._fallback_locks: dict[int, asyncio.Lock] = {}

    def _key(self, counter_id: int) -> str:
        return f"{self.KEY_PREFIX}:{counter_id}"

    def _get_fallback_lock(self, counter_id: int) -> asyncio.Lock:
        # No await between lookup and insert, so this is safe on one event loop
        lock = self._fallback_locks.get(counter_id)
        if lock is None:
            lock = asyncio.Lock()
            self._fallback_locks[counter_id] = lock
        return lock

    async def acquire(
        self,
        counter_id: int,
        ttl: int = DEFAULT_LOCK_TTL,
        timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
    ) -> tuple[bool, str]:
        """
        Acquire the lock for a counter.

        Returns:
            Tuple of (success: bool, lock_id: str)
        """
        lock_id = str(uuid.uuid4())

        if self.connection is not None and self.connection.connected:
            key = self._key(counter_id)
            loop = asyncio.get_running_loop()
            start_time = loop.time()
            while True:
                acquired = await self.connection.client.set(key, lock_id, nx=True, ex=ttl)
                if acquired:
                    logger.debug(f"Acquired Redis lock for counter {counter_id} ({lock_id[:8]})")
                    return True, lock_id

                elapsed = loop.time() - start_time
                if elapsed >= timeout:
                    logger.warning(f"Timeout waiting for Redis lock on counter {counter_id} after {elapsed:.2f}s")
                    return False, lock_id
                await asyncio.sleep(self.RETRY_INTERVAL)

        fallback_lock = self._get_fallback_lock(counter_id)
        try:
            await asyncio.wait_for(fallback_lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout waiting for local lock on counter {counter_id}")
            return False, lock_id
        return True, lock_id

    async def release(self, counter_id: int, lock_id: str) -> bool:
        if self.connection is not None and self.connection.connected:
            try:
                result = await self.connection.client.eval(_RELEASE_SCRIPT, 1, self._key(counter_id), lock_id)
            except Exception as e:
                logger.warning(f"Lock release failed for counter {counter_id}: {e}")
                return False
            if result != 1:
                logger.warning(f"Redis lock for counter {counter_id} had already expired")
            return result == 1

        lock = self._fallback_locks.get(counter_id)
        if lock is not None and lock.locked():
            lock.release()
            return True
        return False

    @asynccontextmanager
    async def lock(
        self,
        counter_id: int,
        ttl: int = DEFAULT_LOCK_TTL,
        timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
    ):
        """
        Usage:
            async with lock_manager.lock(counter.id):
                # read, decide and write the counter's queue state

        Raises:
            ServiceBusyError: If the lock cannot be acquired within timeout
        """
        acquired, lock_id = await self.acquire(counter_id, ttl, timeout)
        if not acquired:
            raise ServiceBusyError(f"Counter {counter_id} is busy, please retry.")
        try:
            yield lock_id
        finally:
            await self.release(counter_id, lock_id)

    @asynccontextmanager
    async def lock_many(self, counter_ids: Iterable[int], timeout: float = DEFAULT_ACQUIRE_TIMEOUT):
        """Lock several counters, always in ascending id order to avoid deadlocks."""
        async with AsyncExitStack() as stack:
            for counter_id in sorted(set(counter_ids)):
                await stack.enter_async_context(self.lock(counter_id, timeout=timeout))
            yield
