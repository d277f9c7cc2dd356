"""
Tests for CounterLockManager - local asyncio locks and the Redis SET NX path.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from counter_queue.core.counter_lock import CounterLockManager
from counter_queue.exceptions import ServiceBusyError


def make_connection():
    connection = MagicMock()
    connection.connected = True
    connection.client = MagicMock()
    connection.client.set = AsyncMock(return_value=True)
    connection.client.eval = AsyncMock(return_value=1)
    return connection


class TestLocalLocks:

    @pytest.mark.asyncio
    async def test_same_counter_is_serialized(self):
        manager = CounterLockManager()
        order = []

        async def worker(name):
            async with manager.lock(1):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_different_counters_do_not_block(self):
        manager = CounterLockManager()
        async with manager.lock(1):
            async with manager.lock(2, timeout=0.1):
                pass

    @pytest.mark.asyncio
    async def test_timeout_raises_service_busy(self):
        manager = CounterLockManager()
        async with manager.lock(1):
            with pytest.raises(ServiceBusyError) as exc_info:
                async with manager.lock(1, timeout=0.01):
                    pass
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_lock_released_after_exception(self):
        manager = CounterLockManager()
        with pytest.raises(RuntimeError):
            async with manager.lock(1):
                raise RuntimeError("boom")

        acquired, _ = await manager.acquire(1, timeout=0.01)
        assert acquired is True

    @pytest.mark.asyncio
    async def test_lock_many_acquires_in_sorted_order(self):
        manager = CounterLockManager()
        acquired = []
        original_acquire = manager.acquire

        async def tracking_acquire(counter_id, *args, **kwargs):
            acquired.append(counter_id)
            return await original_acquire(counter_id, *args, **kwargs)

        manager.acquire = tracking_acquire

        async with manager.lock_many([3, 1, 2, 1]):
            assert all(manager._fallback_locks[i].locked() for i in (1, 2, 3))

        assert acquired == [1, 2, 3]
        assert not any(lock.locked() for lock in manager._fallback_locks.values())

    @pytest.mark.asyncio
    async def test_lock_many_with_no_counters(self):
        manager = CounterLockManager()
        async with manager.lock_many([]):
            pass


class TestRedisLocks:

    @pytest.mark.asyncio
    async def test_acquire_uses_set_nx_with_ttl(self):
        connection = make_connection()
        manager = CounterLockManager(connection)

        acquired, lock_id = await manager.acquire(5, ttl=30)

        assert acquired is True
        connection.client.set.assert_awaited_once_with("lock:counter:5", lock_id, nx=True, ex=30)

    @pytest.mark.asyncio
    async def test_acquire_retries_until_timeout(self):
        connection = make_connection()
        connection.client.set = AsyncMock(return_value=None)
        manager = CounterLockManager(connection)
        manager.RETRY_INTERVAL = 0.01

        acquired, _ = await manager.acquire(5, timeout=0.05)

        assert acquired is False
        assert connection.client.set.await_count > 1

    @pytest.mark.asyncio
    async def test_release_compares_owner(self):
        connection = make_connection()
        manager = CounterLockManager(connection)

        async with manager.lock(5) as lock_id:
            pass

        args = connection.client.eval.await_args.args
        assert args[1:] == (1, "lock:counter:5", lock_id)

    @pytest.mark.asyncio
    async def test_release_of_expired_lock_returns_false(self):
        connection = make_connection()
        connection.client.eval = AsyncMock(return_value=0)
        manager = CounterLockManager(connection)

        assert await manager.release(5, "stale") is False
