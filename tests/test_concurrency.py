"""
Concurrency safety tests.

Demonstrates:
1. Distributed lock prevents simultaneous acquire.
2. The per-rider booking lock turns a parallel "book" call into a conflict.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ecoride.infrastructure.locks import DistributedLock, LockNotAcquired, booking_lock
from tests.conftest import KORAMANGALA, MG_ROAD, make_redis


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = make_redis(acquire=True)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:test-key", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        lock = DistributedLock(make_redis(acquire=False), "test-key", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_calls_eval_with_own_token(self):
        mock_redis = make_redis()

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()
        assert mock_redis.eval.call_args.args[1:] == (1, "lock:test-key", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        lock = DistributedLock(make_redis(acquire=False), "test-key", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self):
        mock_redis = make_redis()
        with pytest.raises(ValueError):
            async with DistributedLock(mock_redis, "test-key"):
                raise ValueError("boom")
        mock_redis.eval.assert_awaited_once()

    def test_tokens_are_unique_per_lock(self):
        redis = AsyncMock()
        assert DistributedLock(redis, "k").token != DistributedLock(redis, "k").token

    def test_booking_lock_is_per_rider(self):
        lock = booking_lock(AsyncMock(), 42, ttl_seconds=15)
        assert lock.key == "lock:booking:rider:42"
        assert lock.ttl == 15


class TestBookingConflicts:
    @pytest.mark.asyncio
    async def test_booking_while_lock_held_is_conflict(self, client, redis_mock):
        redis_mock.set = AsyncMock(return_value=False)
        resp = await client.post("/api/v1/rides", json={
            "rider_id": 1,
            "vehicle_type": "bike",
            "pickup": {"address": MG_ROAD.address, "latitude": MG_ROAD.latitude,
                       "longitude": MG_ROAD.longitude},
            "destination": {"address": KORAMANGALA.address,
                            "latitude": KORAMANGALA.latitude,
                            "longitude": KORAMANGALA.longitude},
        })
        assert resp.status_code == 409
        assert resp.json()["error"] == "ActiveRideExists"

