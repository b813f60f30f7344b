"""
Redis-based distributed lock.

Two users:

* ``booking_lock`` -- one booking in flight per rider, so two concurrent
  "book" calls cannot both pass the active-ride check.  The partial unique
  index on ``rides`` is the backstop if the lock expires mid-request.
* the stale-search sweeper, so only one instance sweeps at a time.

Implementation uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)

    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


def booking_lock(client: aioredis.Redis, rider_id: int, ttl_seconds: int) -> DistributedLock:
    return DistributedLock(client, f"booking:rider:{rider_id}", ttl_seconds=ttl_seconds)
