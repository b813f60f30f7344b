"""
Stale Search Sweeper
====================

Runs every ``SWEEPER_INTERVAL_SECONDS`` (default 30 s).

A ride that sits in ``requested`` or ``searching`` longer than
``SEARCH_TIMEOUT_SECONDS`` never found a driver; the sweeper moves it to
``failed`` so the rider is free to book again.  Nothing is retried.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance sweeps at a time
  across multiple API processes.
* **SELECT … FOR UPDATE SKIP LOCKED** leaves rides that a request is
  currently updating (e.g. assigning a driver) to the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from ecoride.config import settings
from ecoride.domain.entities import utcnow
from ecoride.domain.exceptions import InvalidTransition
from ecoride.domain.lifecycle import fail_ride
from ecoride.infrastructure.database import async_session_factory
from ecoride.infrastructure.locks import DistributedLock
from ecoride.infrastructure.redis_client import get_redis
from ecoride.infrastructure.repositories import RideRepository

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_sweeper_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Ride sweeper started (interval=%ds, timeout=%ds)",
        settings.sweeper_interval_seconds,
        settings.search_timeout_seconds,
    )


async def stop_sweeper_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Ride sweeper stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle()
        except Exception:
            logger.exception("Unhandled error in sweep cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweeper_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


async def sweep_stale_searches(
    repo: RideRepository,
    timeout_seconds: int,
    now: Optional[datetime] = None,
) -> list[str]:
    """Fail every ride still waiting for a driver past the timeout.

    Returns the ids of the rides that were failed.
    """
    now = now or utcnow()
    stale = await repo.get_stale_searches(now - timedelta(seconds=timeout_seconds))
    failed = []
    for ride in stale:
        try:
            fail_ride(ride, now=now)
        except InvalidTransition:
            continue
        await repo.save(ride)
        failed.append(ride.ride_id)
    return failed


async def run_sweep_cycle() -> int:
    """Execute one sweep.  Returns the number of rides failed."""
    redis = await get_redis()
    lock = DistributedLock(redis, "ride_sweeper", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping sweep")
        return 0

    try:
        async with async_session_factory() as session:
            failed = await sweep_stale_searches(
                RideRepository(session), settings.search_timeout_seconds
            )
            await session.commit()
        if failed:
            logger.info("Sweep cycle: %d stale rides failed", len(failed))
        return len(failed)
    except Exception:
        logger.exception("Error in sweep cycle")
        return 0
    finally:
        await lock.release()
