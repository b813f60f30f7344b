"""Tests for the stale-search sweeper."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from ecoride.domain import lifecycle
from ecoride.domain.entities import DriverInfo
from ecoride.domain.enums import RideStatus
from ecoride.workers import ride_sweeper
from ecoride.workers.ride_sweeper import sweep_stale_searches
from tests.conftest import KORAMANGALA, MG_ROAD, make_redis
from tests.sqlite_models import SqliteRideRepository

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def book(rider_id, minutes_ago):
    return lifecycle.create_ride(
        rider_id=rider_id, vehicle_type="bike", pickup=MG_ROAD,
        destination=KORAMANGALA, estimated_distance=4.8, estimated_duration=14,
        now=NOW - timedelta(minutes=minutes_ago),
    )


@pytest.mark.asyncio
async def test_fails_rides_stuck_searching(db_session):
    repo = SqliteRideRepository(db_session)
    stuck = book(1, minutes_ago=10)
    await repo.add(stuck)
    lifecycle.start_search(stuck)
    await repo.save(stuck)
    fresh = book(2, minutes_ago=1)
    await repo.add(fresh)

    failed = await sweep_stale_searches(repo, timeout_seconds=300, now=NOW)

    assert failed == [stuck.ride_id]
    assert (await repo.get(stuck.ride_id)).status is RideStatus.FAILED
    assert (await repo.get(fresh.ride_id)).status is RideStatus.REQUESTED
    assert await repo.get_active_for_rider(1) is None


@pytest.mark.asyncio
async def test_leaves_assigned_rides_alone(db_session):
    repo = SqliteRideRepository(db_session)
    ride = book(1, minutes_ago=30)
    await repo.add(ride)
    lifecycle.start_search(ride)
    lifecycle.assign_driver(ride, DriverInfo(driver_id=1, name="Ravi Kumar"))
    await repo.save(ride)

    assert await sweep_stale_searches(repo, timeout_seconds=300, now=NOW) == []
    assert (await repo.get(ride.ride_id)).status is RideStatus.DRIVER_ASSIGNED


@pytest.mark.asyncio
async def test_cycle_skips_when_lock_held():
    with patch.object(ride_sweeper, "get_redis", AsyncMock(return_value=make_redis(False))):
        assert await ride_sweeper.run_sweep_cycle() == 0


@pytest.mark.asyncio
async def test_scheduled_ride_waits_for_its_slot(db_session):
    repo = SqliteRideRepository(db_session)
    upcoming = lifecycle.create_ride(
        rider_id=1, vehicle_type="bike", pickup=MG_ROAD, destination=KORAMANGALA,
        estimated_distance=4.8, estimated_duration=14,
        scheduled_for=NOW + timedelta(days=1), now=NOW - timedelta(minutes=10),
    )
    await repo.add(upcoming)
    overdue = lifecycle.create_ride(
        rider_id=2, vehicle_type="bike", pickup=MG_ROAD, destination=KORAMANGALA,
        estimated_distance=4.8, estimated_duration=14,
        scheduled_for=NOW - timedelta(minutes=30), now=NOW - timedelta(hours=1),
    )
    await repo.add(overdue)

    assert await sweep_stale_searches(repo, timeout_seconds=300, now=NOW) == [
        overdue.ride_id
    ]
    assert (await repo.get(upcoming.ride_id)).status is RideStatus.REQUESTED
