"""
Shared test fixtures.

Database-backed tests run on the in-memory SQLite schema from
``tests.sqlite_models``; Redis is an ``AsyncMock``.
"""

from datetime import date
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from ecoride.domain.entities import Location
from ecoride.domain.enums import VehicleType
from ecoride.infrastructure.models import DriverModel, RiderModel
from tests.sqlite_models import (
    SqliteRideRepository,
    TestSessionFactory,
    create_tables,
    drop_tables,
)

# Bengaluru landmarks, ~4.8 km apart
MG_ROAD = Location("MG Road Metro", 12.9756, 77.6066)
KORAMANGALA = Location("Koramangala 5th Block", 12.9352, 77.6245)


def make_redis(acquire: bool = True) -> AsyncMock:
    mock_redis = AsyncMock()
    mock_redis.set = AsyncMock(return_value=acquire)
    mock_redis.eval = AsyncMock(return_value=1)
    return mock_redis


async def _seed_people(session: AsyncSession) -> None:
    session.add_all([
        RiderModel(
            name="Test Rider", phone="+910000000001",
            is_phone_verified=True, date_of_birth=date(1990, 6, 1),
        ),
        RiderModel(name="Unverified Rider", phone="+910000000002"),
        DriverModel(
            name="Ravi Kumar", phone="+910000000101", rating=4.8,
            vehicle_type=VehicleType.BIKE, vehicle_make="Ather",
            vehicle_model="450X", vehicle_color="Grey",
            license_plate="KA01EB1001", battery_level=90,
        ),
    ])
    await session.commit()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables and seed two riders and a driver; drop afterwards."""
    await create_tables()
    async with TestSessionFactory() as session:
        await _seed_people(session)
        yield session
    await drop_tables()


@pytest.fixture
def redis_mock() -> AsyncMock:
    return make_redis()


@pytest_asyncio.fixture
async def client(redis_mock: AsyncMock) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient backed by SQLite + mirrored ride model + mocked Redis."""
    await create_tables()
    async with TestSessionFactory() as session:
        await _seed_people(session)

    with (
        patch("ecoride.workers.ride_sweeper.start_sweeper_loop", new_callable=AsyncMock),
        patch("ecoride.workers.ride_sweeper.stop_sweeper_loop", new_callable=AsyncMock),
        patch("ecoride.api.routes.rides.RideRepository", SqliteRideRepository),
        patch("ecoride.api.routes.plans.RideRepository", SqliteRideRepository),
        patch("ecoride.api.routes.admin.RideRepository", SqliteRideRepository),
    ):
        async def _test_db():
            async with TestSessionFactory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        async def _test_redis():
            return redis_mock

        from ecoride.api.app import create_app
        from ecoride.api.dependencies import get_db, get_redis_client
        from ecoride.api.middleware import limiter

        limiter.reset()
        app = create_app()
        app.dependency_overrides[get_db] = _test_db
        app.dependency_overrides[get_redis_client] = _test_redis

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

    await drop_tables()
