"""
SQLite stand-ins for the PostGIS-backed parts of the schema.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Only ``rides`` carries Geometry columns; it is
mirrored here with plain String columns and without foreign keys.  All other
production tables are created as-is.
"""

from __future__ import annotations

from geoalchemy2 import Geometry
from sqlalchemy import Column, Enum, Index, String, Table, text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from ecoride.domain.entities import Ride
from ecoride.infrastructure.database import Base
from ecoride.infrastructure.models import (
    ACTIVE_RIDE_CONDITION,
    DriverModel,
    RideModel,
    RiderModel,
    RiderSubscriptionModel,
    SubscriptionPlanModel,
    enum_column_type,
)
from ecoride.infrastructure.repositories import RideRepository

# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

PRODUCTION_TABLES = [
    RiderModel.__table__,
    DriverModel.__table__,
    SubscriptionPlanModel.__table__,
    RiderSubscriptionModel.__table__,
]


class TestBase(DeclarativeBase):
    pass


def _mirror_type(type_):
    if isinstance(type_, Geometry):
        return String()  # stub for Geometry
    if isinstance(type_, Enum) and type_.enum_class is not None:
        return enum_column_type(type_.enum_class)
    return type_


def _mirror_column(column: Column) -> Column:
    return Column(
        column.name,
        _mirror_type(column.type),
        primary_key=column.primary_key,
        autoincrement=column.autoincrement,
        nullable=column.nullable,
        unique=column.unique,
        default=column.default.arg if column.default is not None else None,
        server_default=(
            column.server_default.arg if column.server_default is not None else None
        ),
    )


class TestRideModel(TestBase):
    __table__ = Table(
        "rides",
        TestBase.metadata,
        *(_mirror_column(c) for c in RideModel.__table__.columns),
        Index(
            "uq_rides_active_rider",
            "rider_id",
            unique=True,
            sqlite_where=text(ACTIVE_RIDE_CONDITION),
        ),
    )


class SqliteRideRepository(RideRepository):
    """``RideRepository`` against the mirrored rides table."""

    model = TestRideModel

    def _points(self, ride: Ride) -> dict:
        return {
            "pickup_point": f"POINT({ride.pickup.longitude} {ride.pickup.latitude})",
            "destination_point": (
                f"POINT({ride.destination.longitude} {ride.destination.latitude})"
            ),
        }


async def create_tables() -> None:
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=PRODUCTION_TABLES)
        await conn.run_sync(TestBase.metadata.create_all)


async def drop_tables() -> None:
    async with test_engine.begin() as conn:
        await conn.run_sync(TestBase.metadata.drop_all)
        await conn.run_sync(
            Base.metadata.drop_all, tables=list(reversed(PRODUCTION_TABLES))
        )
    # fresh in-memory database (and connection) for the next test
    await test_engine.dispose()
