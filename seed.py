"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 sample riders (verified and unverified, with birth dates)
  - 6 sample drivers (electric bikes and cars around Bengaluru)
  - 6 subscription plans (bike and car, one recommended per vehicle type)
  - 4 sample rides (completed, cancelled and one still searching)
"""

import asyncio
from datetime import date, timedelta

from sqlalchemy import text

from ecoride.domain import lifecycle
from ecoride.domain.entities import (
    Location,
    PlanAvailability,
    PlanDiscount,
    PlanFeature,
    utcnow,
)
from ecoride.domain.enums import CancelledBy, SupportTier, VehicleType
from ecoride.domain.distance import estimate_trip
from ecoride.domain.subscriptions import create_plan
from ecoride.infrastructure.database import async_session_factory, engine
from ecoride.infrastructure.models import DriverModel, RiderModel
from ecoride.infrastructure.repositories import (
    DriverRepository,
    PlanRepository,
    RideRepository,
)

RIDERS = [
    {"name": "Aarav Sharma", "phone": "+919800000001", "verified": True, "dob": date(1994, 5, 12)},
    {"name": "Priya Patel", "phone": "+919800000002", "verified": True, "dob": date(1988, 11, 3)},
    {"name": "Rohan Mehta", "phone": "+919800000003", "verified": False, "dob": date(2001, 2, 20)},
    {"name": "Sneha Gupta", "phone": "+919800000004", "verified": True, "dob": date(1979, 7, 30)},
    {"name": "Vikram Singh", "phone": "+919800000005", "verified": True, "dob": None},
    {"name": "Ananya Reddy", "phone": "+919800000006", "verified": True, "dob": date(2009, 1, 15)},
]

DRIVERS = [
    {"name": "Ravi Kumar", "vt": VehicleType.BIKE, "make": "Ather", "model": "450X", "color": "Grey", "plate": "KA01EB1001", "battery": 92},
    {"name": "Suresh Babu", "vt": VehicleType.BIKE, "make": "Ola", "model": "S1 Pro", "color": "White", "plate": "KA01EB1002", "battery": 78},
    {"name": "Imran Khan", "vt": VehicleType.BIKE, "make": "TVS", "model": "iQube", "color": "Blue", "plate": "KA01EB1003", "battery": 64},
    {"name": "Lakshmi Devi", "vt": VehicleType.CAR, "make": "Tata", "model": "Nexon EV", "color": "Teal", "plate": "KA01EC2001", "battery": 85},
    {"name": "Manoj Rao", "vt": VehicleType.CAR, "make": "MG", "model": "ZS EV", "color": "Red", "plate": "KA01EC2002", "battery": 71},
    {"name": "Deepa Nair", "vt": VehicleType.CAR, "make": "Hyundai", "model": "Kona", "color": "Black", "plate": "KA01EC2003", "battery": 58},
]

PLANS = [
    {
        "name": "Bike Starter", "vt": VehicleType.BIKE, "monthly": 499, "km": 60,
        "support": SupportTier.BASIC, "popular": False, "featured": False,
        "features": [PlanFeature("60 km included"), PlanFeature("Priority booking", included=False)],
    },
    {
        "name": "Bike Commuter", "vt": VehicleType.BIKE, "monthly": 999, "km": 150,
        "support": SupportTier.PRIORITY, "popular": True, "featured": True,
        "features": [PlanFeature("150 km included"), PlanFeature("Priority booking")],
        "discount": 20, "recommended": True, "conversion": 0.18,
    },
    {
        "name": "Bike Unlimited", "vt": VehicleType.BIKE, "monthly": 1799, "km": 400,
        "support": SupportTier.ALL_HOURS, "popular": True, "featured": False,
        "features": [PlanFeature("400 km included"), PlanFeature("24x7 support")],
    },
    {
        "name": "Car Lite", "vt": VehicleType.CAR, "monthly": 2499, "km": 100,
        "support": SupportTier.PRIORITY, "popular": False, "featured": False,
        "features": [PlanFeature("100 km included"), PlanFeature("No surge charges")],
    },
    {
        "name": "Car Family", "vt": VehicleType.CAR, "monthly": 3999, "km": 200,
        "support": SupportTier.PRIORITY, "popular": True, "featured": True,
        "features": [PlanFeature("200 km included"), PlanFeature("Free cancellation")],
        "recommended": True, "conversion": 0.12,
    },
    {
        "name": "Car Executive", "vt": VehicleType.CAR, "monthly": 6999, "km": 400,
        "support": SupportTier.ALL_HOURS, "popular": False, "featured": True,
        "features": [PlanFeature("400 km included"), PlanFeature("24x7 support")],
        "cities": ["Bengaluru", "Mumbai"],
    },
]

MG_ROAD = Location("MG Road Metro, Bengaluru", 12.9756, 77.6066)
KORAMANGALA = Location("Koramangala 5th Block, Bengaluru", 12.9352, 77.6245)
INDIRANAGAR = Location("100 Feet Road, Indiranagar, Bengaluru", 12.9719, 77.6412)
WHITEFIELD = Location("ITPL Main Road, Whitefield, Bengaluru", 12.9698, 77.7500)


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM riders"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return
        now = utcnow()

        # ── Riders ────────────────────────────────────────────────────
        riders = []
        for r in RIDERS:
            m = RiderModel(
                name=r["name"],
                phone=r["phone"],
                is_phone_verified=r["verified"],
                date_of_birth=r["dob"],
            )
            session.add(m)
            riders.append(m)
        await session.flush()
        print(f"  Created {len(riders)} riders")

        # ── Drivers ───────────────────────────────────────────────────
        drivers = []
        for d in DRIVERS:
            m = DriverModel(
                name=d["name"],
                phone=None,
                rating=4.7,
                vehicle_type=d["vt"],
                vehicle_make=d["make"],
                vehicle_model=d["model"],
                vehicle_color=d["color"],
                license_plate=d["plate"],
                battery_level=d["battery"],
            )
            session.add(m)
            drivers.append(m)
        await session.flush()
        print(f"  Created {len(drivers)} drivers")

        # ── Plans ─────────────────────────────────────────────────────
        plan_repo = PlanRepository(session)
        recommended = []
        for order, p in enumerate(PLANS):
            discount = None
            if p.get("discount"):
                discount = PlanDiscount(
                    percentage=p["discount"],
                    valid_from=now - timedelta(days=1),
                    valid_till=now + timedelta(days=30),
                    description="Launch offer",
                    coupon_code="LAUNCH20",
                    max_redemptions=500,
                )
            plan = create_plan(
                name=p["name"],
                description=f"{p['name']}: {p['km']} km of electric rides every month.",
                vehicle_type=p["vt"],
                monthly_price=p["monthly"],
                included_km=p["km"],
                customer_support=p["support"],
                features=p["features"],
                discount=discount,
                availability=(
                    PlanAvailability(cities=p["cities"], is_universal=False)
                    if p.get("cities") else None
                ),
                is_popular=p["popular"],
                is_featured=p["featured"],
                display_order=order,
                now=now,
            )
            plan.stats.conversion_rate = p.get("conversion", 0.0)
            await plan_repo.add(plan)
            if p.get("recommended"):
                recommended.append(plan.plan_id)
        for plan_id in recommended:
            await plan_repo.set_recommended(plan_id)
        print(f"  Created {len(PLANS)} plans ({len(recommended)} recommended)")

        # ── Rides ─────────────────────────────────────────────────────
        ride_repo = RideRepository(session)
        driver_repo = DriverRepository(session)

        def _ride(rider, vt, pickup, destination, at):
            distance, duration = estimate_trip(pickup, destination)
            return lifecycle.create_ride(
                rider_id=rider.id,
                vehicle_type=vt,
                pickup=pickup,
                destination=destination,
                estimated_distance=distance,
                estimated_duration=duration,
                now=at,
            )

        async def _drive(ride, driver, at):
            lifecycle.start_search(ride, now=at)
            snapshot = await driver_repo.get_snapshot(driver.id)
            lifecycle.assign_driver(ride, snapshot, at + timedelta(minutes=4), now=at)
            lifecycle.mark_driver_arriving(ride, now=at)
            lifecycle.mark_driver_arrived(ride, now=at + timedelta(minutes=4))
            lifecycle.start_ride(ride, now=at + timedelta(minutes=5))

        # Completed bike ride
        at = now - timedelta(days=3)
        ride = _ride(riders[0], VehicleType.BIKE, MG_ROAD, KORAMANGALA, at)
        await _drive(ride, drivers[0], at)
        lifecycle.complete_ride(ride, payment_method="upi", now=at + timedelta(minutes=22))
        lifecycle.rate_ride(ride, "user", 5, "Smooth ride", ["polite"], now=at + timedelta(minutes=25))
        await ride_repo.add(ride)

        # Completed car ride
        at = now - timedelta(days=1)
        ride = _ride(riders[1], VehicleType.CAR, INDIRANAGAR, WHITEFIELD, at)
        await _drive(ride, drivers[3], at)
        lifecycle.complete_ride(ride, actual_distance=11.8, payment_method="card",
                                now=at + timedelta(minutes=41))
        await ride_repo.add(ride)

        # Cancelled ride
        at = now - timedelta(hours=5)
        ride = _ride(riders[3], VehicleType.CAR, KORAMANGALA, MG_ROAD, at)
        lifecycle.start_search(ride, now=at)
        lifecycle.cancel_ride(ride, "Changed plans", CancelledBy.USER, now=at + timedelta(minutes=1))
        await ride_repo.add(ride)

        # Still searching
        ride = _ride(riders[4], VehicleType.BIKE, WHITEFIELD, INDIRANAGAR, now)
        lifecycle.start_search(ride, now=now)
        await ride_repo.add(ride)
        print("  Created 4 rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
