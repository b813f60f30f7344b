"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work), exposes
domain-relevant queries only and converts rows to and from the dataclass
entities in ``ecoride.domain``.  The ORM class is a class attribute so the
same queries can run against a schema without PostGIS columns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DriverModel,
    RideModel,
    RiderModel,
    RiderSubscriptionModel,
    SubscriptionPlanModel,
)
from ecoride.domain.eco_impact import EcoStats
from ecoride.domain.entities import (
    DriverInfo,
    EcoImpact,
    FareBreakdown,
    Location,
    PlanAvailability,
    PlanBenefits,
    PlanDiscount,
    PlanEligibility,
    PlanFeature,
    PlanPrice,
    PlanStats,
    RatingFeedback,
    Ride,
    RiderProfile,
    RiderSubscription,
    RoutePoint,
    SubscriptionPlan,
    Tracking,
    VehicleDetails,
)
from ecoride.domain.enums import (
    ACTIVE_RIDE_STATUSES,
    RideStatus,
    SubscriptionStatus,
    VehicleType,
)
from ecoride.domain.exceptions import ActiveRideExists
from ecoride.domain.money import round_half_up
from ecoride.domain.subscriptions import is_available_in_city
from ecoride.domain.subscriptions import set_recommended as _set_recommended


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything here is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return _aware(datetime.fromisoformat(value)) if value else None


# ── Ride <-> row ──────────────────────────────────────────────────────


def _dump_driver(info: Optional[DriverInfo]) -> Optional[dict]:
    if info is None:
        return None
    vehicle = info.vehicle
    return {
        "driver_id": info.driver_id,
        "name": info.name,
        "phone": info.phone,
        "rating": info.rating,
        "vehicle": None if vehicle is None else {
            "make": vehicle.make,
            "model": vehicle.model,
            "color": vehicle.color,
            "license_plate": vehicle.license_plate,
            "battery_level": vehicle.battery_level,
        },
    }


def _load_driver(data: Optional[dict]) -> Optional[DriverInfo]:
    if not data:
        return None
    vehicle = data.get("vehicle")
    return DriverInfo(
        driver_id=data["driver_id"],
        name=data.get("name"),
        phone=data.get("phone"),
        rating=data.get("rating"),
        vehicle=VehicleDetails(**vehicle) if vehicle else None,
    )


def _dump_rating(rating: Optional[RatingFeedback]) -> Optional[dict]:
    if rating is None:
        return None
    return {
        "rating": rating.rating,
        "feedback": rating.feedback,
        "tags": list(rating.tags),
        "rated_at": _iso(rating.rated_at),
    }


def _load_rating(data: Optional[dict]) -> Optional[RatingFeedback]:
    if not data:
        return None
    return RatingFeedback(
        rating=data["rating"],
        feedback=data.get("feedback", ""),
        tags=tuple(data.get("tags", ())),
        rated_at=_from_iso(data.get("rated_at")),
    )


def ride_from_row(row) -> Ride:
    driver_location = None
    if row.driver_lat is not None and row.driver_lng is not None:
        driver_location = RoutePoint(
            row.driver_lat, row.driver_lng, _aware(row.driver_location_at)
        )
    eco = None
    if row.co2_saved is not None:
        eco = EcoImpact(
            co2_saved=row.co2_saved,
            trees_equivalent=row.trees_equivalent,
            fuel_saved=row.fuel_saved,
        )
    return Ride(
        id=row.id,
        ride_id=row.ride_id,
        rider_id=row.rider_id,
        vehicle_type=VehicleType(row.vehicle_type),
        pickup=Location(
            row.pickup_address, row.pickup_lat, row.pickup_lng,
            row.pickup_place_id, row.pickup_landmark,
        ),
        destination=Location(
            row.destination_address, row.destination_lat, row.destination_lng,
            row.destination_place_id, row.destination_landmark,
        ),
        estimated_distance=row.estimated_distance,
        estimated_duration=row.estimated_duration,
        fare_breakdown=FareBreakdown(
            base_fare=row.base_fare,
            distance_fare=row.distance_fare,
            time_fare=row.time_fare,
            surge_pricing=row.surge_pricing,
            discount=row.discount,
            subscription_discount=row.subscription_discount,
            taxes=row.taxes,
            tip=row.tip,
            total=row.total_fare,
        ),
        service_type=row.service_type,
        is_subscription_ride=row.is_subscription_ride,
        status=RideStatus(row.status),
        driver_info=_load_driver(row.driver_info),
        actual_distance=row.actual_distance,
        actual_duration=row.actual_duration,
        eco_impact=eco,
        tracking=Tracking(
            driver_location=driver_location,
            estimated_arrival=_aware(row.estimated_arrival),
            actual_arrival=_aware(row.actual_arrival),
            ride_started=_aware(row.ride_started),
            ride_completed=_aware(row.ride_completed),
            route=[
                RoutePoint(p["latitude"], p["longitude"], _from_iso(p["timestamp"]))
                for p in row.route or []
            ],
        ),
        payment_status=row.payment_status,
        payment_method=row.payment_method,
        payment_id=row.payment_id,
        user_rating=_load_rating(row.user_rating),
        driver_rating=_load_rating(row.driver_rating),
        sos_activated=row.sos_activated,
        sos_timestamp=_aware(row.sos_timestamp),
        emergency_contacts=list(row.emergency_contacts or []),
        cancellation_reason=row.cancellation_reason,
        cancelled_by=row.cancelled_by,
        cancellation_fee=row.cancellation_fee,
        special_requests=list(row.special_requests or []),
        requested_at=_aware(row.requested_at),
        scheduled_for=_aware(row.scheduled_for),
        completed_at=_aware(row.completed_at),
    )


def write_ride(row, ride: Ride) -> None:
    """Copy every mutable field of *ride* onto *row*."""
    fare = ride.fare_breakdown
    eco = ride.eco_impact
    tracking = ride.tracking
    location = tracking.driver_location

    row.driver_id = ride.driver_info.driver_id if ride.driver_info else None
    row.driver_info = _dump_driver(ride.driver_info)
    row.service_type = ride.service_type
    row.is_subscription_ride = ride.is_subscription_ride
    row.status = ride.status
    row.estimated_distance = ride.estimated_distance
    row.estimated_duration = ride.estimated_duration
    row.actual_distance = ride.actual_distance
    row.actual_duration = ride.actual_duration

    row.base_fare = fare.base_fare
    row.distance_fare = fare.distance_fare
    row.time_fare = fare.time_fare
    row.surge_pricing = fare.surge_pricing
    row.discount = fare.discount
    row.subscription_discount = fare.subscription_discount
    row.taxes = fare.taxes
    row.tip = fare.tip
    row.total_fare = fare.total

    row.co2_saved = eco.co2_saved if eco else None
    row.trees_equivalent = eco.trees_equivalent if eco else None
    row.fuel_saved = eco.fuel_saved if eco else None

    row.driver_lat = location.latitude if location else None
    row.driver_lng = location.longitude if location else None
    row.driver_location_at = location.timestamp if location else None
    row.estimated_arrival = tracking.estimated_arrival
    row.actual_arrival = tracking.actual_arrival
    row.ride_started = tracking.ride_started
    row.ride_completed = tracking.ride_completed
    row.route = [
        {"latitude": p.latitude, "longitude": p.longitude, "timestamp": _iso(p.timestamp)}
        for p in tracking.route
    ]

    row.payment_status = ride.payment_status
    row.payment_method = ride.payment_method
    row.payment_id = ride.payment_id
    row.user_rating = _dump_rating(ride.user_rating)
    row.driver_rating = _dump_rating(ride.driver_rating)
    row.sos_activated = ride.sos_activated
    row.sos_timestamp = ride.sos_timestamp
    row.emergency_contacts = list(ride.emergency_contacts)
    row.cancellation_reason = ride.cancellation_reason
    row.cancelled_by = ride.cancelled_by
    row.cancellation_fee = ride.cancellation_fee
    row.special_requests = list(ride.special_requests)
    row.scheduled_for = ride.scheduled_for
    row.completed_at = ride.completed_at


@dataclass
class RideHistoryEntry:
    ride: Ride
    driver_name: Optional[str] = None
    driver_rating: Optional[float] = None


class RideRepository:
    model = RideModel
    driver_model = DriverModel

    def __init__(self, session: AsyncSession):
        self.session = session

    def _points(self, ride: Ride) -> dict:
        """PostGIS geometry columns for pickup and destination."""
        from geoalchemy2.functions import ST_MakePoint, ST_SetSRID

        return {
            "pickup_point": ST_SetSRID(
                ST_MakePoint(ride.pickup.longitude, ride.pickup.latitude), 4326
            ),
            "destination_point": ST_SetSRID(
                ST_MakePoint(ride.destination.longitude, ride.destination.latitude), 4326
            ),
        }

    async def add(self, ride: Ride) -> Ride:
        """Insert a new ride; a second active ride for the rider is refused.

        The query is the fast path; the partial unique index on active
        statuses is what holds under concurrent bookings.
        """
        if await self.get_active_for_rider(ride.rider_id) is not None:
            raise ActiveRideExists(f"rider {ride.rider_id} already has an active ride")

        row = self.model(
            ride_id=ride.ride_id,
            rider_id=ride.rider_id,
            vehicle_type=ride.vehicle_type,
            pickup_address=ride.pickup.address,
            pickup_lat=ride.pickup.latitude,
            pickup_lng=ride.pickup.longitude,
            pickup_place_id=ride.pickup.place_id,
            pickup_landmark=ride.pickup.landmark,
            destination_address=ride.destination.address,
            destination_lat=ride.destination.latitude,
            destination_lng=ride.destination.longitude,
            destination_place_id=ride.destination.place_id,
            destination_landmark=ride.destination.landmark,
            requested_at=ride.requested_at,
            **self._points(ride),
        )
        write_ride(row, ride)
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ActiveRideExists(
                f"rider {ride.rider_id} already has an active ride"
            ) from exc
        ride.id = row.id
        return ride

    async def _get_row(self, ride_id: str, for_update: bool = False):
        query = select(self.model).where(self.model.ride_id == ride_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get(self, ride_id: str, for_update: bool = False) -> Optional[Ride]:
        row = await self._get_row(ride_id, for_update)
        return ride_from_row(row) if row is not None else None

    async def save(self, ride: Ride) -> Ride:
        row = await self._get_row(ride.ride_id)
        write_ride(row, ride)
        await self.session.flush()
        return ride

    async def get_active_for_rider(self, rider_id: int) -> Optional[Ride]:
        result = await self.session.execute(
            select(self.model)
            .where(
                self.model.rider_id == rider_id,
                self.model.status.in_(list(ACTIVE_RIDE_STATUSES)),
            )
            .order_by(self.model.requested_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return ride_from_row(row) if row is not None else None

    async def history(
        self, rider_id: int, limit: int = 20, skip: int = 0
    ) -> list[RideHistoryEntry]:
        driver = self.driver_model
        result = await self.session.execute(
            select(self.model, driver.name, driver.rating)
            .outerjoin(driver, driver.id == self.model.driver_id)
            .where(self.model.rider_id == rider_id)
            .order_by(self.model.requested_at.desc(), self.model.id.desc())
            .limit(limit)
            .offset(skip)
        )
        entries = []
        for row, name, rating in result.all():
            ride = ride_from_row(row)
            snapshot = ride.driver_info
            entries.append(
                RideHistoryEntry(
                    ride=ride,
                    driver_name=name if name is not None else (snapshot and snapshot.name),
                    driver_rating=rating if rating is not None else (snapshot and snapshot.rating),
                )
            )
        return entries

    async def count_for_rider(self, rider_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(self.model)
            .where(self.model.rider_id == rider_id)
        )
        return result.scalar() or 0

    async def eco_stats(self, rider_id: int) -> EcoStats:
        m = self.model
        result = await self.session.execute(
            select(
                func.count(m.id),
                func.coalesce(func.sum(m.actual_distance), 0.0),
                func.coalesce(func.sum(m.co2_saved), 0.0),
                func.coalesce(func.sum(m.trees_equivalent), 0.0),
                func.coalesce(func.sum(m.fuel_saved), 0.0),
            ).where(m.rider_id == rider_id, m.status == RideStatus.COMPLETED)
        )
        rides, distance, co2, trees, fuel = result.one()
        return EcoStats(
            total_rides=rides or 0,
            total_distance=round_half_up(distance or 0.0, 2),
            total_co2_saved=round_half_up(co2 or 0.0, 2),
            total_trees_equivalent=round_half_up(trees or 0.0, 4),
            total_fuel_saved=round_half_up(fuel or 0.0, 2),
        )

    async def completed_ride_stats(self, rider_id: int) -> tuple[int, float]:
        """``(completed ride count, average actual distance)``."""
        m = self.model
        result = await self.session.execute(
            select(func.count(m.id), func.avg(m.actual_distance)).where(
                m.rider_id == rider_id, m.status == RideStatus.COMPLETED
            )
        )
        count, average = result.one()
        return count or 0, float(average or 0.0)

    async def get_stale_searches(self, requested_before: datetime) -> list[Ride]:
        """Rides still waiting for a driver since before the cutoff.

        A scheduled ride only starts waiting at its ``scheduled_for`` time.
        SKIP LOCKED lets a concurrent booking update win over the sweeper.
        """
        m = self.model
        result = await self.session.execute(
            select(m)
            .where(
                m.status.in_([RideStatus.REQUESTED, RideStatus.SEARCHING]),
                m.requested_at < requested_before,
                or_(m.scheduled_for.is_(None), m.scheduled_for < requested_before),
            )
            .order_by(m.requested_at)
            .with_for_update(skip_locked=True)
        )
        return [ride_from_row(r) for r in result.scalars().all()]


# ── Riders & drivers ──────────────────────────────────────────────────


class RiderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, rider_id: int) -> Optional[RiderModel]:
        return await self.session.get(RiderModel, rider_id)

    async def get_profile(
        self, rider_id: int, rides: RideRepository
    ) -> Optional[RiderProfile]:
        rider = await self.get_by_id(rider_id)
        if rider is None:
            return None
        total, average = await rides.completed_ride_stats(rider_id)
        return RiderProfile(
            rider_id=rider.id,
            is_phone_verified=rider.is_phone_verified,
            date_of_birth=rider.date_of_birth,
            total_rides=total,
            average_distance=average,
        )


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: int) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def get_snapshot(self, driver_id: int) -> Optional[DriverInfo]:
        """Driver + vehicle as stored on the ride at assignment time."""
        d = await self.get_by_id(driver_id)
        if d is None:
            return None
        return DriverInfo(
            driver_id=d.id,
            name=d.name,
            phone=d.phone,
            rating=d.rating,
            vehicle=VehicleDetails(
                make=d.vehicle_make,
                model=d.vehicle_model,
                color=d.vehicle_color,
                license_plate=d.license_plate,
                battery_level=d.battery_level,
            ),
        )


# ── Subscription plans ────────────────────────────────────────────────


def plan_from_row(row: SubscriptionPlanModel) -> SubscriptionPlan:
    return SubscriptionPlan(
        id=row.id,
        plan_id=row.plan_id,
        name=row.name,
        description=row.description,
        short_description=row.short_description,
        vehicle_type=VehicleType(row.vehicle_type),
        price=PlanPrice(row.price_monthly, row.price_weekly, row.price_daily),
        original_price=PlanPrice(
            row.original_price_monthly,
            row.original_price_weekly,
            row.original_price_daily,
        ),
        benefits=PlanBenefits(
            extra_km_rate=row.extra_km_rate,
            included_km=row.included_km,
            unlimited_rides=row.unlimited_rides,
            priority_booking=row.priority_booking,
            no_surge_charges=row.no_surge_charges,
            free_cancellation=row.free_cancellation,
            customer_support=row.customer_support,
        ),
        duration_days=row.duration_days,
        features=[PlanFeature(**f) for f in row.features or []],
        discount=PlanDiscount(
            percentage=row.discount_percentage,
            valid_from=_aware(row.discount_valid_from),
            valid_till=_aware(row.discount_valid_till),
            description=row.discount_description,
            coupon_code=row.coupon_code,
            max_redemptions=row.max_redemptions,
            current_redemptions=row.current_redemptions,
        ),
        is_active=row.is_active,
        is_popular=row.is_popular,
        is_featured=row.is_featured,
        is_recommended=row.is_recommended,
        availability=PlanAvailability(
            cities=list(row.cities or []), is_universal=row.is_universal
        ),
        eligibility=PlanEligibility(
            min_age=row.min_age,
            max_age=row.max_age,
            requires_verification=row.requires_verification,
            exclude_new_users=row.exclude_new_users,
        ),
        stats=PlanStats(
            total_subscribers=row.total_subscribers,
            active_subscribers=row.active_subscribers,
            revenue=row.revenue,
            conversion_rate=row.conversion_rate,
            average_usage=row.average_usage,
            renewal_rate=row.renewal_rate,
        ),
        display_order=row.display_order,
    )


def write_plan(row: SubscriptionPlanModel, plan: SubscriptionPlan) -> None:
    """Copy mutable plan fields; plan id and original price are insert-only."""
    row.name = plan.name
    row.description = plan.description
    row.short_description = plan.short_description
    row.price_monthly = plan.price.monthly
    row.price_weekly = plan.price.weekly
    row.price_daily = plan.price.daily
    b = plan.benefits
    row.included_km = b.included_km
    row.unlimited_rides = b.unlimited_rides
    row.extra_km_rate = b.extra_km_rate
    row.priority_booking = b.priority_booking
    row.no_surge_charges = b.no_surge_charges
    row.free_cancellation = b.free_cancellation
    row.customer_support = b.customer_support
    row.duration_days = plan.duration_days
    row.features = [
        {"title": f.title, "description": f.description, "included": f.included}
        for f in plan.features
    ]
    d = plan.discount
    row.discount_percentage = d.percentage
    row.discount_valid_from = d.valid_from
    row.discount_valid_till = d.valid_till
    row.discount_description = d.description
    row.coupon_code = d.coupon_code
    row.max_redemptions = d.max_redemptions
    row.current_redemptions = d.current_redemptions
    row.is_active = plan.is_active
    row.is_popular = plan.is_popular
    row.is_featured = plan.is_featured
    row.is_recommended = plan.is_recommended
    row.cities = list(plan.availability.cities)
    row.is_universal = plan.availability.is_universal
    e = plan.eligibility
    row.min_age = e.min_age
    row.max_age = e.max_age
    row.requires_verification = e.requires_verification
    row.exclude_new_users = e.exclude_new_users
    s = plan.stats
    row.total_subscribers = s.total_subscribers
    row.active_subscribers = s.active_subscribers
    row.revenue = s.revenue
    row.conversion_rate = s.conversion_rate
    row.average_usage = s.average_usage
    row.renewal_rate = s.renewal_rate
    row.display_order = plan.display_order


class PlanRepository:
    model = SubscriptionPlanModel

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        row = self.model(
            plan_id=plan.plan_id,
            vehicle_type=plan.vehicle_type,
            original_price_monthly=plan.original_price.monthly,
            original_price_weekly=plan.original_price.weekly,
            original_price_daily=plan.original_price.daily,
        )
        write_plan(row, plan)
        self.session.add(row)
        await self.session.flush()
        plan.id = row.id
        return plan

    async def _get_row(self, plan_id: str, for_update: bool = False):
        query = select(self.model).where(self.model.plan_id == plan_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get(self, plan_id: str, for_update: bool = False) -> Optional[SubscriptionPlan]:
        row = await self._get_row(plan_id, for_update)
        return plan_from_row(row) if row is not None else None

    async def save(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        row = await self._get_row(plan.plan_id)
        write_plan(row, plan)
        await self.session.flush()
        return plan

    async def _select(self, *conditions, order_by=()) -> list[SubscriptionPlan]:
        result = await self.session.execute(
            select(self.model).where(*conditions).order_by(*order_by)
        )
        return [plan_from_row(r) for r in result.scalars().all()]

    async def list_active(
        self, vehicle_type: Optional[VehicleType] = None, city: Optional[str] = None
    ) -> list[SubscriptionPlan]:
        conditions = [self.model.is_active.is_(True)]
        if vehicle_type is not None:
            conditions.append(self.model.vehicle_type == vehicle_type)
        plans = await self._select(
            *conditions,
            order_by=(self.model.display_order, self.model.price_monthly),
        )
        if city:
            plans = [p for p in plans if is_available_in_city(p, city)]
        return plans

    async def popular(self, limit: int = 3) -> list[SubscriptionPlan]:
        plans = await self._select(
            self.model.is_active.is_(True),
            self.model.is_popular.is_(True),
            order_by=(self.model.total_subscribers.desc(), self.model.display_order),
        )
        return plans[:limit]

    async def featured(self, vehicle_type: Optional[VehicleType] = None) -> list[SubscriptionPlan]:
        conditions = [self.model.is_active.is_(True), self.model.is_featured.is_(True)]
        if vehicle_type is not None:
            conditions.append(self.model.vehicle_type == vehicle_type)
        return await self._select(*conditions, order_by=(self.model.display_order,))

    async def search(self, text: str) -> list[SubscriptionPlan]:
        """Case-insensitive match on name, description or a feature title."""
        needle = text.strip().lower()
        plans = await self._select(
            self.model.is_active.is_(True),
            order_by=(self.model.total_subscribers.desc(),),
        )
        return [
            p for p in plans
            if needle in p.name.lower()
            or needle in p.description.lower()
            or any(needle in f.title.lower() for f in p.features)
        ]

    async def recommended_candidates(self, vehicle_type: VehicleType) -> list[SubscriptionPlan]:
        return await self._select(
            self.model.vehicle_type == vehicle_type,
            self.model.is_active.is_(True),
            self.model.is_recommended.is_(True),
            order_by=(self.model.conversion_rate.desc(),),
        )

    async def set_recommended(self, plan_id: str) -> Optional[SubscriptionPlan]:
        """Flag *plan_id* and clear its same-vehicle siblings in one unit of work.

        Sibling rows are locked first so two concurrent calls cannot both
        leave a recommended plan behind.
        """
        target_row = await self._get_row(plan_id, for_update=True)
        if target_row is None:
            return None
        result = await self.session.execute(
            select(self.model)
            .where(self.model.vehicle_type == target_row.vehicle_type)
            .order_by(self.model.id)
            .with_for_update()
        )
        rows = {r.plan_id: r for r in result.scalars().all()}
        plans = {pid: plan_from_row(r) for pid, r in rows.items()}
        target = plans[plan_id]
        cleared = _set_recommended(target, plans.values())
        for plan in [target, *cleared]:
            rows[plan.plan_id].is_recommended = plan.is_recommended
        await self.session.flush()
        return target

    async def redeem_discount(self, plan_id: str, now: datetime) -> bool:
        """Atomically count a redemption while the discount is valid.

        The conditional UPDATE never moves the counter past the cap.
        """
        m = self.model
        result = await self.session.execute(
            update(m)
            .where(
                m.plan_id == plan_id,
                m.discount_percentage > 0,
                or_(m.discount_valid_from.is_(None), m.discount_valid_from <= now),
                or_(m.discount_valid_till.is_(None), m.discount_valid_till >= now),
                or_(
                    m.max_redemptions.is_(None),
                    m.current_redemptions < m.max_redemptions,
                ),
            )
            .values(current_redemptions=m.current_redemptions + 1)
            .returning(m.current_redemptions)
            .execution_options(synchronize_session="fetch")
        )
        return result.first() is not None


# ── Rider subscriptions ───────────────────────────────────────────────


def subscription_from_row(row: RiderSubscriptionModel) -> RiderSubscription:
    return RiderSubscription(
        id=row.id,
        rider_id=row.rider_id,
        plan_id=row.plan_id,
        vehicle_type=VehicleType(row.vehicle_type),
        duration=row.duration,
        start_date=_aware(row.start_date),
        expires_at=_aware(row.expires_at),
        remaining_km=row.remaining_km,
        amount_paid=row.amount_paid,
        status=SubscriptionStatus(row.status),
        total_km_used=row.total_km_used,
        auto_renewal=row.auto_renewal,
    )


class SubscriptionRepository:
    model = RiderSubscriptionModel

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, sub: RiderSubscription) -> RiderSubscription:
        row = self.model(
            rider_id=sub.rider_id,
            plan_id=sub.plan_id,
            vehicle_type=sub.vehicle_type,
            duration=sub.duration,
            start_date=sub.start_date,
        )
        self._write(row, sub)
        self.session.add(row)
        await self.session.flush()
        sub.id = row.id
        return sub

    @staticmethod
    def _write(row: RiderSubscriptionModel, sub: RiderSubscription) -> None:
        row.status = sub.status
        row.expires_at = sub.expires_at
        row.remaining_km = sub.remaining_km
        row.total_km_used = sub.total_km_used
        row.auto_renewal = sub.auto_renewal
        row.amount_paid = sub.amount_paid

    async def current_for_rider(self, rider_id: int) -> Optional[RiderSubscription]:
        """Latest subscription still flagged active (it may have lapsed)."""
        result = await self.session.execute(
            select(self.model)
            .where(
                self.model.rider_id == rider_id,
                self.model.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(self.model.start_date.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return subscription_from_row(row) if row is not None else None

    async def save(self, sub: RiderSubscription) -> RiderSubscription:
        row = await self.session.get(self.model, sub.id)
        self._write(row, sub)
        await self.session.flush()
        return sub
