"""
SQLAlchemy ORM models  (maps to PostgreSQL + PostGIS).

Tables
------
* ``riders``               -- registered riders
* ``drivers``              -- drivers and their vehicle snapshot
* ``rides``                -- one row per trip, fare & eco-impact flattened
* ``subscription_plans``   -- purchasable plans
* ``rider_subscriptions``  -- a rider's purchased plan periods

Indexes
-------
* **GIST** on ride pickup / destination points.
* **Partial unique** on ``rides.rider_id`` over active statuses: the storage
  side of "at most one active ride per rider".
* **B-Tree** on ``status``, ``requested_at``, plan ``vehicle_type`` /
  ``is_active`` / ``display_order`` for the read paths.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from geoalchemy2 import Geometry

from .database import Base
from ecoride.domain.enums import (
    ACTIVE_RIDE_STATUSES,
    CancelledBy,
    DurationType,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    ServiceType,
    SubscriptionStatus,
    SupportTier,
    VehicleType,
)


def enum_column_type(enum_cls):
    """Store enum *values* ("driver_assigned"), not member names."""
    return Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        name=enum_cls.__name__.lower(),
    )


ACTIVE_RIDE_CONDITION = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in RideStatus if s in ACTIVE_RIDE_STATUSES)
)


class RiderModel(Base):
    __tablename__ = "riders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), unique=True, nullable=False)
    email = Column(String(255), nullable=True)
    is_phone_verified = Column(Boolean, default=False, nullable=False)
    date_of_birth = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), nullable=True)
    rating = Column(Float, default=5.0)
    vehicle_type = Column(enum_column_type(VehicleType), nullable=False)
    vehicle_make = Column(String(60), nullable=True)
    vehicle_model = Column(String(60), nullable=True)
    vehicle_color = Column(String(30), nullable=True)
    license_plate = Column(String(20), nullable=True)
    battery_level = Column(Integer, nullable=True)
    is_available = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_drivers_available", "is_available"),)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(String(32), unique=True, nullable=False)
    rider_id = Column(Integer, ForeignKey("riders.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    driver_info = Column(JSON, nullable=True)  # snapshot at assignment

    pickup_address = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_place_id = Column(String(255), nullable=True)
    pickup_landmark = Column(String(255), nullable=True)
    destination_address = Column(String(255), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_place_id = Column(String(255), nullable=True)
    destination_landmark = Column(String(255), nullable=True)

    # Stored as PostGIS geometry for spatial indexing
    pickup_point = Column(Geometry("POINT", srid=4326), nullable=False)
    destination_point = Column(Geometry("POINT", srid=4326), nullable=False)

    vehicle_type = Column(enum_column_type(VehicleType), nullable=False)
    service_type = Column(
        enum_column_type(ServiceType), default=ServiceType.REGULAR, nullable=False
    )
    is_subscription_ride = Column(Boolean, default=False, nullable=False)
    status = Column(
        enum_column_type(RideStatus), default=RideStatus.REQUESTED, nullable=False
    )

    estimated_distance = Column(Float, nullable=False)
    estimated_duration = Column(Integer, nullable=False)
    actual_distance = Column(Float, nullable=True)
    actual_duration = Column(Integer, nullable=True)

    base_fare = Column(Float, nullable=False)
    distance_fare = Column(Float, nullable=False)
    time_fare = Column(Float, default=0.0, nullable=False)
    surge_pricing = Column(Float, default=0.0, nullable=False)
    discount = Column(Float, default=0.0, nullable=False)
    subscription_discount = Column(Float, default=0.0, nullable=False)
    taxes = Column(Float, default=0.0, nullable=False)
    tip = Column(Float, default=0.0, nullable=False)
    total_fare = Column(Float, nullable=False)

    co2_saved = Column(Float, nullable=True)
    trees_equivalent = Column(Float, nullable=True)
    fuel_saved = Column(Float, nullable=True)

    driver_lat = Column(Float, nullable=True)
    driver_lng = Column(Float, nullable=True)
    driver_location_at = Column(DateTime(timezone=True), nullable=True)
    estimated_arrival = Column(DateTime(timezone=True), nullable=True)
    actual_arrival = Column(DateTime(timezone=True), nullable=True)
    ride_started = Column(DateTime(timezone=True), nullable=True)
    ride_completed = Column(DateTime(timezone=True), nullable=True)
    route = Column(JSON, nullable=False, default=list)

    payment_status = Column(
        enum_column_type(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    payment_method = Column(enum_column_type(PaymentMethod), nullable=True)
    payment_id = Column(String(64), nullable=True)

    user_rating = Column(JSON, nullable=True)
    driver_rating = Column(JSON, nullable=True)

    sos_activated = Column(Boolean, default=False, nullable=False)
    sos_timestamp = Column(DateTime(timezone=True), nullable=True)
    emergency_contacts = Column(JSON, nullable=False, default=list)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(enum_column_type(CancelledBy), nullable=True)
    cancellation_fee = Column(Float, default=0.0, nullable=False)

    special_requests = Column(JSON, nullable=False, default=list)

    requested_at = Column(DateTime(timezone=True), nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_pickup", "pickup_point", postgresql_using="gist"),
        Index("idx_rides_destination", "destination_point", postgresql_using="gist"),
        Index("idx_rides_status", "status"),
        Index("idx_rides_rider", "rider_id"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_requested_at", "requested_at"),
        Index(
            "uq_rides_active_rider",
            "rider_id",
            unique=True,
            postgresql_where=text(ACTIVE_RIDE_CONDITION),
        ),
    )


class SubscriptionPlanModel(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(String(64), unique=True, nullable=False)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=False)
    short_description = Column(String(100), nullable=True)
    vehicle_type = Column(enum_column_type(VehicleType), nullable=False)

    price_monthly = Column(Float, nullable=False)
    price_weekly = Column(Float, nullable=False)
    price_daily = Column(Float, nullable=False)
    original_price_monthly = Column(Float, nullable=False)
    original_price_weekly = Column(Float, nullable=False)
    original_price_daily = Column(Float, nullable=False)

    included_km = Column(Float, default=100, nullable=False)
    unlimited_rides = Column(Boolean, default=True, nullable=False)
    extra_km_rate = Column(Float, nullable=False)
    priority_booking = Column(Boolean, default=True, nullable=False)
    no_surge_charges = Column(Boolean, default=True, nullable=False)
    free_cancellation = Column(Boolean, default=True, nullable=False)
    customer_support = Column(
        enum_column_type(SupportTier), default=SupportTier.PRIORITY, nullable=False
    )
    duration_days = Column(Integer, default=30, nullable=False)
    features = Column(JSON, nullable=False, default=list)

    discount_percentage = Column(Float, default=0.0, nullable=False)
    discount_valid_from = Column(DateTime(timezone=True), nullable=True)
    discount_valid_till = Column(DateTime(timezone=True), nullable=True)
    discount_description = Column(String(255), nullable=True)
    coupon_code = Column(String(40), nullable=True)
    max_redemptions = Column(Integer, nullable=True)
    current_redemptions = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    is_popular = Column(Boolean, default=False, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_recommended = Column(Boolean, default=False, nullable=False)

    cities = Column(JSON, nullable=False, default=list)
    is_universal = Column(Boolean, default=True, nullable=False)

    min_age = Column(Integer, default=18, nullable=False)
    max_age = Column(Integer, default=70, nullable=False)
    requires_verification = Column(Boolean, default=True, nullable=False)
    exclude_new_users = Column(Boolean, default=False, nullable=False)

    total_subscribers = Column(Integer, default=0, nullable=False)
    active_subscribers = Column(Integer, default=0, nullable=False)
    revenue = Column(Float, default=0.0, nullable=False)
    conversion_rate = Column(Float, default=0.0, nullable=False)
    average_usage = Column(Float, default=0.0, nullable=False)
    renewal_rate = Column(Float, default=0.0, nullable=False)

    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_plans_vehicle_active", "vehicle_type", "is_active"),
        Index("idx_plans_price", "price_monthly"),
        Index("idx_plans_popular", "is_popular", "is_active"),
        Index("idx_plans_display_order", "display_order", "is_active"),
    )


class RiderSubscriptionModel(Base):
    __tablename__ = "rider_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rider_id = Column(Integer, ForeignKey("riders.id"), nullable=False)
    plan_id = Column(String(64), ForeignKey("subscription_plans.plan_id"), nullable=False)
    vehicle_type = Column(enum_column_type(VehicleType), nullable=False)
    duration = Column(enum_column_type(DurationType), nullable=False)
    status = Column(
        enum_column_type(SubscriptionStatus),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )
    start_date = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    remaining_km = Column(Float, nullable=False)
    total_km_used = Column(Float, default=0.0, nullable=False)
    auto_renewal = Column(Boolean, default=True, nullable=False)
    amount_paid = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_rider_subscriptions_rider", "rider_id", "status"),
    )
