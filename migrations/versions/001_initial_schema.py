"""Initial schema with PostGIS extension and all core tables.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from geoalchemy2 import Geometry


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name, *values):
    return postgresql.ENUM(*values, name=name, create_type=False)


VEHICLE_TYPE = _enum("vehicletype", "bike", "car")
SERVICE_TYPE = _enum("servicetype", "regular", "subscription")
RIDE_STATUS = _enum(
    "ridestatus",
    "requested",
    "searching",
    "driver_assigned",
    "driver_arriving",
    "driver_arrived",
    "in_progress",
    "completed",
    "cancelled",
    "failed",
)
PAYMENT_STATUS = _enum(
    "paymentstatus", "pending", "processing", "completed", "failed", "refunded"
)
PAYMENT_METHOD = _enum(
    "paymentmethod", "card", "upi", "wallet", "cash", "subscription"
)
CANCELLED_BY = _enum("cancelledby", "user", "driver", "system")
SUPPORT_TIER = _enum("supporttier", "basic", "priority", "24x7")
DURATION_TYPE = _enum("durationtype", "monthly", "weekly", "daily")
SUBSCRIPTION_STATUS = _enum("subscriptionstatus", "active", "expired", "cancelled")

ENUM_TYPES = [
    VEHICLE_TYPE,
    SERVICE_TYPE,
    RIDE_STATUS,
    PAYMENT_STATUS,
    PAYMENT_METHOD,
    CANCELLED_BY,
    SUPPORT_TIER,
    DURATION_TYPE,
    SUBSCRIPTION_STATUS,
]

ACTIVE_RIDE_CONDITION = (
    "status IN ('requested', 'searching', 'driver_assigned', "
    "'driver_arriving', 'driver_arrived', 'in_progress')"
)


def _timestamps(*names):
    return [
        sa.Column(n, sa.DateTime(timezone=True), server_default=sa.func.now())
        for n in names
    ]


def upgrade() -> None:
    # Enable PostGIS extension
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # ── riders ────────────────────────────────────────────────────────
    op.create_table(
        "riders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(20), unique=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_phone_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        *_timestamps("created_at"),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("rating", sa.Float, server_default="5.0"),
        sa.Column("vehicle_type", VEHICLE_TYPE, nullable=False),
        sa.Column("vehicle_make", sa.String(60), nullable=True),
        sa.Column("vehicle_model", sa.String(60), nullable=True),
        sa.Column("vehicle_color", sa.String(30), nullable=True),
        sa.Column("license_plate", sa.String(20), nullable=True),
        sa.Column("battery_level", sa.Integer, nullable=True),
        sa.Column("is_available", sa.Boolean, server_default=sa.true()),
        *_timestamps("created_at"),
    )
    op.create_index("idx_drivers_available", "drivers", ["is_available"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.String(32), unique=True, nullable=False),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("riders.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column("driver_info", sa.JSON, nullable=True),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_place_id", sa.String(255), nullable=True),
        sa.Column("pickup_landmark", sa.String(255), nullable=True),
        sa.Column("destination_address", sa.String(255), nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("destination_place_id", sa.String(255), nullable=True),
        sa.Column("destination_landmark", sa.String(255), nullable=True),
        sa.Column("pickup_point", Geometry("POINT", srid=4326), nullable=False),
        sa.Column("destination_point", Geometry("POINT", srid=4326), nullable=False),
        sa.Column("vehicle_type", VEHICLE_TYPE, nullable=False),
        sa.Column("service_type", SERVICE_TYPE, nullable=False, server_default="regular"),
        sa.Column("is_subscription_ride", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", RIDE_STATUS, nullable=False, server_default="requested"),
        sa.Column("estimated_distance", sa.Float, nullable=False),
        sa.Column("estimated_duration", sa.Integer, nullable=False),
        sa.Column("actual_distance", sa.Float, nullable=True),
        sa.Column("actual_duration", sa.Integer, nullable=True),
        sa.Column("base_fare", sa.Float, nullable=False),
        sa.Column("distance_fare", sa.Float, nullable=False),
        *[
            sa.Column(n, sa.Float, nullable=False, server_default="0")
            for n in (
                "time_fare", "surge_pricing", "discount",
                "subscription_discount", "taxes", "tip",
            )
        ],
        sa.Column("total_fare", sa.Float, nullable=False),
        sa.Column("co2_saved", sa.Float, nullable=True),
        sa.Column("trees_equivalent", sa.Float, nullable=True),
        sa.Column("fuel_saved", sa.Float, nullable=True),
        sa.Column("driver_lat", sa.Float, nullable=True),
        sa.Column("driver_lng", sa.Float, nullable=True),
        sa.Column("driver_location_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_arrival", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_arrival", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ride_started", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ride_completed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("route", sa.JSON, nullable=False),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False, server_default="pending"),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=True),
        sa.Column("payment_id", sa.String(64), nullable=True),
        sa.Column("user_rating", sa.JSON, nullable=True),
        sa.Column("driver_rating", sa.JSON, nullable=True),
        sa.Column("sos_activated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("sos_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("emergency_contacts", sa.JSON, nullable=False),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("cancelled_by", CANCELLED_BY, nullable=True),
        sa.Column("cancellation_fee", sa.Float, nullable=False, server_default="0"),
        sa.Column("special_requests", sa.JSON, nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps("created_at", "updated_at"),
    )
    op.create_index(
        "idx_rides_pickup", "rides", ["pickup_point"], postgresql_using="gist"
    )
    op.create_index(
        "idx_rides_destination", "rides", ["destination_point"], postgresql_using="gist"
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_rider", "rides", ["rider_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_requested_at", "rides", ["requested_at"])
    op.create_index(
        "uq_rides_active_rider",
        "rides",
        ["rider_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_RIDE_CONDITION),
    )

    # ── subscription_plans ────────────────────────────────────────────
    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("plan_id", sa.String(64), unique=True, nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("short_description", sa.String(100), nullable=True),
        sa.Column("vehicle_type", VEHICLE_TYPE, nullable=False),
        sa.Column("price_monthly", sa.Float, nullable=False),
        sa.Column("price_weekly", sa.Float, nullable=False),
        sa.Column("price_daily", sa.Float, nullable=False),
        sa.Column("original_price_monthly", sa.Float, nullable=False),
        sa.Column("original_price_weekly", sa.Float, nullable=False),
        sa.Column("original_price_daily", sa.Float, nullable=False),
        sa.Column("included_km", sa.Float, nullable=False, server_default="100"),
        sa.Column("unlimited_rides", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("extra_km_rate", sa.Float, nullable=False),
        sa.Column("priority_booking", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("no_surge_charges", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("free_cancellation", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("customer_support", SUPPORT_TIER, nullable=False, server_default="priority"),
        sa.Column("duration_days", sa.Integer, nullable=False, server_default="30"),
        sa.Column("features", sa.JSON, nullable=False),
        sa.Column("discount_percentage", sa.Float, nullable=False, server_default="0"),
        sa.Column("discount_valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discount_valid_till", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discount_description", sa.String(255), nullable=True),
        sa.Column("coupon_code", sa.String(40), nullable=True),
        sa.Column("max_redemptions", sa.Integer, nullable=True),
        sa.Column("current_redemptions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_popular", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_featured", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_recommended", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cities", sa.JSON, nullable=False),
        sa.Column("is_universal", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("min_age", sa.Integer, nullable=False, server_default="18"),
        sa.Column("max_age", sa.Integer, nullable=False, server_default="70"),
        sa.Column("requires_verification", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("exclude_new_users", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("total_subscribers", sa.Integer, nullable=False, server_default="0"),
        sa.Column("active_subscribers", sa.Integer, nullable=False, server_default="0"),
        sa.Column("revenue", sa.Float, nullable=False, server_default="0"),
        sa.Column("conversion_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("average_usage", sa.Float, nullable=False, server_default="0"),
        sa.Column("renewal_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
        *_timestamps("created_at", "updated_at"),
    )
    op.create_index(
        "idx_plans_vehicle_active", "subscription_plans", ["vehicle_type", "is_active"]
    )
    op.create_index("idx_plans_price", "subscription_plans", ["price_monthly"])
    op.create_index(
        "idx_plans_popular", "subscription_plans", ["is_popular", "is_active"]
    )
    op.create_index(
        "idx_plans_display_order", "subscription_plans", ["display_order", "is_active"]
    )

    # ── rider_subscriptions ───────────────────────────────────────────
    op.create_table(
        "rider_subscriptions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("riders.id"), nullable=False),
        sa.Column(
            "plan_id",
            sa.String(64),
            sa.ForeignKey("subscription_plans.plan_id"),
            nullable=False,
        ),
        sa.Column("vehicle_type", VEHICLE_TYPE, nullable=False),
        sa.Column("duration", DURATION_TYPE, nullable=False),
        sa.Column("status", SUBSCRIPTION_STATUS, nullable=False, server_default="active"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("remaining_km", sa.Float, nullable=False),
        sa.Column("total_km_used", sa.Float, nullable=False, server_default="0"),
        sa.Column("auto_renewal", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("amount_paid", sa.Float, nullable=False, server_default="0"),
        *_timestamps("created_at"),
    )
    op.create_index(
        "idx_rider_subscriptions_rider", "rider_subscriptions", ["rider_id", "status"]
    )


def downgrade() -> None:
    op.drop_table("rider_subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("rides")
    op.drop_table("drivers")
    op.drop_table("riders")
    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
