"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field

from ecoride.domain.enums import (
    CancelledBy,
    DiscountStatus,
    DurationType,
    IneligibilityReason,
    PaymentMethod,
    PaymentStatus,
    RatingSide,
    RideStatus,
    ServiceType,
    SubscriptionStatus,
    SupportTier,
    VehicleType,
)

_ORM = {"from_attributes": True}


def _assume_utc(value: datetime) -> datetime:
    """Timestamps without an offset are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


# ── Shared ────────────────────────────────────────────────────────────


class LocationSchema(BaseModel):
    address: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    place_id: Optional[str] = None
    landmark: Optional[str] = None

    model_config = _ORM


# ── Ride requests ─────────────────────────────────────────────────────


class FareAdjustmentsRequest(BaseModel):
    time_fare: float = Field(0.0, ge=0)
    surge_pricing: float = Field(0.0, ge=0)
    discount: float = Field(0.0, ge=0)
    taxes: float = Field(0.0, ge=0)
    tip: float = Field(0.0, ge=0)


class FareEstimateRequest(BaseModel):
    pickup: LocationSchema
    destination: LocationSchema
    vehicle_type: VehicleType
    is_subscription_ride: bool = False


class RideCreateRequest(BaseModel):
    rider_id: int
    vehicle_type: VehicleType
    pickup: LocationSchema
    destination: LocationSchema
    estimated_distance: Optional[float] = Field(
        None, ge=0, description="Route distance in km; straight-line estimate if omitted."
    )
    estimated_duration: Optional[int] = Field(None, ge=0, description="Minutes.")
    adjustments: Optional[FareAdjustmentsRequest] = None
    special_requests: list[str] = []
    scheduled_for: Optional[UtcDatetime] = None


class DriverAssignRequest(BaseModel):
    driver_id: int
    estimated_arrival: Optional[UtcDatetime] = None


class LocationPingRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: Optional[UtcDatetime] = None


class ActualDistanceRequest(BaseModel):
    actual_distance: float = Field(..., ge=0)


class RideCompleteRequest(BaseModel):
    actual_distance: Optional[float] = Field(None, ge=0)
    actual_duration: Optional[int] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None


class RideCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    cancelled_by: CancelledBy = CancelledBy.USER
    fee: Optional[float] = Field(
        None, ge=0, description="Overrides the configured cancellation fee policy."
    )


class RatingRequest(BaseModel):
    rated_by: RatingSide = RatingSide.USER
    rating: int = Field(..., ge=1, le=5)
    feedback: str = Field("", max_length=500)
    tags: list[str] = []


class SosRequest(BaseModel):
    emergency_contacts: list[str] = []


# ── Ride responses ────────────────────────────────────────────────────


class RoutePointResponse(BaseModel):
    latitude: float
    longitude: float
    timestamp: Optional[datetime] = None

    model_config = _ORM


class VehicleResponse(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    license_plate: Optional[str] = None
    battery_level: Optional[int] = None

    model_config = _ORM


class DriverInfoResponse(BaseModel):
    driver_id: int
    name: Optional[str] = None
    phone: Optional[str] = None
    rating: Optional[float] = None
    vehicle: Optional[VehicleResponse] = None

    model_config = _ORM


class FareBreakdownResponse(BaseModel):
    base_fare: float
    distance_fare: float
    time_fare: float
    surge_pricing: float
    discount: float
    subscription_discount: float
    taxes: float
    tip: float
    total: float

    model_config = _ORM


class EcoImpactResponse(BaseModel):
    co2_saved: float
    trees_equivalent: float
    fuel_saved: float

    model_config = _ORM


class TrackingResponse(BaseModel):
    driver_location: Optional[RoutePointResponse] = None
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    ride_started: Optional[datetime] = None
    ride_completed: Optional[datetime] = None
    route: list[RoutePointResponse] = []

    model_config = _ORM


class RatingResponse(BaseModel):
    rating: int
    feedback: str = ""
    tags: list[str] = []
    rated_at: Optional[datetime] = None

    model_config = _ORM


class RideResponse(BaseModel):
    id: Optional[int] = None
    ride_id: str
    rider_id: int
    vehicle_type: VehicleType
    service_type: ServiceType
    is_subscription_ride: bool
    status: RideStatus
    pickup: LocationSchema
    destination: LocationSchema
    driver_info: Optional[DriverInfoResponse] = None
    estimated_distance: float
    estimated_duration: int
    actual_distance: Optional[float] = None
    actual_duration: Optional[int] = None
    duration_formatted: Optional[str] = None
    fare_breakdown: FareBreakdownResponse
    eco_impact: Optional[EcoImpactResponse] = None
    tracking: TrackingResponse
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    user_rating: Optional[RatingResponse] = None
    driver_rating: Optional[RatingResponse] = None
    sos_activated: bool = False
    sos_timestamp: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    cancellation_fee: float = 0.0
    special_requests: list[str] = []
    requested_at: Optional[datetime] = None
    scheduled_for: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = _ORM


class RideHistoryItem(RideResponse):
    driver_name: Optional[str] = None
    driver_rating_snapshot: Optional[float] = None


class RideHistoryResponse(BaseModel):
    rides: list[RideHistoryItem]
    total: int
    limit: int
    skip: int


class FareEstimateResponse(BaseModel):
    distance: float
    duration: int
    vehicle_type: VehicleType
    is_subscription_ride: bool
    fare_breakdown: FareBreakdownResponse
    eco_impact: EcoImpactResponse

    model_config = _ORM


class EcoStatsResponse(BaseModel):
    total_rides: int
    total_distance: float
    total_co2_saved: float
    total_trees_equivalent: float
    total_fuel_saved: float

    model_config = _ORM


# ── Plans ─────────────────────────────────────────────────────────────


class PlanFeatureSchema(BaseModel):
    title: str
    description: Optional[str] = None
    included: bool = True

    model_config = _ORM


class PlanDiscountRequest(BaseModel):
    percentage: float = Field(0.0, ge=0, le=100)
    valid_from: Optional[UtcDatetime] = None
    valid_till: Optional[UtcDatetime] = None
    description: Optional[str] = None
    coupon_code: Optional[str] = None
    max_redemptions: Optional[int] = Field(None, ge=0)


class PlanEligibilityRequest(BaseModel):
    min_age: int = Field(18, ge=0)
    max_age: int = Field(70, ge=0)
    requires_verification: bool = True
    exclude_new_users: bool = False


class PlanCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    short_description: Optional[str] = Field(None, max_length=100)
    vehicle_type: VehicleType
    monthly_price: float = Field(..., gt=0)
    weekly_price: Optional[float] = Field(None, ge=0)
    daily_price: Optional[float] = Field(None, ge=0)
    included_km: float = Field(100, gt=0)
    extra_km_rate: Optional[float] = Field(None, ge=0)
    unlimited_rides: bool = True
    priority_booking: bool = True
    no_surge_charges: bool = True
    free_cancellation: bool = True
    customer_support: SupportTier = SupportTier.PRIORITY
    duration_days: int = Field(30, gt=0)
    features: list[PlanFeatureSchema] = []
    discount: Optional[PlanDiscountRequest] = None
    cities: list[str] = []
    is_universal: bool = True
    eligibility: Optional[PlanEligibilityRequest] = None
    is_active: bool = True
    is_popular: bool = False
    is_featured: bool = False
    display_order: int = 0


class PlanStatsUpdateRequest(BaseModel):
    total_subscribers: Optional[int] = Field(None, ge=0)
    active_subscribers: Optional[int] = Field(None, ge=0)
    revenue: Optional[float] = Field(None, ge=0)
    conversion_rate: Optional[float] = Field(None, ge=0)
    average_usage: Optional[float] = Field(None, ge=0)
    renewal_rate: Optional[float] = Field(None, ge=0)


class PlanPriceResponse(BaseModel):
    monthly: float
    weekly: float
    daily: float

    model_config = _ORM


class PlanBenefitsResponse(BaseModel):
    extra_km_rate: float
    included_km: float
    unlimited_rides: bool
    priority_booking: bool
    no_surge_charges: bool
    free_cancellation: bool
    customer_support: SupportTier

    model_config = _ORM


class PlanDiscountResponse(BaseModel):
    percentage: float
    valid_from: Optional[datetime] = None
    valid_till: Optional[datetime] = None
    description: Optional[str] = None
    coupon_code: Optional[str] = None
    max_redemptions: Optional[int] = None
    current_redemptions: int = 0
    status: DiscountStatus

    model_config = _ORM


class PlanAvailabilityResponse(BaseModel):
    cities: list[str]
    is_universal: bool

    model_config = _ORM


class PlanEligibilityResponse(BaseModel):
    min_age: int
    max_age: int
    requires_verification: bool
    exclude_new_users: bool

    model_config = _ORM


class PlanStatsResponse(BaseModel):
    total_subscribers: int
    active_subscribers: int
    revenue: float
    conversion_rate: float
    average_usage: float
    renewal_rate: float

    model_config = _ORM


class PlanResponse(BaseModel):
    plan_id: str
    name: str
    description: str
    short_description: Optional[str] = None
    vehicle_type: VehicleType
    price: PlanPriceResponse
    original_price: PlanPriceResponse
    discounted_price: PlanPriceResponse
    benefits: PlanBenefitsResponse
    duration_days: int
    features: list[PlanFeatureSchema] = []
    discount: PlanDiscountResponse
    availability: PlanAvailabilityResponse
    eligibility: PlanEligibilityResponse
    stats: PlanStatsResponse
    is_active: bool
    is_popular: bool
    is_featured: bool
    is_recommended: bool
    display_order: int
    savings_per_month: float
    cost_per_km: float
    savings_percentage: int


class PlanQuoteResponse(BaseModel):
    plan_id: str
    duration: DurationType
    price: float
    discounted_price: float
    discount_status: DiscountStatus


class EligibilityResponse(BaseModel):
    plan_id: str
    rider_id: int
    eligible: bool
    reason: Optional[IneligibilityReason] = None


class RedeemResponse(BaseModel):
    plan_id: str
    redeemed: bool


# ── Subscriptions ─────────────────────────────────────────────────────


class SubscribeRequest(BaseModel):
    rider_id: int
    duration: DurationType = DurationType.MONTHLY
    auto_renewal: bool = True


class SubscriptionCancelRequest(BaseModel):
    rider_id: int
    immediate: bool = False


class SubscriptionResponse(BaseModel):
    id: Optional[int] = None
    rider_id: int
    plan_id: str
    vehicle_type: VehicleType
    duration: DurationType
    status: SubscriptionStatus
    start_date: datetime
    expires_at: datetime
    remaining_km: float
    total_km_used: float
    amount_paid: float
    auto_renewal: bool

    model_config = _ORM


class SubscriptionCancelResponse(BaseModel):
    subscription: SubscriptionResponse
    refund: int


# ── Misc ──────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str = "ok"


class SweepResponse(BaseModel):
    failed: list[str]


class ErrorResponse(BaseModel):
    detail: str
    error: Optional[str] = None
