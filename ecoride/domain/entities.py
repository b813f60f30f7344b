"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (requested -> searching -> driver_assigned -> driver_arriving ->
  driver_arrived -> in_progress -> completed, with cancelled | failed
  reachable from any non-terminal status).
- Write-once identity: ``Ride.ride_id`` / ``Ride.vehicle_type`` and
  ``SubscriptionPlan.plan_id`` / ``SubscriptionPlan.original_price`` refuse
  reassignment once populated.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from .enums import (
    ACTIVE_RIDE_STATUSES,
    RIDE_TRANSITIONS,
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
from .exceptions import InvalidTransition, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WriteOnce:
    """Mixin: attributes named in ``_write_once`` can be set a single time."""

    _write_once: tuple[str, ...] = ()

    def __setattr__(self, name, value):
        if name in self._write_once and getattr(self, name, None) is not None:
            raise AttributeError(f"{name} is immutable once assigned")
        super().__setattr__(name, value)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    address: str
    latitude: float
    longitude: float
    place_id: Optional[str] = None
    landmark: Optional[str] = None


@dataclass(frozen=True)
class RoutePoint:
    latitude: float
    longitude: float
    timestamp: datetime


@dataclass(frozen=True)
class VehicleDetails:
    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    license_plate: Optional[str] = None
    battery_level: Optional[int] = None  # electric vehicles


@dataclass(frozen=True)
class DriverInfo:
    driver_id: int
    name: Optional[str] = None
    phone: Optional[str] = None
    rating: Optional[float] = None
    vehicle: Optional[VehicleDetails] = None


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: float
    distance_fare: float
    time_fare: float = 0.0
    surge_pricing: float = 0.0
    discount: float = 0.0
    subscription_discount: float = 0.0
    taxes: float = 0.0
    tip: float = 0.0
    total: float = 0.0


@dataclass(frozen=True)
class EcoImpact:
    co2_saved: float  # kg
    trees_equivalent: float
    fuel_saved: float  # litres


@dataclass(frozen=True)
class RatingFeedback:
    rating: int
    feedback: str = ""
    tags: tuple[str, ...] = ()
    rated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Cancellation:
    reason: str
    cancelled_by: CancelledBy
    fee: float = 0.0


@dataclass
class Tracking:
    driver_location: Optional[RoutePoint] = None
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    ride_started: Optional[datetime] = None
    ride_completed: Optional[datetime] = None
    route: list[RoutePoint] = field(default_factory=list)


# ── Ride ──────────────────────────────────────────────────────────────


@dataclass
class Ride(_WriteOnce):
    _write_once = ("ride_id", "vehicle_type")

    ride_id: str
    rider_id: int
    vehicle_type: VehicleType
    pickup: Location
    destination: Location
    estimated_distance: float
    estimated_duration: int
    fare_breakdown: FareBreakdown
    id: Optional[int] = None
    service_type: ServiceType = ServiceType.REGULAR
    is_subscription_ride: bool = False
    status: RideStatus = RideStatus.REQUESTED
    driver_info: Optional[DriverInfo] = None
    actual_distance: Optional[float] = None
    actual_duration: Optional[int] = None
    eco_impact: Optional[EcoImpact] = None
    tracking: Tracking = field(default_factory=Tracking)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[str] = None
    user_rating: Optional[RatingFeedback] = None
    driver_rating: Optional[RatingFeedback] = None
    sos_activated: bool = False
    sos_timestamp: Optional[datetime] = None
    emergency_contacts: list[str] = field(default_factory=list)
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    cancellation_fee: float = 0.0
    special_requests: list[str] = field(default_factory=list)
    requested_at: datetime = field(default_factory=utcnow)
    scheduled_for: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RIDE_STATUSES

    @property
    def duration_formatted(self) -> Optional[str]:
        if not self.actual_duration:
            return None
        hours, minutes = divmod(self.actual_duration, 60)
        return f"{hours}h {minutes}m" if hours else f"{minutes}m"

    def transition_to(
        self,
        new_status: RideStatus,
        *,
        now: Optional[datetime] = None,
        cancellation: Optional[Cancellation] = None,
    ) -> None:
        """Move to *new_status* if the transition is legal, else raise.

        Nothing is written unless every check passes.
        """
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransition(self.status, new_status)
        if new_status is RideStatus.CANCELLED:
            if cancellation is None or not cancellation.reason:
                raise ValidationError("cancellation reason is required")
            fee = cancellation.fee
            if fee is None or not math.isfinite(fee) or fee < 0:
                raise ValidationError("cancellation fee must be non-negative")
            try:
                cancelled_by = CancelledBy(cancellation.cancelled_by)
            except ValueError:
                raise ValidationError(
                    f"unknown cancelling party {cancellation.cancelled_by!r}"
                ) from None

        now = now or utcnow()
        if new_status is RideStatus.IN_PROGRESS:
            self.tracking.ride_started = now
        elif new_status is RideStatus.COMPLETED:
            self.tracking.ride_completed = now
            self.completed_at = now
            self.payment_status = PaymentStatus.COMPLETED
        elif new_status is RideStatus.CANCELLED:
            self.cancellation_reason = cancellation.reason
            self.cancelled_by = cancelled_by
            self.cancellation_fee = cancellation.fee
        self.status = new_status


# ── Riders ────────────────────────────────────────────────────────────


@dataclass
class RiderProfile:
    """What plan eligibility and recommendation need to know about a rider."""

    rider_id: int
    is_phone_verified: bool = False
    date_of_birth: Optional[date] = None
    total_rides: int = 0  # completed rides
    average_distance: float = 0.0


# ── Subscription plans ────────────────────────────────────────────────


@dataclass
class PlanPrice:
    monthly: float
    weekly: float
    daily: float

    def for_duration(self, duration: DurationType) -> float:
        return getattr(self, DurationType(duration).value)


@dataclass
class PlanBenefits:
    extra_km_rate: float
    included_km: float = 100
    unlimited_rides: bool = True
    priority_booking: bool = True
    no_surge_charges: bool = True
    free_cancellation: bool = True
    customer_support: SupportTier = SupportTier.PRIORITY


@dataclass
class PlanFeature:
    title: str
    description: str = ""
    included: bool = True


@dataclass
class PlanDiscount:
    percentage: float = 0.0
    valid_from: Optional[datetime] = None
    valid_till: Optional[datetime] = None
    description: Optional[str] = None
    coupon_code: Optional[str] = None
    max_redemptions: Optional[int] = None
    current_redemptions: int = 0


@dataclass
class PlanAvailability:
    cities: list[str] = field(default_factory=list)
    is_universal: bool = True


@dataclass
class PlanEligibility:
    min_age: int = 18
    max_age: int = 70
    requires_verification: bool = True
    exclude_new_users: bool = False


@dataclass
class PlanStats:
    total_subscribers: int = 0
    active_subscribers: int = 0
    revenue: float = 0.0
    conversion_rate: float = 0.0
    average_usage: float = 0.0
    renewal_rate: float = 0.0


@dataclass
class SubscriptionPlan(_WriteOnce):
    _write_once = ("plan_id", "original_price")

    plan_id: str
    name: str
    description: str
    vehicle_type: VehicleType
    price: PlanPrice
    original_price: PlanPrice
    benefits: PlanBenefits
    id: Optional[int] = None
    short_description: Optional[str] = None
    duration_days: int = 30
    features: list[PlanFeature] = field(default_factory=list)
    discount: PlanDiscount = field(default_factory=PlanDiscount)
    is_active: bool = True
    is_popular: bool = False
    is_featured: bool = False
    is_recommended: bool = False
    availability: PlanAvailability = field(default_factory=PlanAvailability)
    eligibility: PlanEligibility = field(default_factory=PlanEligibility)
    stats: PlanStats = field(default_factory=PlanStats)
    display_order: int = 0


@dataclass
class RiderSubscription:
    rider_id: int
    plan_id: str
    vehicle_type: VehicleType
    duration: DurationType
    start_date: datetime
    expires_at: datetime
    remaining_km: float
    amount_paid: float = 0.0
    id: Optional[int] = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    total_km_used: float = 0.0
    auto_renewal: bool = True
