"""
Subscription Plan Evaluator
===========================

Discount validity
-----------------
A plan discount applies only while *all* hold, evaluated on every query:

* ``percentage > 0``
* ``valid_from <= now <= valid_till`` (either bound may be open)
* ``current_redemptions < max_redemptions`` when a cap is set

An invalid discount never fails a price query; the undiscounted price is
returned instead so a booking or purchase is never blocked by a stale coupon.

Eligibility
-----------
Active plan, phone verification when required, age within
``[min_age, max_age]`` (365.25-day years; skipped when the date of birth is
unknown), and at least one completed ride when new users are excluded.
Evaluation returns an ``EligibilityResult`` and never raises.

Recommended flag
----------------
At most one plan per vehicle type is recommended.  ``set_recommended``
clears every sibling of the same vehicle type at the moment the flag is
set; the repository applies it under row locks in one transaction.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from .entities import (
    PlanAvailability,
    PlanBenefits,
    PlanDiscount,
    PlanEligibility,
    PlanFeature,
    PlanPrice,
    PlanStats,
    RiderProfile,
    RiderSubscription,
    SubscriptionPlan,
    utcnow,
)
from .enums import (
    DURATION_DAYS,
    DiscountStatus,
    DurationType,
    IneligibilityReason,
    SubscriptionStatus,
    SupportTier,
    VehicleType,
)
from .exceptions import ActiveSubscriptionExists, NotEligible, ValidationError
from .money import round_half_up, round_to_unit
from .pricing import TARIFFS, coerce_vehicle_type

logger = logging.getLogger(__name__)

WEEKLY_SHARE = 0.30
DAILY_SHARE = 0.08
DEFAULT_EXTRA_KM_RATE = {VehicleType.BIKE: 3.0, VehicleType.CAR: 8.0}
CAR_PREFERRED_FROM_KM = 5.0
DAYS_PER_YEAR = 365.25
MIN_REFUND = 10


# ── Plan creation ─────────────────────────────────────────────────────


def generate_plan_id(vehicle_type: VehicleType, monthly: float, now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    return f"{vehicle_type.value.upper()}_{monthly:g}_{millis}"


def create_plan(
    *,
    name: str,
    description: str,
    vehicle_type,
    monthly_price: float,
    weekly_price: Optional[float] = None,
    daily_price: Optional[float] = None,
    included_km: float = 100,
    extra_km_rate: Optional[float] = None,
    unlimited_rides: bool = True,
    priority_booking: bool = True,
    no_surge_charges: bool = True,
    free_cancellation: bool = True,
    customer_support: SupportTier = SupportTier.PRIORITY,
    duration_days: int = 30,
    short_description: Optional[str] = None,
    features: Optional[Iterable[PlanFeature]] = None,
    discount: Optional[PlanDiscount] = None,
    availability: Optional[PlanAvailability] = None,
    eligibility: Optional[PlanEligibility] = None,
    is_active: bool = True,
    is_popular: bool = False,
    is_featured: bool = False,
    display_order: int = 0,
    now: Optional[datetime] = None,
) -> SubscriptionPlan:
    """Build a new plan with derived defaults and its original-price snapshot.

    The recommended flag is never set here; use ``set_recommended`` so the
    sibling plans are cleared at the same time.
    """
    if not name or not name.strip():
        raise ValidationError("name is required")
    if not description:
        raise ValidationError("description is required")
    vt = coerce_vehicle_type(vehicle_type)
    if monthly_price is None or monthly_price <= 0:
        raise ValidationError("monthly_price must be positive")
    if included_km is None or included_km <= 0:
        raise ValidationError("included_km must be positive")
    if short_description and len(short_description) > 100:
        raise ValidationError("short_description is limited to 100 characters")

    discount = discount or PlanDiscount()
    validate_discount(discount)
    eligibility = eligibility or PlanEligibility()
    if eligibility.min_age > eligibility.max_age:
        raise ValidationError("min_age cannot exceed max_age")
    availability = availability or PlanAvailability()
    now = now or utcnow()

    price = PlanPrice(
        monthly=monthly_price,
        weekly=(
            weekly_price if weekly_price is not None
            else round_to_unit(monthly_price * WEEKLY_SHARE)
        ),
        daily=(
            daily_price if daily_price is not None
            else round_to_unit(monthly_price * DAILY_SHARE)
        ),
    )
    plan = SubscriptionPlan(
        plan_id=generate_plan_id(vt, monthly_price, now),
        name=name.strip(),
        description=description,
        vehicle_type=vt,
        price=price,
        original_price=PlanPrice(price.monthly, price.weekly, price.daily),
        benefits=PlanBenefits(
            extra_km_rate=(
                extra_km_rate if extra_km_rate is not None
                else DEFAULT_EXTRA_KM_RATE[vt]
            ),
            included_km=included_km,
            unlimited_rides=unlimited_rides,
            priority_booking=priority_booking,
            no_surge_charges=no_surge_charges,
            free_cancellation=free_cancellation,
            customer_support=SupportTier(customer_support),
        ),
        short_description=short_description,
        duration_days=duration_days,
        features=list(features or []),
        discount=discount,
        availability=PlanAvailability(
            cities=[c.strip().lower() for c in availability.cities],
            is_universal=availability.is_universal,
        ),
        eligibility=eligibility,
        is_active=is_active,
        is_popular=is_popular,
        is_featured=is_featured,
        display_order=display_order,
    )
    logger.info("Subscription plan created: %s (%s)", plan.name, plan.plan_id)
    return plan


def validate_discount(discount: PlanDiscount) -> None:
    if not 0 <= discount.percentage <= 100:
        raise ValidationError("discount percentage must be within 0-100")
    if (
        discount.valid_from is not None
        and discount.valid_till is not None
        and discount.valid_from > discount.valid_till
    ):
        raise ValidationError("discount valid_from must not be after valid_till")
    if discount.max_redemptions is not None:
        if discount.max_redemptions < 0:
            raise ValidationError("max_redemptions must be non-negative")
        if discount.current_redemptions > discount.max_redemptions:
            raise ValidationError("current_redemptions exceeds max_redemptions")


# ── Discounted price ──────────────────────────────────────────────────


def discount_status(plan: SubscriptionPlan, now: Optional[datetime] = None) -> DiscountStatus:
    d = plan.discount
    if d.percentage <= 0:
        return DiscountStatus.NONE
    now = now or utcnow()
    if d.valid_from is not None and now < d.valid_from:
        return DiscountStatus.NOT_STARTED
    if d.valid_till is not None and now > d.valid_till:
        return DiscountStatus.EXPIRED
    if d.max_redemptions is not None and d.current_redemptions >= d.max_redemptions:
        return DiscountStatus.EXHAUSTED
    return DiscountStatus.VALID


def is_discount_valid(plan: SubscriptionPlan, now: Optional[datetime] = None) -> bool:
    return discount_status(plan, now) is DiscountStatus.VALID


def discounted_price(
    plan: SubscriptionPlan,
    duration=DurationType.MONTHLY,
    now: Optional[datetime] = None,
) -> float:
    try:
        base = plan.price.for_duration(duration)
    except ValueError:
        raise ValidationError(f"unknown duration {duration!r}") from None
    if is_discount_valid(plan, now):
        return round_to_unit(base * (1 - plan.discount.percentage / 100))
    return base


def discounted_prices(plan: SubscriptionPlan, now: Optional[datetime] = None) -> PlanPrice:
    now = now or utcnow()
    return PlanPrice(
        *(discounted_price(plan, d, now) for d in
          (DurationType.MONTHLY, DurationType.WEEKLY, DurationType.DAILY))
    )


def redeem_discount(plan: SubscriptionPlan, now: Optional[datetime] = None) -> bool:
    """Count one redemption if the discount currently applies."""
    if not is_discount_valid(plan, now):
        return False
    plan.discount.current_redemptions += 1
    return True


# ── Derived figures (heuristic, for display only) ─────────────────────


def savings_per_month(plan: SubscriptionPlan) -> float:
    """Estimated monthly saving versus paying per ride.

    Assumes an average trip of 3 km on a bike and 5 km in a car, so the
    figure does not reconcile exactly with fares from the fare engine.
    """
    km = plan.benefits.included_km
    tariff = TARIFFS[plan.vehicle_type]
    if plan.vehicle_type is VehicleType.BIKE:
        rides = math.ceil(km / 3)
        regular = rides * tariff.base_fare + max(0, km - rides) * tariff.per_km_rate
    else:
        rides = math.ceil(km / 5)
        regular = rides * tariff.base_fare + max(0, km - rides * 2) * tariff.per_km_rate
    return max(0.0, regular - plan.price.monthly)


def cost_per_km(plan: SubscriptionPlan) -> float:
    return round_half_up(plan.price.monthly / plan.benefits.included_km, 2)


def savings_percentage(plan: SubscriptionPlan) -> int:
    original = plan.original_price.monthly
    if not original:
        return 0
    return round_to_unit((original - plan.price.monthly) / original * 100)


# ── Eligibility & availability ────────────────────────────────────────


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: Optional[IneligibilityReason] = None

    def __bool__(self) -> bool:
        return self.eligible


def rider_age(date_of_birth: date, now: datetime) -> int:
    return math.floor((now.date() - date_of_birth).days / DAYS_PER_YEAR)


def evaluate_eligibility(
    plan: SubscriptionPlan, rider: RiderProfile, now: Optional[datetime] = None
) -> EligibilityResult:
    if not plan.is_active:
        return EligibilityResult(False, IneligibilityReason.PLAN_INACTIVE)
    rules = plan.eligibility
    if rules.requires_verification and not rider.is_phone_verified:
        return EligibilityResult(False, IneligibilityReason.VERIFICATION_REQUIRED)
    if rider.date_of_birth is not None:
        age = rider_age(rider.date_of_birth, now or utcnow())
        if age < rules.min_age or age > rules.max_age:
            return EligibilityResult(False, IneligibilityReason.AGE_OUT_OF_RANGE)
    if rules.exclude_new_users and rider.total_rides == 0:
        return EligibilityResult(False, IneligibilityReason.NEW_USER_EXCLUDED)
    return EligibilityResult(True)


def ensure_eligible(
    plan: SubscriptionPlan, rider: RiderProfile, now: Optional[datetime] = None
) -> None:
    result = evaluate_eligibility(plan, rider, now)
    if not result:
        raise NotEligible(result.reason)


def is_available_in_city(plan: SubscriptionPlan, city: Optional[str]) -> bool:
    if plan.availability.is_universal:
        return True
    if not city:
        return False
    return city.strip().lower() in {c.lower() for c in plan.availability.cities}


# ── Recommendation ────────────────────────────────────────────────────


def preferred_vehicle_type(rider: RiderProfile) -> VehicleType:
    if rider.total_rides == 0 or rider.average_distance < CAR_PREFERRED_FROM_KM:
        return VehicleType.BIKE
    return VehicleType.CAR


def select_recommended_plan(
    plans: Iterable[SubscriptionPlan], rider: RiderProfile
) -> Optional[SubscriptionPlan]:
    vehicle = preferred_vehicle_type(rider)
    candidates = [
        p for p in plans
        if p.vehicle_type is vehicle and p.is_recommended and p.is_active
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stats.conversion_rate)


def set_recommended(
    plan: SubscriptionPlan, siblings: Iterable[SubscriptionPlan]
) -> list[SubscriptionPlan]:
    """Mark *plan* recommended and clear the flag on same-vehicle siblings.

    Returns the plans whose flag was cleared.
    """
    cleared = []
    for other in siblings:
        if other.plan_id == plan.plan_id or other.vehicle_type is not plan.vehicle_type:
            continue
        if other.is_recommended:
            other.is_recommended = False
            cleared.append(other)
    plan.is_recommended = True
    logger.info(
        "Plan %s is now the recommended %s plan (cleared %d)",
        plan.plan_id, plan.vehicle_type.value, len(cleared),
    )
    return cleared


# ── Subscriber bookkeeping ────────────────────────────────────────────


def add_subscriber(plan: SubscriptionPlan, revenue: Optional[float] = None) -> None:
    plan.stats.total_subscribers += 1
    plan.stats.active_subscribers += 1
    if revenue:
        plan.stats.revenue += revenue


def remove_subscriber(plan: SubscriptionPlan) -> None:
    # total_subscribers is a lifetime counter
    plan.stats.active_subscribers = max(0, plan.stats.active_subscribers - 1)


_STAT_FIELDS = {f.name for f in fields(PlanStats)}


def update_stats(plan: SubscriptionPlan, **changes) -> None:
    unknown = set(changes) - _STAT_FIELDS
    if unknown:
        raise ValidationError(f"unknown plan stats: {', '.join(sorted(unknown))}")
    for key, value in changes.items():
        setattr(plan.stats, key, value)


# ── Rider subscriptions ───────────────────────────────────────────────


def is_current(subscription: Optional[RiderSubscription], now: Optional[datetime] = None) -> bool:
    return (
        subscription is not None
        and subscription.status is SubscriptionStatus.ACTIVE
        and (now or utcnow()) < subscription.expires_at
    )


def expire_if_lapsed(subscription: RiderSubscription, now: Optional[datetime] = None) -> bool:
    """Flip an active subscription past its end date to ``expired``."""
    if (
        subscription.status is SubscriptionStatus.ACTIVE
        and (now or utcnow()) >= subscription.expires_at
    ):
        subscription.status = SubscriptionStatus.EXPIRED
        return True
    return False


def start_subscription(
    plan: SubscriptionPlan,
    rider: RiderProfile,
    duration=DurationType.MONTHLY,
    current: Optional[RiderSubscription] = None,
    now: Optional[datetime] = None,
) -> RiderSubscription:
    """Open a subscription at the price the plan offers right now.

    The caller charges ``amount_paid`` and then records the subscriber on
    the plan with ``add_subscriber``.
    """
    now = now or utcnow()
    try:
        duration = DurationType(duration)
    except ValueError:
        raise ValidationError(f"unknown duration {duration!r}") from None
    ensure_eligible(plan, rider, now)
    if is_current(current, now):
        raise ActiveSubscriptionExists(f"rider {rider.rider_id} already has an active subscription")

    return RiderSubscription(
        rider_id=rider.rider_id,
        plan_id=plan.plan_id,
        vehicle_type=plan.vehicle_type,
        duration=duration,
        start_date=now,
        expires_at=now + timedelta(days=DURATION_DAYS[duration]),
        remaining_km=plan.benefits.included_km,
        amount_paid=discounted_price(plan, duration, now),
    )


def covers_ride(
    subscription: Optional[RiderSubscription],
    vehicle_type,
    now: Optional[datetime] = None,
) -> bool:
    """Whether a booking of *vehicle_type* rides on the subscription."""
    return (
        is_current(subscription, now)
        and subscription.vehicle_type is coerce_vehicle_type(vehicle_type)
        and subscription.remaining_km > 0
    )


def record_usage(subscription: RiderSubscription, distance_km: float) -> None:
    subscription.total_km_used += distance_km
    subscription.remaining_km = max(0.0, subscription.remaining_km - distance_km)


def refund_amount(
    subscription: RiderSubscription,
    plan: Optional[SubscriptionPlan],
    now: Optional[datetime] = None,
) -> int:
    """Pro-rata refund on the monthly price; small amounts are not refunded."""
    if plan is None:
        return 0
    remaining = subscription.expires_at - (now or utcnow())
    remaining_days = max(0, math.ceil(remaining.total_seconds() / 86_400))
    amount = round_to_unit(remaining_days * plan.price.monthly / 30)
    return amount if amount > MIN_REFUND else 0


def cancel_subscription(
    subscription: RiderSubscription,
    plan: Optional[SubscriptionPlan],
    immediate: bool = False,
    now: Optional[datetime] = None,
) -> int:
    """Stop auto-renewal, or end the subscription now and return the refund."""
    if subscription.status is not SubscriptionStatus.ACTIVE:
        raise ValidationError("no active subscription to cancel")
    subscription.auto_renewal = False
    if not immediate:
        return 0
    refund = refund_amount(subscription, plan, now)
    subscription.status = SubscriptionStatus.CANCELLED
    if plan is not None:
        remove_subscriber(plan)
    logger.info(
        "Subscription of rider %s to %s cancelled (refund=%d)",
        subscription.rider_id, subscription.plan_id, refund,
    )
    return refund
