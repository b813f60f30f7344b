"""
Ride lifecycle operations.

Every operation validates its input and the requested transition *before*
touching the ride, so a rejected call leaves the entity exactly as it was.
Identity generation and eco-impact recomputation are explicit calls made
here, never side effects of persisting.
"""

from __future__ import annotations

import logging
import math
import secrets
from datetime import datetime
from typing import Iterable, Optional

from .eco_impact import compute_eco_impact
from .entities import (
    Cancellation,
    DriverInfo,
    Location,
    RatingFeedback,
    Ride,
    RoutePoint,
    utcnow,
)
from .enums import (
    RIDE_TRANSITIONS,
    PaymentMethod,
    RatingSide,
    RideStatus,
    ServiceType,
)
from .exceptions import InvalidTransition, RatingAlreadySubmitted, ValidationError
from .pricing import FareAdjustments, calculate_fare, coerce_vehicle_type, validate_distance

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(number: int) -> str:
    digits = []
    while True:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
        if not number:
            return "".join(reversed(digits))


def generate_ride_id(now: Optional[datetime] = None) -> str:
    """``ECO`` + base36 millisecond timestamp + 6 random base36 chars."""
    millis = int((now or utcnow()).timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"ECO{_to_base36(millis)}{suffix}".upper()


def _require_transition(ride: Ride, target: RideStatus) -> None:
    if target not in RIDE_TRANSITIONS.get(ride.status, set()):
        raise InvalidTransition(ride.status, target)


# ── Creation ──────────────────────────────────────────────────────────


def create_ride(
    *,
    rider_id: Optional[int],
    vehicle_type,
    pickup: Optional[Location],
    destination: Optional[Location],
    estimated_distance,
    estimated_duration,
    is_subscription_ride: bool = False,
    adjustments: Optional[FareAdjustments] = None,
    special_requests: Optional[Iterable[str]] = None,
    scheduled_for: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Ride:
    """Build a fully initialised ``requested`` ride with its fare breakdown."""
    if rider_id is None:
        raise ValidationError("rider_id is required")
    vt = coerce_vehicle_type(vehicle_type)
    if pickup is None or destination is None:
        raise ValidationError("pickup and destination are required")
    distance = validate_distance(estimated_distance)
    if estimated_duration is None or estimated_duration < 0:
        raise ValidationError("estimated_duration must be a non-negative number")
    now = now or utcnow()
    if scheduled_for is not None and scheduled_for <= now:
        raise ValidationError("scheduled_for must be in the future")

    fare = calculate_fare(vt, distance, is_subscription_ride, adjustments)
    ride = Ride(
        ride_id=generate_ride_id(now),
        rider_id=rider_id,
        vehicle_type=vt,
        pickup=pickup,
        destination=destination,
        estimated_distance=distance,
        estimated_duration=int(estimated_duration),
        fare_breakdown=fare,
        service_type=(
            ServiceType.SUBSCRIPTION if is_subscription_ride else ServiceType.REGULAR
        ),
        is_subscription_ride=is_subscription_ride,
        payment_method=PaymentMethod.SUBSCRIPTION if is_subscription_ride else None,
        special_requests=list(special_requests or []),
        requested_at=now,
        scheduled_for=scheduled_for,
    )
    logger.info(
        "Ride %s created for rider %s (%s, %.2f km, total=%.2f)",
        ride.ride_id, rider_id, vt.value, distance, fare.total,
    )
    return ride


# ── Dispatch-driven transitions ───────────────────────────────────────


def start_search(ride: Ride, now: Optional[datetime] = None) -> None:
    ride.transition_to(RideStatus.SEARCHING, now=now)


def assign_driver(
    ride: Ride,
    driver_info: Optional[DriverInfo],
    estimated_arrival: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> None:
    if driver_info is None:
        raise ValidationError("driver_info is required to assign a driver")
    ride.transition_to(RideStatus.DRIVER_ASSIGNED, now=now)
    ride.driver_info = driver_info
    ride.tracking.estimated_arrival = estimated_arrival
    logger.info("Ride %s assigned to driver %s", ride.ride_id, driver_info.driver_id)


def mark_driver_arriving(
    ride: Ride,
    estimated_arrival: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> None:
    ride.transition_to(RideStatus.DRIVER_ARRIVING, now=now)
    if estimated_arrival is not None:
        ride.tracking.estimated_arrival = estimated_arrival


def mark_driver_arrived(ride: Ride, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    ride.transition_to(RideStatus.DRIVER_ARRIVED, now=now)
    ride.tracking.actual_arrival = now


def start_ride(ride: Ride, now: Optional[datetime] = None) -> None:
    ride.transition_to(RideStatus.IN_PROGRESS, now=now)


def fail_ride(ride: Ride, now: Optional[datetime] = None) -> None:
    ride.transition_to(RideStatus.FAILED, now=now)
    logger.warning("Ride %s failed", ride.ride_id)


def cancel_ride(
    ride: Ride,
    reason: Optional[str],
    cancelled_by,
    fee: float = 0.0,
    now: Optional[datetime] = None,
) -> None:
    """Cancel with a mandatory reason and actor; the fee comes from the caller."""
    ride.transition_to(
        RideStatus.CANCELLED,
        now=now,
        cancellation=Cancellation(reason=reason, cancelled_by=cancelled_by, fee=fee),
    )
    logger.info(
        "Ride %s cancelled by %s (fee=%.2f)",
        ride.ride_id, ride.cancelled_by.value, ride.cancellation_fee,
    )


# ── Telemetry & completion ────────────────────────────────────────────


def record_actual_distance(ride: Ride, distance_km) -> None:
    """Set the travelled distance and recompute eco-impact from it.

    Only while the ride is in progress; ``complete_ride`` records the final
    distance, after which it is fixed.
    """
    if ride.status is not RideStatus.IN_PROGRESS:
        raise ValidationError("actual distance can only be recorded during the ride")
    distance = validate_distance(distance_km, "actual_distance")
    impact = compute_eco_impact(distance)
    ride.actual_distance = distance
    ride.eco_impact = impact


def complete_ride(
    ride: Ride,
    actual_distance=None,
    actual_duration: Optional[int] = None,
    payment_method=None,
    now: Optional[datetime] = None,
) -> None:
    """Finalise a ride: actual telemetry, eco-impact, then ``completed``.

    ``actual_distance`` falls back to the estimate and ``actual_duration``
    to the whole minutes elapsed since the ride started.
    """
    _require_transition(ride, RideStatus.COMPLETED)
    now = now or utcnow()

    distance = validate_distance(
        ride.estimated_distance if actual_distance is None else actual_distance,
        "actual_distance",
    )
    if actual_duration is None and ride.tracking.ride_started is not None:
        actual_duration = round((now - ride.tracking.ride_started).total_seconds() / 60)
    if actual_duration is not None and actual_duration < 0:
        raise ValidationError("actual_duration must be non-negative")
    try:
        method = PaymentMethod(payment_method) if payment_method else None
    except ValueError:
        raise ValidationError(f"unknown payment method {payment_method!r}") from None

    record_actual_distance(ride, distance)
    ride.actual_duration = actual_duration
    ride.payment_method = method or ride.payment_method or PaymentMethod.CASH
    ride.transition_to(RideStatus.COMPLETED, now=now)
    logger.info(
        "Ride %s completed: %.2f km, co2 saved %.2f kg",
        ride.ride_id, distance, ride.eco_impact.co2_saved,
    )


def update_driver_location(
    ride: Ride,
    latitude: float,
    longitude: float,
    at: Optional[datetime] = None,
) -> RoutePoint:
    """Record a location ping: last known position plus the route trace."""
    if not ride.is_active:
        raise ValidationError(f"ride {ride.ride_id} is no longer active")
    if not (
        math.isfinite(latitude) and math.isfinite(longitude)
        and -90 <= latitude <= 90 and -180 <= longitude <= 180
    ):
        raise ValidationError("latitude/longitude out of range")
    point = RoutePoint(latitude=latitude, longitude=longitude, timestamp=at or utcnow())
    ride.tracking.driver_location = point
    ride.tracking.route.append(point)
    return point


# ── Safety & feedback ─────────────────────────────────────────────────


def activate_sos(
    ride: Ride,
    emergency_contacts: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> None:
    """Flag the ride; notifying anyone is the caller's job."""
    ride.sos_activated = True
    ride.sos_timestamp = now or utcnow()
    ride.emergency_contacts = list(emergency_contacts or [])
    logger.warning("SOS activated on ride %s", ride.ride_id)


def rate_ride(
    ride: Ride,
    side,
    rating: int,
    feedback: str = "",
    tags: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> RatingFeedback:
    try:
        side = RatingSide(side)
    except ValueError:
        raise ValidationError(f"unknown rating side {side!r}") from None
    if ride.status is not RideStatus.COMPLETED:
        raise ValidationError("only completed rides can be rated")
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")

    attr = "user_rating" if side is RatingSide.USER else "driver_rating"
    if getattr(ride, attr) is not None:
        raise RatingAlreadySubmitted(f"ride {ride.ride_id} already has a {side.value} rating")

    feedback_entry = RatingFeedback(
        rating=rating,
        feedback=feedback or "",
        tags=tuple(tags or ()),
        rated_at=now or utcnow(),
    )
    setattr(ride, attr, feedback_entry)
    return feedback_entry
