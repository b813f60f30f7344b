"""
Fare Engine
===========

Formula
-------
distance_fare = max(0, distance - included_km) x per_km_rate
total         = base_fare + distance_fare + time_fare + surge + taxes + tip
                - discount - subscription_discount,   floored at 0

* **bike**: 15 base covering the first 1 km, then 6 per km
* **car**:  30 base covering the first 2 km, then 15 per km
* **subscription ride**: ``subscription_discount = base_fare + distance_fare``,
  so only externally supplied time / surge / tax / tip terms are charged.

Surge, taxes, tips and promotional discounts belong to an external pricing
policy; the engine only reserves the fields and sums them.  Intermediate
math keeps full precision and stored amounts are rounded to 2 places.

Complexity: O(1) per fare.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .distance import estimate_trip
from .eco_impact import compute_eco_impact
from .entities import EcoImpact, FareBreakdown, Location
from .enums import RideStatus, VehicleType
from .exceptions import ValidationError
from .money import round_half_up


# ── Tariffs ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Tariff:
    base_fare: float
    included_km: float
    per_km_rate: float

    def distance_fare(self, distance_km: float) -> float:
        return max(0.0, distance_km - self.included_km) * self.per_km_rate


TARIFFS: dict[VehicleType, Tariff] = {
    VehicleType.BIKE: Tariff(base_fare=15.0, included_km=1.0, per_km_rate=6.0),
    VehicleType.CAR: Tariff(base_fare=30.0, included_km=2.0, per_km_rate=15.0),
}


@dataclass(frozen=True)
class FareAdjustments:
    """Terms supplied by an external pricing policy (all default to 0)."""

    time_fare: float = 0.0
    surge_pricing: float = 0.0
    discount: float = 0.0
    taxes: float = 0.0
    tip: float = 0.0

    def __post_init__(self):
        for name in ("time_fare", "surge_pricing", "discount", "taxes", "tip"):
            value = getattr(self, name)
            if value is None or not math.isfinite(value) or value < 0:
                raise ValidationError(f"{name} must be a non-negative amount")

    @property
    def charges(self) -> float:
        return self.time_fare + self.surge_pricing + self.taxes + self.tip


# ── Validation helpers ────────────────────────────────────────────────


def coerce_vehicle_type(value) -> VehicleType:
    if value is None:
        raise ValidationError("vehicle_type is required")
    try:
        return VehicleType(value)
    except ValueError:
        raise ValidationError(
            f'vehicle_type must be "bike" or "car", got {value!r}'
        ) from None


def validate_distance(value, field_name: str = "estimated_distance") -> float:
    if value is None:
        raise ValidationError(f"{field_name} is required")
    try:
        distance = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number") from None
    if not math.isfinite(distance) or distance < 0:
        raise ValidationError(f"{field_name} must be a non-negative number")
    return distance


# ── Fare computation ──────────────────────────────────────────────────


def calculate_fare(
    vehicle_type,
    distance_km,
    is_subscription_ride: bool = False,
    adjustments: Optional[FareAdjustments] = None,
) -> FareBreakdown:
    """Compute the itemised fare for a trip."""
    tariff = TARIFFS[coerce_vehicle_type(vehicle_type)]
    distance = validate_distance(distance_km)
    adj = adjustments or FareAdjustments()

    base = tariff.base_fare
    distance_fare = tariff.distance_fare(distance)
    subscription_discount = base + distance_fare if is_subscription_ride else 0.0

    total = max(
        0.0,
        base + distance_fare + adj.charges - adj.discount - subscription_discount,
    )

    return FareBreakdown(
        base_fare=round_half_up(base),
        distance_fare=round_half_up(distance_fare),
        time_fare=round_half_up(adj.time_fare),
        surge_pricing=round_half_up(adj.surge_pricing),
        discount=round_half_up(adj.discount),
        subscription_discount=round_half_up(subscription_discount),
        taxes=round_half_up(adj.taxes),
        tip=round_half_up(adj.tip),
        total=round_half_up(total),
    )


def default_cancellation_fee(
    status: RideStatus, fee: float, charged_statuses: Iterable[RideStatus]
) -> float:
    """Flat fee when the rider cancels after a driver has committed."""
    return fee if status in set(charged_statuses) else 0.0


# ── Engine facade ─────────────────────────────────────────────────────


@dataclass
class FareEstimate:
    distance: float
    duration: int
    fare_breakdown: FareBreakdown
    eco_impact: EcoImpact
    vehicle_type: VehicleType
    is_subscription_ride: bool


class FareEngine:
    """High-level API used by booking intake and the estimate endpoint."""

    def estimate(
        self,
        pickup: Location,
        destination: Location,
        vehicle_type,
        is_subscription_ride: bool = False,
    ) -> FareEstimate:
        vt = coerce_vehicle_type(vehicle_type)
        distance, duration = estimate_trip(pickup, destination)
        return FareEstimate(
            distance=round_half_up(distance),
            duration=duration,
            fare_breakdown=calculate_fare(vt, distance, is_subscription_ride),
            eco_impact=compute_eco_impact(distance),
            vehicle_type=vt,
            is_subscription_ride=is_subscription_ride,
        )
