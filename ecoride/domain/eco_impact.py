"""
Environmental impact of an electric trip.

fuel_saved (l)   = distance / 15        baseline petrol vehicle, 15 km/l
co2_saved (kg)   = fuel_saved x 2.31    kg CO2 per litre of petrol
trees_equivalent = co2_saved / 21.77    kg CO2 absorbed per tree per year

``trees_equivalent`` is derived from the *stored* (2-place) ``co2_saved`` so
that the three figures shown to a rider agree with each other.
"""

from __future__ import annotations

from dataclasses import dataclass

from .entities import EcoImpact
from .money import round_half_up

BASELINE_KM_PER_LITRE = 15.0
CO2_KG_PER_LITRE = 2.31
CO2_KG_PER_TREE_YEAR = 21.77


def compute_eco_impact(distance_km: float) -> EcoImpact:
    """Pure and idempotent: the same distance always yields the same impact."""
    fuel_saved = round_half_up(distance_km / BASELINE_KM_PER_LITRE, 2)
    co2_saved = round_half_up(
        (distance_km / BASELINE_KM_PER_LITRE) * CO2_KG_PER_LITRE, 2
    )
    trees = round_half_up(co2_saved / CO2_KG_PER_TREE_YEAR, 4)
    return EcoImpact(co2_saved=co2_saved, trees_equivalent=trees, fuel_saved=fuel_saved)


@dataclass(frozen=True)
class EcoStats:
    total_rides: int = 0
    total_distance: float = 0.0
    total_co2_saved: float = 0.0
    total_trees_equivalent: float = 0.0
    total_fuel_saved: float = 0.0

