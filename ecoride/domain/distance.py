"""
Trip distance estimation using the Haversine formula.

Assumption
----------
Booking intake may arrive without a routed distance.  In that case the
estimate is the great-circle distance between pickup and destination and
the duration assumes an average urban pace of 3 minutes per km.  A routing
provider (maps / geocoding) is an external collaborator and, when present,
should supply ``estimated_distance`` directly.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6_371.0
MINUTES_PER_KM = 3


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def estimate_trip(pickup, destination) -> tuple[float, int]:
    """Return ``(distance_km, duration_minutes)`` between two locations.

    Both arguments only need ``latitude`` and ``longitude`` attributes.
    """
    distance = haversine_km(
        pickup.latitude, pickup.longitude,
        destination.latitude, destination.longitude,
    )
    return distance, round(distance * MINUTES_PER_KM)
