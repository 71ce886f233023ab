"""Great-circle distance."""

from __future__ import annotations

import math

EARTH_RADIUS_METERS = 6_371_000.0


def distance_meters(lat_a: float, lng_a: float, lat_b: float, lng_b: float) -> float:
    """Haversine distance in meters between two coordinates.

    Ranges are validated by the caller; NaN inputs propagate to the result.
    """
    delta_lat = math.radians(lat_b - lat_a)
    delta_lng = math.radians(lng_b - lng_a)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(math.radians(lat_a))
        * math.cos(math.radians(lat_b))
        * math.sin(delta_lng / 2) ** 2
    )
    # Rounding can push antipodal points marginally above 1.
    a = min(a, 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c
