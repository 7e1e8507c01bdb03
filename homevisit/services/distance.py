# homevisit/services/distance.py
"""
Straight-line distance and heuristic drive time between two coordinates.

Used whenever a routed driving distance is not available.
"""
from __future__ import annotations

import math

from homevisit.core.grid import round_half_up
from homevisit.schemas.patient import Coordinates

EARTH_RADIUS_MILES = 3958.8
AVERAGE_DRIVE_SPEED_MPH = 30.0


def great_circle_miles(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance in statute miles."""
    delta_lat = math.radians(b.lat - a.lat)
    delta_lng = math.radians(b.lng - a.lng)
    from_lat = math.radians(a.lat)
    to_lat = math.radians(b.lat)

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(from_lat) * math.cos(to_lat) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_MILES * c


def estimate_drive_minutes(miles: float, speed_mph: float = AVERAGE_DRIVE_SPEED_MPH) -> int:
    if miles <= 0:
        return 0
    return max(1, round_half_up(miles / speed_mph * 60))


def round_miles(miles: float) -> float:
    """Round to 0.1 mile for display."""
    return round_half_up(miles * 10) / 10
