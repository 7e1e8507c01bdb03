# homevisit/services/legs.py
"""
Per-appointment travel legs for each day.

Each day is walked in start-time order: the first stop's previous
location is home, later stops follow the prior patient. A routed driving
distance wins when one has been fetched for the appointment; otherwise
the straight-line estimate is used; with an unknown endpoint the leg is
left blank. The whole chain is re-derived on every call.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from homevisit.core.contracts import DistanceMatrix
from homevisit.core.errors import DistanceMatrixError
from homevisit.schemas.appointment import Appointment
from homevisit.schemas.patient import Coordinates
from homevisit.schemas.routing import DayTotals, DrivingLeg, LegInfo, RouteLocation
from homevisit.services.distance import estimate_drive_minutes, great_circle_miles, round_miles
from homevisit.utils.timers import CancelToken

logger = logging.getLogger(__name__)

CoordinateLookup = Callable[[str], Optional[Coordinates]]


def group_by_day(appointments: Iterable[Appointment]) -> Dict[str, List[Appointment]]:
    grouped: Dict[str, List[Appointment]] = defaultdict(list)
    for appointment in appointments:
        grouped[appointment.date].append(appointment)
    for day in grouped.values():
        day.sort(key=lambda a: a.start_minutes)
    return dict(grouped)


def compute_leg_info(
    appointments: Iterable[Appointment],
    coordinates_for: CoordinateLookup,
    home: Optional[Coordinates],
    driving: Optional[Mapping[str, DrivingLeg]] = None,
) -> Dict[str, LegInfo]:
    """LegInfo keyed by appointment id. coordinates_for takes a patient id."""
    driving = driving or {}
    info: Dict[str, LegInfo] = {}

    for day in group_by_day(appointments).values():
        previous = home
        for index, appointment in enumerate(day):
            first = index == 0
            current = coordinates_for(appointment.patient_id)

            real = driving.get(appointment.id)
            if real is not None:
                info[appointment.id] = LegInfo(
                    miles=real.distance_miles,
                    minutes=real.duration_minutes,
                    from_home=first,
                    is_real_distance=True,
                )
                if current is not None:
                    previous = current
                continue

            if current is None:
                info[appointment.id] = LegInfo(from_home=first)
                continue

            if previous is None:
                info[appointment.id] = LegInfo(from_home=first)
                previous = current
                continue

            miles = round_miles(great_circle_miles(previous, current))
            info[appointment.id] = LegInfo(
                miles=miles,
                minutes=estimate_drive_minutes(miles),
                from_home=first,
            )
            previous = current

    return info


def day_totals(day_appointments: Iterable[Appointment], legs: Mapping[str, LegInfo]) -> DayTotals:
    """Sum of known miles/minutes for a day; blank legs count as zero."""
    miles = 0.0
    minutes = 0
    for appointment in day_appointments:
        leg = legs.get(appointment.id)
        if leg is None:
            continue
        miles += leg.miles or 0.0
        minutes += leg.minutes or 0
    return DayTotals(miles=round_miles(miles), minutes=minutes)


def day_locations(
    date: str,
    day_appointments: Iterable[Appointment],
    coordinates_for: CoordinateLookup,
    home: Coordinates,
) -> List[RouteLocation]:
    """[home, stops with coordinates in start order] for a distance-matrix request."""
    locations = [RouteLocation(id=f"home-{date}", lat=home.lat, lng=home.lng)]
    for appointment in sorted(day_appointments, key=lambda a: a.start_minutes):
        coords = coordinates_for(appointment.patient_id)
        if coords is not None:
            locations.append(RouteLocation(id=appointment.id, lat=coords.lat, lng=coords.lng))
    return locations


def cache_key(locations: Iterable[RouteLocation]) -> str:
    return "|".join(f"{loc.id}:{loc.lat},{loc.lng}" for loc in locations)


class DrivingDistanceCache:
    """
    Routed driving legs keyed by destination appointment id.

    A request for an identical location set is not reissued while one is
    outstanding. Responses arriving after the token is cancelled are ignored.
    """

    def __init__(self, service: Optional[DistanceMatrix] = None):
        self.service = service
        self.legs: Dict[str, DrivingLeg] = {}
        self._in_flight: Set[str] = set()

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def refresh(
        self,
        appointments: Iterable[Appointment],
        coordinates_for: CoordinateLookup,
        home: Optional[Coordinates],
        token: Optional[CancelToken] = None,
    ) -> Dict[str, DrivingLeg]:
        if self.service is None or home is None:
            return {}

        applied: Dict[str, DrivingLeg] = {}
        for date, day in group_by_day(appointments).items():
            locations = day_locations(date, day, coordinates_for, home)
            if len(locations) < 2:
                continue

            key = cache_key(locations)
            if key in self._in_flight:
                continue

            self._in_flight.add(key)
            try:
                legs = await self.service.sequential_distances(locations)
            except DistanceMatrixError as e:
                logger.warning("Failed to fetch driving distances for %s: %s", date, e)
                continue
            finally:
                self._in_flight.discard(key)

            if token is not None and token.cancelled:
                return applied

            for leg in legs:
                self.legs[leg.destination_id] = leg
                applied[leg.destination_id] = leg

        return applied

    def invalidate(self, appointment_ids: Iterable[str]) -> None:
        for appointment_id in appointment_ids:
            self.legs.pop(appointment_id, None)
