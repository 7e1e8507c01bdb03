# homevisit/services/auto_arrange.py
"""
Auto-arrange: reorder one day's visits to shorten driving, then retime
them back to back from the morning anchor.

Two orderings exist for the routable stops:
- nearest_neighbor (default): start at home, repeatedly visit the closest
  remaining stop.
- farthest_first: sort by straight-line distance from home, descending.
They can produce opposite sequences; ROUTE_ORDERING picks one explicitly.
Stops whose coordinates cannot be resolved follow the routed ones in
their original time order.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from homevisit.core.config import settings
from homevisit.core.contracts import AppointmentStore
from homevisit.core.events import EventChannel
from homevisit.core.grid import MINUTES_PER_DAY, TimeGrid, minutes_to_time, snap_to_slot
from homevisit.core.logging import clear_operation, get_logger, set_operation
from homevisit.schemas.appointment import Appointment, AppointmentUpdate
from homevisit.schemas.patient import Coordinates, Patient
from homevisit.schemas.routing import ArrangeResult
from homevisit.services.coordinates import CoordinateResolver
from homevisit.services.distance import great_circle_miles

logger = get_logger(__name__)

NEAREST_NEIGHBOR = "nearest_neighbor"
FARTHEST_FIRST = "farthest_first"

Stop = Tuple[Appointment, Coordinates]


def order_nearest_neighbor(stops: Sequence[Stop], home: Optional[Coordinates]) -> List[Stop]:
    """Greedy tour from home; ties go to the earlier appointment. Without home, start at the first stop."""
    remaining = list(stops)
    if not remaining:
        return []

    ordered: List[Stop] = []
    if home is None:
        ordered.append(remaining.pop(0))
        current = ordered[0][1]
    else:
        current = home

    while remaining:
        best_index = 0
        best_miles = great_circle_miles(current, remaining[0][1])
        for index in range(1, len(remaining)):
            miles = great_circle_miles(current, remaining[index][1])
            if miles < best_miles:
                best_index, best_miles = index, miles
        stop = remaining.pop(best_index)
        ordered.append(stop)
        current = stop[1]
    return ordered


def order_farthest_first(stops: Sequence[Stop], home: Optional[Coordinates]) -> List[Stop]:
    if home is None:
        return list(stops)
    return sorted(stops, key=lambda stop: great_circle_miles(home, stop[1]), reverse=True)


ORDERINGS: Dict[str, Callable[[Sequence[Stop], Optional[Coordinates]], List[Stop]]] = {
    NEAREST_NEIGHBOR: order_nearest_neighbor,
    FARTHEST_FIRST: order_farthest_first,
}


def assign_start_times(
    ordered: Iterable[Appointment],
    anchor_minutes: int,
    day_start: int,
    slot_minutes: int = 15,
) -> List[Tuple[Appointment, int]]:
    """Back-to-back starts from the anchor, each snapped to the nearest slot."""
    schedule: List[Tuple[Appointment, int]] = []
    next_start = anchor_minutes
    for appointment in ordered:
        start = max(day_start, snap_to_slot(next_start, slot_minutes))
        schedule.append((appointment, start))
        next_start = start + appointment.duration
    return schedule


def fits_in_day(start: int, duration: int) -> bool:
    """A retimed visit has to finish by midnight of its own date."""
    return start + duration <= MINUTES_PER_DAY


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


class RouteArranger:
    def __init__(
        self,
        store: AppointmentStore,
        resolver: CoordinateResolver,
        grid: Optional[TimeGrid] = None,
        ordering: Optional[str] = None,
        anchor_minutes: Optional[int] = None,
        events: Optional[EventChannel] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.grid = grid or TimeGrid.from_settings()
        self.ordering = ordering or settings.ROUTE_ORDERING
        if self.ordering not in ORDERINGS:
            raise ValueError(f"Unknown route ordering: {self.ordering}")
        self.anchor_minutes = anchor_minutes if anchor_minutes is not None else settings.OPTIMIZE_START_MINUTES
        self.events = events
        self.in_progress: set[str] = set()

    async def _partition(
        self,
        day: Sequence[Appointment],
        patients: Mapping[str, Patient],
    ) -> Tuple[List[Stop], List[Appointment]]:
        routable: List[Stop] = []
        unroutable: List[Appointment] = []
        for appointment in day:
            try:
                coords = await self.resolver.resolve_for_routing(patients.get(appointment.patient_id))
            except Exception as e:
                # A single bad lookup only demotes this stop
                logger.warning("coordinate_resolution_failed", appointment_id=appointment.id, error=str(e))
                coords = None
            if coords is None:
                unroutable.append(appointment)
            else:
                routable.append((appointment, coords))
        return routable, unroutable

    async def plan_day(
        self,
        date: str,
        appointments: Iterable[Appointment],
        patients: Mapping[str, Patient],
        home: Optional[Coordinates],
    ) -> Tuple[List[Tuple[Appointment, int]], int]:
        """Ordered (appointment, start_minutes) pairs and the unrouted count, without writing."""
        day = sorted((a for a in appointments if a.date == date), key=lambda a: a.start_minutes)
        routable, unroutable = await self._partition(day, patients)
        ordered = [stop[0] for stop in ORDERINGS[self.ordering](routable, home)] + unroutable
        schedule = assign_start_times(
            ordered,
            anchor_minutes=self.anchor_minutes,
            day_start=self.grid.day_start,
            slot_minutes=self.grid.slot_minutes,
        )
        return schedule, len(unroutable)

    async def arrange_day(
        self,
        date: str,
        appointments: Iterable[Appointment],
        patients: Mapping[str, Patient],
        home: Optional[Coordinates],
    ) -> ArrangeResult:
        day = [a for a in appointments if a.date == date]
        if len(day) < 2:
            return ArrangeResult(
                date=date,
                ordered_ids=[a.id for a in day],
                unchanged=len(day),
                message="Nothing to arrange for this day.",
            )
        if date in self.in_progress:
            return ArrangeResult(date=date, message="Auto arrange already running for this day.")

        self.in_progress.add(date)
        set_operation("auto_arrange", date=date, ordering=self.ordering)
        try:
            schedule, unrouted = await self.plan_day(date, day, patients, home)
            result = ArrangeResult(date=date, ordered_ids=[a.id for a, _ in schedule], unrouted=unrouted)

            for appointment, start in schedule:
                if not fits_in_day(start, appointment.duration):
                    # Leave it where it was; every later stop overflows too
                    result.overflow += 1
                    logger.warning("arrange_overflow", appointment_id=appointment.id, start_minutes=start)
                    continue
                start_time = minutes_to_time(start)
                if appointment.date == date and appointment.start_time == start_time:
                    result.unchanged += 1
                    continue
                try:
                    await self.store.update(appointment.id, AppointmentUpdate(date=date, start_time=start_time))
                    result.updated += 1
                except Exception as e:
                    result.failed += 1
                    logger.warning("arrange_update_failed", appointment_id=appointment.id, error=str(e))

            result.message = self._summary(result)
            logger.info(
                "auto_arrange_complete",
                updated=result.updated,
                unchanged=result.unchanged,
                failed=result.failed,
                unrouted=result.unrouted,
                overflow=result.overflow,
            )
            if result.updated and self.events is not None:
                self.events.request_sync("auto_arrange")
            return result
        finally:
            self.in_progress.discard(date)
            clear_operation()

    def _summary(self, result: ArrangeResult) -> str:
        total = len(result.ordered_ids)
        message = f"Arranged {total} appointment{_plural(total)} starting at {minutes_to_time(self.anchor_minutes)}."
        if result.unrouted:
            message += f" {result.unrouted} could not be routed (missing/invalid address)."
        if result.overflow:
            message += (
                f" {result.overflow} did not fit before midnight and kept {'its' if result.overflow == 1 else 'their'}"
                " original time."
            )
        if result.failed:
            message += f" {result.failed} update{_plural(result.failed)} failed; press Auto Arrange again."
        return message
