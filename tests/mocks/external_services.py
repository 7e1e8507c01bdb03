#!/usr/bin/env python3
"""
In-memory stand-ins for the collaborators the scheduling core talks to.
No network, no database, no real clock.
"""

import itertools
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from homevisit.core.errors import DistanceMatrixError, GeocodingError
from homevisit.schemas.appointment import Appointment, AppointmentCreate, AppointmentUpdate
from homevisit.schemas.patient import Coordinates, Patient
from homevisit.schemas.routing import DrivingLeg, RouteLocation


class InMemoryAppointmentStore:
    """Appointment store kept in a dict; records every call for assertions"""

    def __init__(self, appointments: Sequence[Appointment] = ()):
        self.appointments: Dict[str, Appointment] = {a.id: a for a in appointments}
        self.created: List[AppointmentCreate] = []
        self.updates: List[Tuple[str, dict]] = []
        self.deletes: List[str] = []
        self.fail_updates: Set[str] = set()
        self.fail_creates = False
        # Ids whose delete reports success but leaves the row behind
        self.sticky: Set[str] = set()
        self._ids = itertools.count(1)

    async def create(self, fields: AppointmentCreate) -> Appointment:
        if self.fail_creates:
            raise RuntimeError("create rejected")
        self.created.append(fields)
        appointment = Appointment(id=f"new-{next(self._ids)}", **fields.model_dump())
        self.appointments[appointment.id] = appointment
        return appointment

    async def update(self, appointment_id: str, changes: AppointmentUpdate) -> None:
        self.updates.append((appointment_id, changes.changes()))
        if appointment_id in self.fail_updates:
            raise RuntimeError(f"update of {appointment_id} rejected")
        current = self.appointments[appointment_id]
        self.appointments[appointment_id] = current.model_copy(update=changes.changes())

    async def delete(self, appointment_id: str) -> None:
        self.deletes.append(appointment_id)
        if appointment_id in self.sticky:
            return
        self.appointments.pop(appointment_id, None)

    async def list_by_range(self, start_date: str, end_date: str) -> List[Appointment]:
        found = [a for a in self.appointments.values() if start_date <= a.date <= end_date]
        return sorted(found, key=lambda a: (a.date, a.start_time, a.id))


class FakeGeocoder:
    """Address -> coordinates lookup; unknown addresses fail like ZERO_RESULTS"""

    def __init__(self, known: Optional[Dict[str, Coordinates]] = None):
        self.known = dict(known or {})
        self.calls: List[str] = []

    async def geocode(self, address: str) -> Coordinates:
        self.calls.append(address)
        if address not in self.known:
            raise GeocodingError("No results found for address", address=address, code="NOT_FOUND")
        return self.known[address]


class FakeDistanceMatrix:
    """Returns a fixed distance/time per leg, or raises when told to"""

    def __init__(self, miles: float = 5.0, minutes: int = 12, error: Optional[Exception] = None):
        self.miles = miles
        self.minutes = minutes
        self.error = error
        self.calls: List[List[str]] = []

    async def sequential_distances(self, locations: Sequence[RouteLocation]) -> List[DrivingLeg]:
        self.calls.append([loc.id for loc in locations])
        if self.error is not None:
            raise self.error
        if len(locations) < 2:
            return []
        return [
            DrivingLeg(
                origin_id=locations[i].id,
                destination_id=locations[i + 1].id,
                distance_miles=self.miles,
                duration_minutes=self.minutes,
            )
            for i in range(len(locations) - 1)
        ]


def failing_distance_matrix() -> FakeDistanceMatrix:
    return FakeDistanceMatrix(error=DistanceMatrixError("quota exceeded", code="OVER_QUERY_LIMIT"))


class _ManualHandle:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock in milliseconds; timers fire only when advance() is called"""

    def __init__(self):
        self.now = 0.0
        self._handles: List[_ManualHandle] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.now + max(0.0, delay_ms), next(self._seq), callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)

    def advance(self, ms: float = 0) -> None:
        target = self.now + ms
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target
        self._handles = [h for h in self._handles if not h.cancelled]


class FakeViewport:
    def __init__(self, top: float = 0.0, left: float = 0.0):
        self.top = top
        self.left = left
        self.restores: List[Tuple[float, float]] = []

    def get_scroll(self) -> Tuple[float, float]:
        return self.top, self.left

    def set_scroll(self, top: float, left: float) -> None:
        self.top, self.left = top, left
        self.restores.append((top, left))


def make_appointment(appointment_id: str, date: str = "2025-03-10", start_time: str = "09:00", **kwargs) -> Appointment:
    fields = {"patient_id": f"p-{appointment_id}", "duration": 60}
    fields.update(kwargs)
    return Appointment(id=appointment_id, date=date, start_time=start_time, **fields)


def make_patient(patient_id: str, lat=None, lng=None, address: str = "", **kwargs) -> Patient:
    full_name = kwargs.pop("full_name", f"Patient {patient_id}")
    return Patient(id=patient_id, full_name=full_name, lat=lat, lng=lng, address=address, **kwargs)
