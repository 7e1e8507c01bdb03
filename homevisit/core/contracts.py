# homevisit/core/contracts.py
"""
Collaborator contracts consumed by the scheduling core.

The SQL store in homevisit.crud, the httpx clients in homevisit.services
and the fakes in tests all satisfy these structurally.
"""
from __future__ import annotations

from typing import List, Protocol, Sequence

from homevisit.schemas.appointment import Appointment, AppointmentCreate, AppointmentUpdate
from homevisit.schemas.patient import Coordinates
from homevisit.schemas.routing import DrivingLeg, RouteLocation


class AppointmentStore(Protocol):
    async def create(self, fields: AppointmentCreate) -> Appointment: ...

    async def update(self, appointment_id: str, changes: AppointmentUpdate) -> None: ...

    async def delete(self, appointment_id: str) -> None: ...

    async def list_by_range(self, start_date: str, end_date: str) -> List[Appointment]: ...


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Coordinates: ...


class DistanceMatrix(Protocol):
    async def sequential_distances(self, locations: Sequence[RouteLocation]) -> List[DrivingLeg]: ...


class Viewport(Protocol):
    """Scrollable container around the grid."""

    def get_scroll(self) -> tuple[float, float]: ...

    def set_scroll(self, top: float, left: float) -> None: ...


class Scheduler(Protocol):
    """Timer source; call_later returns a handle with cancel()."""

    def call_later(self, delay_ms: float, callback) -> "TimerHandle": ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...
