# homevisit/services/coordinates.py
"""
Patient and home-base coordinate resolution.

Coordinates stored on the patient are authoritative. Otherwise the
address is geocoded lazily and cached for the session, keyed by patient
id. A patient with neither is "unroutable"; that is never an error.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from homevisit.core.contracts import Geocoder
from homevisit.core.errors import GeocodingError
from homevisit.schemas.patient import Coordinates, HomeBase, Patient
from homevisit.utils.timers import CancelToken

logger = logging.getLogger(__name__)


class CoordinateResolver:
    def __init__(self, geocoder: Optional[Geocoder] = None):
        self.geocoder = geocoder
        self.resolved: Dict[str, Coordinates] = {}
        self._in_flight: Set[str] = set()
        self.version = 0  # bumped whenever the resolved map changes

    def known(self, patient: Optional[Patient]) -> Optional[Coordinates]:
        """Stored or already-cached coordinates, without any network call."""
        if patient is None:
            return None
        stored = patient.stored_coordinates
        if stored is not None:
            return stored
        return self.resolved.get(patient.id)

    def _remember(self, updates: Dict[str, Coordinates]) -> None:
        if updates:
            self.resolved.update(updates)
            self.version += 1

    async def _geocode(self, address: str) -> Optional[Coordinates]:
        if self.geocoder is None:
            return None
        try:
            return await self.geocoder.geocode(address)
        except GeocodingError as e:
            logger.warning("Could not geocode %s: %s", address[:40], e)
            return None

    async def resolve_for_routing(self, patient: Optional[Patient]) -> Optional[Coordinates]:
        """Known coordinates, or geocode the address now. None when unroutable."""
        existing = self.known(patient)
        if existing is not None:
            return existing

        address = (patient.address if patient else "").strip()
        if not address:
            return None

        coords = await self._geocode(address)
        if coords is not None:
            self._remember({patient.id: coords})
        return coords

    def needing_coordinates(self, patients: Iterable[Patient]) -> List[Patient]:
        pending: List[Patient] = []
        seen: Set[str] = set()
        for patient in patients:
            if patient.id in seen:
                continue
            seen.add(patient.id)
            if not patient.address.strip():
                continue
            if self.known(patient) is not None or patient.id in self._in_flight:
                continue
            pending.append(patient)
        return pending

    async def resolve_missing(
        self,
        patients: Iterable[Patient],
        token: Optional[CancelToken] = None,
    ) -> Dict[str, Coordinates]:
        """
        Geocode, concurrently, every patient still lacking coordinates.

        Results are dropped when the token was cancelled while the requests
        were outstanding. Returns the coordinates that were applied.
        """
        pending = self.needing_coordinates(patients)
        if not pending:
            return {}

        for patient in pending:
            self._in_flight.add(patient.id)

        updates: Dict[str, Coordinates] = {}
        try:
            results = await asyncio.gather(*(self._geocode(p.address) for p in pending))
            for patient, coords in zip(pending, results):
                if coords is not None:
                    updates[patient.id] = coords
        finally:
            for patient in pending:
                self._in_flight.discard(patient.id)

        if token is not None and token.cancelled:
            logger.debug("Discarding %d geocode results for cancelled view", len(updates))
            return {}

        self._remember(updates)
        return updates

    async def resolve_home(self, home: Optional[HomeBase]) -> Optional[Coordinates]:
        """Configured home coordinates, else the geocoded home address, else None."""
        if home is None:
            return None
        if home.has_coordinates:
            return home.coordinates
        if not home.address:
            return None
        return await self._geocode(home.address)
