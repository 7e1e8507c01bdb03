# homevisit/services/distance_matrix.py
"""
Google Distance Matrix client for sequential legs.

Given [home, stop1, stop2, ...] it returns the routed driving distance
and time for home->stop1, stop1->stop2, ... (the matrix diagonal).
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import httpx

from homevisit.core.config import settings
from homevisit.core.errors import DistanceMatrixError
from homevisit.core.grid import round_half_up
from homevisit.schemas.routing import DrivingLeg, RouteLocation

logger = logging.getLogger(__name__)

DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
METERS_PER_MILE = 1609.34


def _pair(location: RouteLocation) -> str:
    return f"{location.lat},{location.lng}"


class GoogleDistanceMatrix:
    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout if timeout is not None else settings.DISTANCE_MATRIX_TIMEOUT_SECONDS
        self._transport = transport

    async def sequential_distances(self, locations: Sequence[RouteLocation]) -> List[DrivingLeg]:
        if len(locations) < 2:
            return []
        if not self.api_key:
            raise DistanceMatrixError("GOOGLE_MAPS_API_KEY is not configured", code="NOT_CONFIGURED")

        # Origins: all but the last; destinations: all but the first
        params = {
            "origins": "|".join(_pair(loc) for loc in locations[:-1]),
            "destinations": "|".join(_pair(loc) for loc in locations[1:]),
            "mode": "driving",
            "units": "imperial",
            "key": self.api_key,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(DISTANCE_MATRIX_URL, params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            raise DistanceMatrixError("Distance Matrix timed out", code="TIMEOUT") from e
        except httpx.HTTPError as e:
            raise DistanceMatrixError(f"Distance Matrix service unavailable: {e}") from e
        except ValueError as e:
            raise DistanceMatrixError("Invalid Distance Matrix response", code="INVALID_RESPONSE") from e

        if data.get("status") != "OK":
            raise DistanceMatrixError(
                f"Google Maps error: {data.get('status')} - {data.get('error_message') or 'unknown'}"
            )

        legs: List[DrivingLeg] = []
        for i, row in enumerate(data.get("rows") or []):
            elements = row.get("elements") or []
            if i >= len(elements) or i + 1 >= len(locations):
                break
            element = elements[i]
            if element.get("status") != "OK":
                logger.warning(
                    "Distance element %d status %s (%s -> %s)",
                    i, element.get("status"), locations[i].id, locations[i + 1].id,
                )
                continue

            meters = (element.get("distance") or {}).get("value", 0)
            seconds = (element.get("duration") or {}).get("value", 0)
            legs.append(
                DrivingLeg(
                    origin_id=locations[i].id,
                    destination_id=locations[i + 1].id,
                    distance_miles=round_half_up(meters / METERS_PER_MILE * 10) / 10,
                    duration_minutes=round_half_up(seconds / 60),
                )
            )
        return legs
