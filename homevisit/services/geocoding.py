# homevisit/services/geocoding.py
"""
Google Geocoding client: address -> lat/lng.

Any failure raises GeocodingError; routing code treats that as
"unresolved", never as fatal.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from homevisit.core.config import settings
from homevisit.core.errors import GeocodingError
from homevisit.schemas.patient import Coordinates

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
MIN_ADDRESS_LENGTH = 5


class GoogleGeocoder:
    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout if timeout is not None else settings.GEOCODE_TIMEOUT_SECONDS
        self._transport = transport

    async def geocode(self, address: str) -> Coordinates:
        address = (address or "").strip()
        if len(address) < MIN_ADDRESS_LENGTH:
            raise GeocodingError("Address is too short", address=address, code="INVALID_REQUEST")
        if not self.api_key:
            raise GeocodingError("GOOGLE_MAPS_API_KEY is not configured", address=address, code="NOT_CONFIGURED")

        params = {"address": address, "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(GEOCODE_URL, params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            raise GeocodingError("Geocoding timed out", address=address, code="TIMEOUT") from e
        except httpx.HTTPError as e:
            raise GeocodingError(f"Geocoding service unavailable: {e}", address=address) from e
        except ValueError as e:
            raise GeocodingError("Invalid geocoding response", address=address, code="INVALID_RESPONSE") from e

        status = data.get("status")
        if status == "ZERO_RESULTS":
            raise GeocodingError("Address not found", address=address, code="NOT_FOUND")
        if status != "OK":
            raise GeocodingError(f"Geocoding error: {status}", address=address)

        location = ((data.get("results") or [{}])[0].get("geometry") or {}).get("location")
        if not location:
            raise GeocodingError("Invalid geocoding response", address=address, code="INVALID_RESPONSE")

        try:
            coords = Coordinates(lat=location["lat"], lng=location["lng"])
        except (KeyError, TypeError, ValidationError) as e:
            raise GeocodingError("Invalid geocoding response", address=address, code="INVALID_RESPONSE") from e

        logger.debug("Geocoded %s -> %.5f,%.5f", address[:40], coords.lat, coords.lng)
        return coords
