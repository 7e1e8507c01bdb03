#!/usr/bin/env python3
"""
Tests for the Google Geocoding client using an in-process HTTP transport.
"""

import os
import sys

import httpx
import pytest

# Add project root to Python path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from homevisit.core.errors import GeocodingError
from homevisit.services.geocoding import GEOCODE_URL, GoogleGeocoder

ADDRESS = "1600 Market St, Philadelphia, PA"


def transport_returning(payload, status_code=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


@pytest.mark.integration
class TestGoogleGeocoder:

    @pytest.mark.asyncio
    async def test_success(self):
        seen = []
        payload = {"status": "OK", "results": [{"geometry": {"location": {"lat": 39.9526, "lng": -75.1652}}}]}
        geocoder = GoogleGeocoder(api_key="test-key", transport=transport_returning(payload, seen=seen))

        coords = await geocoder.geocode(f"  {ADDRESS} ")

        assert coords.lat == 39.9526
        assert coords.lng == -75.1652
        request = seen[0]
        assert str(request.url).startswith(GEOCODE_URL)
        assert request.url.params["address"] == ADDRESS
        assert request.url.params["key"] == "test-key"

    @pytest.mark.asyncio
    async def test_zero_results(self):
        geocoder = GoogleGeocoder(api_key="k", transport=transport_returning({"status": "ZERO_RESULTS", "results": []}))
        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)
        assert exc.value.code == "NOT_FOUND"
        assert exc.value.address == ADDRESS

    @pytest.mark.asyncio
    async def test_upstream_status(self):
        geocoder = GoogleGeocoder(api_key="k", transport=transport_returning({"status": "REQUEST_DENIED"}))
        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)
        assert "REQUEST_DENIED" in str(exc.value)

    @pytest.mark.asyncio
    async def test_http_error(self):
        geocoder = GoogleGeocoder(api_key="k", transport=transport_returning({}, status_code=503))
        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)
        assert exc.value.code == "UPSTREAM_ERROR"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        geocoder = GoogleGeocoder(api_key="k", transport=httpx.MockTransport(handler))
        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)
        assert exc.value.code == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_missing_location(self):
        geocoder = GoogleGeocoder(api_key="k", transport=transport_returning({"status": "OK", "results": [{}]}))
        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)
        assert exc.value.code == "INVALID_RESPONSE"

    @pytest.mark.asyncio
    async def test_short_address_skips_request(self):
        seen = []
        geocoder = GoogleGeocoder(api_key="k", transport=transport_returning({}, seen=seen))
        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode("12")
        assert exc.value.code == "INVALID_REQUEST"
        assert seen == []

    @pytest.mark.asyncio
    async def test_not_configured(self):
        geocoder = GoogleGeocoder(api_key="")
        with pytest.raises(GeocodingError) as exc:
            await geocoder.geocode(ADDRESS)
        assert exc.value.code == "NOT_CONFIGURED"
