#!/usr/bin/env python3
"""
Tests for the Distance Matrix client: diagonal extraction and error mapping.
"""

import os
import sys

import httpx
import pytest

# Add project root to Python path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from homevisit.core.errors import DistanceMatrixError
from homevisit.schemas.routing import RouteLocation
from homevisit.services.distance_matrix import GoogleDistanceMatrix

LOCATIONS = [
    RouteLocation(id="home", lat=40.0, lng=-75.0),
    RouteLocation(id="a1", lat=40.1, lng=-75.0),
    RouteLocation(id="a2", lat=40.2, lng=-75.1),
]


def element(meters, seconds, status="OK"):
    return {"status": status, "distance": {"value": meters}, "duration": {"value": seconds}}


def client_for(payload, seen=None, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return GoogleDistanceMatrix(api_key="test-key", transport=httpx.MockTransport(handler))


@pytest.mark.integration
class TestSequentialDistances:

    @pytest.mark.asyncio
    async def test_reads_the_diagonal(self):
        seen = []
        payload = {
            "status": "OK",
            "rows": [
                {"elements": [element(16093.4, 1500), element(99999, 9999)]},
                {"elements": [element(99999, 9999), element(8046.7, 610)]},
            ],
        }
        legs = await client_for(payload, seen).sequential_distances(LOCATIONS)

        assert [(leg.origin_id, leg.destination_id) for leg in legs] == [("home", "a1"), ("a1", "a2")]
        assert legs[0].distance_miles == 10.0
        assert legs[0].duration_minutes == 25
        assert legs[1].distance_miles == 5.0
        assert legs[1].duration_minutes == 10

        params = seen[0].url.params
        assert params["origins"] == "40.0,-75.0|40.1,-75.0"
        assert params["destinations"] == "40.1,-75.0|40.2,-75.1"
        assert params["mode"] == "driving"

    @pytest.mark.asyncio
    async def test_skips_failed_elements(self):
        payload = {
            "status": "OK",
            "rows": [
                {"elements": [element(0, 0, status="ZERO_RESULTS"), element(1, 1)]},
                {"elements": [element(1, 1), element(3218.7, 300)]},
            ],
        }
        legs = await client_for(payload).sequential_distances(LOCATIONS)
        assert [leg.destination_id for leg in legs] == ["a2"]

    @pytest.mark.asyncio
    async def test_fewer_than_two_locations(self):
        seen = []
        assert await client_for({}, seen).sequential_distances(LOCATIONS[:1]) == []
        assert seen == []

    @pytest.mark.asyncio
    async def test_top_level_error(self):
        payload = {"status": "OVER_QUERY_LIMIT", "error_message": "quota"}
        with pytest.raises(DistanceMatrixError) as exc:
            await client_for(payload).sequential_distances(LOCATIONS)
        assert "OVER_QUERY_LIMIT" in str(exc.value)

    @pytest.mark.asyncio
    async def test_http_failure(self):
        with pytest.raises(DistanceMatrixError):
            await client_for({}, status_code=500).sequential_distances(LOCATIONS)

    @pytest.mark.asyncio
    async def test_not_configured(self):
        with pytest.raises(DistanceMatrixError) as exc:
            await GoogleDistanceMatrix(api_key="").sequential_distances(LOCATIONS)
        assert exc.value.code == "NOT_CONFIGURED"
