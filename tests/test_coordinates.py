#!/usr/bin/env python3
"""
Tests for coordinate resolution: stored coordinates, lazy geocoding,
cancellation and the home base.
"""

import asyncio
import os
import sys

import pytest

# Add project root to Python path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from homevisit.schemas.patient import Coordinates, HomeBase
from homevisit.services.coordinates import CoordinateResolver
from homevisit.utils.timers import CancelToken
from mocks.external_services import FakeGeocoder, make_patient

MAIN_ST = "12 Main St, Springfield"
OAK_AVE = "40 Oak Ave, Springfield"
GEOCODED = {
    MAIN_ST: Coordinates(lat=40.1, lng=-75.2),
    OAK_AVE: Coordinates(lat=40.3, lng=-75.4),
}


@pytest.fixture
def geocoder():
    return FakeGeocoder(GEOCODED)


class TestCoordinateResolver:

    @pytest.mark.asyncio
    async def test_stored_coordinates_win(self, geocoder):
        resolver = CoordinateResolver(geocoder)
        patient = make_patient("p1", lat=41.0, lng=-74.0, address=MAIN_ST)
        assert await resolver.resolve_for_routing(patient) == Coordinates(lat=41.0, lng=-74.0)
        assert geocoder.calls == []

    @pytest.mark.asyncio
    async def test_geocodes_once_then_caches(self, geocoder):
        resolver = CoordinateResolver(geocoder)
        patient = make_patient("p1", address=MAIN_ST)

        first = await resolver.resolve_for_routing(patient)
        second = await resolver.resolve_for_routing(patient)

        assert first == second == GEOCODED[MAIN_ST]
        assert geocoder.calls == [MAIN_ST]
        assert resolver.known(patient) == GEOCODED[MAIN_ST]
        assert resolver.version == 1

    @pytest.mark.asyncio
    async def test_unresolvable_is_none_not_error(self, geocoder):
        resolver = CoordinateResolver(geocoder)
        assert await resolver.resolve_for_routing(make_patient("p1", address="nowhere at all")) is None
        assert await resolver.resolve_for_routing(make_patient("p2")) is None
        assert await resolver.resolve_for_routing(None) is None

    @pytest.mark.asyncio
    async def test_without_geocoder(self):
        resolver = CoordinateResolver()
        assert await resolver.resolve_for_routing(make_patient("p1", address=MAIN_ST)) is None

    def test_needing_coordinates(self):
        resolver = CoordinateResolver()
        resolver.resolved["p3"] = GEOCODED[OAK_AVE]
        patients = [
            make_patient("p1", address=MAIN_ST),
            make_patient("p1", address=MAIN_ST),
            make_patient("p2", lat=1.0, lng=1.0, address=OAK_AVE),
            make_patient("p3", address=OAK_AVE),
            make_patient("p4"),
        ]
        assert [p.id for p in resolver.needing_coordinates(patients)] == ["p1"]

    @pytest.mark.asyncio
    async def test_resolve_missing_applies_successes_only(self, geocoder):
        resolver = CoordinateResolver(geocoder)
        patients = [
            make_patient("p1", address=MAIN_ST),
            make_patient("p2", address=OAK_AVE),
            make_patient("p3", address="99 Unknown Rd"),
        ]
        applied = await resolver.resolve_missing(patients, CancelToken())
        assert set(applied) == {"p1", "p2"}
        assert resolver.resolved["p2"] == GEOCODED[OAK_AVE]
        assert "p3" not in resolver.resolved

    @pytest.mark.asyncio
    async def test_resolve_missing_discards_when_cancelled(self):
        gate = asyncio.Event()

        class SlowGeocoder(FakeGeocoder):
            async def geocode(self, address):
                await gate.wait()
                return await super().geocode(address)

        resolver = CoordinateResolver(SlowGeocoder(GEOCODED))
        token = CancelToken()
        task = asyncio.ensure_future(resolver.resolve_missing([make_patient("p1", address=MAIN_ST)], token))
        await asyncio.sleep(0)

        # Still in flight: a second pass must not request it again
        assert resolver.needing_coordinates([make_patient("p1", address=MAIN_ST)]) == []

        token.cancel()
        gate.set()
        assert await task == {}
        assert resolver.resolved == {}
        assert resolver.version == 0


class TestHomeBase:

    @pytest.mark.asyncio
    async def test_configured_coordinates(self, geocoder):
        resolver = CoordinateResolver(geocoder)
        home = HomeBase(address=MAIN_ST, lat=40.5, lng=-75.5)
        assert await resolver.resolve_home(home) == Coordinates(lat=40.5, lng=-75.5)
        assert geocoder.calls == []

    @pytest.mark.asyncio
    async def test_geocoded_address(self, geocoder):
        resolver = CoordinateResolver(geocoder)
        assert await resolver.resolve_home(HomeBase(address=OAK_AVE)) == GEOCODED[OAK_AVE]

    @pytest.mark.asyncio
    async def test_unset(self, geocoder):
        resolver = CoordinateResolver(geocoder)
        assert await resolver.resolve_home(None) is None
        assert await resolver.resolve_home(HomeBase()) is None
        assert await resolver.resolve_home(HomeBase(address="99 Unknown Rd")) is None

    def test_settings_home_base(self):
        from homevisit.core.config import Settings

        assert Settings(HOME_BASE_ADDRESS="", HOME_BASE_LAT=0, HOME_BASE_LNG=0).home_base is None
        home = Settings(HOME_BASE_LAT=40.5, HOME_BASE_LNG=-75.5).home_base
        assert home.has_coordinates
        assert home.coordinates == Coordinates(lat=40.5, lng=-75.5)
