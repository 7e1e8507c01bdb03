#!/usr/bin/env python3
"""
Shared fixtures: test environment, fakes for every collaborator, and an
in-memory SQLite database for the SQL-backed stores.
"""

import os
import sys
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))

from homevisit.core.events import EventChannel
from homevisit.core.grid import TimeGrid
from mocks.external_services import FakeViewport, InMemoryAppointmentStore, ManualScheduler, make_appointment

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Keep tests off real services"""
    test_env = {
        'APP_ENV': 'testing',
        'DATABASE_URL': TEST_DATABASE_URL,
        'GOOGLE_MAPS_API_KEY': '',
        'GOOGLE_CALENDAR_ENABLED': 'false',
    }

    with patch.dict(os.environ, test_env):
        yield


@pytest.fixture
def grid():
    return TimeGrid()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def events():
    return EventChannel()


@pytest.fixture
def viewport():
    return FakeViewport(top=320.0, left=0.0)


@pytest.fixture
def sync_requests(events):
    """Reasons passed to every sync request, in order"""
    seen = []
    events.subscribe("sync_requested", lambda reason="": seen.append(reason))
    return seen


@pytest.fixture
def store():
    return InMemoryAppointmentStore([
        make_appointment("a1", start_time="09:00"),
        make_appointment("a2", start_time="11:00", duration=45),
        make_appointment("a3", date="2025-03-11", start_time="13:30"),
    ])


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test, tables created"""
    from homevisit.db.base import init_db

    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Pure unit tests with no external dependencies")
    config.addinivalue_line("markers", "integration: Tests that exercise a real database or HTTP transport")
    config.addinivalue_line("markers", "slow: Long-running tests")
