#!/usr/bin/env python3
"""
Tests for mirroring appointments into Google Calendar.
"""

import json
import os
import sys
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import httplib2
import pytest
from googleapiclient.errors import HttpError

# Add project root to Python path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from homevisit.core.config import Settings
from homevisit.schemas.sync import SyncQueueItem
from homevisit.services.google_calendar import (
    GoogleCalendarRemote,
    build_event_body,
    event_window,
    get_calendar_service,
)
from mocks.external_services import make_appointment

TZ = ZoneInfo("America/New_York")


def http_error(status):
    return HttpError(httplib2.Response({"status": str(status)}), b"")


def queued(action, appointment_id="a1", **data):
    return SyncQueueItem(
        id=1,
        type=action,
        data={"id": appointment_id, **data},
        idempotency_key=f"appointment:{action}:{appointment_id}",
    )


@pytest.fixture
def service():
    """Calendar client whose request objects return canned responses"""
    svc = MagicMock()
    events = svc.events.return_value
    events.insert.return_value.execute.return_value = {"id": "evt-new"}
    events.get.return_value.execute.return_value = {"id": "evt-1", "summary": "old", "colorId": "5"}
    events.update.return_value.execute.return_value = {"id": "evt-1"}
    events.delete.return_value.execute.return_value = None
    return svc


@pytest.fixture
def remote(service):
    return GoogleCalendarRemote(service=service, calendar_id="cal-1")


class TestCalendarService:

    def test_disabled(self):
        assert get_calendar_service(Settings(GOOGLE_CALENDAR_ENABLED=False)) is None

    def test_missing_credentials(self):
        config = Settings(GOOGLE_CALENDAR_ENABLED=True, GOOGLE_SERVICE_ACCOUNT_JSON="")
        assert get_calendar_service(config) is None

    def test_invalid_json(self):
        config = Settings(GOOGLE_CALENDAR_ENABLED=True, GOOGLE_SERVICE_ACCOUNT_JSON="not json")
        assert get_calendar_service(config) is None

    @patch("homevisit.services.google_calendar.build")
    @patch("homevisit.services.google_calendar.service_account.Credentials.from_service_account_info")
    def test_builds_client(self, mock_credentials, mock_build):
        config = Settings(GOOGLE_CALENDAR_ENABLED=True, GOOGLE_SERVICE_ACCOUNT_JSON=json.dumps({"type": "service_account"}))

        service = get_calendar_service(config)

        assert service is mock_build.return_value
        mock_credentials.assert_called_once()
        mock_build.assert_called_once_with("calendar", "v3", credentials=mock_credentials.return_value)


class TestEventBody:

    def test_window_is_local_wall_clock(self):
        start, end = event_window(make_appointment("a1", start_time="09:45", duration=75), TZ)
        assert start.isoformat() == "2025-03-10T09:45:00-04:00"
        assert end.isoformat() == "2025-03-10T11:00:00-04:00"

    def test_body(self):
        appointment = make_appointment("a1", visit_type="PT05", notes="ring twice")
        body = build_event_body(appointment, "Ada Lovelace", TZ)

        assert body["summary"] == "PT: Ada Lovelace"
        assert "Visit type: PT05" in body["description"]
        assert "Notes: ring twice" in body["description"]
        assert body["start"]["timeZone"] == "America/New_York"
        assert body["extendedProperties"]["private"]["appointmentId"] == "a1"


class TestGoogleCalendarRemote:

    @pytest.mark.asyncio
    async def test_create(self, remote, service):
        event_id = await remote.submit(queued("create"), make_appointment("a1"), "Ada Lovelace")

        assert event_id == "evt-new"
        kwargs = service.events.return_value.insert.call_args.kwargs
        assert kwargs["calendarId"] == "cal-1"
        assert kwargs["body"]["summary"] == "PT: Ada Lovelace"

    @pytest.mark.asyncio
    async def test_update_existing_event(self, remote, service):
        appointment = make_appointment("a1", start_time="10:00", calendar_event_id="evt-1")

        event_id = await remote.submit(queued("update"), appointment, "Ada Lovelace")

        assert event_id == "evt-1"
        body = service.events.return_value.update.call_args.kwargs["body"]
        assert body["colorId"] == "5"
        assert body["summary"] == "PT: Ada Lovelace"
        service.events.return_value.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_recreates_missing_event(self, remote, service):
        service.events.return_value.get.return_value.execute.side_effect = http_error(404)
        appointment = make_appointment("a1", calendar_event_id="evt-gone")

        assert await remote.submit(queued("update"), appointment, "Ada") == "evt-new"

    @pytest.mark.asyncio
    async def test_update_server_error_propagates(self, remote, service):
        service.events.return_value.get.return_value.execute.side_effect = http_error(500)
        appointment = make_appointment("a1", calendar_event_id="evt-1")

        with pytest.raises(HttpError):
            await remote.submit(queued("update"), appointment, "Ada")

    @pytest.mark.asyncio
    async def test_delete_uses_queued_event_id(self, remote, service):
        assert await remote.submit(queued("delete", calendar_event_id="evt-9"), None) is None
        service.events.return_value.delete.assert_called_once_with(calendarId="cal-1", eventId="evt-9")

    @pytest.mark.asyncio
    async def test_delete_already_gone(self, remote, service):
        service.events.return_value.delete.return_value.execute.side_effect = http_error(410)
        await remote.submit(queued("delete", calendar_event_id="evt-9"), None)

    @pytest.mark.asyncio
    async def test_delete_without_event_is_noop(self, remote, service):
        await remote.submit(queued("delete"), None)
        service.events.return_value.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_appointment_raises(self, remote):
        with pytest.raises(ValueError):
            await remote.submit(queued("update"), None)

    @pytest.mark.asyncio
    async def test_disabled_remote_skips(self):
        remote = GoogleCalendarRemote(config=Settings(GOOGLE_CALENDAR_ENABLED=False))
        assert await remote.submit(queued("create"), make_appointment("a1")) is None
