# homevisit/services/google_calendar.py
"""
Google Calendar as the remote store.

Appointments are mirrored as calendar events titled "PT: <patient>".
CalendarSubmitter (homevisit.services.calendar_sync) loads the appointment
and patient for each queued write and passes them to
GoogleCalendarRemote.submit; API errors propagate so SyncWorker can
schedule a retry.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from homevisit.core.config import Settings, settings
from homevisit.schemas.appointment import Appointment
from homevisit.schemas.sync import SyncQueueItem

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]
EVENT_PREFIX = "PT: "


def get_calendar_service(config: Settings = settings):
    """Build the Calendar v3 client from service-account JSON, or None when disabled."""
    if not config.GOOGLE_CALENDAR_ENABLED:
        logger.info("Google Calendar integration disabled via GOOGLE_CALENDAR_ENABLED")
        return None

    if not config.GOOGLE_SERVICE_ACCOUNT_JSON:
        logger.warning("GOOGLE_SERVICE_ACCOUNT_JSON not set, calendar integration disabled")
        return None

    try:
        credentials_info = json.loads(config.GOOGLE_SERVICE_ACCOUNT_JSON)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in GOOGLE_SERVICE_ACCOUNT_JSON: %s", e)
        return None

    credentials = service_account.Credentials.from_service_account_info(
        credentials_info,
        scopes=CALENDAR_SCOPES,
    )
    service = build("calendar", "v3", credentials=credentials)
    logger.info("Google Calendar service initialized successfully")
    return service


def event_window(appointment: Appointment, tz: ZoneInfo) -> tuple[datetime, datetime]:
    hours, minutes = divmod(appointment.start_minutes, 60)
    start = datetime.fromisoformat(appointment.date).replace(hour=hours, minute=minutes, tzinfo=tz)
    return start, start + timedelta(minutes=appointment.duration)


def build_event_body(appointment: Appointment, patient_name: str, tz: ZoneInfo) -> Dict[str, Any]:
    start, end = event_window(appointment, tz)

    lines = [f"Duration: {appointment.duration} minutes", f"Status: {appointment.status}"]
    if appointment.visit_type:
        lines.append(f"Visit type: {appointment.visit_type}")
    if appointment.notes:
        lines.append(f"Notes: {appointment.notes}")

    return {
        "summary": f"{EVENT_PREFIX}{patient_name}",
        "description": "\n".join(lines),
        "start": {"dateTime": start.isoformat(), "timeZone": tz.key},
        "end": {"dateTime": end.isoformat(), "timeZone": tz.key},
        "extendedProperties": {"private": {"appointmentId": appointment.id}},
    }


class GoogleCalendarRemote:
    def __init__(self, service=None, calendar_id: Optional[str] = None, config: Settings = settings):
        self.config = config
        self._service = service
        self.calendar_id = calendar_id or config.GOOGLE_CALENDAR_ID
        self.tz = ZoneInfo(config.CALENDAR_TIMEZONE)

    @property
    def service(self):
        if self._service is None:
            self._service = get_calendar_service(self.config)
        return self._service

    async def submit(
        self,
        item: SyncQueueItem,
        appointment: Optional[Appointment],
        patient_name: str = "",
    ) -> Optional[str]:
        """Apply one queued write; returns the calendar event id (None for deletes or when disabled)."""
        service = self.service
        if service is None:
            logger.debug("Google Calendar service not available, skipping %s", item.idempotency_key)
            return None

        if item.type == "delete":
            event_id = item.data.get("calendar_event_id") or (appointment.calendar_event_id if appointment else None)
            if event_id:
                await self.delete_event(event_id)
            return None

        if appointment is None:
            raise ValueError(f"Appointment missing for {item.idempotency_key}")

        if appointment.calendar_event_id:
            return await self.update_event(appointment.calendar_event_id, appointment, patient_name)
        return await self.create_event(appointment, patient_name)

    async def create_event(self, appointment: Appointment, patient_name: str) -> str:
        body = build_event_body(appointment, patient_name, self.tz)
        event = self.service.events().insert(calendarId=self.calendar_id, body=body).execute()
        logger.info(
            "Calendar event created: %s for %s at %s %s",
            event.get("id"), patient_name, appointment.date, appointment.start_time,
        )
        return event.get("id")

    async def update_event(self, event_id: str, appointment: Appointment, patient_name: str) -> str:
        service = self.service
        try:
            existing = service.events().get(calendarId=self.calendar_id, eventId=event_id).execute()
        except HttpError as e:
            if e.resp.status == 404:
                logger.warning("Calendar event %s not found, recreating", event_id)
                return await self.create_event(appointment, patient_name)
            raise

        existing.update(build_event_body(appointment, patient_name, self.tz))
        updated = service.events().update(calendarId=self.calendar_id, eventId=event_id, body=existing).execute()
        logger.info("Calendar event updated: %s for %s", event_id, patient_name)
        return updated.get("id", event_id)

    async def delete_event(self, event_id: str) -> None:
        try:
            self.service.events().delete(calendarId=self.calendar_id, eventId=event_id).execute()
            logger.info("Calendar event deleted: %s", event_id)
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.warning("Calendar event already gone: %s", event_id)
                return
            raise
