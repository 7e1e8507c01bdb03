# homevisit/services/calendar_sync.py
"""
Glue between the sync queue, the SQL store and Google Calendar.

CalendarSubmitter is the `submit` callable handed to SyncWorker: it loads
the current appointment and patient for a queued write, pushes it to the
calendar and records the outcome on the appointment row.
"""
from __future__ import annotations

import logging
from typing import Optional

from homevisit.core.contracts import Scheduler
from homevisit.core.events import EventChannel
from homevisit.crud.appointment import SqlAppointmentStore
from homevisit.crud.patient import SqlPatientRepository
from homevisit.schemas.sync import SyncQueueItem
from homevisit.services.google_calendar import GoogleCalendarRemote
from homevisit.services.sync_queue import SyncQueue, SyncWorker

logger = logging.getLogger(__name__)


class CalendarSubmitter:
    def __init__(
        self,
        remote: GoogleCalendarRemote,
        appointments: SqlAppointmentStore,
        patients: SqlPatientRepository,
    ):
        self.remote = remote
        self.appointments = appointments
        self.patients = patients

    async def __call__(self, item: SyncQueueItem) -> Optional[str]:
        if item.entity != "appointment":
            logger.debug("No calendar mapping for %s, skipping", item.idempotency_key)
            return None

        appointment_id = item.data.get("id")
        appointment = None
        patient_name = ""
        if item.type != "delete" and appointment_id:
            appointment = await self.appointments.get(appointment_id)
            if appointment is None:
                # Deleted after this write was queued; its delete item handles the event
                logger.info("Appointment %s no longer exists, dropping %s", appointment_id, item.idempotency_key)
                return None
            patient = await self.patients.get(appointment.patient_id)
            patient_name = patient.display_name if patient is not None else ""

        event_id = await self.remote.submit(item, appointment, patient_name)
        if appointment is not None and event_id:
            await self.appointments.mark_synced(appointment.id, event_id)
        return event_id

    async def on_exhausted(self, item: SyncQueueItem) -> None:
        """Flag the row so the grid can show it never reached the calendar."""
        appointment_id = item.data.get("id")
        if item.entity != "appointment" or item.type == "delete" or not appointment_id:
            return
        await self.appointments.mark_sync_error(appointment_id)


def start_calendar_sync(
    queue: SyncQueue,
    events: EventChannel,
    scheduler: Scheduler,
    appointments: SqlAppointmentStore,
    patients: SqlPatientRepository,
    remote: Optional[GoogleCalendarRemote] = None,
) -> SyncWorker:
    """Build a worker that drains the queue into Google Calendar after each sync request."""
    submitter = CalendarSubmitter(remote or GoogleCalendarRemote(), appointments, patients)
    worker = SyncWorker(queue, events, on_exhausted=submitter.on_exhausted)
    worker.attach(events, scheduler, submitter)
    return worker
