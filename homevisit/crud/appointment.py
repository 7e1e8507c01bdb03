# homevisit/crud/appointment.py

from __future__ import annotations

from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homevisit.core.config import Settings, settings
from homevisit.core.errors import MutationError
from homevisit.core.grid import validate_manual_entry
from homevisit.db.models.appointment import Appointment as AppointmentRow
from homevisit.db.models.patient import Patient as PatientRow  # noqa: F401  (relationship registry)
from homevisit.db.session import AsyncSessionLocal
from homevisit.schemas.appointment import Appointment, AppointmentCreate, AppointmentUpdate
from homevisit.services.sync_queue import SyncQueue


def _sync_payload(row: AppointmentRow) -> Dict[str, Any]:
    return {
        "id": row.id,
        "patient_id": row.patient_id,
        "date": row.date,
        "start_time": row.start_time,
        "duration": row.duration,
        "calendar_event_id": row.calendar_event_id,
    }


class SqlAppointmentStore:
    """Appointment store over SQLAlchemy async sessions; each mutation enqueues a sync item."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        queue: Optional[SyncQueue] = None,
        config: Settings = settings,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.config = config

    def _validate(self, start_time: str, duration: int, appointment_id: Optional[str] = None) -> None:
        problem = validate_manual_entry(
            start_time,
            duration,
            min_duration=self.config.MIN_DURATION_MINUTES,
            max_duration=self.config.MAX_DURATION_MINUTES,
        )
        if problem:
            raise MutationError(problem, appointment_id=appointment_id)

    def _enqueue(self, action: str, row: AppointmentRow) -> None:
        if self.queue is not None:
            self.queue.enqueue(action, _sync_payload(row))

    async def create(self, fields: AppointmentCreate) -> Appointment:
        self._validate(fields.start_time, fields.duration)

        row = AppointmentRow(**fields.model_dump())
        async with self.session_factory() as db:
            db.add(row)
            await db.commit()
            await db.refresh(row)

        self._enqueue("create", row)
        return Appointment.model_validate(row)

    async def get(self, appointment_id: str) -> Optional[Appointment]:
        async with self.session_factory() as db:
            row = await db.get(AppointmentRow, appointment_id)
            return Appointment.model_validate(row) if row is not None else None

    async def update(self, appointment_id: str, changes: AppointmentUpdate) -> None:
        values = changes.changes()
        async with self.session_factory() as db:
            row = await db.get(AppointmentRow, appointment_id)
            if row is None:
                raise MutationError("Appointment not found.", appointment_id=appointment_id)

            self._validate(
                values.get("start_time", row.start_time),
                values.get("duration", row.duration),
                appointment_id,
            )
            for key, value in values.items():
                setattr(row, key, value)
            if "sync_status" not in values:
                row.sync_status = "pending"
            await db.commit()
            await db.refresh(row)

        self._enqueue("update", row)

    async def delete(self, appointment_id: str) -> None:
        async with self.session_factory() as db:
            row = await db.get(AppointmentRow, appointment_id)
            if row is None:
                return
            payload_row = row
            await db.delete(row)
            await db.commit()

        self._enqueue("delete", payload_row)

    async def list_by_range(self, start_date: str, end_date: str) -> List[Appointment]:
        """Appointments with start_date <= date <= end_date, in calendar order."""
        q = (
            sa.select(AppointmentRow)
            .where(AppointmentRow.date >= start_date, AppointmentRow.date <= end_date)
            .order_by(AppointmentRow.date.asc(), AppointmentRow.start_time.asc(), AppointmentRow.id.asc())
        )
        async with self.session_factory() as db:
            res = await db.execute(q)
            return [Appointment.model_validate(row) for row in res.scalars().all()]

    async def mark_synced(self, appointment_id: str, calendar_event_id: Optional[str] = None) -> None:
        """Record a confirmed remote write; does not enqueue."""
        values: Dict[str, Any] = {"sync_status": "synced"}
        if calendar_event_id:
            values["calendar_event_id"] = calendar_event_id
        async with self.session_factory() as db:
            await db.execute(
                sa.update(AppointmentRow).where(AppointmentRow.id == appointment_id).values(**values)
            )
            await db.commit()

    async def mark_sync_error(self, appointment_id: str) -> None:
        async with self.session_factory() as db:
            await db.execute(
                sa.update(AppointmentRow).where(AppointmentRow.id == appointment_id).values(sync_status="error")
            )
            await db.commit()
