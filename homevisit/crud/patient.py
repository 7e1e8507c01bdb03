# homevisit/crud/patient.py

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homevisit.db.models.appointment import Appointment as AppointmentRow  # noqa: F401  (relationship registry)
from homevisit.db.models.patient import Patient as PatientRow
from homevisit.db.session import AsyncSessionLocal
from homevisit.schemas.patient import Coordinates, Patient


class SqlPatientRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def create(
        self,
        *,
        full_name: str,
        address: str = "",
        phone: str = "",
        nicknames: Optional[List[str]] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        notes: str = "",
    ) -> Patient:
        row = PatientRow(
            full_name=full_name.strip(),
            address=address.strip(),
            phone=phone,
            nicknames=list(nicknames or []),
            lat=lat,
            lng=lng,
            notes=notes,
        )
        async with self.session_factory() as db:
            db.add(row)
            await db.commit()
            await db.refresh(row)
        return Patient.model_validate(row)

    async def get(self, patient_id: str) -> Optional[Patient]:
        async with self.session_factory() as db:
            row = await db.get(PatientRow, patient_id)
            return Patient.model_validate(row) if row is not None else None

    async def get_many(self, patient_ids: Iterable[str]) -> Dict[str, Patient]:
        ids = list(set(patient_ids))
        if not ids:
            return {}
        async with self.session_factory() as db:
            res = await db.execute(sa.select(PatientRow).where(PatientRow.id.in_(ids)))
            return {row.id: Patient.model_validate(row) for row in res.scalars().all()}

    async def list_active(self, limit: int = 500) -> List[Patient]:
        q = (
            sa.select(PatientRow)
            .where(PatientRow.status == "active")
            .order_by(PatientRow.full_name.asc())
            .limit(limit)
        )
        async with self.session_factory() as db:
            res = await db.execute(q)
            return [Patient.model_validate(row) for row in res.scalars().all()]

    async def save_coordinates(self, patient_id: str, coords: Coordinates) -> None:
        """Persist geocoded coordinates so later sessions skip the lookup."""
        async with self.session_factory() as db:
            await db.execute(
                sa.update(PatientRow).where(PatientRow.id == patient_id).values(lat=coords.lat, lng=coords.lng)
            )
            await db.commit()
