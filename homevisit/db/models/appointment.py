# homevisit/db/models/appointment.py

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homevisit.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        sa.Index("ix_appointments_date_start", "date", "start_time"),
        sa.Index("ix_appointments_patient_id", "patient_id"),
    )

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    patient_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )

    # Wall-clock local date/time, "YYYY-MM-DD" and "HH:MM"
    date: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    start_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    duration: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="60")

    status: Mapped[str] = mapped_column(sa.String(32), nullable=False, server_default="scheduled")
    visit_type: Mapped[str | None] = mapped_column(sa.String(32))
    notes: Mapped[str | None] = mapped_column(sa.Text)
    sync_status: Mapped[str] = mapped_column(sa.String(16), nullable=False, server_default="local")
    calendar_event_id: Mapped[str | None] = mapped_column(sa.String(255))

    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    patient: Mapped["Patient"] = relationship(back_populates="appointments")
