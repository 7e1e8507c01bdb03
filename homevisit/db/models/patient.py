# homevisit/db/models/patient.py

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homevisit.db.session import Base


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    nicknames: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    phone: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="")
    address: Mapped[str] = mapped_column(sa.String(255), nullable=False, default="")

    # Null until geocoded or entered by hand
    lat: Mapped[float | None] = mapped_column(sa.Float)
    lng: Mapped[float | None] = mapped_column(sa.Float)

    status: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="active")
    notes: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    appointments: Mapped[list["Appointment"]] = relationship(
        back_populates="patient",
        cascade="all, delete-orphan",
    )
