# homevisit/schemas/appointment.py
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from homevisit.core.grid import is_quarter_hour, time_to_minutes

AppointmentStatus = Literal["scheduled", "completed", "cancelled", "no-show", "on-hold"]
SyncStatus = Literal["local", "pending", "synced", "error"]

VISIT_TYPE_CODES = (
    "PT00", "PT01", "PT02", "PT05", "PT06", "PT10", "PT11",
    "PT15", "PT18", "PT19", "PT33", "NOMNC",
)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def normalize_visit_type(value: Optional[str]) -> Optional[str]:
    """
    Canonical visit-type code for free text:
    "visit type: pt-05" -> "PT05", "[Eval]" -> "EVAL", "re eval" -> "REEVAL".
    """
    raw = (value or "").strip()
    if not raw:
        return None

    cleaned = re.sub(r"^[\[\(\{<]+|[\]\)\}>]+$", "", raw)
    cleaned = re.sub(r"^visit\s*type\s*[:\-]?\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"[–—]", "-", cleaned)
    cleaned = re.sub(r"^[\s:;\-]+|[\s:;\-]+$", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if not cleaned:
        return None

    alpha_numeric = re.match(r"^([A-Za-z]{1,6})\s*-?\s*(\d{1,3})$", cleaned)
    if alpha_numeric:
        return f"{alpha_numeric.group(1).upper()}{alpha_numeric.group(2)}"

    keyword = re.match(r"^(EVAL|SOC|DC|ROC|RE[-\s]?EVAL)$", cleaned, flags=re.IGNORECASE)
    if keyword:
        return re.sub(r"[-\s]", "", keyword.group(1).upper())

    return cleaned.upper()


class AppointmentFields(BaseModel):
    patient_id: str
    date: str
    start_time: str
    duration: int = 60
    status: AppointmentStatus = "scheduled"
    visit_type: Optional[str] = None
    notes: Optional[str] = None
    sync_status: SyncStatus = "local"

    @field_validator("date")
    @classmethod
    def _date_format(cls, v: str) -> str:
        if not _ISO_DATE.match(v):
            raise ValueError("date must be YYYY-MM-DD")
        return v

    @field_validator("start_time")
    @classmethod
    def _quarter_hour(cls, v: str) -> str:
        if not is_quarter_hour(v):
            raise ValueError("start_time must be on a 15-minute boundary")
        return v

    @field_validator("duration")
    @classmethod
    def _duration_steps(cls, v: int) -> int:
        if v < 15 or v % 15 != 0:
            raise ValueError("duration must be a positive multiple of 15")
        return v

    @field_validator("visit_type")
    @classmethod
    def _visit_type(cls, v: Optional[str]) -> Optional[str]:
        return normalize_visit_type(v)


class AppointmentCreate(AppointmentFields):
    pass


class AppointmentUpdate(BaseModel):
    """Partial update; only fields explicitly set are written."""

    date: Optional[str] = None
    start_time: Optional[str] = None
    duration: Optional[int] = None
    status: Optional[AppointmentStatus] = None
    visit_type: Optional[str] = None
    notes: Optional[str] = None
    sync_status: Optional[SyncStatus] = None

    @field_validator("start_time")
    @classmethod
    def _quarter_hour(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_quarter_hour(v):
            raise ValueError("start_time must be on a 15-minute boundary")
        return v

    @field_validator("duration")
    @classmethod
    def _duration_steps(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < 15 or v % 15 != 0):
            raise ValueError("duration must be a positive multiple of 15")
        return v

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class Appointment(AppointmentFields):
    model_config = ConfigDict(from_attributes=True)

    id: str
    calendar_event_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration
