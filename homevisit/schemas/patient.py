# homevisit/schemas/patient.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class HomeBase(BaseModel):
    address: str = ""
    lat: float = 0.0
    lng: float = 0.0

    @property
    def has_coordinates(self) -> bool:
        return self.lat != 0 and self.lng != 0

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if not self.has_coordinates:
            return None
        return Coordinates(lat=self.lat, lng=self.lng)


class Patient(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    nicknames: List[str] = Field(default_factory=list)
    phone: str = ""
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    status: str = "active"
    notes: str = ""

    @property
    def display_name(self) -> str:
        nickname = next((n.strip() for n in self.nicknames if n.strip()), None)
        if not nickname:
            return self.full_name
        return f'{self.full_name} "{nickname}"'

    @property
    def stored_coordinates(self) -> Optional[Coordinates]:
        if self.lat is None or self.lng is None:
            return None
        return Coordinates(lat=self.lat, lng=self.lng)
