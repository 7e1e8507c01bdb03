# homevisit/schemas/routing.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class LegInfo(BaseModel):
    """Travel leg into an appointment from the previous stop (or home)."""

    miles: Optional[float] = None
    minutes: Optional[int] = None
    from_home: bool = False
    is_real_distance: bool = False


class DrivingLeg(BaseModel):
    """Routed driving distance/time into a destination stop."""

    origin_id: str
    destination_id: str
    distance_miles: float = Field(..., ge=0)
    duration_minutes: int = Field(..., ge=0)


class RouteLocation(BaseModel):
    id: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DayTotals(BaseModel):
    miles: float = 0.0
    minutes: int = 0


class ArrangeResult(BaseModel):
    date: str
    ordered_ids: List[str] = Field(default_factory=list)
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    unrouted: int = 0
    overflow: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failed == 0


class WeekActionResult(BaseModel):
    total: int = 0
    processed: int = 0
    remaining: int = 0
    message: str = ""
    error: Optional[str] = None
