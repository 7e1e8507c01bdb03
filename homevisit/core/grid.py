# homevisit/core/grid.py
"""
Time-grid geometry: minute-of-day <-> "HH:MM" <-> slot <-> pixel.

The visible day is the window [day_start, day_end) cut into fixed slots.
Every slot is slot_height pixels tall, uniformly scaled by the zoom factor.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from homevisit.core.config import Settings, settings

SLOT_MINUTES = 15
LAST_MINUTE_OF_DAY = 23 * 60 + 59
MINUTES_PER_DAY = 24 * 60


def round_half_up(value: float) -> int:
    """Round to nearest integer, .5 away from -inf (matches pointer math in browsers)."""
    return int(math.floor(value + 0.5))


def minutes_to_time(total_minutes: int) -> str:
    bounded = max(0, min(LAST_MINUTE_OF_DAY, int(total_minutes)))
    hours, minutes = divmod(bounded, 60)
    return f"{hours:02d}:{minutes:02d}"


def _split_time(time_str: str) -> Optional[tuple[int, int]]:
    parts = (time_str or "").strip().split(":")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def time_to_minutes(time_str: str) -> int:
    """Minutes since midnight for "HH:MM"; unparseable input maps to 0."""
    parsed = _split_time(time_str)
    if parsed is None:
        return 0
    hours, minutes = parsed
    return hours * 60 + minutes


def is_quarter_hour(time_str: str) -> bool:
    parsed = _split_time(time_str)
    if parsed is None:
        return False
    return parsed[1] % SLOT_MINUTES == 0


def snap_to_slot(minutes: float, slot_minutes: int = SLOT_MINUTES) -> int:
    return round_half_up(minutes / slot_minutes) * slot_minutes


def format_axis_time(minutes: int) -> str:
    """12-hour axis label, e.g. "7 AM", "12 PM"."""
    hours24 = minutes // 60
    meridiem = "PM" if hours24 >= 12 else "AM"
    hours12 = ((hours24 + 11) % 12) + 1
    return f"{hours12} {meridiem}"


def validate_manual_entry(
    start_time: str,
    duration: int,
    min_duration: int = 15,
    max_duration: int = 240,
) -> Optional[str]:
    """Error message for a manually typed start/duration, or None when valid."""
    if not is_quarter_hour(start_time):
        return "Start time must be in 15-minute increments."
    if duration < min_duration or duration > max_duration or duration % SLOT_MINUTES != 0:
        return f"Duration must be in 15-minute increments between {min_duration} and {max_duration}."
    return None


def week_dates(iso_date: str) -> List[str]:
    """The Sunday-first week containing iso_date, as ISO strings."""
    day = date.fromisoformat(iso_date)
    # date.weekday(): Monday=0 .. Sunday=6
    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return [(start + timedelta(days=i)).isoformat() for i in range(7)]


@dataclass(frozen=True)
class BlockGeometry:
    top: float
    height: float
    start_minutes: int
    end_minutes: int


@dataclass(frozen=True)
class ColumnPlacement:
    index: int
    size: int

    @property
    def width_fraction(self) -> float:
        return 1.0 / self.size

    @property
    def left_fraction(self) -> float:
        return self.index / self.size


@dataclass(frozen=True)
class TimeGrid:
    day_start: int = 7 * 60 + 30
    day_end: int = 20 * 60
    slot_minutes: int = SLOT_MINUTES
    slot_height: float = 48
    min_duration: int = 15
    inset: float = 1

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TimeGrid":
        return cls(
            day_start=config.DAY_START_MINUTES,
            day_end=config.DAY_END_MINUTES,
            slot_minutes=config.SLOT_MINUTES,
            slot_height=config.SLOT_HEIGHT_PX,
            min_duration=config.MIN_DURATION_MINUTES,
            inset=config.BLOCK_INSET_PX,
        )

    @property
    def slot_count(self) -> int:
        return (self.day_end - self.day_start) // self.slot_minutes

    def slot_starts(self) -> List[int]:
        return list(range(self.day_start, self.day_end, self.slot_minutes))

    def slot_index(self, y: float, zoom_scale: float = 1.0) -> int:
        scaled_height = self.slot_height * zoom_scale
        index = math.floor(y / scaled_height)
        return max(0, min(self.slot_count - 1, index))

    def pixel_y_to_slot_start(self, y: float, zoom_scale: float = 1.0) -> int:
        """Minute-of-day of the slot under a column-relative y, clamped to the grid."""
        return self.day_start + self.slot_index(y, zoom_scale) * self.slot_minutes

    def pixel_y_to_time(self, y: float, zoom_scale: float = 1.0) -> str:
        return minutes_to_time(self.pixel_y_to_slot_start(y, zoom_scale))

    def block_geometry(
        self,
        start_minutes: int,
        duration: int,
        zoom_scale: float = 1.0,
    ) -> Optional[BlockGeometry]:
        """Pixel box for [start, start+duration) clipped to the day; None when fully outside."""
        block_start = max(start_minutes, self.day_start)
        block_end = min(start_minutes + duration, self.day_end)
        if block_end <= block_start:
            return None

        px_per_slot = self.slot_height * zoom_scale
        top = (block_start - self.day_start) / self.slot_minutes * px_per_slot + self.inset * zoom_scale
        height = max(
            px_per_slot - 2 * self.inset * zoom_scale,
            (block_end - block_start) / self.slot_minutes * px_per_slot - 2 * self.inset * zoom_scale,
        )
        return BlockGeometry(top=top, height=height, start_minutes=block_start, end_minutes=block_end)

    def time_position(self, minutes: int, zoom_scale: float = 1.0) -> Optional[float]:
        """Y offset of a time-of-day (e.g. the current-time line), None outside the window."""
        if minutes < self.day_start or minutes >= self.day_end:
            return None
        return (minutes - self.day_start) / self.slot_minutes * self.slot_height * zoom_scale


def layout_same_start(blocks: Iterable[tuple[str, int]]) -> Dict[str, ColumnPlacement]:
    """
    Side-by-side placement for blocks sharing an identical start.

    blocks: (appointment_id, rendered_start_minutes) pairs. Each group of
    equal starts splits the column evenly, ordered by id. Blocks that merely
    overlap keep the full width.
    """
    groups: Dict[int, List[str]] = {}
    for appointment_id, start in blocks:
        groups.setdefault(start, []).append(appointment_id)

    placements: Dict[str, ColumnPlacement] = {}
    for ids in groups.values():
        ordered: Sequence[str] = sorted(ids)
        for index, appointment_id in enumerate(ordered):
            placements[appointment_id] = ColumnPlacement(index=index, size=len(ordered))
    return placements
