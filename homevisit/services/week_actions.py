# homevisit/services/week_actions.py
"""
Clear-week with one-shot undo.

clear_week snapshots every appointment in the range, deletes them (a
second pass picks up anything the first left behind) and keeps the
snapshot so restore() can recreate the week once.
"""
from __future__ import annotations

from typing import List, Optional

from homevisit.core.contracts import AppointmentStore
from homevisit.core.events import EventChannel
from homevisit.core.logging import clear_operation, get_logger, set_operation
from homevisit.schemas.appointment import Appointment, AppointmentCreate
from homevisit.schemas.routing import WeekActionResult

logger = get_logger(__name__)

MAX_DELETE_PASSES = 2


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


def snapshot_fields(appointment: Appointment) -> AppointmentCreate:
    """Everything needed to recreate an appointment, minus its identity and sync state."""
    return AppointmentCreate(
        patient_id=appointment.patient_id,
        date=appointment.date,
        start_time=appointment.start_time,
        duration=appointment.duration,
        status=appointment.status,
        visit_type=appointment.visit_type,
        notes=appointment.notes,
        sync_status="local",
    )


class WeekActions:
    def __init__(self, store: AppointmentStore, events: Optional[EventChannel] = None):
        self.store = store
        self.events = events
        self.snapshot: Optional[List[AppointmentCreate]] = None
        self.busy = False

    @property
    def can_restore(self) -> bool:
        return bool(self.snapshot)

    async def clear_week(self, week_start: str, week_end: str) -> WeekActionResult:
        if self.busy:
            return WeekActionResult(message="Another week action is already running.")

        self.busy = True
        set_operation("clear_week", week_start=week_start, week_end=week_end)
        try:
            initial = await self.store.list_by_range(week_start, week_end)
            if not initial:
                return WeekActionResult(message="No appointments to clear for this week.")

            self.snapshot = [snapshot_fields(a) for a in initial]
            remaining = initial
            deleted_ids = set()
            last_error: Optional[str] = None

            for attempt in range(MAX_DELETE_PASSES):
                for appointment in remaining:
                    try:
                        await self.store.delete(appointment.id)
                        deleted_ids.add(appointment.id)
                    except Exception as e:
                        last_error = str(e)
                        logger.warning("clear_week_delete_failed", appointment_id=appointment.id, error=last_error)

                remaining = await self.store.list_by_range(week_start, week_end)
                if not remaining:
                    break
                logger.info("clear_week_retry", attempt=attempt + 1, remaining=len(remaining))

            if deleted_ids and self.events is not None:
                self.events.request_sync("clear_week")

            total = len(initial)
            if remaining:
                result = WeekActionResult(
                    total=total,
                    processed=len(deleted_ids),
                    remaining=len(remaining),
                    message=(
                        f"Cleared most appointments, but {len(remaining)} still remained. "
                        "Press Clear Week again to remove them."
                    ),
                    error=last_error,
                )
            else:
                result = WeekActionResult(
                    total=total,
                    processed=total,
                    message=f"Cleared {total} appointment{_plural(total)} for this week.",
                )
            logger.info("clear_week_complete", total=total, remaining=result.remaining)
            return result
        except Exception as e:
            logger.error("clear_week_failed", error=str(e))
            return WeekActionResult(message="Failed to clear this week.", error=str(e))
        finally:
            self.busy = False
            clear_operation()

    async def restore(self) -> WeekActionResult:
        if not self.snapshot:
            return WeekActionResult(message="There is no cleared week to restore.")
        if self.busy:
            return WeekActionResult(message="Another week action is already running.")

        self.busy = True
        set_operation("restore_week", count=len(self.snapshot))
        try:
            ordered = sorted(self.snapshot, key=lambda fields: (fields.date, fields.start_time))
            total = len(ordered)
            restored = 0
            leftover: List[AppointmentCreate] = []
            last_error: Optional[str] = None

            for fields in ordered:
                try:
                    await self.store.create(fields)
                    restored += 1
                except Exception as e:
                    last_error = str(e)
                    leftover.append(fields)
                    logger.warning(
                        "restore_week_create_failed",
                        date=fields.date,
                        start_time=fields.start_time,
                        error=last_error,
                    )

            # Keep only the entries that still need recreating
            self.snapshot = leftover or None
            if restored and self.events is not None:
                self.events.request_sync("restore_week")
            logger.info("restore_week_complete", restored=restored, remaining=len(leftover))

            if not leftover:
                return WeekActionResult(
                    total=total,
                    processed=restored,
                    message=f"Restored {restored} appointment{_plural(restored)} to the week.",
                )
            if not restored:
                return WeekActionResult(
                    total=total,
                    remaining=len(leftover),
                    message="Failed to restore the cleared week.",
                    error=last_error,
                )
            return WeekActionResult(
                total=total,
                processed=restored,
                remaining=len(leftover),
                message=(
                    f"Restored {restored} of {total} appointments, but {len(leftover)} could not be recreated. "
                    "Press Restore again to retry them."
                ),
                error=last_error,
            )
        finally:
            self.busy = False
            clear_operation()
