# homevisit/services/interaction.py
"""
Pointer/touch interaction state machine for the schedule grid.

States: idle, dragging, resizing, pending placement (move/copy armed),
touch drag pending -> touch drag active. At most one session is live;
starting a gesture tears down whatever else was in flight.

Gesture handlers that end in a write are coroutines. Every write is
optimistic: the local appointment map changes first, then the store is
awaited, then a resync is requested on the event channel. Transient
state (sessions, preview, render overrides) is cleared before the write
so a failed write never leaves a half-finished gesture on screen.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from homevisit.core.config import Settings, settings
from homevisit.core.contracts import AppointmentStore, Scheduler, TimerHandle, Viewport
from homevisit.core.errors import MutationError
from homevisit.core.events import EventChannel
from homevisit.core.grid import (
    BlockGeometry,
    ColumnPlacement,
    TimeGrid,
    layout_same_start,
    minutes_to_time,
    round_half_up,
    snap_to_slot,
)
from homevisit.schemas.appointment import Appointment, AppointmentCreate, AppointmentUpdate
from homevisit.utils.timers import LoopScheduler

logger = logging.getLogger(__name__)

MIN_ZOOM = 0.5
MAX_ZOOM = 2.0


class Mode(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    PENDING_PLACEMENT = "pending_placement"
    TOUCH_DRAG_PENDING = "touch_drag_pending"
    TOUCH_DRAG_ACTIVE = "touch_drag_active"


class Edge(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


class PlacementMode(str, Enum):
    MOVE = "move"
    COPY = "copy"


class ClickOutcome(str, Enum):
    SUPPRESSED = "suppressed"
    MOVED = "moved"
    COPIED = "copied"
    UNCHANGED = "unchanged"
    CREATE = "create"
    IGNORED = "ignored"


@dataclass(frozen=True)
class SlotTarget:
    date: str
    start_time: str


@dataclass(frozen=True)
class RenderOverride:
    start_minutes: int
    duration: int


@dataclass
class DragSession:
    appointment_id: str
    origin_date: str
    origin_start_time: str
    pointer_x: float
    pointer_y: float


@dataclass
class ResizeSession:
    appointment_id: str
    edge: Edge
    start_y: float
    initial_start_minutes: int
    initial_duration: int

    @property
    def initial_end_minutes(self) -> int:
        return self.initial_start_minutes + self.initial_duration

    @property
    def initial(self) -> RenderOverride:
        return RenderOverride(self.initial_start_minutes, self.initial_duration)


@dataclass
class PlacementSession:
    appointment_id: str
    mode: PlacementMode


@dataclass
class TouchDragSession:
    appointment_id: str
    start_x: float
    start_y: float
    activated: bool = False
    ghost_x: float = 0.0
    ghost_y: float = 0.0


class ScrollKeeper:
    """
    Keeps the grid's scroll offset steady across a write-triggered re-render.

    capture() before the write, restore_after_render() once it settles; a
    manual scroll in between abandons the restore.
    """

    def __init__(self, viewport: Viewport, scheduler: Scheduler):
        self.viewport = viewport
        self.scheduler = scheduler
        self._saved: Optional[Tuple[float, float]] = None

    def capture(self) -> None:
        self._saved = self.viewport.get_scroll()

    def user_scrolled(self) -> None:
        self._saved = None

    def restore_after_render(self) -> None:
        if self._saved is None:
            return
        self.scheduler.call_later(0, self._restore)

    def _restore(self) -> None:
        if self._saved is None:
            return
        top, left = self._saved
        self._saved = None
        self.viewport.set_scroll(top, left)


class InteractionController:
    def __init__(
        self,
        store: AppointmentStore,
        grid: Optional[TimeGrid] = None,
        scheduler: Optional[Scheduler] = None,
        events: Optional[EventChannel] = None,
        viewport: Optional[Viewport] = None,
        on_create: Optional[Callable[[str, str], None]] = None,
        haptic: Optional[Callable[[], None]] = None,
        config: Settings = settings,
    ):
        self.store = store
        self.grid = grid or TimeGrid.from_settings(config)
        self.scheduler = scheduler or LoopScheduler()
        self.events = events
        self.scroll = ScrollKeeper(viewport, self.scheduler) if viewport is not None else None
        self.on_create = on_create
        self.haptic = haptic
        self.config = config

        self.appointments: Dict[str, Appointment] = {}
        self.zoom_scale = 1.0

        self.drag: Optional[DragSession] = None
        self.resize: Optional[ResizeSession] = None
        self.placement: Optional[PlacementSession] = None
        self.touch_drag: Optional[TouchDragSession] = None
        self.preview: Optional[SlotTarget] = None
        self.overrides: Dict[str, RenderOverride] = {}

        self._suppressed = {"slot": False, "chip": False}
        self._timers: Dict[str, TimerHandle] = {}
        self._slot_press: Optional[SlotTarget] = None
        self._resize_press: Optional[Tuple[str, Edge, float]] = None
        self._pinch: Optional[Tuple[float, float]] = None

    # ------------------------------------------------------------------
    # View model
    # ------------------------------------------------------------------

    def load(self, appointments: Iterable[Appointment]) -> None:
        """Replace the visible appointments (after a range query or resync)."""
        self.appointments = {a.id: a for a in appointments}
        for session_id in list(self._session_ids()):
            if session_id not in self.appointments:
                self.cancel()
                break

    def _session_ids(self) -> Iterable[str]:
        for session in (self.drag, self.resize, self.placement, self.touch_drag):
            if session is not None:
                yield session.appointment_id

    @property
    def mode(self) -> Mode:
        if self.resize is not None:
            return Mode.RESIZING
        if self.drag is not None:
            return Mode.DRAGGING
        if self.touch_drag is not None:
            return Mode.TOUCH_DRAG_ACTIVE if self.touch_drag.activated else Mode.TOUCH_DRAG_PENDING
        if self.placement is not None:
            return Mode.PENDING_PLACEMENT
        return Mode.IDLE

    def rendered_start_minutes(self, appointment: Appointment) -> int:
        override = self.overrides.get(appointment.id)
        return override.start_minutes if override else appointment.start_minutes

    def rendered_duration(self, appointment: Appointment) -> int:
        override = self.overrides.get(appointment.id)
        return override.duration if override else appointment.duration

    def block_geometry(self, appointment: Appointment) -> Optional[BlockGeometry]:
        return self.grid.block_geometry(
            self.rendered_start_minutes(appointment),
            self.rendered_duration(appointment),
            self.zoom_scale,
        )

    def day_layout(self, date: str) -> Dict[str, Tuple[BlockGeometry, ColumnPlacement]]:
        """Drawable blocks for one day column: geometry plus side-by-side slot."""
        drawn: List[Tuple[Appointment, BlockGeometry]] = []
        for appointment in self.appointments.values():
            if appointment.date != date:
                continue
            geometry = self.block_geometry(appointment)
            if geometry is not None:
                drawn.append((appointment, geometry))

        placements = layout_same_start((a.id, self.rendered_start_minutes(a)) for a, _ in drawn)
        return {a.id: (geometry, placements[a.id]) for a, geometry in drawn}

    @property
    def ghost_position(self) -> Optional[Tuple[float, float]]:
        if self.touch_drag is None or not self.touch_drag.activated:
            return None
        return self.touch_drag.ghost_x, self.touch_drag.ghost_y

    # ------------------------------------------------------------------
    # Timers and suppression
    # ------------------------------------------------------------------

    def _set_timer(self, name: str, delay_ms: float, callback: Callable[[], None]) -> None:
        self._clear_timer(name)

        def fire() -> None:
            self._timers.pop(name, None)
            callback()

        self._timers[name] = self.scheduler.call_later(delay_ms, fire)

    def _clear_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def _suppress(self, target: str) -> None:
        """Swallow the click that terminates a gesture; cleared on the next tick."""
        self._suppressed[target] = True

        def release() -> None:
            self._suppressed[target] = False

        self._set_timer(f"suppress_{target}", 0, release)

    @property
    def slot_click_suppressed(self) -> bool:
        return self._suppressed["slot"]

    @property
    def chip_click_suppressed(self) -> bool:
        return self._suppressed["chip"]

    # ------------------------------------------------------------------
    # Session teardown
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Tear down every in-flight session and its transient visuals."""
        if self.resize is not None:
            self.overrides.pop(self.resize.appointment_id, None)
        self.drag = None
        self.resize = None
        self.placement = None
        self.touch_drag = None
        self.preview = None
        self._slot_press = None
        self._resize_press = None
        for name in ("slot_press", "resize_press", "touch_drag"):
            self._clear_timer(name)

    def dispose(self) -> None:
        """Component teardown: cancel sessions and every pending timer."""
        self.cancel()
        for name in list(self._timers):
            self._clear_timer(name)
        self.overrides.clear()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _request_sync(self, reason: str) -> None:
        if self.events is not None:
            self.events.request_sync(reason)

    async def _commit(self, appointment_id: str, changes: AppointmentUpdate, reason: str) -> None:
        current = self.appointments.get(appointment_id)
        if current is not None:
            self.appointments[appointment_id] = current.model_copy(update=changes.changes())

        if self.scroll is not None:
            self.scroll.capture()
        try:
            await self.store.update(appointment_id, changes)
        except MutationError:
            raise
        except Exception as e:
            logger.error("Update of %s failed: %s", appointment_id, e)
            raise MutationError(f"Failed to update appointment: {e}", appointment_id=appointment_id) from e
        finally:
            if self.scroll is not None:
                self.scroll.restore_after_render()

        logger.debug("%s committed for %s: %s", reason, appointment_id, changes.changes())
        self._request_sync(reason)

    async def move_to_slot(self, appointment_id: str, date: str, start_time: str) -> bool:
        """Move an appointment; False when it is unknown or already there."""
        existing = self.appointments.get(appointment_id)
        if existing is None:
            return False
        if existing.date == date and existing.start_time == start_time:
            return False
        await self._commit(appointment_id, AppointmentUpdate(date=date, start_time=start_time), "move")
        return True

    async def copy_to_slot(self, appointment_id: str, date: str, start_time: str) -> Optional[Appointment]:
        source = self.appointments.get(appointment_id)
        if source is None:
            return None

        fields = AppointmentCreate(
            patient_id=source.patient_id,
            date=date,
            start_time=start_time,
            duration=source.duration,
            status="scheduled",
            visit_type=source.visit_type,
            notes=source.notes,
            sync_status="local",
        )
        if self.scroll is not None:
            self.scroll.capture()
        try:
            created = await self.store.create(fields)
        except MutationError:
            raise
        except Exception as e:
            logger.error("Copy of %s failed: %s", appointment_id, e)
            raise MutationError(f"Failed to copy appointment: {e}", appointment_id=appointment_id) from e
        finally:
            if self.scroll is not None:
                self.scroll.restore_after_render()

        self.appointments[created.id] = created
        self._request_sync("copy")
        return created

    async def delete_appointment(self, appointment_id: str) -> None:
        if appointment_id in set(self._session_ids()):
            self.cancel()
        self.overrides.pop(appointment_id, None)

        try:
            await self.store.delete(appointment_id)
        except MutationError:
            raise
        except Exception as e:
            logger.error("Delete of %s failed: %s", appointment_id, e)
            raise MutationError(f"Failed to delete appointment: {e}", appointment_id=appointment_id) from e

        self.appointments.pop(appointment_id, None)
        self._request_sync("delete")

    # ------------------------------------------------------------------
    # Pointer drag
    # ------------------------------------------------------------------

    def start_drag(self, appointment_id: str, pointer_x: float = 0.0, pointer_y: float = 0.0) -> bool:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            return False
        self.cancel()
        self.drag = DragSession(
            appointment_id=appointment_id,
            origin_date=appointment.date,
            origin_start_time=appointment.start_time,
            pointer_x=pointer_x,
            pointer_y=pointer_y,
        )
        self.preview = SlotTarget(appointment.date, appointment.start_time)
        return True

    def drag_over(self, date: str, column_y: float) -> Optional[SlotTarget]:
        if self.drag is None:
            return None
        target = SlotTarget(date, self.grid.pixel_y_to_time(column_y, self.zoom_scale))
        if target != self.preview:
            self.preview = target
        return self.preview

    def end_drag(self) -> None:
        """Drag ended without a drop on the grid."""
        self.drag = None
        self.preview = None

    async def drop(
        self,
        date: str,
        column_y: Optional[float] = None,
        start_time: Optional[str] = None,
    ) -> bool:
        """Drop on a column (pixel y) or a specific slot (start_time)."""
        session = self.drag
        self.end_drag()
        if session is None:
            return False

        if start_time is None:
            start_time = self.grid.pixel_y_to_time(column_y or 0.0, self.zoom_scale)
        self._suppress("slot")
        return await self.move_to_slot(session.appointment_id, date, start_time)

    # ------------------------------------------------------------------
    # Resize
    # ------------------------------------------------------------------

    def start_resize(self, appointment_id: str, edge: Edge, client_y: float) -> bool:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            return False
        self.cancel()
        self._suppress("chip")
        self.resize = ResizeSession(
            appointment_id=appointment_id,
            edge=Edge(edge),
            start_y=client_y,
            initial_start_minutes=self.rendered_start_minutes(appointment),
            initial_duration=self.rendered_duration(appointment),
        )
        return True

    def resize_move(self, client_y: float) -> Optional[RenderOverride]:
        session = self.resize
        if session is None:
            return None

        grid = self.grid
        delta_slots = round_half_up((client_y - session.start_y) / (grid.slot_height * self.zoom_scale))
        if delta_slots == 0:
            override = session.initial
        else:
            step = delta_slots * grid.slot_minutes
            start = session.initial_start_minutes
            if session.edge == Edge.BOTTOM:
                max_duration = max(grid.min_duration, grid.day_end - session.initial_start_minutes)
                duration = max(grid.min_duration, min(max_duration, session.initial_duration + step))
            else:
                start = max(
                    grid.day_start,
                    min(session.initial_end_minutes - grid.min_duration, session.initial_start_minutes + step),
                )
                duration = session.initial_end_minutes - start

            override = RenderOverride(
                start_minutes=snap_to_slot(start, grid.slot_minutes),
                duration=max(grid.min_duration, snap_to_slot(duration, grid.slot_minutes)),
            )

        self.overrides[session.appointment_id] = override
        return override

    async def end_resize(self) -> bool:
        """Release: commit only when the geometry actually changed."""
        session = self.resize
        if session is None:
            return False

        final = self.overrides.pop(session.appointment_id, None) or session.initial
        self.resize = None
        self._suppress("chip")

        if final == session.initial:
            return False
        await self._commit(
            session.appointment_id,
            AppointmentUpdate(start_time=minutes_to_time(final.start_minutes), duration=final.duration),
            "resize",
        )
        return True

    def resize_touch_start(self, appointment_id: str, edge: Edge, client_y: float) -> None:
        """Touch on a resize handle: resize begins only after a long press."""
        self._resize_press = (appointment_id, Edge(edge), client_y)

        def fire() -> None:
            pressed = self._resize_press
            self._resize_press = None
            if pressed is not None:
                self.start_resize(*pressed)

        self._set_timer("resize_press", self.config.RESIZE_LONG_PRESS_MS, fire)

    def resize_touch_end(self) -> None:
        self._clear_timer("resize_press")
        self._resize_press = None

    # ------------------------------------------------------------------
    # Slots: long-press create, click-to-place
    # ------------------------------------------------------------------

    def slot_press_start(self, date: str, start_time: str) -> None:
        if self.placement is not None:
            return
        self._slot_press = SlotTarget(date, start_time)

        def fire() -> None:
            target = self._slot_press
            self._slot_press = None
            if target is not None and self.on_create is not None:
                self.on_create(target.date, target.start_time)

        self._set_timer("slot_press", self.config.LONG_PRESS_MS, fire)

    def slot_press_end(self) -> None:
        """Release or movement before the long-press threshold."""
        self._clear_timer("slot_press")
        self._slot_press = None

    def arm_placement(self, appointment_id: str, mode: PlacementMode = PlacementMode.MOVE) -> bool:
        if appointment_id not in self.appointments:
            return False
        self.cancel()
        self.placement = PlacementSession(appointment_id, PlacementMode(mode))
        return True

    def toggle_move(self, appointment_id: str) -> bool:
        """Right-click / long-press on a chip; returns whether move mode is now armed."""
        if self.placement is not None and self.placement.appointment_id == appointment_id:
            self.placement = None
            return False
        return self.arm_placement(appointment_id, PlacementMode.MOVE)

    def disarm_placement(self) -> None:
        self.placement = None

    async def slot_click(self, date: str, start_time: str) -> ClickOutcome:
        if self.slot_click_suppressed:
            return ClickOutcome.SUPPRESSED
        if self.resize is not None or self.drag is not None:
            return ClickOutcome.IGNORED

        placement = self.placement
        if placement is not None:
            self.placement = None
            if placement.mode == PlacementMode.COPY:
                created = await self.copy_to_slot(placement.appointment_id, date, start_time)
                return ClickOutcome.COPIED if created is not None else ClickOutcome.IGNORED
            moved = await self.move_to_slot(placement.appointment_id, date, start_time)
            return ClickOutcome.MOVED if moved else ClickOutcome.UNCHANGED

        if self.config.CREATE_ON_SLOT_CLICK and self.on_create is not None:
            self.on_create(date, start_time)
            return ClickOutcome.CREATE
        return ClickOutcome.IGNORED

    def chip_click(self, appointment_id: str) -> bool:
        """True when the click should open the appointment's action sheet."""
        if self.chip_click_suppressed or self.resize is not None:
            return False
        return appointment_id in self.appointments

    # ------------------------------------------------------------------
    # Touch drag
    # ------------------------------------------------------------------

    def chip_touch_start(self, appointment_id: str, x: float, y: float) -> bool:
        if self.resize is not None or self._resize_press is not None:
            return False
        if appointment_id not in self.appointments:
            return False

        self.cancel()
        self.touch_drag = TouchDragSession(appointment_id, start_x=x, start_y=y)
        self._set_timer("touch_drag", self.config.TOUCH_DRAG_HOLD_MS, self._activate_touch_drag)
        return True

    def _activate_touch_drag(self) -> None:
        session = self.touch_drag
        if session is None or session.activated:
            return
        appointment = self.appointments.get(session.appointment_id)
        if appointment is None:
            self.touch_drag = None
            return

        self.drag = None
        self.placement = None
        session.activated = True
        session.ghost_x, session.ghost_y = session.start_x, session.start_y
        self.preview = SlotTarget(appointment.date, appointment.start_time)
        if self.haptic is not None:
            self.haptic()

    def chip_touch_move(
        self,
        x: float,
        y: float,
        date: Optional[str] = None,
        column_y: Optional[float] = None,
    ) -> bool:
        """
        Finger moved. Returns True when the drag owns the touch and page
        scrolling must be prevented.
        """
        session = self.touch_drag
        if session is None:
            return False

        if not session.activated:
            threshold = self.config.TOUCH_DRAG_CANCEL_PX
            if abs(x - session.start_x) > threshold or abs(y - session.start_y) > threshold:
                # Scrolling, not dragging
                self._clear_timer("touch_drag")
                self.touch_drag = None
            return False

        session.ghost_x, session.ghost_y = x, y
        if date is not None and column_y is not None:
            target = SlotTarget(date, self.grid.pixel_y_to_time(column_y, self.zoom_scale))
            if target != self.preview:
                self.preview = target
        return True

    async def chip_touch_end(self) -> bool:
        session = self.touch_drag
        if session is None:
            return False
        preview = self.preview
        self._clear_timer("touch_drag")
        self.touch_drag = None
        self.preview = None

        if not session.activated or preview is None:
            return False

        self._suppress("slot")
        self._suppress("chip")
        return await self.move_to_slot(session.appointment_id, preview.date, preview.start_time)

    # ------------------------------------------------------------------
    # Pinch zoom and scrolling
    # ------------------------------------------------------------------

    def pinch_start(self, finger_distance: float) -> None:
        self._pinch = (finger_distance, self.zoom_scale)

    def pinch_move(self, finger_distance: float) -> float:
        if self._pinch is None or self._pinch[0] <= 0:
            return self.zoom_scale
        initial_distance, initial_scale = self._pinch
        scale = initial_scale * finger_distance / initial_distance
        self.zoom_scale = min(max(scale, MIN_ZOOM), MAX_ZOOM)
        return self.zoom_scale

    def pinch_end(self) -> None:
        self._pinch = None

    def user_scrolled(self) -> None:
        if self.scroll is not None:
            self.scroll.user_scrolled()
