# homevisit/utils/timers.py
"""
Timer and cancellation helpers for the event-loop driven core.
"""
import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class LoopScheduler:
    """Schedules callbacks on the running asyncio loop, delays in milliseconds."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_ms) / 1000.0, callback)


class CancelToken:
    """Set when the component that started an async fetch is reset or torn down."""

    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


def fire_and_forget(coro, name: str = "background") -> asyncio.Task:
    """Run a coroutine without awaiting it; failures are logged, not raised."""
    task = asyncio.ensure_future(coro)

    def _done(t: asyncio.Task) -> None:
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.warning("%s task failed: %s", name, exc)

    task.add_done_callback(_done)
    return task
