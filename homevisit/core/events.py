# homevisit/core/events.py
"""
Event channel shared between the scheduling core and the composing app.

Owned by the application and injected into the interaction controller,
the sync worker and the stores; nothing in the core reaches for a global.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

SYNC_REQUESTED = "sync_requested"
APPOINTMENTS_SYNCED = "appointments_synced"

Listener = Callable[..., None]


class EventChannel:
    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def emit(self, event: str, **payload: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(**payload)
            except Exception as e:
                # One broken listener must not stop the others
                logger.error("Listener for %s failed: %s", event, e)

    def request_sync(self, reason: str = "") -> None:
        """Fire-and-forget "please resync now" signal."""
        self.emit(SYNC_REQUESTED, reason=reason)
