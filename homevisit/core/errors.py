# homevisit/core/errors.py
"""
Error taxonomy for the scheduling core.

Unresolvable coordinates are not errors: the routing layer catches
GeocodingError and degrades the stop to "unrouted". MutationError is the
only error a gesture surfaces to its caller.
"""
from __future__ import annotations

from typing import Optional


class SchedulerError(Exception):
    """Base class for scheduling core errors."""


class MutationError(SchedulerError):
    """A store write was rejected."""

    def __init__(self, message: str, appointment_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.appointment_id = appointment_id


class GeocodingError(SchedulerError):
    """Address could not be converted to coordinates."""

    def __init__(self, message: str, address: Optional[str] = None, code: str = "UPSTREAM_ERROR"):
        super().__init__(message)
        self.address = address
        self.code = code


class DistanceMatrixError(SchedulerError):
    """Driving distances could not be fetched."""

    def __init__(self, message: str, code: str = "UPSTREAM_ERROR"):
        super().__init__(message)
        self.code = code


class SyncExhaustedError(SchedulerError):
    """A queued write reached the retry cap and will not be resubmitted."""

    def __init__(self, idempotency_key: str, last_error: Optional[str] = None):
        super().__init__(f"Sync permanently failed for {idempotency_key}: {last_error}")
        self.idempotency_key = idempotency_key
        self.last_error = last_error
