# homevisit/core/backoff.py
"""Retry schedule for resubmitting failed remote writes."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

MAX_RETRIES = 5
BASE_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 60000


def get_backoff_delay_ms(retry_count: int) -> int:
    return min(BASE_BACKOFF_MS * 2 ** retry_count, MAX_BACKOFF_MS)


def get_next_retry_at(retry_count: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(milliseconds=get_backoff_delay_ms(retry_count))


def should_stop_retrying(retry_count: int) -> bool:
    return retry_count >= MAX_RETRIES
