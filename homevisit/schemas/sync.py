# homevisit/schemas/sync.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

SyncAction = Literal["create", "update", "delete"]
SyncEntity = Literal["appointment", "calendarEvent", "patient", "dayNote"]
SyncQueueStatus = Literal["pending", "processing", "failed", "conflict", "synced"]


class SyncQueueItem(BaseModel):
    id: Optional[int] = None
    type: SyncAction
    entity: SyncEntity = "appointment"
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0
    status: SyncQueueStatus = "pending"
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    idempotency_key: Optional[str] = None


class SyncBatchResult(BaseModel):
    """Outcome of one SyncWorker pass."""

    synced: int = 0
    retrying: int = 0
    failed: int = 0
    deferred: int = 0
    synced_ids: List[str] = Field(default_factory=list)
