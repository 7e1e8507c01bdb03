# homevisit/services/sync_queue.py
"""
Local-first sync queue.

Every store mutation enqueues an item; SyncWorker drains ready items in
small batches and resubmits failures on the exponential schedule from
homevisit.core.backoff until the retry cap marks them failed. Synced
items are dropped at the end of each batch.
"""
from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from homevisit.core.backoff import get_next_retry_at, should_stop_retrying
from homevisit.core.config import settings
from homevisit.core.contracts import Scheduler, TimerHandle
from homevisit.core.errors import SyncExhaustedError
from homevisit.core.events import APPOINTMENTS_SYNCED, SYNC_REQUESTED, EventChannel
from homevisit.core.logging import clear_operation, set_operation
from homevisit.schemas.sync import SyncAction, SyncBatchResult, SyncEntity, SyncQueueItem
from homevisit.utils.timers import fire_and_forget

logger = logging.getLogger(__name__)

Submit = Callable[[SyncQueueItem], Awaitable[Any]]
OnExhausted = Callable[[SyncQueueItem], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_idempotency_key(entity: str, action: str, data: Dict[str, Any]) -> str:
    return f"{entity}:{action}:{data.get('id', '')}"


def is_ready(item: SyncQueueItem, now: Optional[datetime] = None) -> bool:
    if item.status != "pending":
        return False
    if item.next_retry_at is None:
        return True
    return item.next_retry_at <= (now or _utcnow())


def take_batch(
    items: List[SyncQueueItem],
    max_batch: int,
    now: Optional[datetime] = None,
) -> Tuple[List[SyncQueueItem], List[SyncQueueItem]]:
    """Split into (ready batch, deferred) keeping queue order."""
    now = now or _utcnow()
    batch: List[SyncQueueItem] = []
    deferred: List[SyncQueueItem] = []
    for item in items:
        if len(batch) < max_batch and is_ready(item, now):
            batch.append(item)
        else:
            deferred.append(item)
    return batch, deferred


def mark_processing(item: SyncQueueItem) -> SyncQueueItem:
    return item.model_copy(update={"status": "processing"})


def mark_success(item: SyncQueueItem) -> SyncQueueItem:
    return item.model_copy(update={"status": "synced", "last_error": None, "next_retry_at": None})


def mark_failure(item: SyncQueueItem, error: str, now: Optional[datetime] = None) -> SyncQueueItem:
    retry_count = item.retry_count + 1
    if should_stop_retrying(retry_count):
        return item.model_copy(
            update={
                "status": "failed",
                "retry_count": retry_count,
                "last_error": error,
                "next_retry_at": None,
            }
        )
    return item.model_copy(
        update={
            "status": "pending",
            "retry_count": retry_count,
            "last_error": error,
            "next_retry_at": get_next_retry_at(retry_count, now),
        }
    )


class SyncQueue:
    """In-memory pending-write queue, ordered by enqueue time."""

    def __init__(self):
        self._items: Dict[int, SyncQueueItem] = {}
        self._ids = itertools.count(1)

    def enqueue(self, action: SyncAction, data: Dict[str, Any], entity: SyncEntity = "appointment") -> SyncQueueItem:
        key = make_idempotency_key(entity, action, data)
        for existing in self._items.values():
            if existing.idempotency_key == key and existing.status == "pending":
                # Coalesce repeated writes of the same entity into the newest payload
                refreshed = existing.model_copy(
                    update={"data": dict(data), "timestamp": _utcnow(), "retry_count": 0, "next_retry_at": None}
                )
                self._items[existing.id] = refreshed
                return refreshed

        item = SyncQueueItem(
            id=next(self._ids),
            type=action,
            entity=entity,
            data=dict(data),
            idempotency_key=key,
        )
        self._items[item.id] = item
        return item

    def put(self, item: SyncQueueItem) -> None:
        self._items[item.id] = item

    def get(self, item_id: int) -> Optional[SyncQueueItem]:
        return self._items.get(item_id)

    @property
    def items(self) -> List[SyncQueueItem]:
        return list(self._items.values())

    def pending(self) -> List[SyncQueueItem]:
        return [i for i in self._items.values() if i.status == "pending"]

    def failed(self) -> List[SyncQueueItem]:
        return [i for i in self._items.values() if i.status == "failed"]

    def purge_synced(self) -> int:
        synced = [item_id for item_id, i in self._items.items() if i.status == "synced"]
        for item_id in synced:
            del self._items[item_id]
        return len(synced)

    def __len__(self) -> int:
        return len(self._items)


class SyncWorker:
    def __init__(
        self,
        queue: SyncQueue,
        events: Optional[EventChannel] = None,
        max_batch: Optional[int] = None,
        strict: bool = False,
        on_exhausted: Optional[OnExhausted] = None,
    ):
        self.queue = queue
        self.events = events
        self.max_batch = max_batch or settings.SYNC_MAX_BATCH_SIZE
        self.strict = strict
        self.on_exhausted = on_exhausted
        self._running = False
        self._timer: Optional[TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def run_once(self, submit: Submit, now: Optional[datetime] = None) -> SyncBatchResult:
        """Submit one batch of ready items; failures are rescheduled, never raised (unless strict)."""
        now = now or _utcnow()
        batch, deferred = take_batch(self.queue.items, self.max_batch, now)
        result = SyncBatchResult(deferred=len(deferred))
        if not batch:
            return result

        set_operation("sync_batch", size=len(batch))
        exhausted: Optional[SyncQueueItem] = None
        try:
            for item in batch:
                processing = mark_processing(item)
                self.queue.put(processing)
                try:
                    await submit(processing)
                except Exception as e:
                    failed = mark_failure(processing, str(e), now)
                    self.queue.put(failed)
                    if failed.status == "failed":
                        result.failed += 1
                        exhausted = exhausted or failed
                        logger.warning(
                            "Sync of %s permanently failed after %s attempts: %s",
                            failed.idempotency_key, failed.retry_count, e,
                        )
                        await self._report_exhausted(failed)
                    else:
                        result.retrying += 1
                        logger.warning(
                            "Sync of %s failed (attempt %s), retry at %s: %s",
                            failed.idempotency_key, failed.retry_count, failed.next_retry_at, e,
                        )
                    continue

                self.queue.put(mark_success(processing))
                result.synced += 1
                if processing.entity == "appointment" and processing.data.get("id"):
                    result.synced_ids.append(str(processing.data["id"]))
        finally:
            clear_operation()

        self.queue.purge_synced()
        logger.info(
            "Sync batch done: %s synced, %s retrying, %s failed, %s deferred",
            result.synced, result.retrying, result.failed, result.deferred,
        )
        if result.synced_ids and self.events is not None:
            self.events.emit(APPOINTMENTS_SYNCED, appointment_ids=list(result.synced_ids))
        if self.strict and exhausted is not None:
            raise SyncExhaustedError(exhausted.idempotency_key or str(exhausted.id), exhausted.last_error)
        return result

    async def _report_exhausted(self, item: SyncQueueItem) -> None:
        if self.on_exhausted is None:
            return
        try:
            await self.on_exhausted(item)
        except Exception as e:
            logger.error("Recording permanent failure of %s failed: %s", item.idempotency_key, e)

    def attach(self, events: EventChannel, scheduler: Scheduler, submit: Submit, delay_ms: Optional[float] = None) -> None:
        """Run a batch shortly after every sync request, coalescing bursts of requests."""
        delay = settings.SYNC_BATCH_DELAY_MS if delay_ms is None else delay_ms
        self.events = self.events or events

        def on_request(reason: str = "") -> None:
            if self._timer is not None:
                self._timer.cancel()
            logger.debug("Sync requested (%s), batch in %sms", reason or "unspecified", delay)
            self._timer = scheduler.call_later(delay, lambda: self._kick(submit))

        self.detach()
        self._unsubscribe = events.subscribe(SYNC_REQUESTED, on_request)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _kick(self, submit: Submit) -> None:
        self._timer = None
        if self._running:
            return
        fire_and_forget(self._guarded_run(submit), name="sync_batch")

    async def _guarded_run(self, submit: Submit) -> None:
        self._running = True
        try:
            await self.run_once(submit)
        finally:
            self._running = False
