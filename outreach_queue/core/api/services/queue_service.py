"""Service layer for the outreach queue API."""

import atexit
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from loguru import logger

from outreach_queue.core.allowance import RateAllowanceTracker
from outreach_queue.core.api.schemas.queue_schemas import (
    AllowanceEntry,
    AllowanceResponse,
    EnqueueResponse,
    ItemPatchRequest,
    SendRequest,
)
from outreach_queue.core.api.services.run_store import RunStore
from outreach_queue.core.dispatcher import Dispatcher
from outreach_queue.core.errors import BatchInProgressError
from outreach_queue.core.model.progress import OutreachProgress, ReconciliationResult
from outreach_queue.core.model.queue_item import QueueItem, QueueStatus
from outreach_queue.core.queue_store import QueueStore
from outreach_queue.core.reconciler import Reconciler

# Batches are sequential by nature; the pool only keeps them off the request thread
_executor: ThreadPoolExecutor | None = None


def _get_executor() -> ThreadPoolExecutor:
    """Get or create the shared thread pool executor."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="outreach-batch")
    return _executor


def _shutdown_executor():
    """Shutdown the thread pool on application exit."""
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=True, cancel_futures=False)
        _executor = None


atexit.register(_shutdown_executor)


def _log_future_exception(future):
    """Callback to log uncaught exceptions from thread pool futures."""
    exc = future.exception()
    if exc:
        logger.exception("Background batch failed with uncaught exception", error=str(exc))


class QueueService:
    """Operator actions on the queue plus batch submission and sync."""

    def __init__(
        self,
        store: QueueStore,
        allowance: RateAllowanceTracker,
        dispatcher: Dispatcher,
        reconciler: Reconciler,
        run_store: Optional[RunStore] = None,
        timing_profile: str = "",
    ):
        self._store = store
        self._allowance = allowance
        self._dispatcher = dispatcher
        self._reconciler = reconciler
        self._run_store = run_store or RunStore()
        self._timing_profile = timing_profile
        self._submit_lock = threading.Lock()

    # === Queue ===

    def list_items(self, status: Optional[QueueStatus] = None) -> List[QueueItem]:
        if status is None:
            return self._store.list_items()
        return self._store.by_status(status)

    def summary(self) -> dict:
        return self._store.summary()

    def enqueue(self, items: List[QueueItem]) -> EnqueueResponse:
        added = self._store.add_items(items)
        return EnqueueResponse(added=len(added), skipped=len(items) - len(added))

    def remove(self, item_id: str) -> QueueItem:
        return self._store.remove(item_id)

    def retry(self, item_id: str) -> QueueItem:
        return self._store.retry(item_id)

    def update_item(self, item_id: str, request: ItemPatchRequest) -> QueueItem:
        item = self._store.get(item_id)
        if "message_type" in request.model_fields_set and request.message_type:
            item = self._store.set_message_type(item_id, request.message_type)
        if "message_draft" in request.model_fields_set:
            item = self._store.set_draft(item_id, request.message_draft)
        return item

    def clear(self) -> int:
        return self._store.clear()

    def clear_completed(self) -> int:
        return self._store.clear_completed()

    def allowance(self) -> AllowanceResponse:
        stats = self._allowance.stats()
        remaining = self._allowance.remaining_all()
        return AllowanceResponse(
            date=stats.date,
            timing_profile=self._timing_profile,
            kinds={
                kind.value: AllowanceEntry(
                    sent=self._allowance.sent_today(kind),
                    limit=self._allowance.limit(kind),
                    remaining=left,
                )
                for kind, left in remaining.items()
            },
        )

    # === Batches ===

    def submit_send(self, request: SendRequest) -> str:
        """Admit a batch and start it in the background. Returns the run_id.

        Raises:
            BatchInProgressError: Another batch is still running
            AdmissionError: The selection was rejected; nothing was sent
        """
        item_ids = list(request.item_ids)
        if request.all_pending:
            item_ids += [
                item.id
                for item in self._store.by_status(QueueStatus.PENDING)
                if request.flow is None or item.flow is request.flow
            ]

        with self._submit_lock:
            active = self._run_store.active_run_id()
            if active:
                raise BatchInProgressError(active)

            items = self._dispatcher.prepare(item_ids, request.flow)
            run_id = str(uuid.uuid4())
            token = self._run_store.create(run_id, total=len(items))

        future = _get_executor().submit(
            self._run_batch, run_id, [item.id for item in items], token, request
        )
        future.add_done_callback(_log_future_exception)
        logger.info("Batch submitted", run_id=run_id, total=len(items))
        return run_id

    def _run_batch(self, run_id, item_ids, token, request: SendRequest) -> None:
        try:
            self._dispatcher.run(
                item_ids,
                cancel=token,
                on_progress=self._run_store.update,
                flow=request.flow,
                run_id=run_id,
            )
        except Exception as e:
            self._run_store.fail(run_id, str(e))
            raise

    def get_run(self, run_id: str) -> Optional[OutreachProgress]:
        return self._run_store.get(run_id)

    def cancel_run(self, run_id: str) -> bool:
        return self._run_store.cancel(run_id)

    def shutdown(self) -> None:
        self._run_store.cancel_all()

    # === Sync ===

    def force_sync(self) -> ReconciliationResult:
        return self._reconciler.force_sync()
