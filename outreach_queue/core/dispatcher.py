"""Sequential, paced batch sends of pending queue items."""

import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from loguru import logger

from outreach_queue.config.trace_context import trace_context
from outreach_queue.core.allowance import RateAllowanceTracker
from outreach_queue.core.errors import (
    NoValidCandidatesError,
    OutreachQueueError,
    ProviderNotConfiguredError,
)
from outreach_queue.core.interfaces import IMessagingProvider, ITrackerService
from outreach_queue.core.model.progress import BatchStatus, OutreachProgress, SendFailure
from outreach_queue.core.model.queue_item import OutreachFlow, QueueItem, QueueStatus
from outreach_queue.core.pacing import CancellationToken, PacingEngine, format_time_remaining
from outreach_queue.core.queue_store import QueueStore
from outreach_queue.core.tools.message_template import message_text_for

ProgressCallback = Callable[[OutreachProgress], None]


class Dispatcher:
    """
    Runs one batch at a time: admission checks, then one send per item in
    selection order with a pacing wait between consecutive sends.

    Every status change is written to the store as it happens, so an
    interrupted batch keeps whatever it already committed.
    """

    def __init__(
        self,
        store: QueueStore,
        allowance: RateAllowanceTracker,
        pacing: PacingEngine,
        messenger: Optional[IMessagingProvider],
        tracker: Optional[ITrackerService] = None,
    ):
        self._store = store
        self._allowance = allowance
        self._pacing = pacing
        self._messenger = messenger
        self._tracker = tracker

    def prepare(
        self, item_ids: Iterable[str], flow: Optional[OutreachFlow] = None
    ) -> List[QueueItem]:
        """Resolve a selection into the items that will actually be sent.

        Raises:
            ProviderNotConfiguredError: No messaging provider to send with
            NoValidCandidatesError: Nothing in the selection can be sent
            AllowanceExhaustedError: A represented kind has no allowance left today
        """
        if self._messenger is None:
            raise ProviderNotConfiguredError()
        by_id = {item.id: item for item in self._store.list_items()}
        selected: List[QueueItem] = []
        seen = set()

        for item_id in item_ids:
            if item_id in seen:
                continue
            seen.add(item_id)
            item = by_id.get(item_id)
            if item is None:
                logger.warning("Selected item not in queue, skipping", item_id=item_id)
                continue
            if item.status is not QueueStatus.PENDING:
                logger.warning(
                    "Selected item is not pending, skipping",
                    item_id=item_id,
                    status=item.status.value,
                )
                continue
            if flow is not None and item.flow is not flow:
                logger.warning(
                    "Selected item belongs to another flow, skipping",
                    item_id=item_id,
                    flow=item.flow.value,
                )
                continue
            if not item.is_sendable:
                logger.info(
                    "Excluding item without provider id", item_id=item_id, candidate=item.name
                )
                continue
            selected.append(item)

        if not selected:
            raise NoValidCandidatesError()

        self._allowance.check_batch(item.kind for item in selected)
        return selected

    def run(
        self,
        item_ids: Iterable[str],
        cancel: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
        flow: Optional[OutreachFlow] = None,
        run_id: Optional[str] = None,
    ) -> OutreachProgress:
        """Send a batch. Admission errors propagate before any send is attempted."""
        cancel = cancel or CancellationToken()
        run_id = run_id or str(uuid.uuid4())

        with trace_context():
            items = self.prepare(item_ids, flow)
            progress = OutreachProgress(
                run_id=run_id,
                total=len(items),
                status=BatchStatus.SENDING,
                status_message=f"Starting batch of {len(items)}",
            )
            logger.info("Batch started", run_id=run_id, total=len(items))

            def emit(**changes) -> None:
                for field, value in changes.items():
                    setattr(progress, field, value)
                if on_progress is not None:
                    on_progress(progress.model_copy(deep=True))

            emit()
            try:
                self._run_loop(items, progress, cancel, emit)
            except Exception as e:
                logger.exception("Batch aborted", run_id=run_id, error=str(e))
                emit(
                    status=BatchStatus.ERROR,
                    status_message=f"Batch aborted: {e}",
                    finished_at=datetime.now(timezone.utc),
                )
                raise

            logger.info(
                "Batch finished",
                run_id=run_id,
                status=progress.status.value,
                sent=progress.success_count,
                failed=progress.failure_count,
            )
            return progress

    def _run_loop(
        self,
        items: List[QueueItem],
        progress: OutreachProgress,
        cancel: CancellationToken,
        emit: Callable[..., None],
    ) -> None:
        actions_since_break = 0

        def on_status(remaining: float, is_break: bool) -> None:
            label = "Taking a break" if is_break else "Waiting before next send"
            emit(
                status=BatchStatus.BREAK if is_break else BatchStatus.WAITING,
                status_message=f"{label} ({format_time_remaining(remaining)})",
                remaining_seconds=remaining,
                is_break=is_break,
            )

        for index, item in enumerate(items):
            if index == 0:
                cancelled = cancel.is_cancelled()
            else:
                outcome = self._pacing.wait(
                    actions_since_break,
                    on_status=on_status,
                    should_cancel=cancel.is_cancelled,
                )
                if outcome.took_break:
                    actions_since_break = 0
                cancelled = outcome.cancelled

            if cancelled:
                logger.info("Batch cancelled", run_id=progress.run_id, next_item=item.id)
                emit(
                    status=BatchStatus.CANCELLED,
                    status_message=f"Cancelled after {progress.current} of {progress.total}",
                    remaining_seconds=0.0,
                    is_break=False,
                    current_candidate_name=None,
                    finished_at=datetime.now(timezone.utc),
                )
                return

            # Re-read so edits made while waiting (draft, type, removal) are honoured
            current = self._store.find(item.id)
            emit(
                status=BatchStatus.SENDING,
                status_message=f"Sending to {item.name}",
                remaining_seconds=0.0,
                is_break=False,
                current_candidate_name=item.name,
            )
            if current is None or current.status is not QueueStatus.PENDING:
                logger.warning("Item changed during batch, skipping", item_id=item.id)
                emit(current=progress.current + 1)
                continue

            self._send_one(current, progress)
            actions_since_break += 1
            emit(current=progress.current + 1)

        emit(
            status=BatchStatus.COMPLETE,
            status_message=(
                f"Done: {progress.success_count} sent, {progress.failure_count} failed"
            ),
            current_candidate_name=None,
            finished_at=datetime.now(timezone.utc),
        )

    def _send_one(self, item: QueueItem, progress: OutreachProgress) -> None:
        text = message_text_for(item)
        try:
            self._messenger.send(item, text)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning("Send failed", item_id=item.id, candidate=item.name, error=error)
            self._record(self._store.mark_failed, item.id, error)
            progress.failure_count += 1
            progress.errors.append(SendFailure(candidate_name=item.name, error=error))
            return

        self._record(self._store.mark_sent, item.id)
        self._allowance.increment(item.kind)
        progress.success_count += 1
        logger.info("Sent", item_id=item.id, candidate=item.name, type=item.message_type.value)
        self._register_tracker(item, text)

    @staticmethod
    def _record(write, item_id: str, *args) -> None:
        # The item may be removed or cleared while its send is in flight
        try:
            write(item_id, *args)
        except OutreachQueueError as e:
            logger.warning("Could not record send result", item_id=item_id, error=str(e))

    def _register_tracker(self, item: QueueItem, text: Optional[str]) -> None:
        if self._tracker is None:
            return
        try:
            tracker_id = self._tracker.track(item, text)
        except Exception as e:
            logger.warning("Tracker registration failed", item_id=item.id, error=str(e))
            return
        if not tracker_id:
            return
        try:
            self._store.set_tracker_id(item.id, tracker_id)
        except OutreachQueueError as e:
            logger.warning("Could not store tracker id", item_id=item.id, error=str(e))
