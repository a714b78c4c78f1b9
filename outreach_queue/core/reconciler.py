"""Aligns sent items with the tracker service's view of them.

Acceptance, pitch and reply events happen outside this process; the tracker
service records them. The reconciler looks those states up by provider id
and moves local items forward, never backward, under the status lattice.
"""

import threading
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from outreach_queue.config.trace_context import trace_context
from outreach_queue.core import status_lattice
from outreach_queue.core.errors import SyncError
from outreach_queue.core.interfaces import ITrackerService
from outreach_queue.core.model.progress import BackendTrackerStatus, ReconciliationResult
from outreach_queue.core.model.queue_item import QueueItem
from outreach_queue.core.queue_store import QueueStore

UNTRACKED_WARNING = (
    "{count} sent item(s) have no backend tracker. They were sent but are not "
    "being tracked; check tracker registration."
)


def _merge(item: QueueItem, record: BackendTrackerStatus) -> QueueItem:
    reported = status_lattice.map_backend_status(record.status)
    changes = {}

    new_status = status_lattice.advance(item.status, reported, item.message_type)
    if new_status is not item.status:
        changes["status"] = new_status

    if record.tracker_id:
        if not item.tracker_id:
            changes["tracker_id"] = record.tracker_id
        elif item.tracker_id != record.tracker_id:
            logger.warning(
                "Tracker id mismatch, keeping local id",
                item_id=item.id,
                local=item.tracker_id,
                backend=record.tracker_id,
            )

    # Timestamps are only ever filled, never moved
    if record.accepted_at and item.accepted_at is None:
        changes["accepted_at"] = record.accepted_at
    if record.pitch_sent_at and item.pitch_sent_at is None:
        changes["pitch_sent_at"] = record.pitch_sent_at

    return item.model_copy(update=changes) if changes else item


class Reconciler:
    def __init__(
        self,
        store: QueueStore,
        tracker: ITrackerService,
        interval_seconds: float = 60.0,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._store = store
        self._tracker = tracker
        self.interval_seconds = interval_seconds
        self._in_flight = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tracked_items(self) -> List[QueueItem]:
        """Items with a provider id that have been sent and are not yet terminal."""
        return [
            item
            for item in self._store.list_items()
            if item.is_sendable and status_lattice.is_tracked(item.status)
        ]

    def apply_snapshot(
        self, records: Iterable[BackendTrackerStatus]
    ) -> Tuple[int, int]:
        """Merge backend records into the store in one atomic pass.

        Applying the same snapshot twice leaves the same state as applying it
        once.

        Returns:
            (items updated, tracked items that had a backend record)
        """
        by_provider = {}
        for record in records:
            if record.provider_id:
                by_provider[record.provider_id] = record

        counts = {"updated": 0, "found": 0}

        def apply(items: List[QueueItem]) -> List[QueueItem]:
            merged = []
            for item in items:
                record = by_provider.get(item.provider_id) if item.provider_id else None
                if record is None or not status_lattice.is_tracked(item.status):
                    merged.append(item)
                    continue
                counts["found"] += 1
                updated = _merge(item, record)
                if updated is not item:
                    counts["updated"] += 1
                    logger.info(
                        "Item reconciled",
                        item_id=item.id,
                        status_from=item.status.value,
                        status_to=updated.status.value,
                    )
                merged.append(updated)
            return merged

        self._store.transform(apply)
        return counts["updated"], counts["found"]

    def _sync_locked(self, forced: bool) -> ReconciliationResult:
        tracked = self.tracked_items()
        if not tracked:
            return ReconciliationResult(forced=forced, message="No sent items to sync")

        provider_ids = list(dict.fromkeys(item.provider_id for item in tracked))
        if forced:
            self._tracker.sync_connections(provider_ids)
        records = self._tracker.status_by_providers(provider_ids)

        updated, found = self.apply_snapshot(records)
        untracked = len(tracked) - found
        result = ReconciliationResult(
            items_checked=len(tracked),
            trackers_found=found,
            updated_items=updated,
            untracked_items=untracked,
            forced=forced,
            message=(
                f"Updated {updated} item(s)" if updated else "All items up to date"
            ),
        )
        if forced and untracked:
            result.warning = UNTRACKED_WARNING.format(count=untracked)
            logger.warning("Sent items without backend tracker", count=untracked)
        return result

    def sync(self) -> ReconciliationResult:
        """One reconciliation pass against the tracker service's cached view."""
        with self._in_flight, trace_context():
            return self._sync_locked(forced=False)

    def force_sync(self) -> ReconciliationResult:
        """Operator-invoked sync: live connection re-check first, then merge.

        Raises:
            SyncError: Any collaborator failure; no item is changed.
        """
        with self._in_flight, trace_context():
            logger.info("Force sync started")
            try:
                result = self._sync_locked(forced=True)
            except Exception as e:
                logger.error("Force sync failed", error=str(e))
                raise SyncError(f"Sync failed: {e}") from e
            logger.info(
                "Force sync finished",
                checked=result.items_checked,
                updated=result.updated_items,
            )
            return result

    def run_scheduled(self) -> Optional[ReconciliationResult]:
        """Interval handler. Never raises; skips the pass if one is running."""
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Sync already in flight, skipping scheduled pass")
            return None
        try:
            with trace_context():
                return self._sync_locked(forced=False)
        except Exception as e:
            logger.warning("Scheduled sync failed, retrying next interval", error=str(e))
            return None
        finally:
            self._in_flight.release()

    # --- Recurring timer ---

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_scheduled()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="outreach-reconciler", daemon=True
        )
        self._thread.start()
        logger.info("Reconciler started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Reconciler stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
