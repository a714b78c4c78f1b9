"""Authoritative local collection of queue items.

The whole collection lives under one key of a StorageBacking and every
mutation is a read-modify-write of the full collection. A single lock
serializes those passes, so the dispatcher and the reconciler never observe
a torn write; last writer wins on the collection.
"""

import json
import threading
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import ValidationError

from outreach_queue.core import status_lattice
from outreach_queue.core.db.storage import QUEUE_KEY, StorageBacking
from outreach_queue.core.errors import (
    InvalidTransitionError,
    QueueItemNotFoundError,
    TrackerConflictError,
)
from outreach_queue.core.model.queue_item import MessageType, QueueItem, QueueStatus


def _check_tracker_id(before: QueueItem, after: QueueItem) -> None:
    if before.tracker_id and after.tracker_id != before.tracker_id:
        raise TrackerConflictError(before.id, before.tracker_id, str(after.tracker_id))


class QueueStore:
    """Queue item collection over an injectable storage backing."""

    def __init__(self, storage: StorageBacking, key: str = QUEUE_KEY):
        self._storage = storage
        self._key = key
        self._lock = threading.RLock()

    # --- Raw collection access ---

    def _load_locked(self) -> List[QueueItem]:
        raw = self._storage.read(self._key)
        if not raw:
            return []
        try:
            records = json.loads(raw)
            return [QueueItem.model_validate(record) for record in records]
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.error("Stored queue is unreadable, treating as empty", error=str(e))
            return []

    def _save_locked(self, items: List[QueueItem]) -> None:
        self._storage.write(self._key, json.dumps([item.to_record() for item in items]))

    def list_items(self) -> List[QueueItem]:
        with self._lock:
            return self._load_locked()

    def replace_all(self, items: Iterable[QueueItem]) -> None:
        with self._lock:
            self._save_locked(list(items))

    def transform(
        self, fn: Callable[[List[QueueItem]], List[QueueItem]]
    ) -> List[QueueItem]:
        """Run fn over the full collection as one atomic pass and persist the result.

        Tracker ids of surviving items are checked against the stored ones.
        """
        with self._lock:
            before = {item.id: item for item in self._load_locked()}
            after = fn(list(before.values()))
            for item in after:
                if item.id in before:
                    _check_tracker_id(before[item.id], item)
            self._save_locked(after)
            return after

    # --- Item access ---

    def find(self, item_id: str) -> Optional[QueueItem]:
        for item in self.list_items():
            if item.id == item_id:
                return item
        return None

    def get(self, item_id: str) -> QueueItem:
        item = self.find(item_id)
        if item is None:
            raise QueueItemNotFoundError(item_id)
        return item

    def by_status(self, *statuses: QueueStatus) -> List[QueueItem]:
        wanted = set(statuses)
        return [item for item in self.list_items() if item.status in wanted]

    def update(
        self, item_id: str, mutator: Callable[[QueueItem], QueueItem]
    ) -> QueueItem:
        """Replace one item with mutator(item), persisted immediately."""
        with self._lock:
            items = self._load_locked()
            for i, item in enumerate(items):
                if item.id == item_id:
                    updated = mutator(item)
                    _check_tracker_id(item, updated)
                    items[i] = updated
                    self._save_locked(items)
                    return updated
            raise QueueItemNotFoundError(item_id)

    def patch(self, item_id: str, **changes) -> QueueItem:
        """Set the given fields on one item (validated), persisted immediately."""

        def apply(item: QueueItem) -> QueueItem:
            return QueueItem.model_validate({**item.model_dump(), **changes})

        return self.update(item_id, apply)

    # --- Operator actions ---

    def add_items(self, new_items: Iterable[QueueItem]) -> List[QueueItem]:
        """Enqueue items, skipping ids already present. Returns those added."""
        added: List[QueueItem] = []

        def apply(items: List[QueueItem]) -> List[QueueItem]:
            known = {item.id for item in items}
            for item in new_items:
                if item.id in known:
                    logger.debug("Skipping duplicate queue item", item_id=item.id)
                    continue
                known.add(item.id)
                added.append(item)
            return items + added

        self.transform(apply)
        logger.info("Queue items added", count=len(added))
        return added

    def remove(self, item_id: str) -> QueueItem:
        removed: List[QueueItem] = []

        def apply(items: List[QueueItem]) -> List[QueueItem]:
            kept = []
            for item in items:
                (removed if item.id == item_id else kept).append(item)
            return kept

        self.transform(apply)
        if not removed:
            raise QueueItemNotFoundError(item_id)
        logger.info("Queue item removed", item_id=item_id)
        return removed[0]

    def clear(self) -> int:
        with self._lock:
            count = len(self._load_locked())
            self._save_locked([])
        logger.info("Queue cleared", removed=count)
        return count

    def clear_completed(self) -> int:
        """Drop everything except pending items. Returns the number removed."""
        with self._lock:
            items = self._load_locked()
            kept = [item for item in items if item.status is QueueStatus.PENDING]
            self._save_locked(kept)
        removed = len(items) - len(kept)
        logger.info("Completed items cleared", removed=removed)
        return removed

    def retry(self, item_id: str) -> QueueItem:
        """Reset a failed item to pending, clearing only its error."""

        def apply(item: QueueItem) -> QueueItem:
            if not status_lattice.can_retry(item.status):
                raise InvalidTransitionError(
                    item.id, item.status.value, QueueStatus.PENDING.value
                )
            return item.model_copy(
                update={"status": QueueStatus.PENDING, "error_message": None}
            )

        return self.update(item_id, apply)

    def set_message_type(self, item_id: str, message_type: MessageType) -> QueueItem:
        def apply(item: QueueItem) -> QueueItem:
            if item.status is not QueueStatus.PENDING:
                raise InvalidTransitionError(
                    item.id, item.status.value, f"message_type={message_type.value}"
                )
            return item.model_copy(update={"message_type": message_type})

        return self.update(item_id, apply)

    def set_draft(self, item_id: str, text: Optional[str]) -> QueueItem:
        return self.patch(item_id, message_draft=text)

    def link_assessment(
        self,
        item_id: str,
        template_id: str,
        assessment_url: Optional[str] = None,
        job_title: Optional[str] = None,
    ) -> QueueItem:
        def apply(item: QueueItem) -> QueueItem:
            changes: Dict = {"assessment_template_id": template_id}
            if assessment_url:
                changes["assessment_url"] = assessment_url
            if job_title:
                criteria = item.search_criteria
                skills = criteria.skills if criteria else []
                changes["search_criteria"] = {"job_title": job_title, "skills": skills}
            return QueueItem.model_validate({**item.model_dump(), **changes})

        return self.update(item_id, apply)

    # --- Dispatcher transitions ---

    def _dispatch(self, item_id: str, target: QueueStatus, error: Optional[str]) -> QueueItem:
        def apply(item: QueueItem) -> QueueItem:
            if not status_lattice.can_dispatch_transition(item.status, target):
                raise InvalidTransitionError(item.id, item.status.value, target.value)
            return item.model_copy(update={"status": target, "error_message": error})

        return self.update(item_id, apply)

    def mark_sent(self, item_id: str) -> QueueItem:
        return self._dispatch(item_id, QueueStatus.SENT, None)

    def mark_failed(self, item_id: str, error: str) -> QueueItem:
        return self._dispatch(item_id, QueueStatus.FAILED, error or "Unknown error")

    def set_tracker_id(self, item_id: str, tracker_id: str) -> QueueItem:
        return self.update(
            item_id, lambda item: item.model_copy(update={"tracker_id": tracker_id})
        )

    # --- Views ---

    def summary(self) -> Dict[str, int]:
        """Counts per status plus pending items that cannot be sent."""
        items = self.list_items()
        counts = {status.value: 0 for status in QueueStatus}
        for item in items:
            counts[item.status.value] += 1
        counts["total"] = len(items)
        counts["missing_provider_id"] = sum(
            1
            for item in items
            if item.status is QueueStatus.PENDING and not item.is_sendable
        )
        return counts
