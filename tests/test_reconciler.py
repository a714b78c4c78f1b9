"""Tests for reconciliation against the tracker service."""

from datetime import datetime, timezone

import pytest

from conftest import make_item
from outreach_queue.core.errors import SyncError
from outreach_queue.core.model.progress import BackendTrackerStatus
from outreach_queue.core.model.queue_item import MessageType, QueueStatus
from outreach_queue.core.reconciler import Reconciler

ACCEPTED_AT = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


def record(item_id, status, **extra):
    return BackendTrackerStatus(provider_id=f"prov-{item_id}", status=status, **extra)


@pytest.fixture
def reconciler(store, tracker):
    return Reconciler(store, tracker, interval_seconds=60)


def test_sync_without_sent_items_is_noop(reconciler, store, tracker):
    store.add_items([make_item("a")])
    tracker.fail_lookup = True

    result = reconciler.sync()

    assert result.items_checked == 0
    assert result.updated_items == 0


def test_sync_advances_and_fills_fields(reconciler, store, tracker):
    store.add_items([make_item("a", status=QueueStatus.SENT)])
    tracker.snapshot = [
        record("a", "CONNECTION_ACCEPTED", tracker_id="trk-9", accepted_at=ACCEPTED_AT)
    ]

    result = reconciler.sync()

    item = store.get("a")
    assert item.status is QueueStatus.CONNECTION_ACCEPTED
    assert item.tracker_id == "trk-9"
    assert item.accepted_at == ACCEPTED_AT
    assert result.items_checked == 1
    assert result.trackers_found == 1
    assert result.updated_items == 1
    assert result.warning is None


def test_stale_acceptance_does_not_downgrade(reconciler, store, tracker):
    store.add_items([make_item("a", status=QueueStatus.PITCH_SENT)])
    tracker.snapshot = [record("a", "CONNECTION_ACCEPTED")]

    result = reconciler.sync()

    assert store.get("a").status is QueueStatus.PITCH_SENT
    assert result.updated_items == 0


def test_timestamps_and_tracker_id_never_overwritten(reconciler, store, tracker):
    store.add_items(
        [make_item("a", status=QueueStatus.SENT, tracker_id="trk-local", accepted_at=ACCEPTED_AT)]
    )
    later = datetime(2026, 10, 19, tzinfo=timezone.utc)
    tracker.snapshot = [record("a", "SENT", tracker_id="trk-other", accepted_at=later)]

    result = reconciler.sync()

    item = store.get("a")
    assert item.tracker_id == "trk-local"
    assert item.accepted_at == ACCEPTED_AT
    assert result.updated_items == 0


def test_status_illegal_for_type_is_ignored(reconciler, store, tracker):
    store.add_items(
        [make_item("a", status=QueueStatus.SENT, message_type=MessageType.INMAIL)]
    )
    tracker.snapshot = [record("a", "PITCH_SENT")]

    reconciler.sync()

    assert store.get("a").status is QueueStatus.SENT


def test_apply_snapshot_is_idempotent(reconciler, store):
    store.add_items(
        [
            make_item("a", status=QueueStatus.SENT),
            make_item("b", status=QueueStatus.CONNECTION_ACCEPTED),
            make_item("c", status=QueueStatus.SENT),
        ]
    )
    snapshot = [
        record("a", "REPLIED", tracker_id="t-a"),
        record("b", "PITCH_SENT", pitch_sent_at=ACCEPTED_AT),
        record("c", "DECLINED"),
    ]

    reconciler.apply_snapshot(snapshot)
    once = [item.model_dump() for item in store.list_items()]
    reconciler.apply_snapshot(snapshot)
    twice = [item.model_dump() for item in store.list_items()]

    assert once == twice
    assert store.get("a").status is QueueStatus.REPLIED
    assert store.get("b").status is QueueStatus.PITCH_SENT
    assert store.get("c").status is QueueStatus.SENT


def test_pending_and_failed_items_untouched(reconciler, store):
    store.add_items(
        [make_item("a"), make_item("b", status=QueueStatus.FAILED, error_message="x")]
    )

    updated, found = reconciler.apply_snapshot([record("a", "REPLIED"), record("b", "SENT")])

    assert (updated, found) == (0, 0)
    assert store.get("a").status is QueueStatus.PENDING
    assert store.get("b").status is QueueStatus.FAILED


def test_force_sync_warns_about_untracked_items(reconciler, store, tracker):
    store.add_items(
        [make_item("a", status=QueueStatus.SENT), make_item("b", status=QueueStatus.SENT)]
    )

    result = reconciler.force_sync()

    assert tracker.sync_calls == [["prov-a", "prov-b"]]
    assert result.forced
    assert result.updated_items == 0
    assert result.untracked_items == 2
    assert result.warning and "no backend tracker" in result.warning


def test_force_sync_failure_changes_nothing(reconciler, store, tracker):
    store.add_items([make_item("a", status=QueueStatus.SENT)])
    tracker.snapshot = [record("a", "REPLIED")]
    tracker.fail_sync = True

    with pytest.raises(SyncError, match="unreachable"):
        reconciler.force_sync()
    assert store.get("a").status is QueueStatus.SENT


def test_scheduled_run_never_raises(reconciler, store, tracker):
    store.add_items([make_item("a", status=QueueStatus.SENT)])
    tracker.fail_lookup = True

    assert reconciler.run_scheduled() is None
    assert store.get("a").status is QueueStatus.SENT

    tracker.fail_lookup = False
    tracker.snapshot = [record("a", "REPLIED")]
    result = reconciler.run_scheduled()
    assert result.updated_items == 1


def test_scheduled_run_skips_while_sync_in_flight(reconciler, store, tracker):
    store.add_items([make_item("a", status=QueueStatus.SENT)])
    tracker.snapshot = [record("a", "REPLIED")]

    reconciler._in_flight.acquire()
    try:
        assert reconciler.run_scheduled() is None
    finally:
        reconciler._in_flight.release()
    assert store.get("a").status is QueueStatus.SENT


def test_monotonic_over_repeated_snapshots(reconciler, store, tracker):
    store.add_items([make_item("a", status=QueueStatus.SENT)])
    sequence = ["PITCH_PENDING", "SENT", "CONNECTION_ACCEPTED", "PITCH_SENT", "PITCH_PENDING"]
    seen = []

    for status in sequence:
        reconciler.apply_snapshot([record("a", status)])
        seen.append(store.get("a").status)

    assert seen == [
        QueueStatus.PITCH_PENDING,
        QueueStatus.PITCH_PENDING,
        QueueStatus.PITCH_PENDING,
        QueueStatus.PITCH_SENT,
        QueueStatus.PITCH_SENT,
    ]


def test_start_and_stop(store, tracker):
    reconciler = Reconciler(store, tracker, interval_seconds=0.01)
    reconciler.start()
    assert reconciler.running
    reconciler.stop()
    assert not reconciler.running


def test_interval_must_be_positive(store, tracker):
    with pytest.raises(ValueError):
        Reconciler(store, tracker, interval_seconds=0)
