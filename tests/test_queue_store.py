"""Tests for the queue store and its storage backings."""

import json

import pytest

from conftest import make_item
from outreach_queue.core.db.storage import (
    QUEUE_KEY,
    InMemoryStorage,
    JsonFileStorage,
    SqlStorage,
    create_storage,
)
from outreach_queue.core.errors import (
    InvalidTransitionError,
    QueueItemNotFoundError,
    TrackerConflictError,
)
from outreach_queue.core.model.queue_item import MessageType, QueueStatus
from outreach_queue.core.queue_store import QueueStore


def test_add_items_skips_duplicates(store):
    added = store.add_items([make_item("a"), make_item("b")])
    assert [item.id for item in added] == ["a", "b"]

    added = store.add_items([make_item("b"), make_item("c")])
    assert [item.id for item in added] == ["c"]
    assert [item.id for item in store.list_items()] == ["a", "b", "c"]


def test_collection_stored_as_camel_case_list(store, storage):
    store.add_items([make_item("a", job_requisition_id="req-1")])
    records = json.loads(storage.read(QUEUE_KEY))
    assert records[0]["providerId"] == "prov-a"
    assert records[0]["jobRequisitionId"] == "req-1"
    assert records[0]["messageType"] == "connection_request"


def test_unreadable_collection_reads_as_empty():
    store = QueueStore(InMemoryStorage({QUEUE_KEY: "not json"}))
    assert store.list_items() == []


def test_get_unknown_item_raises(store):
    with pytest.raises(QueueItemNotFoundError):
        store.get("missing")
    with pytest.raises(QueueItemNotFoundError):
        store.remove("missing")


def test_mark_sent_and_failed_follow_dispatch_rules(store):
    store.add_items([make_item("a"), make_item("b")])

    assert store.mark_sent("a").status is QueueStatus.SENT
    failed = store.mark_failed("b", "Failed to send message: 500 - oops")
    assert failed.status is QueueStatus.FAILED
    assert failed.error_message == "Failed to send message: 500 - oops"

    with pytest.raises(InvalidTransitionError):
        store.mark_failed("a", "late failure")
    with pytest.raises(InvalidTransitionError):
        store.mark_sent("b")


def test_retry_round_trip_restores_item_exactly(store):
    original = make_item("a", message_draft="Hello", relevance_score=80)
    store.add_items([original])
    store.mark_failed("a", "boom")

    retried = store.retry("a")

    assert retried.status is QueueStatus.PENDING
    assert retried.error_message is None
    assert retried.model_dump() == original.model_dump()


def test_retry_only_from_failed(store):
    store.add_items([make_item("a")])
    with pytest.raises(InvalidTransitionError):
        store.retry("a")


def test_retry_leaves_siblings_alone(store):
    store.add_items([make_item("a"), make_item("b")])
    store.mark_failed("a", "boom")
    store.mark_failed("b", "boom too")

    store.retry("a")

    assert store.get("b").status is QueueStatus.FAILED
    assert store.get("b").error_message == "boom too"


def test_tracker_id_is_never_overwritten(store):
    store.add_items([make_item("a")])
    store.set_tracker_id("a", "trk-1")
    store.set_tracker_id("a", "trk-1")

    with pytest.raises(TrackerConflictError):
        store.set_tracker_id("a", "trk-2")
    assert store.get("a").tracker_id == "trk-1"


def test_set_message_type_only_while_pending(store):
    store.add_items([make_item("a"), make_item("b")])
    assert store.set_message_type("a", MessageType.INMAIL).message_type is MessageType.INMAIL

    store.mark_sent("b")
    with pytest.raises(InvalidTransitionError):
        store.set_message_type("b", MessageType.MESSAGE)


def test_link_assessment_keeps_skills(store):
    store.add_items(
        [make_item("a", search_criteria={"job_title": "Engineer", "skills": ["python"]})]
    )
    item = store.link_assessment(
        "a", "tmpl-1", assessment_url="https://assess/1", job_title="Staff Engineer"
    )
    assert item.assessment_template_id == "tmpl-1"
    assert item.assessment_url == "https://assess/1"
    assert item.search_criteria.job_title == "Staff Engineer"
    assert item.search_criteria.skills == ["python"]


def test_clear_completed_keeps_pending_only(store):
    store.add_items([make_item("a"), make_item("b"), make_item("c")])
    store.mark_sent("a")
    store.mark_failed("b", "boom")

    assert store.clear_completed() == 2
    assert [item.id for item in store.list_items()] == ["c"]


def test_summary_counts(store):
    store.add_items([make_item("a"), make_item("b", provider_id=None), make_item("c")])
    store.mark_sent("a")

    counts = store.summary()
    assert counts["pending"] == 2
    assert counts["sent"] == 1
    assert counts["total"] == 3
    assert counts["missing_provider_id"] == 1


# --- Backings ---


def test_json_file_storage_round_trip(tmp_path):
    backing = JsonFileStorage(tmp_path / "store")
    store = QueueStore(backing)
    store.add_items([make_item("a")])

    reopened = QueueStore(JsonFileStorage(tmp_path / "store"))
    assert reopened.get("a").name == "Jane a"
    assert (tmp_path / "store" / f"{QUEUE_KEY}.json").exists()


def test_json_file_storage_rejects_unsafe_keys(tmp_path):
    backing = JsonFileStorage(tmp_path)
    with pytest.raises(ValueError):
        backing.write("../escape", "{}")


def test_sql_storage_round_trip(tmp_path):
    url = f"sqlite:///{tmp_path / 'outreach.db'}"
    store = QueueStore(SqlStorage(url))
    store.add_items([make_item("a")])
    store.mark_sent("a")

    reopened = QueueStore(SqlStorage(url))
    assert reopened.get("a").status is QueueStatus.SENT


def test_create_storage_backends(tmp_path):
    assert isinstance(create_storage("memory"), InMemoryStorage)
    assert isinstance(create_storage("file", directory=str(tmp_path / "f")), JsonFileStorage)
    sql = create_storage("sqlite", url=f"sqlite:///{tmp_path / 'nested' / 'q.db'}")
    assert isinstance(sql, SqlStorage)
    with pytest.raises(ValueError):
        create_storage("redis")
