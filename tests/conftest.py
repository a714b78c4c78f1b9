"""Shared fixtures and collaborator fakes."""

import random
from datetime import date
from typing import Dict, List, Optional

import pytest

from outreach_queue.config.config_loader import TimingProfile
from outreach_queue.core.allowance import RateAllowanceTracker
from outreach_queue.core.db.storage import InMemoryStorage
from outreach_queue.core.dispatcher import Dispatcher
from outreach_queue.core.errors import MessagingProviderError, TrackerServiceError
from outreach_queue.core.interfaces import IMessagingProvider, ITrackerService
from outreach_queue.core.model.progress import BackendTrackerStatus
from outreach_queue.core.model.queue_item import MessageType, QueueItem, QueueStatus
from outreach_queue.core.pacing import PacingEngine
from outreach_queue.core.queue_store import QueueStore

TODAY = date(2026, 10, 19)


class FakeClock:
    """Stands in for time.sleep; advances a virtual clock instead."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeMessenger(IMessagingProvider):
    def __init__(self, clock: FakeClock, fail_ids=()):
        self.clock = clock
        self.fail_ids = set(fail_ids)
        self.sent: List[dict] = []

    def send(self, item: QueueItem, text: Optional[str]) -> None:
        self.sent.append({"at": self.clock.now, "id": item.id, "text": text})
        if item.id in self.fail_ids:
            raise MessagingProviderError(f"Failed to send message: 422 - rejected {item.id}")


class FakeTracker(ITrackerService):
    def __init__(self):
        self.tracked: List[str] = []
        self.snapshot: List[BackendTrackerStatus] = []
        self.sync_calls: List[List[str]] = []
        self.fail_track = False
        self.fail_lookup = False
        self.fail_sync = False

    def track(self, item: QueueItem, text: Optional[str]) -> Optional[str]:
        if self.fail_track:
            raise TrackerServiceError("Tracker service unreachable (/track)")
        self.tracked.append(item.id)
        return f"trk-{item.id}"

    def status_by_providers(self, provider_ids: List[str]) -> List[BackendTrackerStatus]:
        if self.fail_lookup:
            raise TrackerServiceError("Tracker service error (/status-by-providers): 500 - boom")
        return [r for r in self.snapshot if r.provider_id in provider_ids]

    def sync_connections(self, provider_ids: List[str]) -> Dict:
        if self.fail_sync:
            raise TrackerServiceError("Tracker service unreachable (/sync-connections-from-linkedin)")
        self.sync_calls.append(list(provider_ids))
        return {"success": True}


def make_item(
    item_id: str,
    status: QueueStatus = QueueStatus.PENDING,
    message_type: MessageType = MessageType.CONNECTION_REQUEST,
    provider_id: Optional[str] = "default",
    **extra,
) -> QueueItem:
    return QueueItem(
        id=item_id,
        candidate_id=f"cand-{item_id}",
        provider_id=f"prov-{item_id}" if provider_id == "default" else provider_id,
        name=extra.pop("name", f"Jane {item_id}"),
        profile_url=f"https://www.linkedin.com/in/{item_id}",
        message_type=message_type,
        status=status,
        **extra,
    )


@pytest.fixture
def profile():
    return TimingProfile(
        min_delay_seconds=2,
        max_delay_seconds=4,
        messages_per_break_min=2,
        messages_per_break_max=3,
        break_min_seconds=10,
        break_max_seconds=20,
        daily_connection_limit=5,
        daily_inmail_limit=2,
        daily_message_limit=5,
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def store(storage):
    return QueueStore(storage)


@pytest.fixture
def allowance(storage, profile):
    return RateAllowanceTracker(storage, profile, today=lambda: TODAY)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pacing(profile, clock):
    return PacingEngine(profile, rng=random.Random(7), sleep=clock.sleep, tick_seconds=1.0)


@pytest.fixture
def messenger(clock):
    return FakeMessenger(clock)


@pytest.fixture
def tracker():
    return FakeTracker()


@pytest.fixture
def dispatcher(store, allowance, pacing, messenger, tracker):
    return Dispatcher(store, allowance, pacing, messenger, tracker)
