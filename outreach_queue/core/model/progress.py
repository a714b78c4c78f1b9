"""Records produced for the operator: batch progress, sync results, quota stats."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from outreach_queue.core.model.queue_item import CamelModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus(str, Enum):
    WAITING = "waiting"
    SENDING = "sending"
    BREAK = "break"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        return self in (BatchStatus.WAITING, BatchStatus.SENDING, BatchStatus.BREAK)


class SendFailure(BaseModel):
    candidate_name: str
    error: str


class OutreachProgress(BaseModel):
    """Snapshot of a running (or finished) batch."""

    run_id: str = ""
    current: int = 0
    total: int = 0
    status: BatchStatus = BatchStatus.WAITING
    status_message: str = ""
    remaining_seconds: float = 0.0
    is_break: bool = False
    success_count: int = 0
    failure_count: int = 0
    current_candidate_name: Optional[str] = None
    errors: List[SendFailure] = []
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None


class ReconciliationResult(BaseModel):
    checked_at: datetime = Field(default_factory=_utcnow)
    items_checked: int = 0
    trackers_found: int = 0
    updated_items: int = 0
    untracked_items: int = 0
    forced: bool = False
    warning: Optional[str] = None
    message: str = ""


class BackendTrackerStatus(CamelModel):
    """One provider id's state as reported by the tracker service."""

    provider_id: str
    status: str
    tracker_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    pitch_sent_at: Optional[datetime] = None


class DailyOutreachStats(CamelModel):
    date: str
    connections_sent: int = 0
    inmails_sent: int = 0
    messages_sent: int = 0
