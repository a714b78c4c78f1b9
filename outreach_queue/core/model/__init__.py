from outreach_queue.core.model.progress import (
    BackendTrackerStatus,
    BatchStatus,
    DailyOutreachStats,
    OutreachProgress,
    ReconciliationResult,
    SendFailure,
)
from outreach_queue.core.model.queue_item import (
    MessageType,
    OutreachFlow,
    OutreachKind,
    QueueItem,
    QueueStatus,
    SearchCriteria,
)

__all__ = [
    "BackendTrackerStatus",
    "BatchStatus",
    "DailyOutreachStats",
    "MessageType",
    "OutreachFlow",
    "OutreachKind",
    "OutreachProgress",
    "QueueItem",
    "QueueStatus",
    "ReconciliationResult",
    "SearchCriteria",
    "SendFailure",
]
