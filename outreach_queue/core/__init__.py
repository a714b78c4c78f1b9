# Core package exports
from outreach_queue.core.allowance import RateAllowanceTracker
from outreach_queue.core.dispatcher import Dispatcher
from outreach_queue.core.model import (
    MessageType,
    OutreachProgress,
    QueueItem,
    QueueStatus,
    ReconciliationResult,
)
from outreach_queue.core.pacing import CancellationToken, PacingEngine
from outreach_queue.core.queue_store import QueueStore
from outreach_queue.core.reconciler import Reconciler

__all__ = [
    # Types
    "QueueItem",
    "QueueStatus",
    "MessageType",
    "OutreachProgress",
    "ReconciliationResult",
    # Components
    "QueueStore",
    "RateAllowanceTracker",
    "PacingEngine",
    "CancellationToken",
    "Dispatcher",
    "Reconciler",
]
