"""Exception hierarchy for the outreach queue engine."""

from typing import Optional


class OutreachQueueError(Exception):
    """Base class for all engine errors."""


# --- Admission: batch rejected before any network action ---


class AdmissionError(OutreachQueueError):
    """A batch was refused before any send was attempted."""


class NoValidCandidatesError(AdmissionError):
    def __init__(self, message: str = "No valid candidates selected"):
        super().__init__(message)


class AllowanceExhaustedError(AdmissionError):
    def __init__(self, kind: str, remaining: int, limit: int):
        self.kind = kind
        self.remaining = remaining
        self.limit = limit
        super().__init__(
            f"Daily {kind} allowance exhausted: {remaining} of {limit} remaining today"
        )


class ProviderNotConfiguredError(AdmissionError):
    def __init__(self):
        super().__init__(
            "Messaging provider is not configured: set UNIPILE_DSN, UNIPILE_API_KEY "
            "and UNIPILE_ACCOUNT_ID"
        )


class BatchInProgressError(AdmissionError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"A batch is already running: {run_id}")


# --- Queue store ---


class QueueItemNotFoundError(OutreachQueueError, KeyError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Queue item not found: {item_id}")

    def __str__(self) -> str:
        return self.args[0]


class InvalidTransitionError(OutreachQueueError):
    def __init__(self, item_id: str, current: str, target: str):
        self.item_id = item_id
        self.current = current
        self.target = target
        super().__init__(f"Illegal transition for {item_id}: {current} -> {target}")


class TrackerConflictError(OutreachQueueError):
    def __init__(self, item_id: str, existing: str, proposed: str):
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} already tracked as {existing}; refusing {proposed}"
        )


# --- External collaborators ---


class CollaboratorError(OutreachQueueError):
    """A call to the messaging provider or tracker service failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MessagingProviderError(CollaboratorError):
    pass


class TrackerServiceError(CollaboratorError):
    pass


# --- Reconciliation ---


class SyncError(OutreachQueueError):
    """A force sync could not complete; no item was changed."""
