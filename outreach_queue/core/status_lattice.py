"""Legal queue statuses, their order, and the monotonic advancement rule.

    pending -> sent -> connection_accepted -> pitch_pending -> pitch_sent -> replied

`failed` sits outside the order: the dispatcher reaches it from `pending`,
and only an operator retry leaves it (back to `pending`). Reconciliation
only ever moves an item forward along the order above.
"""

from typing import Dict, FrozenSet, Optional

from loguru import logger

from outreach_queue.core.model.queue_item import MessageType, QueueStatus

_ORDER = (
    QueueStatus.PENDING,
    QueueStatus.SENT,
    QueueStatus.CONNECTION_ACCEPTED,
    QueueStatus.PITCH_PENDING,
    QueueStatus.PITCH_SENT,
    QueueStatus.REPLIED,
)
_RANK: Dict[QueueStatus, int] = {status: i for i, status in enumerate(_ORDER)}

# Statuses an item may hold once it has been sent
TRACKED_STATUSES: FrozenSet[QueueStatus] = frozenset(
    {
        QueueStatus.SENT,
        QueueStatus.CONNECTION_ACCEPTED,
        QueueStatus.PITCH_PENDING,
        QueueStatus.PITCH_SENT,
    }
)

_BASE = frozenset(
    {QueueStatus.PENDING, QueueStatus.SENT, QueueStatus.REPLIED, QueueStatus.FAILED}
)
_ALLOWED: Dict[MessageType, FrozenSet[QueueStatus]] = {
    MessageType.CONNECTION_REQUEST: frozenset(QueueStatus),
    # Acceptance applies, but there is no pitch follow-up
    MessageType.CONNECTION_ONLY: _BASE | {QueueStatus.CONNECTION_ACCEPTED},
    MessageType.INMAIL: _BASE,
    MessageType.MESSAGE: _BASE,
}

_DISPATCH_TRANSITIONS = {
    QueueStatus.PENDING: frozenset({QueueStatus.SENT, QueueStatus.FAILED}),
}

# Tracker service enum -> local status. States with no local counterpart map to None.
_BACKEND_STATUS_MAP: Dict[str, Optional[QueueStatus]] = {
    "SENT": QueueStatus.SENT,
    "DELIVERED": QueueStatus.SENT,
    "CONNECTION_ACCEPTED": QueueStatus.CONNECTION_ACCEPTED,
    "PITCH_PENDING": QueueStatus.PITCH_PENDING,
    "PITCH_SENT": QueueStatus.PITCH_SENT,
    "REPLIED": QueueStatus.REPLIED,
    "NO_RESPONSE": None,
    "DECLINED": None,
    "BOUNCED": None,
}


def rank(status: QueueStatus) -> Optional[int]:
    """Position of a status in the lattice order; None for `failed`."""
    return _RANK.get(status)


def allowed_statuses(message_type: MessageType) -> FrozenSet[QueueStatus]:
    return _ALLOWED[message_type]


def is_tracked(status: QueueStatus) -> bool:
    return status in TRACKED_STATUSES


def can_dispatch_transition(current: QueueStatus, target: QueueStatus) -> bool:
    return target in _DISPATCH_TRANSITIONS.get(current, frozenset())


def can_retry(current: QueueStatus) -> bool:
    return current is QueueStatus.FAILED


def map_backend_status(raw: Optional[str]) -> Optional[QueueStatus]:
    if not raw:
        return None
    key = raw.strip().upper()
    if key not in _BACKEND_STATUS_MAP:
        logger.warning("Unknown tracker status ignored", status=raw)
        return None
    return _BACKEND_STATUS_MAP[key]


def advance(
    current: QueueStatus,
    reported: Optional[QueueStatus],
    message_type: MessageType,
) -> QueueStatus:
    """Apply a reported status under the monotonic rule.

    Returns `reported` only if the item has already been sent, the reported
    status is legal for the item's message type, and it ranks strictly above
    the current status. Anything else leaves the item where it is.
    """
    if reported is None or not is_tracked(current):
        return current
    if reported not in _ALLOWED[message_type]:
        return current
    reported_rank = rank(reported)
    if reported_rank is None or reported_rank <= _RANK[current]:
        return current
    return reported
