"""Request/response schemas for the queue endpoints."""

from typing import Dict, List, Optional

from pydantic import BaseModel

from outreach_queue.core.model.queue_item import (
    CamelModel,
    MessageType,
    OutreachFlow,
    QueueItem,
)


class EnqueueRequest(BaseModel):
    items: List[QueueItem]


class EnqueueResponse(BaseModel):
    added: int
    skipped: int


class ItemPatchRequest(CamelModel):
    """Operator edits allowed on a queue item."""

    message_draft: Optional[str] = None
    message_type: Optional[MessageType] = None


class SendRequest(CamelModel):
    item_ids: List[str] = []
    all_pending: bool = False
    flow: Optional[OutreachFlow] = None


class AllowanceEntry(BaseModel):
    sent: int
    limit: int
    remaining: int


class AllowanceResponse(BaseModel):
    date: str
    timing_profile: str
    kinds: Dict[str, AllowanceEntry]
